"""Exceptions raised by the maintenance engine."""

from models.cadence import CadenceConfigError


class MaintenanceError(Exception):
    """Base class for engine errors."""


class StorageError(MaintenanceError):
    """A storage operation failed."""


class LookupFailed(MaintenanceError):
    """A referenced record (plan, vehicle, user) does not exist."""


class TaskNotFoundError(LookupFailed):
    pass


class InvalidTransitionError(MaintenanceError):
    """The requested status change is not allowed from the task's current status."""


class EmailDeliveryError(MaintenanceError):
    """The email transport could not deliver a message."""


class TaskAccessDenied(MaintenanceError):
    """The acting user does not own the task."""


class InvalidActionTokenError(MaintenanceError):
    """An email action link is malformed, expired, or forged."""


__all__ = [
    "CadenceConfigError",
    "MaintenanceError",
    "StorageError",
    "LookupFailed",
    "TaskNotFoundError",
    "InvalidTransitionError",
    "EmailDeliveryError",
    "TaskAccessDenied",
    "InvalidActionTokenError",
]
