"""Status enums for maintenance tasks and vehicle plans."""

from enum import Enum


class TaskStatus(Enum):
    """Task lifecycle states. COMPLETED and DISMISSED are terminal."""

    PENDING = "pending"
    DUE = "due"
    SNOOZED = "snoozed"
    COMPLETED = "completed"
    DISMISSED = "dismissed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.DISMISSED)

    @property
    def is_open(self) -> bool:
        """Open tasks can still be matched against a maintenance log."""
        return self in (TaskStatus.PENDING, TaskStatus.DUE)


class VehiclePlanStatus(Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    ENDED = "ended"


class CompletionSource(Enum):
    """How a task got completed."""

    MANUAL = "manual"
    AUTO_MATCHED = "auto_matched"
    EMAIL = "email"


class MaintenanceType(Enum):
    OIL_CHANGE = "oil_change"
    TIRES = "tires"
    BRAKES = "brakes"
    SERVICE = "service"
    REPAIR = "repair"
    OTHER = "other"
