"""Vehicles, their owners, and plan assignments."""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Optional

from .status import VehiclePlanStatus


@dataclass
class User:
    id: str
    email: Optional[str] = None


@dataclass
class NotificationPreferences:
    user_id: str
    email_enabled: bool = True


@dataclass
class Vehicle:
    id: str
    user_id: str
    name: str


@dataclass
class Trackday:
    """A scheduled or past event the vehicle attends."""

    id: str
    vehicle_id: str
    start_date: date


@dataclass
class VehiclePlan:
    """
    Assignment of a maintenance plan to one vehicle.

    ``current_engine_hours`` is the only place the engine reads the
    vehicle's present engine-hours figure from; ``metadata`` is free-form
    and never consulted.
    """

    id: str
    vehicle_id: str
    plan_id: str
    activation_date: date
    odometer_at_activation: Optional[float] = None
    engine_hours_at_activation: Optional[float] = None
    current_engine_hours: Optional[float] = None
    status: VehiclePlanStatus = VehiclePlanStatus.ACTIVE
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.status == VehiclePlanStatus.ACTIVE
