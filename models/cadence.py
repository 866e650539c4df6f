"""
Cadence definitions and trigger contexts.

A plan carries exactly one cadence variant; the variant class *is* the
cadence type, so a plan can never hold a config for the wrong type.
Each generated task carries the matching trigger context variant, which
doubles as its de-duplication key.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Any, Dict, Optional, Union


class CadenceType(Enum):
    EVENT_COUNT = "event_count"
    TIME_INTERVAL = "time_interval"
    ODOMETER = "odometer"
    ENGINE_HOURS = "engine_hours"


class CadenceConfigError(ValueError):
    """A plan's cadence config is missing or malformed."""


def _require_positive(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise CadenceConfigError(f"{name} must be a positive number, got {value!r}")


def _require_non_negative(name: str, value: Any) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise CadenceConfigError(f"{name} must be a non-negative number, got {value!r}")


# =============================================================================
# Cadence variants
# =============================================================================


@dataclass(frozen=True)
class EventCountCadence:
    """Due after every N completed trackdays."""

    after_every_n: int

    cadence_type = CadenceType.EVENT_COUNT

    def __post_init__(self):
        if isinstance(self.after_every_n, bool) or not isinstance(self.after_every_n, int):
            raise CadenceConfigError(
                f"afterEveryN must be an integer, got {self.after_every_n!r}"
            )
        _require_positive("afterEveryN", self.after_every_n)


@dataclass(frozen=True)
class TimeIntervalCadence:
    """Due every interval_days, counted from start_date or plan activation."""

    interval_days: int
    start_date: Optional[date] = None

    cadence_type = CadenceType.TIME_INTERVAL

    def __post_init__(self):
        _require_positive("intervalDays", self.interval_days)


@dataclass(frozen=True)
class OdometerCadence:
    interval_km: float
    start_odometer: Optional[float] = None

    cadence_type = CadenceType.ODOMETER

    def __post_init__(self):
        _require_positive("intervalKm", self.interval_km)
        _require_non_negative("startOdometer", self.start_odometer)


@dataclass(frozen=True)
class EngineHoursCadence:
    interval_hours: float
    start_hours: Optional[float] = None

    cadence_type = CadenceType.ENGINE_HOURS

    def __post_init__(self):
        _require_positive("intervalHours", self.interval_hours)
        _require_non_negative("startHours", self.start_hours)


Cadence = Union[EventCountCadence, TimeIntervalCadence, OdometerCadence, EngineHoursCadence]


# =============================================================================
# Trigger contexts
# =============================================================================


@dataclass(frozen=True)
class EventCountContext:
    """Task generated for a specific upcoming trackday."""

    trackday_id: str
    completed_count: int
    after_every_n: int

    trigger_type = CadenceType.EVENT_COUNT
    target_odometer = None

    def same_trigger(self, other: "TriggerContext") -> bool:
        return (
            isinstance(other, EventCountContext)
            and other.trackday_id == self.trackday_id
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "triggerType": self.trigger_type.value,
            "trackdayId": self.trackday_id,
            "completedTrackdaysCount": self.completed_count,
            "afterEveryN": self.after_every_n,
        }


@dataclass(frozen=True)
class TimeIntervalContext:
    scheduled_date: date
    interval_days: int

    trigger_type = CadenceType.TIME_INTERVAL
    target_odometer = None

    def same_trigger(self, other: "TriggerContext") -> bool:
        """Scheduled dates within one day of each other are the same trigger."""
        if not isinstance(other, TimeIntervalContext):
            return False
        return abs(other.scheduled_date - self.scheduled_date) <= timedelta(days=1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "triggerType": self.trigger_type.value,
            "intervalDays": self.interval_days,
            "scheduledDate": self.scheduled_date.isoformat(),
        }


@dataclass(frozen=True)
class OdometerContext:
    service_km: float
    current_km: float
    interval_km: float

    trigger_type = CadenceType.ODOMETER

    @property
    def target_odometer(self) -> float:
        """Odometer reading the matcher compares a log against."""
        return self.service_km

    def same_trigger(self, other: "TriggerContext") -> bool:
        return isinstance(other, OdometerContext) and other.service_km == self.service_km

    def to_dict(self) -> Dict[str, Any]:
        return {
            "triggerType": self.trigger_type.value,
            "intervalKm": self.interval_km,
            "currentKm": self.current_km,
            "serviceKm": self.service_km,
            "targetOdometer": self.service_km,
        }


@dataclass(frozen=True)
class EngineHoursContext:
    service_hours: float
    current_hours: float
    interval_hours: float

    trigger_type = CadenceType.ENGINE_HOURS
    target_odometer = None

    def same_trigger(self, other: "TriggerContext") -> bool:
        return (
            isinstance(other, EngineHoursContext)
            and other.service_hours == self.service_hours
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "triggerType": self.trigger_type.value,
            "intervalHours": self.interval_hours,
            "currentHours": self.current_hours,
            "serviceHours": self.service_hours,
        }


TriggerContext = Union[EventCountContext, TimeIntervalContext, OdometerContext, EngineHoursContext]
