"""Helper functions for cadence due calculations."""

import math
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Optional

from .maintenance_log import MaintenanceLog


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def start_of_day(day: date) -> datetime:
    """Midnight UTC at the start of ``day``."""
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def calc_next_service(current: float, start: float, interval: float) -> float:
    """
    Next service threshold at or above the current reading.

    Thresholds sit at start + k * interval. A reading exactly on the start
    point (or on any threshold) has that threshold as its next service.
    """
    intervals = math.ceil((current - start) / interval)
    return start + intervals * interval


def in_early_window(current: float, threshold: float, window: float) -> bool:
    """True once the reading is within ``window`` of the threshold (or past it)."""
    return current >= threshold - window


def next_interval_date(start: datetime, interval_days: float, now: datetime) -> datetime:
    """First start + k * interval_days that is not before ``now``."""
    if start >= now:
        return start
    step = timedelta(days=interval_days)
    # Jump straight to the right k instead of looping over every interval
    k = math.ceil((now - start) / step)
    candidate = start + k * step
    while candidate < now:
        candidate += step
    return candidate


def latest_odometer(logs: Iterable[MaintenanceLog]) -> Optional[float]:
    """Odometer reading of the most recent log that has one."""
    with_reading = [log for log in logs if log.odometer_km is not None]
    if not with_reading:
        return None
    return max(with_reading, key=lambda log: log.date).odometer_km


def days_since(moment: datetime, now: datetime) -> int:
    """Whole days from ``moment`` to ``now``, floored; negative while still ahead."""
    return math.floor((now - moment) / timedelta(days=1))
