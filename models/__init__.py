"""
Trackday maintenance models.

This package provides data models for planning vehicle maintenance:
- Cadence variants: how often a plan's checklist comes due
- Trigger contexts: why a task was generated (also its dedup key)
- MaintenancePlan / PlanChecklistItem: declarative plans
- Vehicle / VehiclePlan / Trackday: what the plans apply to
- MaintenanceTask / TaskEvent: generated work and its audit trail
- MaintenanceLog: recorded service actions
"""

from .status import TaskStatus, VehiclePlanStatus, CompletionSource, MaintenanceType
from .cadence import (
    CadenceType,
    CadenceConfigError,
    Cadence,
    EventCountCadence,
    TimeIntervalCadence,
    OdometerCadence,
    EngineHoursCadence,
    TriggerContext,
    EventCountContext,
    TimeIntervalContext,
    OdometerContext,
    EngineHoursContext,
)
from .plan import DueOffset, AutoCompleteMatcher, MaintenancePlan, PlanChecklistItem
from .vehicle import User, NotificationPreferences, Vehicle, Trackday, VehiclePlan
from .maintenance_log import MaintenanceLog
from .task import MaintenanceTask, TaskEvent, EnrichedTask
from .calculations import (
    utcnow,
    start_of_day,
    calc_next_service,
    in_early_window,
    next_interval_date,
    latest_odometer,
    days_since,
)
from .loader import DataSet, load_data, save_data, parse_cadence

__all__ = [
    "TaskStatus",
    "VehiclePlanStatus",
    "CompletionSource",
    "MaintenanceType",
    "CadenceType",
    "CadenceConfigError",
    "Cadence",
    "EventCountCadence",
    "TimeIntervalCadence",
    "OdometerCadence",
    "EngineHoursCadence",
    "TriggerContext",
    "EventCountContext",
    "TimeIntervalContext",
    "OdometerContext",
    "EngineHoursContext",
    "DueOffset",
    "AutoCompleteMatcher",
    "MaintenancePlan",
    "PlanChecklistItem",
    "User",
    "NotificationPreferences",
    "Vehicle",
    "Trackday",
    "VehiclePlan",
    "MaintenanceLog",
    "MaintenanceTask",
    "TaskEvent",
    "EnrichedTask",
    "utcnow",
    "start_of_day",
    "calc_next_service",
    "in_early_window",
    "next_interval_date",
    "latest_odometer",
    "days_since",
    "DataSet",
    "load_data",
    "save_data",
    "parse_cadence",
]
