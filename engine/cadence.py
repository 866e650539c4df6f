"""
Cadence evaluators.

One side-effect-free function per cadence type. Each takes the vehicle
plan, its cadence config, and the relevant vehicle history, and returns the
trigger candidates that should exist right now. The trigger processor turns
candidates into tasks, one per checklist item.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List

from models import (
    Cadence,
    EngineHoursCadence,
    EngineHoursContext,
    EventCountCadence,
    EventCountContext,
    MaintenanceLog,
    OdometerCadence,
    OdometerContext,
    PlanChecklistItem,
    TimeIntervalCadence,
    TimeIntervalContext,
    Trackday,
    TriggerContext,
    VehiclePlan,
    calc_next_service,
    in_early_window,
    latest_odometer,
    next_interval_date,
    start_of_day,
)

LOOK_AHEAD_DAYS = 30
ODOMETER_EARLY_WINDOW_KM = 500
ENGINE_HOURS_EARLY_WINDOW = 5


@dataclass(frozen=True)
class TriggerCandidate:
    """A trigger point that should be represented by a task per checklist item."""

    trigger_at: datetime
    context: TriggerContext

    def due_at_for(self, item: PlanChecklistItem) -> datetime:
        """Trigger date plus the item's day offset (other offset units are ignored)."""
        return self.trigger_at + timedelta(days=item.due_offset.days or 0)


@dataclass
class VehicleHistory:
    """What the evaluators may look at besides the plan itself."""

    trackdays: List[Trackday] = field(default_factory=list)
    logs: List[MaintenanceLog] = field(default_factory=list)


def evaluate_event_count(
    vehicle_plan: VehiclePlan,
    cadence: EventCountCadence,
    trackdays: List[Trackday],
    now: datetime,
) -> List[TriggerCandidate]:
    """
    Trigger on the upcoming trackday that completes the next block of N.

    Completed trackdays are those after plan activation and before now. If
    the completed count is a positive multiple of N the very next trackday
    is the trigger; otherwise it is the one that brings the count to the
    next multiple. Nothing is emitted until that trackday is on the calendar.
    """
    n = cadence.after_every_n
    activation = start_of_day(vehicle_plan.activation_date)
    ordered = sorted(trackdays, key=lambda t: t.start_date)

    completed = [
        t for t in ordered
        if activation < start_of_day(t.start_date) < now
    ]
    upcoming = [t for t in ordered if start_of_day(t.start_date) > now]
    completed_count = len(completed)

    if completed_count > 0 and completed_count % n == 0:
        remaining = 1
    else:
        remaining = n - (completed_count % n)

    if len(upcoming) < remaining:
        return []

    trigger = upcoming[remaining - 1]
    return [
        TriggerCandidate(
            trigger_at=start_of_day(trigger.start_date),
            context=EventCountContext(
                trackday_id=trigger.id,
                completed_count=completed_count,
                after_every_n=n,
            ),
        )
    ]


def evaluate_time_interval(
    vehicle_plan: VehiclePlan,
    cadence: TimeIntervalCadence,
    now: datetime,
) -> List[TriggerCandidate]:
    """Next start + k * interval that is not in the past, if within the look-ahead window."""
    start = start_of_day(cadence.start_date or vehicle_plan.activation_date)
    scheduled = next_interval_date(start, cadence.interval_days, now)

    if scheduled >= now + timedelta(days=LOOK_AHEAD_DAYS):
        return []
    return [
        TriggerCandidate(
            trigger_at=scheduled,
            context=TimeIntervalContext(
                scheduled_date=scheduled.date(),
                interval_days=cadence.interval_days,
            ),
        )
    ]


def evaluate_odometer(
    vehicle_plan: VehiclePlan,
    cadence: OdometerCadence,
    logs: List[MaintenanceLog],
    now: datetime,
) -> List[TriggerCandidate]:
    """Trigger once the latest logged odometer is within 500 km of the next service."""
    start_km = cadence.start_odometer
    if start_km is None:
        start_km = vehicle_plan.odometer_at_activation or 0

    current_km = latest_odometer(logs)
    if current_km is None:
        current_km = start_km

    service_km = calc_next_service(current_km, start_km, cadence.interval_km)
    if not in_early_window(current_km, service_km, ODOMETER_EARLY_WINDOW_KM):
        return []
    return [
        TriggerCandidate(
            trigger_at=now,
            context=OdometerContext(
                service_km=service_km,
                current_km=current_km,
                interval_km=cadence.interval_km,
            ),
        )
    ]


def evaluate_engine_hours(
    vehicle_plan: VehiclePlan,
    cadence: EngineHoursCadence,
    now: datetime,
) -> List[TriggerCandidate]:
    """Trigger once current engine hours are within 5 hours of the next service."""
    start_hours = cadence.start_hours
    if start_hours is None:
        start_hours = vehicle_plan.engine_hours_at_activation or 0

    current_hours = vehicle_plan.current_engine_hours
    if current_hours is None:
        current_hours = start_hours

    service_hours = calc_next_service(current_hours, start_hours, cadence.interval_hours)
    if not in_early_window(current_hours, service_hours, ENGINE_HOURS_EARLY_WINDOW):
        return []
    return [
        TriggerCandidate(
            trigger_at=now,
            context=EngineHoursContext(
                service_hours=service_hours,
                current_hours=current_hours,
                interval_hours=cadence.interval_hours,
            ),
        )
    ]


def evaluate(
    vehicle_plan: VehiclePlan,
    cadence: Cadence,
    history: VehicleHistory,
    now: datetime,
) -> List[TriggerCandidate]:
    """Dispatch to the evaluator for the cadence variant."""
    if isinstance(cadence, EventCountCadence):
        return evaluate_event_count(vehicle_plan, cadence, history.trackdays, now)
    if isinstance(cadence, TimeIntervalCadence):
        return evaluate_time_interval(vehicle_plan, cadence, now)
    if isinstance(cadence, OdometerCadence):
        return evaluate_odometer(vehicle_plan, cadence, history.logs, now)
    if isinstance(cadence, EngineHoursCadence):
        return evaluate_engine_hours(vehicle_plan, cadence, now)
    raise TypeError(f"Unsupported cadence: {type(cadence).__name__}")
