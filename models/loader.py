"""YAML loading and saving utilities for maintenance data files."""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from dateutil.parser import isoparse
from jsonschema import ValidationError, validate

from .cadence import (
    Cadence,
    CadenceConfigError,
    CadenceType,
    EngineHoursCadence,
    EngineHoursContext,
    EventCountCadence,
    EventCountContext,
    OdometerCadence,
    OdometerContext,
    TimeIntervalCadence,
    TimeIntervalContext,
    TriggerContext,
)
from .maintenance_log import MaintenanceLog
from .plan import AutoCompleteMatcher, DueOffset, MaintenancePlan, PlanChecklistItem
from .status import CompletionSource, TaskStatus, VehiclePlanStatus
from .task import MaintenanceTask, TaskEvent
from .vehicle import NotificationPreferences, Trackday, User, Vehicle, VehiclePlan

logger = logging.getLogger(__name__)

_POSITIVE = {"type": "number", "exclusiveMinimum": 0}
_NON_NEGATIVE = {"type": ["number", "null"], "minimum": 0}

CADENCE_SCHEMAS: Dict[CadenceType, Dict[str, Any]] = {
    CadenceType.EVENT_COUNT: {
        "type": "object",
        "required": ["afterEveryN"],
        "properties": {"afterEveryN": {"type": "integer", "minimum": 1}},
    },
    CadenceType.TIME_INTERVAL: {
        "type": "object",
        "required": ["intervalDays"],
        "properties": {"intervalDays": _POSITIVE},
    },
    CadenceType.ODOMETER: {
        "type": "object",
        "required": ["intervalKm"],
        "properties": {"intervalKm": _POSITIVE, "startOdometer": _NON_NEGATIVE},
    },
    CadenceType.ENGINE_HOURS: {
        "type": "object",
        "required": ["intervalHours"],
        "properties": {"intervalHours": _POSITIVE, "startHours": _NON_NEGATIVE},
    },
}


@dataclass
class DataSet:
    """Every record held in a data file."""

    users: List[User] = field(default_factory=list)
    preferences: List[NotificationPreferences] = field(default_factory=list)
    vehicles: List[Vehicle] = field(default_factory=list)
    trackdays: List[Trackday] = field(default_factory=list)
    plans: List[MaintenancePlan] = field(default_factory=list)
    checklist_items: List[PlanChecklistItem] = field(default_factory=list)
    vehicle_plans: List[VehiclePlan] = field(default_factory=list)
    maintenance_logs: List[MaintenanceLog] = field(default_factory=list)
    tasks: List[MaintenanceTask] = field(default_factory=list)
    task_events: List[TaskEvent] = field(default_factory=list)


# =============================================================================
# Value parsing
# =============================================================================


def parse_date(value: Any) -> Optional[date]:
    """Accept YAML dates, datetimes, or ISO strings."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return isoparse(str(value)).date()


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse to an aware datetime; naive values are taken as UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        parsed = isoparse(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def parse_cadence(cadence_type: str, config: Optional[Dict[str, Any]]) -> Cadence:
    """
    Build the cadence variant for a plan.

    Raises CadenceConfigError when the type is unknown or the config does
    not match it.
    """
    try:
        kind = CadenceType(cadence_type)
    except ValueError:
        raise CadenceConfigError(f"Unknown cadence type {cadence_type!r}") from None

    if config is None:
        raise CadenceConfigError(f"Missing {kind.value} config")
    try:
        validate(instance=config, schema=CADENCE_SCHEMAS[kind])
    except ValidationError as e:
        raise CadenceConfigError(f"Invalid {kind.value} config: {e.message}") from e

    if kind == CadenceType.EVENT_COUNT:
        return EventCountCadence(after_every_n=config["afterEveryN"])
    if kind == CadenceType.TIME_INTERVAL:
        try:
            start_date = parse_date(config.get("startDate"))
        except (ValueError, OverflowError) as e:
            raise CadenceConfigError(f"Invalid startDate: {e}") from e
        return TimeIntervalCadence(
            interval_days=config["intervalDays"], start_date=start_date
        )
    if kind == CadenceType.ODOMETER:
        return OdometerCadence(
            interval_km=config["intervalKm"],
            start_odometer=config.get("startOdometer"),
        )
    return EngineHoursCadence(
        interval_hours=config["intervalHours"],
        start_hours=config.get("startHours"),
    )


def cadence_to_dict(cadence: Cadence) -> Dict[str, Any]:
    """Serialize a cadence variant to its config dict (camelCase keys)."""
    if isinstance(cadence, EventCountCadence):
        return {"afterEveryN": cadence.after_every_n}
    if isinstance(cadence, TimeIntervalCadence):
        d: Dict[str, Any] = {"intervalDays": cadence.interval_days}
        if cadence.start_date is not None:
            d["startDate"] = cadence.start_date.isoformat()
        return d
    if isinstance(cadence, OdometerCadence):
        d = {"intervalKm": cadence.interval_km}
        if cadence.start_odometer is not None:
            d["startOdometer"] = cadence.start_odometer
        return d
    d = {"intervalHours": cadence.interval_hours}
    if cadence.start_hours is not None:
        d["startHours"] = cadence.start_hours
    return d


def parse_trigger_context(dct: Optional[Dict[str, Any]]) -> Optional[TriggerContext]:
    if not dct:
        return None
    kind = CadenceType(dct["triggerType"])
    if kind == CadenceType.EVENT_COUNT:
        return EventCountContext(
            trackday_id=dct["trackdayId"],
            completed_count=dct.get("completedTrackdaysCount", 0),
            after_every_n=dct.get("afterEveryN", 1),
        )
    if kind == CadenceType.TIME_INTERVAL:
        return TimeIntervalContext(
            scheduled_date=parse_date(dct["scheduledDate"]),
            interval_days=dct.get("intervalDays", 0),
        )
    if kind == CadenceType.ODOMETER:
        return OdometerContext(
            service_km=dct["serviceKm"],
            current_km=dct.get("currentKm", 0),
            interval_km=dct.get("intervalKm", 0),
        )
    return EngineHoursContext(
        service_hours=dct["serviceHours"],
        current_hours=dct.get("currentHours", 0),
        interval_hours=dct.get("intervalHours", 0),
    )


# =============================================================================
# Record parsing
# =============================================================================


def _parse_checklist_item(plan_id: str, dct: Dict[str, Any]) -> PlanChecklistItem:
    offset = dct.get("dueOffset") or {}
    matcher = dct.get("autoCompleteMatcher") or {}
    return PlanChecklistItem(
        id=dct["id"],
        plan_id=plan_id,
        title=dct["title"],
        description=dct.get("description") or "",
        maintenance_type=dct.get("maintenanceType"),
        due_offset=DueOffset(
            days=offset.get("days") or 0,
            trackdays=offset.get("trackdays"),
            odometer_km=offset.get("odometerKm"),
        ),
        matcher=AutoCompleteMatcher(
            maintenance_type=matcher.get("maintenanceType"),
            odometer_tolerance=matcher.get("odometerTolerance"),
            parts_required=list(matcher.get("partsRequired") or []),
        ),
        sequence=dct.get("sequence") or 0,
        is_critical=bool(dct.get("isCritical")),
    )


def _parse_vehicle_plan(dct: Dict[str, Any]) -> VehiclePlan:
    return VehiclePlan(
        id=dct["id"],
        vehicle_id=dct["vehicleId"],
        plan_id=dct["planId"],
        activation_date=parse_date(dct["activationDate"]),
        odometer_at_activation=dct.get("odometerAtActivation"),
        engine_hours_at_activation=dct.get("engineHoursAtActivation"),
        current_engine_hours=dct.get("currentEngineHours"),
        status=VehiclePlanStatus(dct.get("status") or "active"),
        metadata=dict(dct.get("metadata") or {}),
    )


def _parse_task(dct: Dict[str, Any]) -> MaintenanceTask:
    source = dct.get("completionSource")
    return MaintenanceTask(
        id=dct["id"],
        vehicle_plan_id=dct["vehiclePlanId"],
        due_at=parse_datetime(dct["dueAt"]),
        checklist_item_id=dct.get("checklistItemId"),
        custom_title=dct.get("customTitle"),
        notes=dct.get("notes") or "",
        status=TaskStatus(dct.get("status") or "pending"),
        trigger_context=parse_trigger_context(dct.get("triggerContext")),
        snoozed_until=parse_datetime(dct.get("snoozedUntil")),
        last_notification_at=parse_datetime(dct.get("lastNotificationAt")),
        completed_at=parse_datetime(dct.get("completedAt")),
        completion_source=CompletionSource(source) if source else None,
        maintenance_log_id=dct.get("maintenanceLogId"),
        dismissed_at=parse_datetime(dct.get("dismissedAt")),
        created_at=parse_datetime(dct.get("createdAt")),
    )


def _parse_log(dct: Dict[str, Any]) -> MaintenanceLog:
    return MaintenanceLog(
        id=dct["id"],
        vehicle_id=dct["vehicleId"],
        date=parse_date(dct["date"]),
        type=dct["type"],
        odometer_km=dct.get("odometerKm"),
        notes=dct.get("notes") or "",
        cost_cents=dct.get("costCents") or 0,
    )


def parse_data(data: Optional[Dict[str, Any]]) -> DataSet:
    """
    Parse the raw YAML structure into model objects.

    A plan whose cadence config is invalid is logged and left out, along
    with its checklist items; everything else in the file still loads.
    """
    data = data or {}
    dataset = DataSet()

    dataset.users = [User(d["id"], d.get("email")) for d in data.get("users") or []]
    dataset.preferences = [
        NotificationPreferences(d["userId"], bool(d.get("emailEnabled", True)))
        for d in data.get("notificationPreferences") or []
    ]
    dataset.vehicles = [
        Vehicle(d["id"], d["userId"], d.get("name") or d["id"])
        for d in data.get("vehicles") or []
    ]
    dataset.trackdays = [
        Trackday(d["id"], d["vehicleId"], parse_date(d["startDate"]))
        for d in data.get("trackdays") or []
    ]

    for d in data.get("plans") or []:
        try:
            cadence = parse_cadence(d.get("cadenceType"), d.get("cadenceConfig"))
        except CadenceConfigError as e:
            logger.warning("Skipping plan %s: %s", d.get("id"), e)
            continue
        dataset.plans.append(
            MaintenancePlan(
                id=d["id"],
                name=d["name"],
                cadence=cadence,
                is_template=bool(d.get("isTemplate")),
                owner_id=d.get("ownerId"),
            )
        )
        dataset.checklist_items.extend(
            _parse_checklist_item(d["id"], item) for item in d.get("checklist") or []
        )

    dataset.vehicle_plans = [_parse_vehicle_plan(d) for d in data.get("vehiclePlans") or []]
    dataset.maintenance_logs = [_parse_log(d) for d in data.get("maintenanceLogs") or []]
    dataset.tasks = [_parse_task(d) for d in data.get("tasks") or []]
    dataset.task_events = [
        TaskEvent(
            id=d["id"],
            task_id=d["taskId"],
            type=d["type"],
            occurred_at=parse_datetime(d["occurredAt"]),
            actor=d.get("actor") or "system",
            payload=dict(d.get("payload") or {}),
        )
        for d in data.get("taskEvents") or []
    ]
    return dataset


def load_data(filename: Union[str, Path]) -> DataSet:
    """Load a maintenance data file."""
    with open(filename, "rb") as fp:
        return parse_data(yaml.load(fp, Loader=yaml.SafeLoader))


# =============================================================================
# Serialization
# =============================================================================


def _drop_none(d: Dict[str, Any]) -> Dict[str, Any]:
    """Omit None values for cleaner YAML."""
    return {k: v for k, v in d.items() if v is not None}


def _checklist_item_to_dict(item: PlanChecklistItem) -> Dict[str, Any]:
    d = _drop_none({
        "id": item.id,
        "title": item.title,
        "description": item.description or None,
        "maintenanceType": item.maintenance_type,
        "sequence": item.sequence,
    })
    d["dueOffset"] = _drop_none({
        "days": item.due_offset.days,
        "trackdays": item.due_offset.trackdays,
        "odometerKm": item.due_offset.odometer_km,
    })
    matcher = _drop_none({
        "maintenanceType": item.matcher.maintenance_type,
        "odometerTolerance": item.matcher.odometer_tolerance,
        "partsRequired": item.matcher.parts_required or None,
    })
    if matcher:
        d["autoCompleteMatcher"] = matcher
    if item.is_critical:
        d["isCritical"] = True
    return d


def _task_to_dict(task: MaintenanceTask) -> Dict[str, Any]:
    return _drop_none({
        "id": task.id,
        "vehiclePlanId": task.vehicle_plan_id,
        "checklistItemId": task.checklist_item_id,
        "customTitle": task.custom_title,
        "notes": task.notes or None,
        "dueAt": _format_datetime(task.due_at),
        "status": task.status.value,
        "triggerContext": task.trigger_context.to_dict() if task.trigger_context else None,
        "snoozedUntil": _format_datetime(task.snoozed_until),
        "lastNotificationAt": _format_datetime(task.last_notification_at),
        "completedAt": _format_datetime(task.completed_at),
        "completionSource": task.completion_source.value if task.completion_source else None,
        "maintenanceLogId": task.maintenance_log_id,
        "dismissedAt": _format_datetime(task.dismissed_at),
        "createdAt": _format_datetime(task.created_at),
    })


def dump_data(dataset: DataSet) -> Dict[str, Any]:
    """Convert a DataSet back to the YAML structure (camelCase keys)."""
    items_by_plan: Dict[str, List[PlanChecklistItem]] = {}
    for item in dataset.checklist_items:
        items_by_plan.setdefault(item.plan_id, []).append(item)

    return {
        "users": [_drop_none({"id": u.id, "email": u.email}) for u in dataset.users],
        "notificationPreferences": [
            {"userId": p.user_id, "emailEnabled": p.email_enabled}
            for p in dataset.preferences
        ],
        "vehicles": [
            {"id": v.id, "userId": v.user_id, "name": v.name} for v in dataset.vehicles
        ],
        "trackdays": [
            {"id": t.id, "vehicleId": t.vehicle_id, "startDate": t.start_date.isoformat()}
            for t in dataset.trackdays
        ],
        "plans": [
            _drop_none({
                "id": p.id,
                "name": p.name,
                "isTemplate": p.is_template or None,
                "ownerId": p.owner_id,
                "cadenceType": p.cadence_type.value,
                "cadenceConfig": cadence_to_dict(p.cadence),
                "checklist": [
                    _checklist_item_to_dict(i)
                    for i in sorted(items_by_plan.get(p.id, []), key=lambda i: i.sequence)
                ],
            })
            for p in dataset.plans
        ],
        "vehiclePlans": [
            _drop_none({
                "id": vp.id,
                "vehicleId": vp.vehicle_id,
                "planId": vp.plan_id,
                "activationDate": vp.activation_date.isoformat(),
                "odometerAtActivation": vp.odometer_at_activation,
                "engineHoursAtActivation": vp.engine_hours_at_activation,
                "currentEngineHours": vp.current_engine_hours,
                "status": vp.status.value,
                "metadata": vp.metadata or None,
            })
            for vp in dataset.vehicle_plans
        ],
        "maintenanceLogs": [
            _drop_none({
                "id": log.id,
                "vehicleId": log.vehicle_id,
                "date": log.date.isoformat(),
                "type": log.type,
                "odometerKm": log.odometer_km,
                "notes": log.notes or None,
                "costCents": log.cost_cents,
            })
            for log in dataset.maintenance_logs
        ],
        "tasks": [_task_to_dict(t) for t in dataset.tasks],
        "taskEvents": [
            _drop_none({
                "id": e.id,
                "taskId": e.task_id,
                "type": e.type,
                "occurredAt": _format_datetime(e.occurred_at),
                "actor": e.actor,
                "payload": e.payload or None,
            })
            for e in dataset.task_events
        ],
    }


def save_data(filename: Union[str, Path], dataset: DataSet) -> None:
    """Write a DataSet back to a YAML data file."""
    with open(filename, "w") as fp:
        yaml.dump(
            dump_data(dataset),
            fp,
            default_flow_style=False,
            allow_unicode=True,
            sort_keys=False,
            width=120,
        )
