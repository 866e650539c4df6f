"""
Storage contract for the maintenance engine, plus an in-memory store.

The engine only talks to ``Storage``; any backend that implements it can
sit underneath. ``MemoryStore`` backs the CLI, the web app, and the tests,
and round-trips to a YAML data file through ``models.loader``.
"""

import dataclasses
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import yaml

from models import (
    DataSet,
    MaintenanceLog,
    MaintenancePlan,
    MaintenanceTask,
    NotificationPreferences,
    PlanChecklistItem,
    TaskEvent,
    TaskStatus,
    Trackday,
    User,
    Vehicle,
    VehiclePlan,
    VehiclePlanStatus,
    load_data,
    save_data,
)

from .errors import StorageError, TaskNotFoundError

logger = logging.getLogger(__name__)


def new_id() -> str:
    return uuid.uuid4().hex


class Storage(ABC):
    """Typed record access used by the engine. Failures raise StorageError."""

    # Users and preferences
    @abstractmethod
    def get_user(self, user_id: str) -> Optional[User]: ...

    @abstractmethod
    def get_notification_preferences(self, user_id: str) -> Optional[NotificationPreferences]: ...

    # Vehicles and events
    @abstractmethod
    def get_vehicle(self, vehicle_id: str) -> Optional[Vehicle]: ...

    @abstractmethod
    def list_vehicles(self, user_id: Optional[str] = None) -> List[Vehicle]: ...

    @abstractmethod
    def list_trackdays(self, vehicle_id: str) -> List[Trackday]: ...

    # Plans
    @abstractmethod
    def get_maintenance_plan(self, plan_id: str) -> Optional[MaintenancePlan]: ...

    @abstractmethod
    def list_checklist_items(self, plan_id: str) -> List[PlanChecklistItem]: ...

    @abstractmethod
    def get_vehicle_plan(self, vehicle_plan_id: str) -> Optional[VehiclePlan]: ...

    @abstractmethod
    def list_vehicle_plans(
        self,
        status: Optional[VehiclePlanStatus] = None,
        vehicle_id: Optional[str] = None,
    ) -> List[VehiclePlan]: ...

    # Maintenance logs
    @abstractmethod
    def list_maintenance_logs(self, vehicle_id: str) -> List[MaintenanceLog]: ...

    @abstractmethod
    def create_maintenance_log(self, log: MaintenanceLog) -> MaintenanceLog: ...

    # Tasks
    @abstractmethod
    def get_task(self, task_id: str) -> Optional[MaintenanceTask]: ...

    @abstractmethod
    def list_tasks(
        self,
        vehicle_plan_id: Optional[str] = None,
        status: Optional[TaskStatus] = None,
        vehicle_id: Optional[str] = None,
    ) -> List[MaintenanceTask]: ...

    @abstractmethod
    def create_task(self, task: MaintenanceTask) -> MaintenanceTask: ...

    @abstractmethod
    def create_task_if_absent(
        self,
        task: MaintenanceTask,
        is_duplicate: Callable[[MaintenanceTask], bool],
    ) -> Optional[MaintenanceTask]:
        """
        Insert ``task`` unless an existing task of the same vehicle plan
        satisfies ``is_duplicate``. Check and insert are one atomic step.
        Returns the stored task, or None when a duplicate was found.
        """

    @abstractmethod
    def update_task(self, task_id: str, **changes) -> MaintenanceTask: ...

    @abstractmethod
    def update_task_if(
        self, task_id: str, expected_status: TaskStatus, **changes
    ) -> Optional[MaintenanceTask]:
        """
        Apply ``changes`` only while the task is still in ``expected_status``.
        Check and write are one atomic step. Returns the updated task, or
        None when the status has moved on.
        """

    # Task events
    @abstractmethod
    def create_task_event(self, event: TaskEvent) -> TaskEvent: ...

    @abstractmethod
    def list_task_events(self, task_id: str) -> List[TaskEvent]: ...


class MemoryStore(Storage):
    """Thread-safe in-memory Storage implementation."""

    def __init__(self, dataset: Optional[DataSet] = None):
        self._lock = threading.RLock()
        self._users: Dict[str, User] = {}
        self._preferences: Dict[str, NotificationPreferences] = {}
        self._vehicles: Dict[str, Vehicle] = {}
        self._trackdays: Dict[str, Trackday] = {}
        self._plans: Dict[str, MaintenancePlan] = {}
        self._checklist_items: Dict[str, PlanChecklistItem] = {}
        self._vehicle_plans: Dict[str, VehiclePlan] = {}
        self._logs: Dict[str, MaintenanceLog] = {}
        self._tasks: Dict[str, MaintenanceTask] = {}
        self._events: List[TaskEvent] = []
        if dataset is not None:
            for record in (
                dataset.users + dataset.preferences + dataset.vehicles
                + dataset.trackdays + dataset.plans + dataset.checklist_items
                + dataset.vehicle_plans + dataset.maintenance_logs
                + dataset.tasks + dataset.task_events
            ):
                self.add(record)

    @classmethod
    def load(cls, filename: Union[str, Path]) -> "MemoryStore":
        """Build a store from a YAML data file."""
        try:
            dataset = load_data(filename)
        except OSError as e:
            raise StorageError(f"Cannot read data file {filename}: {e}") from e
        except yaml.YAMLError as e:
            raise StorageError(f"Data file {filename} is not valid YAML: {e}") from e
        except KeyError as e:
            raise StorageError(f"Data file {filename} is missing field {e}") from e
        except (AttributeError, TypeError, ValueError) as e:
            raise StorageError(f"Malformed data file {filename}: {e}") from e
        logger.info("Loaded %d tasks and %d vehicle plans from %s",
                    len(dataset.tasks), len(dataset.vehicle_plans), filename)
        return cls(dataset)

    def save(self, filename: Union[str, Path]) -> None:
        """Write every record back to a YAML data file."""
        try:
            save_data(filename, self.to_dataset())
        except OSError as e:
            raise StorageError(f"Cannot write data file {filename}: {e}") from e
        logger.debug("Saved data file %s", filename)

    def to_dataset(self) -> DataSet:
        with self._lock:
            return DataSet(
                users=list(self._users.values()),
                preferences=list(self._preferences.values()),
                vehicles=list(self._vehicles.values()),
                trackdays=list(self._trackdays.values()),
                plans=list(self._plans.values()),
                checklist_items=list(self._checklist_items.values()),
                vehicle_plans=list(self._vehicle_plans.values()),
                maintenance_logs=list(self._logs.values()),
                tasks=[dataclasses.replace(t) for t in self._tasks.values()],
                task_events=list(self._events),
            )

    def add(self, record) -> None:
        """Insert any model record as-is (used for seeding)."""
        with self._lock:
            if isinstance(record, User):
                self._users[record.id] = record
            elif isinstance(record, NotificationPreferences):
                self._preferences[record.user_id] = record
            elif isinstance(record, Vehicle):
                self._vehicles[record.id] = record
            elif isinstance(record, Trackday):
                self._trackdays[record.id] = record
            elif isinstance(record, MaintenancePlan):
                self._plans[record.id] = record
            elif isinstance(record, PlanChecklistItem):
                self._checklist_items[record.id] = record
            elif isinstance(record, VehiclePlan):
                self._vehicle_plans[record.id] = record
            elif isinstance(record, MaintenanceLog):
                self._logs[record.id] = record
            elif isinstance(record, MaintenanceTask):
                self._tasks[record.id] = dataclasses.replace(record)
            elif isinstance(record, TaskEvent):
                self._events.append(record)
            else:
                raise TypeError(f"Unsupported record type: {type(record).__name__}")

    # Users and preferences

    def get_user(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    def get_notification_preferences(self, user_id: str) -> Optional[NotificationPreferences]:
        return self._preferences.get(user_id)

    # Vehicles and events

    def get_vehicle(self, vehicle_id: str) -> Optional[Vehicle]:
        return self._vehicles.get(vehicle_id)

    def list_vehicles(self, user_id: Optional[str] = None) -> List[Vehicle]:
        with self._lock:
            return [v for v in self._vehicles.values() if user_id is None or v.user_id == user_id]

    def list_trackdays(self, vehicle_id: str) -> List[Trackday]:
        with self._lock:
            trackdays = [t for t in self._trackdays.values() if t.vehicle_id == vehicle_id]
        return sorted(trackdays, key=lambda t: t.start_date)

    # Plans

    def get_maintenance_plan(self, plan_id: str) -> Optional[MaintenancePlan]:
        return self._plans.get(plan_id)

    def list_checklist_items(self, plan_id: str) -> List[PlanChecklistItem]:
        with self._lock:
            items = [i for i in self._checklist_items.values() if i.plan_id == plan_id]
        return sorted(items, key=lambda i: i.sequence)

    def get_vehicle_plan(self, vehicle_plan_id: str) -> Optional[VehiclePlan]:
        return self._vehicle_plans.get(vehicle_plan_id)

    def list_vehicle_plans(
        self,
        status: Optional[VehiclePlanStatus] = None,
        vehicle_id: Optional[str] = None,
    ) -> List[VehiclePlan]:
        with self._lock:
            return [
                vp for vp in self._vehicle_plans.values()
                if (status is None or vp.status == status)
                and (vehicle_id is None or vp.vehicle_id == vehicle_id)
            ]

    # Maintenance logs

    def list_maintenance_logs(self, vehicle_id: str) -> List[MaintenanceLog]:
        with self._lock:
            logs = [log for log in self._logs.values() if log.vehicle_id == vehicle_id]
        return sorted(logs, key=lambda log: log.date)

    def create_maintenance_log(self, log: MaintenanceLog) -> MaintenanceLog:
        stored = dataclasses.replace(log, id=log.id or new_id())
        with self._lock:
            self._logs[stored.id] = stored
        return stored

    # Tasks

    def get_task(self, task_id: str) -> Optional[MaintenanceTask]:
        with self._lock:
            task = self._tasks.get(task_id)
            return dataclasses.replace(task) if task else None

    def list_tasks(
        self,
        vehicle_plan_id: Optional[str] = None,
        status: Optional[TaskStatus] = None,
        vehicle_id: Optional[str] = None,
    ) -> List[MaintenanceTask]:
        with self._lock:
            plan_ids = None
            if vehicle_id is not None:
                plan_ids = {
                    vp.id for vp in self._vehicle_plans.values() if vp.vehicle_id == vehicle_id
                }
            return [
                dataclasses.replace(t) for t in self._tasks.values()
                if (vehicle_plan_id is None or t.vehicle_plan_id == vehicle_plan_id)
                and (status is None or t.status == status)
                and (plan_ids is None or t.vehicle_plan_id in plan_ids)
            ]

    def create_task(self, task: MaintenanceTask) -> MaintenanceTask:
        stored = dataclasses.replace(task, id=task.id or new_id())
        with self._lock:
            self._tasks[stored.id] = stored
        return dataclasses.replace(stored)

    def create_task_if_absent(
        self,
        task: MaintenanceTask,
        is_duplicate: Callable[[MaintenanceTask], bool],
    ) -> Optional[MaintenanceTask]:
        with self._lock:
            for existing in self._tasks.values():
                if existing.vehicle_plan_id == task.vehicle_plan_id and is_duplicate(existing):
                    return None
            return self.create_task(task)

    def update_task(self, task_id: str, **changes) -> MaintenanceTask:
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                raise TaskNotFoundError(f"Task {task_id} not found")
            try:
                updated = dataclasses.replace(task, **changes)
            except TypeError as e:
                raise StorageError(f"Invalid task update for {task_id}: {e}") from e
            self._tasks[task_id] = updated
            return dataclasses.replace(updated)

    def update_task_if(
        self, task_id: str, expected_status: TaskStatus, **changes
    ) -> Optional[MaintenanceTask]:
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                raise TaskNotFoundError(f"Task {task_id} not found")
            if task.status != expected_status:
                logger.debug(
                    "Task %s is %s, not %s; update skipped",
                    task_id, task.status.value, expected_status.value,
                )
                return None
            return self.update_task(task_id, **changes)

    # Task events

    def create_task_event(self, event: TaskEvent) -> TaskEvent:
        stored = dataclasses.replace(event, id=event.id or new_id())
        with self._lock:
            self._events.append(stored)
        return stored

    def list_task_events(self, task_id: str) -> List[TaskEvent]:
        with self._lock:
            events = [e for e in self._events if e.task_id == task_id]
        return sorted(events, key=lambda e: e.occurred_at)


def resolve_vehicle(store: Storage, vehicle_plan_id: str) -> Optional[Vehicle]:
    """Follow vehicle plan -> vehicle. None when either link is missing."""
    vehicle_plan = store.get_vehicle_plan(vehicle_plan_id)
    if vehicle_plan is None:
        return None
    return store.get_vehicle(vehicle_plan.vehicle_id)
