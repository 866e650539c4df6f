"""
Maintenance analytics: enriched task lists, the per-user summary, and a
short-lived in-process cache in front of both.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, TypeVar

from models import (
    EnrichedTask,
    MaintenanceTask,
    PlanChecklistItem,
    TaskEvent,
    TaskStatus,
    Vehicle,
    utcnow,
)

from .storage import Storage, resolve_vehicle

logger = logging.getLogger(__name__)

CACHE_TTL = timedelta(minutes=5)
CLEANUP_INTERVAL = timedelta(minutes=15)
DUE_SOON_WINDOW = timedelta(days=7)

# Statuses that still count toward overdue / due-soon
_OUTSTANDING = (TaskStatus.PENDING, TaskStatus.DUE, TaskStatus.SNOOZED)

T = TypeVar("T")


@dataclass
class VehicleBreakdown:
    vehicle_id: str
    vehicle_name: str
    total_tasks: int = 0
    completed_tasks: int = 0
    overdue_tasks: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vehicleId": self.vehicle_id,
            "vehicleName": self.vehicle_name,
            "totalTasks": self.total_tasks,
            "completedTasks": self.completed_tasks,
            "overdueTasks": self.overdue_tasks,
        }


@dataclass
class MaintenanceAnalytics:
    total_tasks: int = 0
    completed_tasks: int = 0
    dismissed_tasks: int = 0
    overdue_tasks: int = 0
    due_soon_tasks: int = 0
    completion_rate: float = 0.0
    average_completion_time_days: float = 0.0
    tasks_by_status: Dict[str, int] = field(
        default_factory=lambda: {s.value: 0 for s in TaskStatus}
    )
    tasks_by_vehicle: List[VehicleBreakdown] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalTasks": self.total_tasks,
            "completedTasks": self.completed_tasks,
            "dismissedTasks": self.dismissed_tasks,
            "overdueTasks": self.overdue_tasks,
            "dueSoonTasks": self.due_soon_tasks,
            "completionRate": self.completion_rate,
            "averageCompletionTimeDays": self.average_completion_time_days,
            "tasksByStatus": dict(self.tasks_by_status),
            "tasksByVehicle": [v.to_dict() for v in self.tasks_by_vehicle],
        }


def enrich_tasks(store: Storage, tasks: Iterable[MaintenanceTask]) -> List[EnrichedTask]:
    """Join tasks with their checklist item, vehicle, and plan name."""
    items: Dict[str, Dict[str, PlanChecklistItem]] = {}
    plan_names: Dict[str, str] = {}
    vehicles: Dict[str, Optional[Vehicle]] = {}
    enriched = []

    for task in tasks:
        vehicle_plan = store.get_vehicle_plan(task.vehicle_plan_id)
        if vehicle_plan is None:
            logger.warning("Task %s references missing vehicle plan %s", task.id, task.vehicle_plan_id)
            enriched.append(EnrichedTask(task=task))
            continue

        plan_id = vehicle_plan.plan_id
        if plan_id not in items:
            plan = store.get_maintenance_plan(plan_id)
            plan_names[plan_id] = plan.name if plan else ""
            items[plan_id] = {i.id: i for i in store.list_checklist_items(plan_id)}
        if vehicle_plan.vehicle_id not in vehicles:
            vehicles[vehicle_plan.vehicle_id] = store.get_vehicle(vehicle_plan.vehicle_id)

        item = items[plan_id].get(task.checklist_item_id) if task.checklist_item_id else None
        enriched.append(
            EnrichedTask(
                task=task,
                checklist_item=item,
                vehicle=vehicles[vehicle_plan.vehicle_id],
                plan_name=plan_names[plan_id],
            )
        )
    return enriched


def build_enriched_tasks(store: Storage, user_id: str) -> List[EnrichedTask]:
    """Every task on every vehicle the user owns, enriched."""
    tasks = []
    for vehicle in store.list_vehicles(user_id=user_id):
        tasks.extend(store.list_tasks(vehicle_id=vehicle.id))
    return enrich_tasks(store, tasks)


def _is_outstanding_overdue(task: MaintenanceTask, now: datetime) -> bool:
    return task.status in _OUTSTANDING and task.due_at < now


def _completion_time(events: List[TaskEvent]) -> Optional[timedelta]:
    """Time from the triggered event to the last completion event, if both exist."""
    triggered = next((e for e in events if e.type == "triggered"), None)
    completed = next(
        (
            e for e in reversed(events)
            if e.type == "status_change" and e.payload.get("newStatus") == TaskStatus.COMPLETED.value
        ),
        None,
    )
    if triggered is None or completed is None:
        return None
    return completed.occurred_at - triggered.occurred_at


def compute_maintenance_analytics(
    enriched: List[EnrichedTask],
    events_by_task: Dict[str, List[TaskEvent]],
    now: Optional[datetime] = None,
) -> MaintenanceAnalytics:
    now = now or utcnow()
    tasks = [e.task for e in enriched]
    result = MaintenanceAnalytics(total_tasks=len(tasks))
    if not tasks:
        return result

    for task in tasks:
        result.tasks_by_status[task.status.value] += 1
        if _is_outstanding_overdue(task, now):
            result.overdue_tasks += 1
        elif task.status in _OUTSTANDING and task.due_at <= now + DUE_SOON_WINDOW:
            result.due_soon_tasks += 1

    result.completed_tasks = result.tasks_by_status[TaskStatus.COMPLETED.value]
    result.dismissed_tasks = result.tasks_by_status[TaskStatus.DISMISSED.value]
    result.completion_rate = round(result.completed_tasks / len(tasks) * 100, 1)

    durations = []
    for task in tasks:
        if task.status != TaskStatus.COMPLETED:
            continue
        duration = _completion_time(events_by_task.get(task.id, []))
        if duration is not None:
            durations.append(duration)
    if durations:
        average = sum(durations, timedelta()) / len(durations)
        result.average_completion_time_days = round(average / timedelta(days=1), 1)

    by_vehicle: Dict[str, VehicleBreakdown] = {}
    for e in enriched:
        if e.vehicle is None:
            continue
        breakdown = by_vehicle.setdefault(
            e.vehicle.id, VehicleBreakdown(vehicle_id=e.vehicle.id, vehicle_name=e.vehicle.name)
        )
        breakdown.total_tasks += 1
        if e.task.status == TaskStatus.COMPLETED:
            breakdown.completed_tasks += 1
        if _is_outstanding_overdue(e.task, now):
            breakdown.overdue_tasks += 1
    result.tasks_by_vehicle = list(by_vehicle.values())
    return result


@dataclass
class CacheEntry(Generic[T]):
    data: T
    fetched_at: datetime
    expires_at: datetime


class AnalyticsCache:
    """
    Per-user cache of analytics summaries and enriched task lists.

    Entries live for ``ttl``. Expired entries are dropped when read, and
    ``cleanup_expired`` sweeps the rest. Every map access holds ``_lock``.
    """

    def __init__(self, ttl: timedelta = CACHE_TTL, clock: Callable[[], datetime] = utcnow):
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._analytics: Dict[str, CacheEntry[MaintenanceAnalytics]] = {}
        self._tasks: Dict[str, CacheEntry[List[EnrichedTask]]] = {}
        self._stop = threading.Event()
        self._cleanup_thread: Optional[threading.Thread] = None

    def _get(self, store: Dict[str, CacheEntry], kind: str, user_id: str):
        now = self._clock()
        with self._lock:
            entry = store.get(user_id)
            if entry is None:
                logger.debug("Analytics cache miss (%s, user %s): not found", kind, user_id)
                return None
            if now > entry.expires_at:
                del store[user_id]
                logger.debug("Analytics cache miss (%s, user %s): expired", kind, user_id)
                return None
        logger.debug(
            "Analytics cache hit (%s, user %s, age %.1fs)",
            kind, user_id, (now - entry.fetched_at).total_seconds(),
        )
        return entry.data

    def _set(self, store: Dict[str, CacheEntry], kind: str, user_id: str, data) -> None:
        now = self._clock()
        with self._lock:
            store[user_id] = CacheEntry(data=data, fetched_at=now, expires_at=now + self.ttl)
        logger.debug("Analytics cache set (%s, user %s)", kind, user_id)

    def get_maintenance_analytics(self, user_id: str) -> Optional[MaintenanceAnalytics]:
        return self._get(self._analytics, "analytics", user_id)

    def set_maintenance_analytics(self, user_id: str, data: MaintenanceAnalytics) -> None:
        self._set(self._analytics, "analytics", user_id, data)

    def get_enriched_tasks(self, user_id: str) -> Optional[List[EnrichedTask]]:
        return self._get(self._tasks, "tasks", user_id)

    def set_enriched_tasks(self, user_id: str, data: List[EnrichedTask]) -> None:
        self._set(self._tasks, "tasks", user_id, data)

    def invalidate_user(self, user_id: str) -> None:
        with self._lock:
            analytics_deleted = self._analytics.pop(user_id, None) is not None
            tasks_deleted = self._tasks.pop(user_id, None) is not None
        if analytics_deleted or tasks_deleted:
            logger.debug("Invalidated analytics cache for user %s", user_id)

    def invalidate_vehicle_plan(self, store: Storage, vehicle_plan_id: str) -> None:
        """Drop the cached views of whoever owns ``vehicle_plan_id``."""
        vehicle = resolve_vehicle(store, vehicle_plan_id)
        if vehicle is not None:
            self.invalidate_user(vehicle.user_id)

    def invalidate_all(self) -> None:
        with self._lock:
            removed = len(self._analytics) + len(self._tasks)
            self._analytics.clear()
            self._tasks.clear()
        logger.info("Cleared analytics cache (%d entries)", removed)

    def cleanup_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""
        now = self._clock()
        removed = 0
        with self._lock:
            for store in (self._analytics, self._tasks):
                for user_id in [k for k, e in store.items() if e.expires_at < now]:
                    del store[user_id]
                    removed += 1
        logger.debug("Analytics cache cleanup removed %d entries", removed)
        return removed

    def get_cache_stats(self) -> Dict[str, Dict[str, int]]:
        now = self._clock()
        with self._lock:
            return {
                "maintenanceAnalytics": {
                    "total": len(self._analytics),
                    "expired": sum(1 for e in self._analytics.values() if e.expires_at < now),
                },
                "enrichedTasks": {
                    "total": len(self._tasks),
                    "expired": sum(1 for e in self._tasks.values() if e.expires_at < now),
                },
            }

    def _cleanup_loop(self, interval: float) -> None:
        while not self._stop.wait(interval):
            try:
                self.cleanup_expired()
            except Exception:
                logger.exception("Analytics cache cleanup failed")

    def start_cleanup(self, interval: timedelta = CLEANUP_INTERVAL) -> threading.Thread:
        """Sweep once now, then every ``interval`` on a daemon thread."""
        if self._cleanup_thread is not None and self._cleanup_thread.is_alive():
            return self._cleanup_thread
        self.cleanup_expired()
        self._stop.clear()
        self._cleanup_thread = threading.Thread(
            target=self._cleanup_loop,
            args=(interval.total_seconds(),),
            name="analytics-cache-cleanup",
            daemon=True,
        )
        self._cleanup_thread.start()
        logger.info("Started analytics cache cleanup every %s", interval)
        return self._cleanup_thread

    def stop_cleanup(self) -> None:
        self._stop.set()
        if self._cleanup_thread is not None:
            self._cleanup_thread.join()
            self._cleanup_thread = None


class AnalyticsService:
    """Read-through access to enriched tasks and analytics."""

    def __init__(self, store: Storage, cache: Optional[AnalyticsCache] = None):
        self.store = store
        self.cache = cache or AnalyticsCache()

    def enriched_tasks(self, user_id: str) -> List[EnrichedTask]:
        cached = self.cache.get_enriched_tasks(user_id)
        if cached is not None:
            return cached
        tasks = build_enriched_tasks(self.store, user_id)
        self.cache.set_enriched_tasks(user_id, tasks)
        return tasks

    def analytics(self, user_id: str, now: Optional[datetime] = None) -> MaintenanceAnalytics:
        cached = self.cache.get_maintenance_analytics(user_id)
        if cached is not None:
            return cached
        enriched = self.enriched_tasks(user_id)
        events = {
            e.task.id: self.store.list_task_events(e.task.id)
            for e in enriched
            if e.task.status == TaskStatus.COMPLETED
        }
        result = compute_maintenance_analytics(enriched, events, now=now)
        self.cache.set_maintenance_analytics(user_id, result)
        return result
