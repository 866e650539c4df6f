"""
Trigger processing: turn active vehicle plans into dated maintenance tasks
and advance pending tasks once they fall due.

Both passes are idempotent and safe to run on a schedule.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from models import (
    CadenceConfigError,
    EventCountContext,
    MaintenanceTask,
    PlanChecklistItem,
    TaskEvent,
    TaskStatus,
    TriggerContext,
    VehiclePlan,
    VehiclePlanStatus,
    utcnow,
)

from .analytics import AnalyticsCache
from .cadence import TriggerCandidate, VehicleHistory, evaluate
from .storage import Storage

logger = logging.getLogger(__name__)


@dataclass
class ProcessingSummary:
    plans_processed: int = 0
    plans_skipped: int = 0
    plans_failed: int = 0
    tasks_created: int = 0
    tasks_advanced: int = 0
    cancelled: bool = False


def duplicate_check(
    checklist_item_id: str, context: TriggerContext
) -> Callable[[MaintenanceTask], bool]:
    """
    Predicate matching existing tasks with the same dedup key.

    Event-count keys name one specific trackday, so any task for it counts,
    whatever its status. Other keys only collide with non-terminal tasks.
    """
    any_status = isinstance(context, EventCountContext)

    def is_duplicate(existing: MaintenanceTask) -> bool:
        if not any_status and existing.status.is_terminal:
            return False
        return existing.same_trigger(checklist_item_id, context)

    return is_duplicate


def _cancelled(cancel: Optional[threading.Event]) -> bool:
    return cancel is not None and cancel.is_set()


class TriggerProcessor:
    def __init__(self, store: Storage, cache: Optional[AnalyticsCache] = None):
        self.store = store
        self.cache = cache

    def _invalidate_owner(self, vehicle_plan_id: str) -> None:
        if self.cache is not None:
            self.cache.invalidate_vehicle_plan(self.store, vehicle_plan_id)

    def process_all_triggers(
        self, now: Optional[datetime] = None, cancel: Optional[threading.Event] = None
    ) -> ProcessingSummary:
        """Evaluate every active vehicle plan and create any missing tasks."""
        now = now or utcnow()
        summary = ProcessingSummary()
        vehicle_plans = self.store.list_vehicle_plans(status=VehiclePlanStatus.ACTIVE)
        logger.info("Processing triggers for %d active vehicle plans", len(vehicle_plans))

        for vehicle_plan in vehicle_plans:
            if _cancelled(cancel):
                logger.info("Trigger processing cancelled")
                summary.cancelled = True
                break
            try:
                created = self.process_vehicle_plan(vehicle_plan, now)
            except Exception:
                logger.exception("Error processing vehicle plan %s", vehicle_plan.id)
                summary.plans_failed += 1
                continue
            if created is None:
                summary.plans_skipped += 1
            else:
                summary.plans_processed += 1
                summary.tasks_created += created

        logger.info(
            "Trigger processing complete: %d processed, %d skipped, %d failed, %d tasks created",
            summary.plans_processed, summary.plans_skipped, summary.plans_failed,
            summary.tasks_created,
        )
        return summary

    def process_vehicle_plan(self, vehicle_plan: VehiclePlan, now: datetime) -> Optional[int]:
        """
        Create tasks for one vehicle plan. Returns the number created, or
        None when the plan was skipped.
        """
        try:
            plan = self.store.get_maintenance_plan(vehicle_plan.plan_id)
        except CadenceConfigError as e:
            logger.warning("Invalid cadence for plan %s: %s", vehicle_plan.plan_id, e)
            return None
        if plan is None:
            logger.warning(
                "Plan %s not found for vehicle plan %s", vehicle_plan.plan_id, vehicle_plan.id
            )
            return None

        items = self.store.list_checklist_items(plan.id)
        if not items:
            logger.debug("No checklist items for plan %s", plan.id)
            return None

        history = VehicleHistory(
            trackdays=self.store.list_trackdays(vehicle_plan.vehicle_id),
            logs=self.store.list_maintenance_logs(vehicle_plan.vehicle_id),
        )
        created = 0
        for candidate in evaluate(vehicle_plan, plan.cadence, history, now):
            for item in items:
                if self._create_task(vehicle_plan, item, candidate, now):
                    created += 1
        return created

    def _create_task(
        self,
        vehicle_plan: VehiclePlan,
        item: PlanChecklistItem,
        candidate: TriggerCandidate,
        now: datetime,
    ) -> bool:
        task = MaintenanceTask(
            id=None,
            vehicle_plan_id=vehicle_plan.id,
            checklist_item_id=item.id,
            notes=item.description,
            due_at=candidate.due_at_for(item),
            status=TaskStatus.PENDING,
            trigger_context=candidate.context,
            created_at=now,
        )
        stored = self.store.create_task_if_absent(task, duplicate_check(item.id, candidate.context))
        if stored is None:
            return False

        self.store.create_task_event(
            TaskEvent(
                id=None,
                task_id=stored.id,
                type="triggered",
                occurred_at=now,
                payload=candidate.context.to_dict(),
            )
        )
        self._invalidate_owner(vehicle_plan.id)
        logger.debug(
            "Created task %s (%s) for vehicle plan %s", stored.id, item.title, vehicle_plan.id
        )
        return True

    def update_task_statuses(
        self, now: Optional[datetime] = None, cancel: Optional[threading.Event] = None
    ) -> ProcessingSummary:
        """Move pending tasks whose due date has passed to due."""
        now = now or utcnow()
        summary = ProcessingSummary()
        for task in self.store.list_tasks(status=TaskStatus.PENDING):
            if _cancelled(cancel):
                summary.cancelled = True
                break
            if task.due_at >= now:
                continue
            advanced = self.store.update_task_if(task.id, TaskStatus.PENDING, status=TaskStatus.DUE)
            if advanced is None:
                logger.debug("Task %s left pending before it could advance", task.id)
                continue
            self.store.create_task_event(
                TaskEvent(
                    id=None,
                    task_id=task.id,
                    type="status_change",
                    occurred_at=now,
                    payload={"oldStatus": TaskStatus.PENDING.value, "newStatus": TaskStatus.DUE.value},
                )
            )
            self._invalidate_owner(task.vehicle_plan_id)
            summary.tasks_advanced += 1
            logger.debug("Task %s is now due", task.id)

        logger.info("Task status update complete: %d tasks now due", summary.tasks_advanced)
        return summary
