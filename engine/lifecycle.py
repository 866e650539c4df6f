"""
Task status transitions and the manual actions that drive them.

Every successful transition writes a ``status_change`` TaskEvent and drops
the owning user's cached analytics.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, FrozenSet, List, Optional

from models import CompletionSource, MaintenanceTask, TaskEvent, TaskStatus, utcnow

from .errors import (
    InvalidActionTokenError,
    InvalidTransitionError,
    LookupFailed,
    TaskAccessDenied,
    TaskNotFoundError,
)
from .storage import Storage, resolve_vehicle
from .tokens import ActionTokenSigner

logger = logging.getLogger(__name__)

EMAIL_SNOOZE = timedelta(days=7)

TRANSITIONS: Dict[TaskStatus, FrozenSet[TaskStatus]] = {
    TaskStatus.PENDING: frozenset(
        {TaskStatus.DUE, TaskStatus.SNOOZED, TaskStatus.COMPLETED, TaskStatus.DISMISSED}
    ),
    TaskStatus.DUE: frozenset({TaskStatus.SNOOZED, TaskStatus.COMPLETED, TaskStatus.DISMISSED}),
    TaskStatus.SNOOZED: frozenset(
        {TaskStatus.PENDING, TaskStatus.DUE, TaskStatus.COMPLETED, TaskStatus.DISMISSED}
    ),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.DISMISSED: frozenset(),
}

_SOURCE_ACTORS = {
    CompletionSource.MANUAL: "user",
    CompletionSource.EMAIL: "email",
    CompletionSource.AUTO_MATCHED: "auto_matched",
}

_ACTION_TEXT = {
    "complete": "marked as complete",
    "snooze": "snoozed for 7 days",
    "dismiss": "dismissed",
}


def can_transition(current: TaskStatus, new: TaskStatus) -> bool:
    return current != new and new in TRANSITIONS[current]


@dataclass
class ActionOutcome:
    """Result of an email action link."""

    task: MaintenanceTask
    action: str

    @property
    def message(self) -> str:
        return f"Task {_ACTION_TEXT[self.action]} successfully!"


class TaskLifecycle:
    def __init__(self, store: Storage, cache=None, signer: Optional[ActionTokenSigner] = None):
        self.store = store
        self.cache = cache
        self.signer = signer

    def _load(self, task_id: str) -> MaintenanceTask:
        task = self.store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(f"Task {task_id} not found")
        return task

    def _invalidate_owner(self, task: MaintenanceTask) -> None:
        if self.cache is not None:
            self.cache.invalidate_vehicle_plan(self.store, task.vehicle_plan_id)

    def transition(
        self,
        task_id: str,
        new_status: TaskStatus,
        actor: str,
        now: datetime,
        payload: Optional[dict] = None,
        **changes,
    ) -> MaintenanceTask:
        """Move a task to ``new_status``, applying ``changes`` and logging the event."""
        task = self._load(task_id)
        if not can_transition(task.status, new_status):
            raise InvalidTransitionError(
                f"Cannot move task {task_id} from {task.status.value} to {new_status.value}"
            )

        updated = self.store.update_task_if(task_id, task.status, status=new_status, **changes)
        if updated is None:
            raise InvalidTransitionError(
                f"Task {task_id} changed status while moving to {new_status.value}"
            )
        event_payload = {"oldStatus": task.status.value, "newStatus": new_status.value}
        event_payload.update(payload or {})
        self.store.create_task_event(
            TaskEvent(
                id=None,
                task_id=task_id,
                type="status_change",
                occurred_at=now,
                actor=actor,
                payload=event_payload,
            )
        )
        logger.debug("Task %s: %s -> %s (%s)", task_id, task.status.value, new_status.value, actor)
        self._invalidate_owner(updated)
        return updated

    def complete(
        self,
        task_id: str,
        source: CompletionSource = CompletionSource.MANUAL,
        maintenance_log_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> MaintenanceTask:
        now = now or utcnow()
        payload = {"source": source.value}
        if maintenance_log_id:
            payload["maintenanceLogId"] = maintenance_log_id
        return self.transition(
            task_id,
            TaskStatus.COMPLETED,
            _SOURCE_ACTORS[source],
            now,
            payload=payload,
            completed_at=now,
            completion_source=source,
            maintenance_log_id=maintenance_log_id,
        )

    def snooze(
        self,
        task_id: str,
        until: datetime,
        now: Optional[datetime] = None,
        actor: str = "user",
    ) -> MaintenanceTask:
        now = now or utcnow()
        if until <= now:
            raise ValueError("Snooze time must be in the future")
        return self.transition(
            task_id,
            TaskStatus.SNOOZED,
            actor,
            now,
            payload={"snoozedUntil": until.isoformat()},
            snoozed_until=until,
        )

    def dismiss(
        self, task_id: str, now: Optional[datetime] = None, actor: str = "user"
    ) -> MaintenanceTask:
        now = now or utcnow()
        return self.transition(task_id, TaskStatus.DISMISSED, actor, now, dismissed_at=now)

    def wake(
        self, task_id: str, now: Optional[datetime] = None, actor: str = "user"
    ) -> MaintenanceTask:
        """Un-snooze a task: due if its due date has passed, otherwise pending."""
        now = now or utcnow()
        task = self._load(task_id)
        new_status = TaskStatus.DUE if task.due_at <= now else TaskStatus.PENDING
        return self.transition(task_id, new_status, actor, now, snoozed_until=None)

    def wake_expired_snoozes(self, now: Optional[datetime] = None) -> List[MaintenanceTask]:
        """Wake every snoozed task whose snooze has run out."""
        now = now or utcnow()
        woken = []
        for task in self.store.list_tasks(status=TaskStatus.SNOOZED):
            if task.snoozed_until is None or task.snoozed_until > now:
                continue
            try:
                woken.append(self.wake(task.id, now=now, actor="system"))
            except InvalidTransitionError:
                # Changed underneath us since the listing
                logger.debug("Task %s no longer snoozed", task.id)
        if woken:
            logger.info("Woke %d snoozed tasks", len(woken))
        return woken

    def handle_email_action(self, token: str, now: Optional[datetime] = None) -> ActionOutcome:
        """
        Carry out the action behind an email link.

        Raises InvalidActionTokenError for a bad or expired token,
        TaskNotFoundError / LookupFailed for missing records, and
        TaskAccessDenied when the token's user no longer owns the task.
        """
        now = now or utcnow()
        if self.signer is None:
            raise InvalidActionTokenError("Email actions are not configured")
        claims = self.signer.verify_action_token(token, now=now)
        if claims is None:
            raise InvalidActionTokenError("Invalid or expired action link")

        task = self._load(claims.task_id)
        vehicle = resolve_vehicle(self.store, task.vehicle_plan_id)
        if vehicle is None:
            raise LookupFailed(f"No vehicle found for task {task.id}")
        if vehicle.user_id != claims.user_id:
            logger.warning(
                "User %s tried to %s task %s owned by %s",
                claims.user_id, claims.action, task.id, vehicle.user_id,
            )
            raise TaskAccessDenied(f"User {claims.user_id} does not own task {task.id}")

        if claims.action == "complete":
            updated = self.complete(task.id, source=CompletionSource.EMAIL, now=now)
        elif claims.action == "snooze":
            updated = self.snooze(task.id, now + EMAIL_SNOOZE, now=now, actor="email")
        elif claims.action == "dismiss":
            updated = self.dismiss(task.id, now=now, actor="email")
        else:
            raise InvalidActionTokenError(f"Unknown action: {claims.action}")

        logger.info("Email action %s on task %s by user %s", claims.action, task.id, claims.user_id)
        return ActionOutcome(task=updated, action=claims.action)
