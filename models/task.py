"""Maintenance tasks, their audit trail, and the enriched read view."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, TYPE_CHECKING

from .cadence import TriggerContext
from .status import CompletionSource, TaskStatus

if TYPE_CHECKING:
    from .plan import PlanChecklistItem
    from .vehicle import Vehicle


@dataclass
class MaintenanceTask:
    """A generated unit of maintenance work for one vehicle plan."""

    id: Optional[str]
    vehicle_plan_id: str
    due_at: datetime
    checklist_item_id: Optional[str] = None
    custom_title: Optional[str] = None
    notes: str = ""
    status: TaskStatus = TaskStatus.PENDING
    trigger_context: Optional[TriggerContext] = None
    snoozed_until: Optional[datetime] = None
    last_notification_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    completion_source: Optional[CompletionSource] = None
    maintenance_log_id: Optional[str] = None
    dismissed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def same_trigger(self, checklist_item_id: Optional[str], context: TriggerContext) -> bool:
        """True when this task was generated for the same item and trigger key."""
        if self.checklist_item_id != checklist_item_id or self.trigger_context is None:
            return False
        return context.same_trigger(self.trigger_context)


@dataclass
class TaskEvent:
    """Append-only audit entry for a task."""

    id: Optional[str]
    task_id: str
    type: str
    occurred_at: datetime
    actor: str = "system"
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class EnrichedTask:
    """A task joined with the records needed to display, score, or aggregate it."""

    task: MaintenanceTask
    checklist_item: Optional["PlanChecklistItem"] = None
    vehicle: Optional["Vehicle"] = None
    plan_name: str = ""

    @property
    def title(self) -> str:
        if self.checklist_item is not None:
            return self.checklist_item.title
        return self.task.custom_title or "Untitled Task"

    @property
    def maintenance_type(self) -> Optional[str]:
        return self.checklist_item.maintenance_type if self.checklist_item else None

    @property
    def is_critical(self) -> bool:
        return bool(self.checklist_item and self.checklist_item.is_critical)

    def is_overdue(self, now: datetime) -> bool:
        return not self.task.status.is_terminal and self.task.due_at < now

    def effective_status(self, now: datetime) -> str:
        """Status for display; open tasks past their due date read as overdue."""
        if self.is_overdue(now) and self.task.status != TaskStatus.SNOOZED:
            return "overdue"
        return self.task.status.value
