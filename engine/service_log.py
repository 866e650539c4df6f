"""Recording a maintenance log and auto-completing the task it resolves."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from models import CompletionSource, MaintenanceLog, utcnow

from .analytics import enrich_tasks
from .autocomplete import MatchSuggestion, suggest_best_match
from .errors import MaintenanceError
from .lifecycle import TaskLifecycle
from .storage import Storage

logger = logging.getLogger(__name__)


@dataclass
class LogRecordResult:
    log: MaintenanceLog
    suggestion: MatchSuggestion
    auto_completed_task_id: Optional[str] = None


def record_maintenance_log(
    store: Storage,
    log: MaintenanceLog,
    lifecycle: TaskLifecycle,
    now: Optional[datetime] = None,
) -> LogRecordResult:
    """
    Save ``log``, score it against the vehicle's open tasks, and complete
    the best match when it clears the auto-complete threshold.

    The log stays recorded even if completing the task fails.
    """
    now = now or utcnow()
    if store.get_vehicle(log.vehicle_id) is None:
        raise ValueError(f"Unknown vehicle: {log.vehicle_id}")

    stored = store.create_maintenance_log(log)
    logger.info("Recorded %s log %s for vehicle %s", stored.type, stored.id, stored.vehicle_id)

    open_tasks = [t for t in store.list_tasks(vehicle_id=stored.vehicle_id) if t.status.is_open]
    suggestion = suggest_best_match(stored, enrich_tasks(store, open_tasks), today=now)
    result = LogRecordResult(log=stored, suggestion=suggestion)

    if not suggestion.should_auto_complete:
        if suggestion.best_match:
            logger.info(
                "Best match for log %s is task %s (score %d), below auto-complete threshold",
                stored.id, suggestion.best_match.task_id, suggestion.best_match.score,
            )
        return result

    best = suggestion.best_match
    try:
        lifecycle.complete(
            best.task_id,
            source=CompletionSource.AUTO_MATCHED,
            maintenance_log_id=stored.id,
            now=now,
        )
    except MaintenanceError:
        logger.exception("Could not auto-complete task %s from log %s", best.task_id, stored.id)
        return result

    logger.info("Auto-completed task %s from log %s (score %d)", best.task_id, stored.id, best.score)
    result.auto_completed_task_id = best.task_id
    return result
