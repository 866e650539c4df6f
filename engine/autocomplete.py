"""
Score a maintenance log against a vehicle's open tasks.

Matching only recommends; completing the best task is up to the caller
(see ``engine.service_log``).
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from models import EnrichedTask, MaintenanceLog, days_since, utcnow

AUTO_COMPLETE_THRESHOLD = 60

MATCHER_TYPE_SCORE = 50
ITEM_TYPE_SCORE = 40
ODOMETER_SCORE = 30
PART_SCORE = 10
TITLE_WORD_SCORE = 5
NEAR_DUE_SCORE = 20
CUSTOM_TITLE_SCORE = 30

NEAR_DUE_WINDOW = (-7, 30)


@dataclass
class TaskMatch:
    task_id: str
    score: int
    reasons: List[str] = field(default_factory=list)


@dataclass
class MatchSuggestion:
    best_match: Optional[TaskMatch]
    all_matches: List[TaskMatch]
    should_auto_complete: bool


def _score_custom_task(enriched: EnrichedTask, log: MaintenanceLog) -> Tuple[int, List[str]]:
    title = (enriched.task.custom_title or "").lower()
    if title and log.type.lower() in title:
        return CUSTOM_TITLE_SCORE, ["Custom title matches maintenance type"]
    return 0, []


def _score_task(enriched: EnrichedTask, log: MaintenanceLog, now: datetime) -> Tuple[int, List[str]]:
    item = enriched.checklist_item
    if item is None:
        return _score_custom_task(enriched, log)

    task = enriched.task
    matcher = item.matcher
    score = 0
    reasons = []

    if matcher.maintenance_type and matcher.maintenance_type == log.type:
        score += MATCHER_TYPE_SCORE
        reasons.append("Maintenance type exact match")
    elif item.maintenance_type == log.type:
        score += ITEM_TYPE_SCORE
        reasons.append("Checklist maintenance type matches")

    if log.odometer_km and matcher.odometer_tolerance:
        target = getattr(task.trigger_context, "target_odometer", None)
        if target is not None:
            diff = abs(log.odometer_km - target)
            if diff <= matcher.odometer_tolerance:
                score += ODOMETER_SCORE
                reasons.append(f"Odometer within tolerance ({diff:g}km)")

    notes = log.notes.lower()
    parts = [part for part in matcher.parts_required if part.lower() in notes]
    if parts:
        score += len(parts) * PART_SCORE
        reasons.append(f"Parts mentioned: {', '.join(parts)}")

    words = [w for w in item.title.lower().split() if len(w) > 3 and w in notes]
    if words:
        score += len(words) * TITLE_WORD_SCORE
        reasons.append(f"Title keywords in notes: {', '.join(words)}")

    days = days_since(task.due_at, now)
    low, high = NEAR_DUE_WINDOW
    if low <= days <= high:
        score += NEAR_DUE_SCORE
        when = "overdue" if days >= 0 else "until due"
        reasons.append(f"Task is near due date ({abs(days)} days {when})")

    return score, reasons


def match_maintenance_log_to_tasks(
    log: MaintenanceLog,
    tasks: Iterable[EnrichedTask],
    today: Optional[datetime] = None,
) -> List[TaskMatch]:
    """All open tasks with a positive score, best first."""
    now = today or utcnow()
    matches = []
    for enriched in tasks:
        task = enriched.task
        if not task.status.is_open or task.completed_at or task.dismissed_at:
            continue
        score, reasons = _score_task(enriched, log, now)
        if score > 0:
            matches.append(TaskMatch(task_id=task.id, score=score, reasons=reasons))

    matches.sort(key=lambda m: m.score, reverse=True)
    return matches


def suggest_best_match(
    log: MaintenanceLog,
    tasks: Iterable[EnrichedTask],
    today: Optional[datetime] = None,
) -> MatchSuggestion:
    matches = match_maintenance_log_to_tasks(log, tasks, today=today)
    best = matches[0] if matches else None
    return MatchSuggestion(
        best_match=best,
        all_matches=matches,
        should_auto_complete=best is not None and best.score >= AUTO_COMPLETE_THRESHOLD,
    )
