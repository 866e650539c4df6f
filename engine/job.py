"""Periodic runner for the maintenance passes."""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from models import utcnow

from .lifecycle import TaskLifecycle
from .notifications import NotificationCoordinator, NotificationSummary
from .triggers import ProcessingSummary, TriggerProcessor

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 3600.0


@dataclass
class JobResult:
    triggers: Optional[ProcessingSummary] = None
    woken: int = 0
    statuses: Optional[ProcessingSummary] = None
    due_notifications: Optional[NotificationSummary] = None
    overdue_reminders: Optional[NotificationSummary] = None
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def failed_passes(self) -> List[str]:
        return list(self.errors)


class MaintenanceJob:
    """
    Runs, in order: trigger processing, snooze expiry, status advancement,
    due notifications, overdue reminders. A failing pass is logged and the
    remaining passes still run.
    """

    def __init__(
        self,
        processor: TriggerProcessor,
        coordinator: NotificationCoordinator,
        lifecycle: Optional[TaskLifecycle] = None,
        interval: float = DEFAULT_INTERVAL,
    ):
        self.processor = processor
        self.coordinator = coordinator
        self.lifecycle = lifecycle
        self.interval = interval
        self._stop = threading.Event()

    def run_once(self, now: Optional[datetime] = None) -> JobResult:
        now = now or utcnow()
        result = JobResult()
        cancel = self._stop
        logger.info("Maintenance job pass starting at %s", now.isoformat())

        try:
            result.triggers = self.processor.process_all_triggers(now=now, cancel=cancel)
        except Exception as e:
            logger.exception("Trigger processing failed")
            result.errors["triggers"] = str(e)

        if self.lifecycle is not None:
            try:
                result.woken = len(self.lifecycle.wake_expired_snoozes(now=now))
            except Exception as e:
                logger.exception("Waking snoozed tasks failed")
                result.errors["snoozes"] = str(e)

        try:
            result.statuses = self.processor.update_task_statuses(now=now, cancel=cancel)
        except Exception as e:
            logger.exception("Task status update failed")
            result.errors["statuses"] = str(e)

        try:
            result.due_notifications = self.coordinator.send_due_task_notifications(
                now=now, cancel=cancel
            )
        except Exception as e:
            logger.exception("Due task notifications failed")
            result.errors["due_notifications"] = str(e)

        try:
            result.overdue_reminders = self.coordinator.send_overdue_reminders(
                now=now, cancel=cancel
            )
        except Exception as e:
            logger.exception("Overdue reminders failed")
            result.errors["overdue_reminders"] = str(e)

        logger.info("Maintenance job pass finished (%d failed passes)", len(result.errors))
        return result

    def run_forever(self, on_pass: Optional[Callable[[JobResult], None]] = None) -> None:
        """
        Run a pass every ``interval`` seconds until ``stop()`` is called.
        ``on_pass`` sees each result, e.g. to persist the store.
        """
        logger.info("Maintenance job started, interval %.0fs", self.interval)
        while not self._stop.is_set():
            result = self.run_once()
            if on_pass is not None:
                try:
                    on_pass(result)
                except Exception:
                    logger.exception("Maintenance job post-pass hook failed")
            if self._stop.wait(self.interval):
                break
        logger.info("Maintenance job stopped")

    def start(self, on_pass: Optional[Callable[[JobResult], None]] = None) -> threading.Thread:
        """Clear any earlier stop and run ``run_forever`` on a daemon thread."""
        self._stop.clear()
        thread = threading.Thread(
            target=self.run_forever,
            args=(on_pass,),
            name="maintenance-job",
            daemon=True,
        )
        thread.start()
        return thread

    def stop(self) -> None:
        self._stop.set()
