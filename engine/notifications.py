"""
Batched email notifications for due and overdue maintenance tasks.

Tasks are grouped per owner so each user gets one email per pass. Every
task row carries signed complete / snooze / dismiss links.
"""

import html
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from models import MaintenanceTask, TaskStatus, User, utcnow

from .analytics import AnalyticsCache, enrich_tasks
from .email import EmailMessage, EmailTransport
from .storage import Storage, resolve_vehicle
from .tokens import ActionTokenSigner

logger = logging.getLogger(__name__)

NOTIFY_WINDOW = timedelta(days=7)
REMINDER_INTERVAL = timedelta(hours=72)

FOOTER = (
    "You're receiving this email because you have maintenance tasks due. "
    "You can manage your notification preferences in your account settings."
)


@dataclass
class NotificationSummary:
    users_notified: int = 0
    users_skipped: int = 0
    users_failed: int = 0
    tasks_notified: int = 0
    failed_user_ids: List[str] = field(default_factory=list)


@dataclass
class TaskDetail:
    """One email row: a task plus its display fields and action links."""

    task: MaintenanceTask
    title: str
    vehicle_name: str
    plan_name: str
    links: Dict[str, str]


class NotificationCoordinator:
    def __init__(
        self,
        store: Storage,
        transport: EmailTransport,
        signer: ActionTokenSigner,
        base_url: str,
        cache: Optional[AnalyticsCache] = None,
    ):
        self.store = store
        self.transport = transport
        self.signer = signer
        self.base_url = base_url.rstrip("/")
        self.cache = cache

    def send_due_task_notifications(
        self, now: Optional[datetime] = None, cancel: Optional[threading.Event] = None
    ) -> NotificationSummary:
        """First notification for due tasks that fall within the next 7 days."""
        now = now or utcnow()
        tasks = [
            t for t in self.store.list_tasks(status=TaskStatus.DUE)
            if t.last_notification_at is None and t.due_at < now + NOTIFY_WINDOW
        ]
        logger.info("Found %d tasks needing notifications", len(tasks))
        return self._notify_owners(tasks, now, cancel, reminder=False)

    def send_overdue_reminders(
        self, now: Optional[datetime] = None, cancel: Optional[threading.Event] = None
    ) -> NotificationSummary:
        """Reminders for overdue tasks last notified more than 72 hours ago."""
        now = now or utcnow()
        tasks = [
            t for t in self.store.list_tasks(status=TaskStatus.DUE)
            if t.last_notification_at is not None
            and t.due_at < now
            and now - t.last_notification_at > REMINDER_INTERVAL
        ]
        logger.info("Found %d overdue tasks needing reminders", len(tasks))
        return self._notify_owners(tasks, now, cancel, reminder=True)

    def group_tasks_by_user(self, tasks: List[MaintenanceTask]) -> Dict[str, List[MaintenanceTask]]:
        grouped: Dict[str, List[MaintenanceTask]] = {}
        for task in tasks:
            vehicle = resolve_vehicle(self.store, task.vehicle_plan_id)
            if vehicle is None:
                logger.warning("Skipping task %s: vehicle plan or vehicle missing", task.id)
                continue
            grouped.setdefault(vehicle.user_id, []).append(task)
        return grouped

    def _notify_owners(
        self,
        tasks: List[MaintenanceTask],
        now: datetime,
        cancel: Optional[threading.Event],
        reminder: bool,
    ) -> NotificationSummary:
        summary = NotificationSummary()
        for user_id, user_tasks in self.group_tasks_by_user(tasks).items():
            if cancel is not None and cancel.is_set():
                logger.info("Notification pass cancelled")
                break
            try:
                sent = self._notify_user(user_id, user_tasks, now, reminder)
            except Exception:
                logger.exception("Error sending notification to user %s", user_id)
                summary.users_failed += 1
                summary.failed_user_ids.append(user_id)
                continue
            if sent:
                summary.users_notified += 1
                summary.tasks_notified += sent
            else:
                summary.users_skipped += 1
        return summary

    def _notify_user(
        self, user_id: str, tasks: List[MaintenanceTask], now: datetime, reminder: bool
    ) -> int:
        """Send one email for ``tasks``; return how many tasks were stamped."""
        prefs = self.store.get_notification_preferences(user_id)
        if prefs is not None and not prefs.email_enabled:
            logger.info("User %s has email notifications disabled", user_id)
            return 0

        user = self.store.get_user(user_id)
        if user is None or not user.email:
            logger.error("User %s not found or has no email", user_id)
            return 0

        details = self.build_task_details(user, tasks, now)
        if not details:
            return 0

        self.transport.send(self.build_message(user, details, reminder))

        for detail in details:
            self.store.update_task(detail.task.id, last_notification_at=now)
        if self.cache is not None:
            self.cache.invalidate_user(user_id)
        logger.info("Sent notification to %s for %d task(s)", user.email, len(details))
        return len(details)

    def _link(self, user_id: str, task_id: str, action: str, now: datetime) -> str:
        token = self.signer.generate_action_token(user_id, task_id, action, now=now)
        return f"{self.base_url}/api/maintenance/email-action/{token}"

    def build_task_details(
        self, user: User, tasks: List[MaintenanceTask], now: datetime
    ) -> List[TaskDetail]:
        details = []
        for enriched in enrich_tasks(self.store, tasks):
            if enriched.vehicle is None or not enriched.plan_name:
                logger.warning("Skipping task %s: vehicle or plan missing", enriched.task.id)
                continue
            task_id = enriched.task.id
            details.append(
                TaskDetail(
                    task=enriched.task,
                    title=enriched.title,
                    vehicle_name=enriched.vehicle.name,
                    plan_name=enriched.plan_name,
                    links={
                        "complete": self._link(user.id, task_id, "complete", now),
                        "snooze": self._link(user.id, task_id, "snooze", now),
                        "dismiss": self._link(user.id, task_id, "dismiss", now),
                        "view": f"{self.base_url}/maintenance",
                    },
                )
            )
        return details

    def build_message(self, user: User, details: List[TaskDetail], reminder: bool) -> EmailMessage:
        count = len(details)
        heading = "Maintenance Tasks Overdue" if reminder else "Maintenance Tasks Due Soon"
        if count == 1:
            subject = "Maintenance Task Overdue" if reminder else "Maintenance Task Due Soon"
        else:
            subject = f"{count} {heading}"
        return EmailMessage(
            to=user.email,
            subject=subject,
            html=_render_html(heading, details),
            text=_render_text(heading, details),
        )


def _plural(count: int) -> str:
    return f"{count} maintenance task{'s' if count != 1 else ''}"


def _render_html(heading: str, details: List[TaskDetail]) -> str:
    rows = []
    for d in details:
        rows.append(
            "<tr>"
            f"<td><strong>{html.escape(d.title)}</strong><br/>"
            f"<small>{html.escape(d.vehicle_name)} - {html.escape(d.plan_name)}<br/>"
            f"Due: {d.task.due_at:%Y-%m-%d}</small></td>"
            "<td>"
            f'<a href="{html.escape(d.links["complete"])}">Complete</a> '
            f'<a href="{html.escape(d.links["snooze"])}">Snooze</a> '
            f'<a href="{html.escape(d.links["dismiss"])}">Dismiss</a>'
            "</td>"
            "</tr>"
        )
    view = html.escape(details[0].links["view"])
    return (
        '<!DOCTYPE html><html><head><meta charset="utf-8"></head><body>'
        f"<h1>{html.escape(heading)}</h1>"
        f"<p>You have {_plural(len(details))} for your vehicles.</p>"
        f"<table>{''.join(rows)}</table>"
        f'<p>View all your maintenance tasks in the <a href="{view}">app</a>.</p>'
        f"<p>{html.escape(FOOTER)}</p>"
        "</body></html>"
    )


def _render_text(heading: str, details: List[TaskDetail]) -> str:
    lines = [heading, "", f"You have {_plural(len(details))} for your vehicles:", ""]
    for d in details:
        lines.extend([
            f"- {d.title} ({d.vehicle_name} - {d.plan_name})",
            f"  Due: {d.task.due_at:%Y-%m-%d}",
            f"  Complete: {d.links['complete']}",
            f"  Snooze: {d.links['snooze']}",
            f"  Dismiss: {d.links['dismiss']}",
            "",
        ])
    lines.extend([f"View all tasks: {details[0].links['view']}", "", FOOTER])
    return "\n".join(lines)
