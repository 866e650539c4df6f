#!/usr/bin/env python3
"""
Unified CLI for trackday maintenance planning.

Commands:
  run          - Run one maintenance job pass (triggers, statuses, emails)
  watch        - Run the maintenance job every job_interval seconds until interrupted
  tasks        - List maintenance tasks
  log          - Record a maintenance log and auto-complete the matching task
  analytics    - Show the maintenance analytics summary for a user
  verify-token - Check an email action token
"""

import argparse
import sys
from datetime import date, datetime
from pathlib import Path
from tabulate import tabulate
from typing import List, Optional

from engine import (
    AnalyticsService,
    LogRecordResult,
    MaintenanceAnalytics,
    MemoryStore,
    StorageError,
    TaskLifecycle,
    build_enriched_tasks,
    enrich_tasks,
    record_maintenance_log,
)
from engine.job import JobResult
from models import EnrichedTask, MaintenanceLog, MaintenanceType, TaskStatus, utcnow
from models.loader import parse_datetime
from settings import build_job, build_signer, configure_logging, load_settings

# =============================================================================
# Formatting helpers
# =============================================================================


def format_km(km: Optional[float]) -> str:
    """Format an odometer reading for display."""
    return f"{km:,.0f} km" if km is not None else "-"


def format_cost(cents: Optional[int]) -> str:
    """Format a cost in cents for display."""
    return f"${cents / 100:,.2f}" if cents else "-"


def format_date(moment: Optional[datetime]) -> str:
    return moment.strftime("%Y-%m-%d") if moment is not None else "-"


def truncate(text: Optional[str], max_len: int = 30) -> str:
    """Truncate text with ellipsis if too long."""
    if text is None:
        return "-"
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def make_task_table(tasks: List[EnrichedTask], now: datetime) -> List[List[str]]:
    """Convert enriched tasks to table rows."""
    rows = []
    for e in tasks:
        task = e.task
        rows.append([
            task.id,
            truncate(e.title),
            e.vehicle.name if e.vehicle else "-",
            truncate(e.plan_name, 20) if e.plan_name else "-",
            e.effective_status(now),
            format_date(task.due_at),
            "!" if e.is_critical else "",
        ])
    return rows


def make_match_table(result: LogRecordResult) -> List[List[str]]:
    return [
        [m.task_id, m.score, "; ".join(m.reasons)]
        for m in result.suggestion.all_matches
    ]


def make_analytics_rows(analytics: MaintenanceAnalytics) -> List[List[str]]:
    return [
        ["Total tasks", analytics.total_tasks],
        ["Completed", analytics.completed_tasks],
        ["Dismissed", analytics.dismissed_tasks],
        ["Overdue", analytics.overdue_tasks],
        ["Due in 7 days", analytics.due_soon_tasks],
        ["Completion rate", f"{analytics.completion_rate}%"],
        ["Avg. days to complete", analytics.average_completion_time_days],
    ]


def make_job_rows(result: JobResult) -> List[List[str]]:
    rows = []
    if result.triggers:
        rows.append(["Tasks created", result.triggers.tasks_created])
        rows.append(["Plans failed", result.triggers.plans_failed])
    rows.append(["Snoozes expired", result.woken])
    if result.statuses:
        rows.append(["Tasks now due", result.statuses.tasks_advanced])
    if result.due_notifications:
        rows.append(["Due emails sent", result.due_notifications.users_notified])
    if result.overdue_reminders:
        rows.append(["Reminders sent", result.overdue_reminders.users_notified])
    for name, error in result.errors.items():
        rows.append([f"FAILED: {name}", truncate(error, 50)])
    return rows


def parse_now(value: Optional[str]) -> datetime:
    return parse_datetime(value) if value else utcnow()


# =============================================================================
# Commands
# =============================================================================


def cmd_run(args, store: MemoryStore, settings) -> int:
    """Run one maintenance job pass and save the result."""
    result = build_job(store, settings).run_once(now=parse_now(args.now))
    print(tabulate(make_job_rows(result), tablefmt="simple"))

    if args.dry_run:
        print("\n(dry run - no changes made)")
    else:
        store.save(args.data_file)
    return 1 if result.errors else 0


def cmd_watch(args, store: MemoryStore, settings) -> int:
    """Run job passes until interrupted, saving after each one."""
    job = build_job(store, settings)

    def save(result: JobResult) -> None:
        store.save(args.data_file)
        print(tabulate(make_job_rows(result), tablefmt="simple"))
        print()

    print(f"Running every {settings.job_interval:.0f}s (Ctrl-C to stop)\n")
    try:
        job.run_forever(on_pass=save)
    except KeyboardInterrupt:
        job.stop()
        print("Stopped.")
    return 0


def cmd_tasks(args, store: MemoryStore, settings) -> int:
    """List tasks, optionally filtered."""
    now = parse_now(args.now)
    if args.user:
        tasks = build_enriched_tasks(store, args.user)
    else:
        tasks = enrich_tasks(store, store.list_tasks(vehicle_id=args.vehicle))

    if args.status:
        wanted = TaskStatus(args.status)
        tasks = [e for e in tasks if e.task.status == wanted]
    if args.overdue:
        tasks = [e for e in tasks if e.is_overdue(now)]

    if not tasks:
        print("No tasks found.")
        return 0

    tasks.sort(key=lambda e: e.task.due_at)
    headers = ["ID", "Task", "Vehicle", "Plan", "Status", "Due", "Crit"]
    print(tabulate(make_task_table(tasks, now), headers=headers, tablefmt="simple"))
    print(f"\n{len(tasks)} task(s)")
    return 0


def cmd_log(args, store: MemoryStore, settings) -> int:
    """Record a maintenance log and auto-complete the best matching task."""
    if store.get_vehicle(args.vehicle_id) is None:
        print(f"Error: Unknown vehicle '{args.vehicle_id}'")
        return 1

    now = parse_now(args.now)
    log = MaintenanceLog(
        id=None,
        vehicle_id=args.vehicle_id,
        date=date.fromisoformat(args.date) if args.date else now.date(),
        type=args.type,
        odometer_km=args.odometer,
        notes=args.notes or "",
        cost_cents=round(args.cost * 100) if args.cost else 0,
    )

    print(f"Recording {log.type} log for {args.vehicle_id}:")
    print(f"  Date:     {log.date}")
    if log.odometer_km is not None:
        print(f"  Odometer: {format_km(log.odometer_km)}")
    if log.notes:
        print(f"  Notes:    {log.notes}")
    if log.cost_cents:
        print(f"  Cost:     {format_cost(log.cost_cents)}")
    print()

    result = record_maintenance_log(store, log, TaskLifecycle(store), now=now)

    if result.suggestion.all_matches:
        print(tabulate(make_match_table(result), headers=["Task", "Score", "Reasons"], tablefmt="simple"))
        print()
    else:
        print("No matching open tasks.")

    if result.auto_completed_task_id:
        print(f"Auto-completed task {result.auto_completed_task_id}.")

    if args.dry_run:
        print("(dry run - no changes made)")
        return 0

    store.save(args.data_file)
    print("Log saved.")
    return 0


def cmd_analytics(args, store: MemoryStore, settings) -> int:
    """Show the analytics summary for one user."""
    if store.get_user(args.user_id) is None:
        print(f"Error: Unknown user '{args.user_id}'")
        return 1

    analytics = AnalyticsService(store).analytics(args.user_id, now=parse_now(args.now))
    print(tabulate(make_analytics_rows(analytics), tablefmt="simple"))

    if analytics.tasks_by_vehicle:
        print()
        rows = [
            [v.vehicle_name, v.total_tasks, v.completed_tasks, v.overdue_tasks]
            for v in analytics.tasks_by_vehicle
        ]
        print(tabulate(rows, headers=["Vehicle", "Tasks", "Completed", "Overdue"], tablefmt="simple"))
    return 0


def cmd_verify_token(args, store: Optional[MemoryStore], settings) -> int:
    """Decode and check an email action token."""
    claims = build_signer(settings).verify_action_token(args.token, now=parse_now(args.now))
    if claims is None:
        print("Invalid or expired token.")
        return 1
    print(f"User:   {claims.user_id}")
    print(f"Task:   {claims.task_id}")
    print(f"Action: {claims.action}")
    return 0


COMMANDS = {
    "run": cmd_run,
    "watch": cmd_watch,
    "tasks": cmd_tasks,
    "log": cmd_log,
    "analytics": cmd_analytics,
    "verify-token": cmd_verify_token,
}

# =============================================================================
# Main
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Trackday maintenance planner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s run
  %(prog)s --config settings.yaml watch
  %(prog)s --data-file data/garage.yaml tasks --status due
  %(prog)s tasks --user u1 --overdue
  %(prog)s log v1 oil_change --odometer 12050 --notes "oil and filter"
  %(prog)s analytics u1
  %(prog)s verify-token <token>
""",
    )
    parser.add_argument("--data-file", type=Path, help="Path to the YAML data file")
    parser.add_argument("--config", type=Path, help="Path to a YAML settings file")
    parser.add_argument(
        "--now",
        type=str,
        help="Evaluate as of this ISO date/time instead of the current time",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run one maintenance job pass")
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run without saving changes to the data file",
    )

    subparsers.add_parser("watch", help="Run the maintenance job on its interval until interrupted")

    tasks_parser = subparsers.add_parser("tasks", help="List maintenance tasks")
    tasks_parser.add_argument(
        "--status",
        choices=[s.value for s in TaskStatus],
        help="Only show tasks with this status",
    )
    tasks_parser.add_argument("--vehicle", type=str, help="Only show tasks for this vehicle id")
    tasks_parser.add_argument("--user", type=str, help="Only show tasks for this user id")
    tasks_parser.add_argument("--overdue", action="store_true", help="Only show overdue tasks")

    log_parser = subparsers.add_parser("log", help="Record a maintenance log")
    log_parser.add_argument("vehicle_id", type=str, help="Vehicle id")
    log_parser.add_argument(
        "type",
        choices=[t.value for t in MaintenanceType],
        help="Maintenance type",
    )
    log_parser.add_argument("--date", type=str, help="Service date in YYYY-MM-DD format (default: today)")
    log_parser.add_argument("--odometer", type=float, help="Odometer reading in km")
    log_parser.add_argument("--notes", type=str, help="Notes about the work done")
    log_parser.add_argument("--cost", type=float, help="Cost of the work")
    log_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would happen without saving",
    )

    analytics_parser = subparsers.add_parser("analytics", help="Show analytics for a user")
    analytics_parser.add_argument("user_id", type=str, help="User id")

    token_parser = subparsers.add_parser("verify-token", help="Check an email action token")
    token_parser.add_argument("token", type=str, help="Token from an action link")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    settings = load_settings(args.config)
    configure_logging(settings.log_level)
    if args.data_file is None:
        args.data_file = Path(settings.data_file)

    # Token checks only need the signing secret
    if args.command == "verify-token":
        return cmd_verify_token(args, None, settings)

    # Validate data file exists
    if not args.data_file.exists():
        print(f"Error: File not found: {args.data_file}")
        return 1

    try:
        store = MemoryStore.load(args.data_file)
    except StorageError as e:
        print(f"Error: {e}")
        return 1
    return COMMANDS[args.command](args, store, settings)


if __name__ == "__main__":
    sys.exit(main() or 0)
