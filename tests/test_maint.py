#!/usr/bin/env python3
"""Tests for maint CLI formatting helpers and commands."""

from datetime import datetime, timedelta, timezone

import pytest

from engine import ActionTokenSigner, MaintenanceJob, MemoryStore
from maint import (
    format_cost,
    format_date,
    format_km,
    main,
    make_task_table,
    truncate,
)
from models import (
    EnrichedTask,
    MaintenanceTask,
    OdometerCadence,
    OdometerContext,
    PlanChecklistItem,
    TaskStatus,
    Vehicle,
)
from settings import DEV_SECRET

from conftest import NOW, add_plan, build_store, oil_item

NOW_ARG = "2025-06-15T12:00:00Z"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "MAINT_CONFIG", "MAINT_SIGNING_SECRET", "MAINT_EMAIL_TRANSPORT",
        "MAINT_DATA_FILE", "MAINT_JOB_INTERVAL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def data_file(tmp_path):
    """A saved garage with one due oil-change task."""
    store = build_store()
    add_plan(store, OdometerCadence(5000), items=[oil_item()])
    store.add(
        MaintenanceTask(
            "t1", "vp1", NOW + timedelta(days=2),
            checklist_item_id="p1-oil",
            status=TaskStatus.DUE,
            trigger_context=OdometerContext(5000, 4600, 5000),
        )
    )
    path = tmp_path / "garage.yaml"
    store.save(path)
    return path


def run_cli(data_file, *args):
    return main(["--data-file", str(data_file), "--now", NOW_ARG, *args])


class TestFormatKm:
    """Tests for format_km."""

    def test_formats_number(self):
        assert format_km(12050) == "12,050 km"
        assert format_km(0) == "0 km"

    def test_none_returns_dash(self):
        assert format_km(None) == "-"


class TestFormatCost:
    """Tests for format_cost."""

    def test_formats_cents(self):
        assert format_cost(4550) == "$45.50"
        assert format_cost(123456) == "$1,234.56"

    def test_zero_or_none_returns_dash(self):
        assert format_cost(0) == "-"
        assert format_cost(None) == "-"


class TestFormatDate:
    def test_formats_date(self):
        assert format_date(datetime(2025, 6, 30, tzinfo=timezone.utc)) == "2025-06-30"

    def test_none_returns_dash(self):
        assert format_date(None) == "-"


class TestTruncate:
    """Tests for truncate."""

    def test_none_returns_dash(self):
        assert truncate(None) == "-"

    def test_short_text_unchanged(self):
        assert truncate("short") == "short"
        assert truncate("exactly thirty chars!!!!!!!!!!", max_len=30) == "exactly thirty chars!!!!!!!!!!"

    def test_long_text_truncated_with_ellipsis(self):
        # max_len=15 → 12 chars + "..." = 15 total
        assert truncate("this is a very long note", max_len=15) == "this is a ve..."


class TestMakeTaskTable:
    """Tests for make_task_table."""

    def test_empty_list_returns_empty_rows(self):
        assert make_task_table([], NOW) == []

    def test_overdue_critical_row(self):
        item = PlanChecklistItem("i1", "p1", "Brake fluid flush", is_critical=True)
        task = MaintenanceTask("t1", "vp1", NOW - timedelta(days=1), checklist_item_id="i1", status=TaskStatus.DUE)
        enriched = EnrichedTask(task, checklist_item=item, vehicle=Vehicle("v1", "u1", "Track Bike"), plan_name="Race prep")

        [row] = make_task_table([enriched], NOW)

        assert row == ["t1", "Brake fluid flush", "Track Bike", "Race prep", "overdue", "2025-06-14", "!"]

    def test_snoozed_keeps_status(self):
        task = MaintenanceTask("t1", "vp1", NOW - timedelta(days=1), custom_title="Wash", status=TaskStatus.SNOOZED)

        [row] = make_task_table([EnrichedTask(task)], NOW)

        assert row[1] == "Wash"
        assert row[2] == "-"
        assert row[4] == "snoozed"


class TestCommands:
    """End-to-end runs of main() against a temporary data file."""

    def test_missing_data_file(self, tmp_path, capsys):
        assert run_cli(tmp_path / "nope.yaml", "tasks") == 1
        assert "File not found" in capsys.readouterr().out

    def test_malformed_data_file(self, tmp_path, capsys):
        path = tmp_path / "broken.yaml"
        path.write_text("vehicles:\n  - userId: u1\n")

        assert run_cli(path, "tasks") == 1
        out = capsys.readouterr().out
        assert out.startswith("Error: ")
        assert "missing field 'id'" in out

    def test_tasks(self, data_file, capsys):
        assert run_cli(data_file, "tasks", "--status", "due") == 0
        out = capsys.readouterr().out
        assert "Engine oil change" in out
        assert "1 task(s)" in out

    def test_tasks_none_match(self, data_file, capsys):
        assert run_cli(data_file, "tasks", "--overdue") == 0
        assert "No tasks found." in capsys.readouterr().out

    def test_log_auto_completes(self, data_file, capsys):
        code = run_cli(data_file, "log", "v1", "oil_change", "--odometer", "5050", "--notes", "oil and filter")

        out = capsys.readouterr().out
        assert code == 0
        assert "Auto-completed task t1." in out
        assert "Log saved." in out
        store = MemoryStore.load(data_file)
        assert store.get_task("t1").status == TaskStatus.COMPLETED
        assert len(store.list_maintenance_logs("v1")) == 1

    def test_log_dry_run_saves_nothing(self, data_file, capsys):
        before = data_file.read_text()

        run_cli(data_file, "log", "v1", "oil_change", "--odometer", "5050", "--dry-run")

        assert "(dry run - no changes made)" in capsys.readouterr().out
        assert data_file.read_text() == before

    def test_log_unknown_vehicle(self, data_file, capsys):
        assert run_cli(data_file, "log", "v9", "tires") == 1
        assert "Unknown vehicle 'v9'" in capsys.readouterr().out

    def test_run_saves_changes(self, data_file, capsys):
        assert run_cli(data_file, "run") == 0

        assert "Due emails sent" in capsys.readouterr().out
        task = MemoryStore.load(data_file).get_task("t1")
        assert task.last_notification_at == NOW

    def test_watch_saves_after_each_pass(self, data_file, capsys, monkeypatch):
        monkeypatch.setenv("MAINT_JOB_INTERVAL", "60")
        run_once = MaintenanceJob.run_once

        def single_pass(job, now=None):
            result = run_once(job, now=NOW)
            job.stop()
            return result

        monkeypatch.setattr(MaintenanceJob, "run_once", single_pass)

        assert run_cli(data_file, "watch") == 0
        out = capsys.readouterr().out
        assert "Running every 60s" in out
        assert "Due emails sent" in out
        assert MemoryStore.load(data_file).get_task("t1").last_notification_at == NOW

    def test_watch_interrupted(self, data_file, capsys, monkeypatch):
        def interrupted(job, now=None):
            raise KeyboardInterrupt

        monkeypatch.setattr(MaintenanceJob, "run_once", interrupted)

        assert run_cli(data_file, "watch") == 0
        assert "Stopped." in capsys.readouterr().out

    def test_analytics(self, data_file, capsys):
        assert run_cli(data_file, "analytics", "u1") == 0
        out = capsys.readouterr().out
        assert "Total tasks" in out
        assert "Track Bike" in out

    def test_analytics_unknown_user(self, data_file, capsys):
        assert run_cli(data_file, "analytics", "nobody") == 1

    def test_verify_token(self, tmp_path, capsys):
        token = ActionTokenSigner(DEV_SECRET).generate_action_token("u1", "t1", "snooze", now=NOW)

        assert run_cli(tmp_path / "unused.yaml", "verify-token", token) == 0
        assert "Action: snooze" in capsys.readouterr().out

    def test_verify_bad_token(self, tmp_path, capsys):
        assert run_cli(tmp_path / "unused.yaml", "verify-token", "garbage") == 1
        assert "Invalid or expired token." in capsys.readouterr().out
