#!/usr/bin/env python3
"""Tests for the in-memory store."""

import threading
from datetime import timedelta

import pytest

from engine import MemoryStore, StorageError, TaskNotFoundError, resolve_vehicle
from models import MaintenanceTask, TaskStatus, TimeIntervalCadence

from conftest import add_plan


class TestTasks:
    def test_create_assigns_id(self, store, now):
        task = store.create_task(MaintenanceTask(None, "vp1", now))
        assert task.id

    def test_returned_tasks_are_copies(self, store, now):
        store.add(MaintenanceTask("t1", "vp1", now))

        store.get_task("t1").status = TaskStatus.DUE

        assert store.get_task("t1").status == TaskStatus.PENDING

    def test_create_if_absent(self, store, now):
        first = store.create_task_if_absent(
            MaintenanceTask(None, "vp1", now, checklist_item_id="i1"),
            lambda t: t.checklist_item_id == "i1",
        )
        second = store.create_task_if_absent(
            MaintenanceTask(None, "vp1", now, checklist_item_id="i1"),
            lambda t: t.checklist_item_id == "i1",
        )

        assert first is not None
        assert second is None
        assert len(store.list_tasks()) == 1

    def test_duplicates_scoped_to_vehicle_plan(self, store, now):
        store.add(MaintenanceTask("t1", "vp1", now, checklist_item_id="i1"))

        created = store.create_task_if_absent(
            MaintenanceTask(None, "vp2", now, checklist_item_id="i1"),
            lambda t: t.checklist_item_id == "i1",
        )

        assert created is not None

    def test_update_missing(self, store):
        with pytest.raises(TaskNotFoundError):
            store.update_task("nope", status=TaskStatus.DUE)

    def test_update_unknown_field(self, store, now):
        store.add(MaintenanceTask("t1", "vp1", now))
        with pytest.raises(StorageError):
            store.update_task("t1", colour="red")

    def test_list_by_vehicle(self, store, now):
        add_plan(store, TimeIntervalCadence(30))
        store.add(MaintenanceTask("t1", "vp1", now))
        store.add(MaintenanceTask("t2", "vp-other", now + timedelta(days=1)))

        assert [t.id for t in store.list_tasks(vehicle_id="v1")] == ["t1"]


class TestConditionalUpdate:
    """update_task_if only writes while the task is still in the expected status."""

    def test_applies_when_status_matches(self, store, now):
        store.add(MaintenanceTask("t1", "vp1", now))

        updated = store.update_task_if("t1", TaskStatus.PENDING, status=TaskStatus.DUE)

        assert updated.status == TaskStatus.DUE
        assert store.get_task("t1").status == TaskStatus.DUE

    def test_skips_when_status_moved(self, store, now):
        store.add(MaintenanceTask("t1", "vp1", now, status=TaskStatus.COMPLETED, completed_at=now))

        assert store.update_task_if("t1", TaskStatus.PENDING, status=TaskStatus.DUE) is None
        assert store.get_task("t1").status == TaskStatus.COMPLETED

    def test_missing(self, store):
        with pytest.raises(TaskNotFoundError):
            store.update_task_if("nope", TaskStatus.PENDING, status=TaskStatus.DUE)

    def test_one_winner_across_threads(self, store, now):
        store.add(MaintenanceTask("t1", "vp1", now))
        barrier = threading.Barrier(8)
        results = []

        def advance():
            barrier.wait()
            results.append(store.update_task_if("t1", TaskStatus.PENDING, status=TaskStatus.DUE))

        threads = [threading.Thread(target=advance) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len([r for r in results if r is not None]) == 1


class TestFiles:
    def test_save_and_load(self, store, now, tmp_path):
        add_plan(store, TimeIntervalCadence(30))
        store.add(MaintenanceTask("t1", "vp1", now, status=TaskStatus.DUE))
        path = tmp_path / "garage.yaml"

        store.save(path)
        loaded = MemoryStore.load(path)

        assert loaded.get_task("t1") == store.get_task("t1")
        assert resolve_vehicle(loaded, "vp1").name == "Track Bike"

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(StorageError):
            MemoryStore.load(tmp_path / "missing.yaml")

    def test_resolve_vehicle_missing_plan(self, store):
        assert resolve_vehicle(store, "nope") is None

    @pytest.mark.parametrize("content,message", [
        ("vehicles:\n  - userId: u1\n", "missing field 'id'"),
        ("tasks: [unclosed\n", "not valid YAML"),
        ("- just\n- a list\n", "Malformed data file"),
    ])
    def test_load_malformed_file(self, tmp_path, content, message):
        path = tmp_path / "broken.yaml"
        path.write_text(content)

        with pytest.raises(StorageError, match=message):
            MemoryStore.load(path)
