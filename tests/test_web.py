#!/usr/bin/env python3
"""Tests for the Flask HTTP entry points."""

from datetime import timedelta

import pytest

from engine import ActionTokenSigner, MaintenanceAnalytics, MemoryStore
from models import (
    MaintenanceTask,
    OdometerCadence,
    OdometerContext,
    TaskStatus,
    User,
    Vehicle,
    utcnow,
)
from settings import Settings
from web.app import create_app

from conftest import add_plan, build_store, oil_item

SECRET = "web-secret"


@pytest.fixture
def store():
    store = build_store()
    add_plan(store, OdometerCadence(5000), items=[oil_item()])
    store.add(
        MaintenanceTask(
            "t1", "vp1", utcnow() + timedelta(days=2),
            checklist_item_id="p1-oil",
            status=TaskStatus.DUE,
            trigger_context=OdometerContext(5000, 4600, 5000),
        )
    )
    return store


@pytest.fixture
def app(store):
    return create_app(store=store, settings=Settings(signing_secret=SECRET))


@pytest.fixture
def client(app):
    return app.test_client()


def action_url(user_id, task_id, action, secret=SECRET):
    token = ActionTokenSigner(secret).generate_action_token(user_id, task_id, action)
    return f"/api/maintenance/email-action/{token}"


class TestEmailAction:
    """GET /api/maintenance/email-action/<token>"""

    def test_complete(self, client, store):
        response = client.get(action_url("u1", "t1", "complete"))

        assert response.status_code == 200
        assert b"Task marked as complete successfully!" in response.data
        assert store.get_task("t1").status == TaskStatus.COMPLETED

    def test_snooze(self, client, store):
        response = client.get(action_url("u1", "t1", "snooze"))

        assert response.status_code == 200
        assert store.get_task("t1").status == TaskStatus.SNOOZED

    def test_forged_token(self, client, store):
        response = client.get(action_url("u1", "t1", "dismiss", secret="someone-else"))

        assert response.status_code == 400
        assert b"Invalid or Expired Link" in response.data
        assert store.get_task("t1").status == TaskStatus.DUE

    def test_wrong_owner(self, client, store):
        store.add(User("u2", "other@example.com"))
        store.add(Vehicle("v2", "u2", "Other Bike"))

        response = client.get(action_url("u2", "t1", "dismiss"))

        assert response.status_code == 403

    def test_missing_task(self, client):
        assert client.get(action_url("u1", "gone", "dismiss")).status_code == 404

    def test_already_completed(self, client):
        client.get(action_url("u1", "t1", "complete"))

        response = client.get(action_url("u1", "t1", "dismiss"))

        assert response.status_code == 409
        assert b"Already Updated" in response.data

    def test_changes_saved_to_data_file(self, store, tmp_path):
        path = tmp_path / "garage.yaml"
        store.save(path)
        app = create_app(settings=Settings(signing_secret=SECRET), data_file=path)

        app.test_client().get(action_url("u1", "t1", "dismiss"))

        assert MemoryStore.load(path).get_task("t1").status == TaskStatus.DISMISSED

    def test_job_passes_saved_to_data_file(self, store, tmp_path):
        path = tmp_path / "garage.yaml"
        store.save(path)
        app = create_app(settings=Settings(signing_secret=SECRET), data_file=path)
        maintenance = app.extensions["maintenance"]
        job = maintenance["job"]

        def persist_and_stop(result):
            maintenance["persist"](result)
            job.stop()

        job.run_forever(on_pass=persist_and_stop)

        assert MemoryStore.load(path).get_task("t1").last_notification_at is not None


class TestCreateLog:
    """POST /api/maintenance/logs"""

    def test_auto_completes(self, client, store):
        response = client.post("/api/maintenance/logs", json={
            "vehicleId": "v1",
            "type": "oil_change",
            "odometerKm": 5050,
            "notes": "oil and filter",
        })

        body = response.get_json()
        assert response.status_code == 201
        assert body["autoCompletedTaskId"] == "t1"
        assert body["suggestion"]["shouldAutoComplete"] is True
        assert body["suggestion"]["bestMatch"]["taskId"] == "t1"
        assert "Maintenance type exact match" in body["suggestion"]["bestMatch"]["matchReasons"]
        assert store.get_task("t1").maintenance_log_id == body["log"]["id"]

    def test_no_match(self, client):
        response = client.post("/api/maintenance/logs", json={"vehicleId": "v1", "type": "tires"})

        body = response.get_json()
        assert response.status_code == 201
        assert body["autoCompletedTaskId"] is None

    @pytest.mark.parametrize("payload", [
        {"type": "oil_change"},
        {"vehicleId": "v1", "type": "polish"},
        {"vehicleId": "v1", "type": "oil_change", "date": "yesterday"},
    ])
    def test_invalid_payload(self, client, payload):
        response = client.post("/api/maintenance/logs", json=payload)

        assert response.status_code == 400
        assert "error" in response.get_json()

    def test_unknown_vehicle(self, client):
        response = client.post("/api/maintenance/logs", json={"vehicleId": "v9", "type": "tires"})
        assert response.status_code == 404


class TestAnalytics:
    """GET /api/maintenance/analytics/<user_id>"""

    def test_summary(self, client):
        body = client.get("/api/maintenance/analytics/u1").get_json()

        assert body["totalTasks"] == 1
        assert body["dueSoonTasks"] == 1
        assert body["tasksByStatus"]["due"] == 1
        assert body["tasksByVehicle"][0]["vehicleName"] == "Track Bike"

    def test_served_from_cache_until_task_changes(self, app, client):
        cache = app.extensions["maintenance"]["cache"]
        cache.set_maintenance_analytics("u1", MaintenanceAnalytics(total_tasks=42))

        assert client.get("/api/maintenance/analytics/u1").get_json()["totalTasks"] == 42

        client.get(action_url("u1", "t1", "complete"))
        body = client.get("/api/maintenance/analytics/u1").get_json()
        assert body["totalTasks"] == 1
        assert body["completedTasks"] == 1

    def test_job_pass_refreshes_cached_summary(self, app, client, store):
        maintenance = app.extensions["maintenance"]
        maintenance["cache"].set_maintenance_analytics("u1", MaintenanceAnalytics(total_tasks=42))

        maintenance["job"].run_once()

        body = client.get("/api/maintenance/analytics/u1").get_json()
        assert body["totalTasks"] == len(store.list_tasks())

    def test_unknown_user(self, client):
        assert client.get("/api/maintenance/analytics/nobody").status_code == 404
