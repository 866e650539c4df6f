"""Flask web application for the maintenance engine's HTTP entry points."""

import threading
from datetime import date
from pathlib import Path
from typing import Optional

from flask import Flask, jsonify, render_template_string, request

# Add parent directory to path for package imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from engine import (
    AnalyticsCache,
    AnalyticsService,
    InvalidActionTokenError,
    InvalidTransitionError,
    LookupFailed,
    MemoryStore,
    TaskAccessDenied,
    TaskLifecycle,
    record_maintenance_log,
)
from models import MaintenanceLog, MaintenanceType
from settings import Settings, build_job, build_signer, configure_logging, load_settings

MESSAGE_PAGE = """<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <title>{{ title }}</title>
  </head>
  <body style="font-family: sans-serif; max-width: 600px; margin: 50px auto; text-align: center;">
    <h1>{{ title }}</h1>
    <p>{{ message }}</p>
    <a href="{{ link }}">{{ link_text }}</a>
  </body>
</html>
"""


def message_page(title: str, message: str, status: int, link: str = "/maintenance",
                 link_text: str = "View All Tasks"):
    """Render a small standalone HTML page."""
    body = render_template_string(
        MESSAGE_PAGE, title=title, message=message, link=link, link_text=link_text
    )
    return body, status


def parse_log_payload(payload: dict) -> MaintenanceLog:
    """Build a MaintenanceLog from a JSON body. Raises ValueError when invalid."""
    vehicle_id = payload.get("vehicleId")
    if not vehicle_id:
        raise ValueError("vehicleId is required")

    log_type = payload.get("type")
    if log_type not in {t.value for t in MaintenanceType}:
        raise ValueError(f"type must be one of: {', '.join(t.value for t in MaintenanceType)}")

    odometer = payload.get("odometerKm")
    return MaintenanceLog(
        id=None,
        vehicle_id=vehicle_id,
        date=date.fromisoformat(payload["date"]) if payload.get("date") else date.today(),
        type=log_type,
        odometer_km=float(odometer) if odometer is not None else None,
        notes=payload.get("notes") or "",
        cost_cents=int(payload.get("costCents") or 0),
    )


def create_app(
    store: Optional[MemoryStore] = None,
    settings: Optional[Settings] = None,
    data_file: Optional[Path] = None,
    cache: Optional[AnalyticsCache] = None,
) -> Flask:
    """
    Build the app around a store. With ``data_file`` set, every write is
    saved back to that YAML file.
    """
    settings = settings or load_settings()
    if store is None:
        data_file = data_file or Path(settings.data_file)
        store = MemoryStore.load(data_file)

    cache = cache or AnalyticsCache()
    lifecycle = TaskLifecycle(store, cache=cache, signer=build_signer(settings))
    analytics = AnalyticsService(store, cache)

    save_lock = threading.Lock()

    def persist(*_):
        if data_file is not None:
            with save_lock:
                store.save(data_file)

    app = Flask(__name__)
    app.extensions["maintenance"] = {
        "store": store,
        "cache": cache,
        "lifecycle": lifecycle,
        "analytics": analytics,
        "job": build_job(store, settings, cache=cache, lifecycle=lifecycle),
        "persist": persist,
    }

    @app.route("/api/maintenance/email-action/<token>")
    def email_action(token: str):
        """One-click complete / snooze / dismiss from a notification email."""
        try:
            outcome = lifecycle.handle_email_action(token)
        except InvalidActionTokenError:
            return message_page(
                "Invalid or Expired Link",
                "This action link is invalid or has expired. "
                "Please open the app to manage your tasks.",
                400,
                link="/",
                link_text="Open the app",
            )
        except TaskAccessDenied:
            return message_page("Unauthorized", "You cannot change this task.", 403)
        except LookupFailed:
            return message_page("Not Found", "Task not found.", 404)
        except InvalidTransitionError:
            return message_page(
                "Already Updated",
                "This task has already been completed or dismissed.",
                409,
            )

        persist()
        return message_page("Success", outcome.message, 200)

    @app.route("/api/maintenance/logs", methods=["POST"])
    def create_log():
        """Record a maintenance log and auto-complete the matching task."""
        payload = request.get_json(silent=True) or {}
        try:
            log = parse_log_payload(payload)
        except (ValueError, TypeError) as e:
            return jsonify({"error": str(e)}), 400

        if store.get_vehicle(log.vehicle_id) is None:
            return jsonify({"error": f"Unknown vehicle: {log.vehicle_id}"}), 404

        result = record_maintenance_log(store, log, lifecycle)
        persist()

        suggestion = result.suggestion
        best = suggestion.best_match
        return jsonify({
            "log": {"id": result.log.id, "vehicleId": result.log.vehicle_id, "type": result.log.type},
            "suggestion": {
                "bestMatch": (
                    {"taskId": best.task_id, "matchScore": best.score, "matchReasons": best.reasons}
                    if best else None
                ),
                "allMatches": [
                    {"taskId": m.task_id, "matchScore": m.score, "matchReasons": m.reasons}
                    for m in suggestion.all_matches
                ],
                "shouldAutoComplete": suggestion.should_auto_complete,
            },
            "autoCompletedTaskId": result.auto_completed_task_id,
        }), 201

    @app.route("/api/maintenance/analytics/<user_id>")
    def user_analytics(user_id: str):
        """Cached maintenance analytics for one user."""
        if store.get_user(user_id) is None:
            return jsonify({"error": f"Unknown user: {user_id}"}), 404
        return jsonify(analytics.analytics(user_id).to_dict())

    return app


if __name__ == "__main__":
    settings = load_settings()
    configure_logging(settings.log_level)
    app = create_app(settings=settings)
    maintenance = app.extensions["maintenance"]
    maintenance["cache"].start_cleanup()
    maintenance["job"].start(on_pass=maintenance["persist"])
    # Using 5001 to avoid conflict with macOS AirPlay Receiver on 5000
    app.run(debug=True, use_reloader=False, host="0.0.0.0", port=5001)
