#!/usr/bin/env python3
"""Tests for cadence variants and the cadence evaluators."""

from datetime import date, datetime, timedelta, timezone

import pytest

from engine.cadence import (
    VehicleHistory,
    evaluate,
    evaluate_engine_hours,
    evaluate_event_count,
    evaluate_odometer,
    evaluate_time_interval,
)
from models import (
    CadenceConfigError,
    CadenceType,
    DueOffset,
    EngineHoursCadence,
    EngineHoursContext,
    EventCountCadence,
    EventCountContext,
    MaintenanceLog,
    OdometerCadence,
    OdometerContext,
    PlanChecklistItem,
    TimeIntervalCadence,
    TimeIntervalContext,
    Trackday,
    VehiclePlan,
)

from conftest import ACTIVATION, NOW

UTC = timezone.utc


def vehicle_plan(**fields) -> VehiclePlan:
    return VehiclePlan("vp1", "v1", "p1", fields.pop("activation_date", ACTIVATION), **fields)


def trackdays(*days):
    return [Trackday(f"td{i}", "v1", d) for i, d in enumerate(days)]


def log(day, km):
    return MaintenanceLog(None, "v1", day, "service", odometer_km=km)


# =============================================================================
# Cadence variants
# =============================================================================


class TestCadenceVariants:
    """Variants validate their own config."""

    def test_cadence_type_from_variant(self):
        assert EventCountCadence(3).cadence_type == CadenceType.EVENT_COUNT
        assert OdometerCadence(5000).cadence_type == CadenceType.ODOMETER

    @pytest.mark.parametrize("value", [0, -1, 1.5, True, None])
    def test_invalid_event_count(self, value):
        with pytest.raises(CadenceConfigError):
            EventCountCadence(value)

    def test_invalid_intervals(self):
        with pytest.raises(CadenceConfigError):
            TimeIntervalCadence(0)
        with pytest.raises(CadenceConfigError):
            OdometerCadence(-100)
        with pytest.raises(CadenceConfigError):
            EngineHoursCadence(20, start_hours=-1)

    def test_config_error_is_value_error(self):
        with pytest.raises(ValueError):
            OdometerCadence("far")


class TestTriggerContexts:
    """Dedup keys per context variant."""

    def test_event_count_keyed_on_trackday(self):
        a = EventCountContext("td1", 2, 3)
        assert a.same_trigger(EventCountContext("td1", 5, 3))
        assert not a.same_trigger(EventCountContext("td2", 2, 3))

    def test_time_interval_tolerates_one_day(self):
        a = TimeIntervalContext(date(2025, 6, 30), 30)
        assert a.same_trigger(TimeIntervalContext(date(2025, 7, 1), 30))
        assert not a.same_trigger(TimeIntervalContext(date(2025, 7, 2), 30))

    def test_odometer_target(self):
        ctx = OdometerContext(service_km=5000, current_km=4600, interval_km=5000)
        assert ctx.target_odometer == 5000
        assert ctx.to_dict()["targetOdometer"] == 5000

    def test_different_variants_never_match(self):
        assert not OdometerContext(20, 16, 20).same_trigger(EngineHoursContext(20, 16, 20))


# =============================================================================
# Event count
# =============================================================================


class TestEvaluateEventCount:
    """Tests for evaluate_event_count."""

    def test_triggers_on_trackday_completing_block(self):
        """Two of three done: the next upcoming trackday completes the block."""
        tds = trackdays(date(2025, 3, 1), date(2025, 4, 1), date(2025, 7, 1), date(2025, 8, 1))
        [candidate] = evaluate_event_count(vehicle_plan(), EventCountCadence(3), tds, NOW)
        assert candidate.context.trackday_id == "td2"
        assert candidate.context.completed_count == 2
        assert candidate.trigger_at == datetime(2025, 7, 1, tzinfo=UTC)

    def test_exact_multiple_triggers_next_trackday(self):
        tds = trackdays(
            date(2025, 2, 1), date(2025, 3, 1), date(2025, 4, 1),
            date(2025, 7, 1), date(2025, 8, 1),
        )
        [candidate] = evaluate_event_count(vehicle_plan(), EventCountCadence(3), tds, NOW)
        assert candidate.context.trackday_id == "td3"

    def test_none_completed_needs_n_upcoming(self):
        tds = trackdays(date(2025, 7, 1), date(2025, 8, 1), date(2025, 9, 1))
        [candidate] = evaluate_event_count(vehicle_plan(), EventCountCadence(3), tds, NOW)
        assert candidate.context.trackday_id == "td2"

    def test_not_enough_upcoming(self):
        tds = trackdays(date(2025, 7, 1), date(2025, 8, 1))
        assert evaluate_event_count(vehicle_plan(), EventCountCadence(3), tds, NOW) == []

    def test_trackday_on_activation_day_not_counted(self):
        """Completed trackdays must start strictly after activation."""
        tds = trackdays(ACTIVATION, date(2025, 7, 1))
        [candidate] = evaluate_event_count(vehicle_plan(), EventCountCadence(1), tds, NOW)
        assert candidate.context.completed_count == 0

    def test_due_at_applies_day_offset(self):
        tds = trackdays(date(2025, 7, 1))
        [candidate] = evaluate_event_count(vehicle_plan(), EventCountCadence(1), tds, NOW)
        item = PlanChecklistItem("i1", "p1", "Check chain", due_offset=DueOffset(days=-2))
        assert candidate.due_at_for(item) == datetime(2025, 6, 29, tzinfo=UTC)


# =============================================================================
# Time interval
# =============================================================================


class TestEvaluateTimeInterval:
    """Tests for evaluate_time_interval."""

    def test_next_occurrence_from_activation(self):
        [candidate] = evaluate_time_interval(vehicle_plan(), TimeIntervalCadence(30), NOW)
        assert candidate.context.scheduled_date == date(2025, 6, 30)
        assert candidate.trigger_at == datetime(2025, 6, 30, tzinfo=UTC)

    def test_outside_look_ahead(self):
        """July 20 is more than 30 days out."""
        assert evaluate_time_interval(vehicle_plan(), TimeIntervalCadence(100), NOW) == []

    def test_config_start_date_wins(self):
        cadence = TimeIntervalCadence(365, start_date=date(2025, 6, 20))
        [candidate] = evaluate_time_interval(vehicle_plan(), cadence, NOW)
        assert candidate.context.scheduled_date == date(2025, 6, 20)


# =============================================================================
# Odometer
# =============================================================================


class TestEvaluateOdometer:
    """Tests for evaluate_odometer."""

    def test_inside_early_window(self):
        logs = [log(date(2025, 5, 1), 4600)]
        [candidate] = evaluate_odometer(vehicle_plan(), OdometerCadence(5000), logs, NOW)
        assert candidate.context.service_km == 5000
        assert candidate.context.current_km == 4600
        assert candidate.trigger_at == NOW

    def test_outside_early_window(self):
        logs = [log(date(2025, 5, 1), 4400)]
        assert evaluate_odometer(vehicle_plan(), OdometerCadence(5000), logs, NOW) == []

    def test_no_logs_uses_start(self):
        """With no readings the start point is itself the first threshold."""
        vp = vehicle_plan(odometer_at_activation=10000)
        [candidate] = evaluate_odometer(vp, OdometerCadence(5000), [], NOW)
        assert candidate.context.service_km == 10000
        assert candidate.context.current_km == 10000

    def test_activation_odometer_as_start(self):
        logs = [log(date(2025, 5, 1), 14550)]
        vp = vehicle_plan(odometer_at_activation=10000)
        [candidate] = evaluate_odometer(vp, OdometerCadence(5000), logs, NOW)
        assert candidate.context.service_km == 15000

    def test_config_start_overrides_activation(self):
        logs = [log(date(2025, 5, 1), 12600)]
        vp = vehicle_plan(odometer_at_activation=10000)
        [candidate] = evaluate_odometer(vp, OdometerCadence(5000, start_odometer=3000), logs, NOW)
        assert candidate.context.service_km == 13000

    def test_reading_on_threshold(self):
        logs = [log(date(2025, 5, 1), 5000)]
        [candidate] = evaluate_odometer(vehicle_plan(), OdometerCadence(5000), logs, NOW)
        assert candidate.context.service_km == 5000


# =============================================================================
# Engine hours
# =============================================================================


class TestEvaluateEngineHours:
    """Tests for evaluate_engine_hours."""

    def test_inside_window(self):
        vp = vehicle_plan(current_engine_hours=16)
        [candidate] = evaluate_engine_hours(vp, EngineHoursCadence(20), NOW)
        assert candidate.context.service_hours == 20

    def test_outside_window(self):
        vp = vehicle_plan(current_engine_hours=14)
        assert evaluate_engine_hours(vp, EngineHoursCadence(20), NOW) == []

    def test_metadata_is_ignored(self):
        """Without current_engine_hours the reading stays at the start point."""
        vp = vehicle_plan(engine_hours_at_activation=100, metadata={"currentEngineHours": 119})
        [candidate] = evaluate_engine_hours(vp, EngineHoursCadence(20), NOW)
        assert candidate.context.current_hours == 100
        assert candidate.context.service_hours == 100

    def test_reading_at_start_is_a_threshold(self):
        vp = vehicle_plan(engine_hours_at_activation=100, current_engine_hours=100)
        [candidate] = evaluate_engine_hours(vp, EngineHoursCadence(20), NOW)
        assert candidate.context.service_hours == 100

    def test_activation_hours_as_start(self):
        vp = vehicle_plan(engine_hours_at_activation=100, current_engine_hours=116)
        [candidate] = evaluate_engine_hours(vp, EngineHoursCadence(20), NOW)
        assert candidate.context.service_hours == 120


class TestEvaluateDispatch:
    def test_dispatches_on_variant(self):
        history = VehicleHistory(logs=[log(date(2025, 5, 1), 4600)])
        [candidate] = evaluate(vehicle_plan(), OdometerCadence(5000), history, NOW)
        assert isinstance(candidate.context, OdometerContext)

    def test_trigger_at_is_now_plus_offset(self):
        vp = vehicle_plan(current_engine_hours=19)
        [candidate] = evaluate(vp, EngineHoursCadence(20), VehicleHistory(), NOW)
        item = PlanChecklistItem("i1", "p1", "Valve check", due_offset=DueOffset(days=3))
        assert candidate.due_at_for(item) == NOW + timedelta(days=3)
