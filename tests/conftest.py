"""Shared fixtures: a fixed clock and a small in-memory garage."""

from datetime import date, datetime, timezone

import pytest

from engine import MemoryStore
from models import (
    AutoCompleteMatcher,
    DueOffset,
    MaintenancePlan,
    PlanChecklistItem,
    User,
    Vehicle,
    VehiclePlan,
)

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)
ACTIVATION = date(2025, 1, 1)


def build_store() -> MemoryStore:
    store = MemoryStore()
    store.add(User("u1", "rider@example.com"))
    store.add(Vehicle("v1", "u1", "Track Bike"))
    return store


def add_plan(
    store: MemoryStore,
    cadence,
    items=None,
    plan_id: str = "p1",
    vehicle_plan_id: str = "vp1",
    vehicle_id: str = "v1",
    activation_date: date = ACTIVATION,
    **vehicle_plan_fields,
) -> VehiclePlan:
    """Add a plan, its checklist items, and an active vehicle plan."""
    store.add(MaintenancePlan(plan_id, f"Plan {plan_id}", cadence))
    for seq, item in enumerate(items if items is not None else ["Change oil"]):
        if isinstance(item, str):
            item = PlanChecklistItem(f"{plan_id}-i{seq}", plan_id, item, sequence=seq)
        store.add(item)
    vehicle_plan = VehiclePlan(
        vehicle_plan_id, vehicle_id, plan_id, activation_date, **vehicle_plan_fields
    )
    store.add(vehicle_plan)
    return vehicle_plan


def oil_item(plan_id: str = "p1", **fields) -> PlanChecklistItem:
    """Checklist item with an oil-change matcher."""
    defaults = dict(
        id=f"{plan_id}-oil",
        plan_id=plan_id,
        title="Engine oil change",
        maintenance_type="oil_change",
        due_offset=DueOffset(days=7),
        matcher=AutoCompleteMatcher(
            maintenance_type="oil_change",
            odometer_tolerance=500,
            parts_required=["oil", "filter"],
        ),
    )
    defaults.update(fields)
    return PlanChecklistItem(**defaults)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def store():
    return build_store()
