"""Maintenance plans and their checklist items."""

from dataclasses import dataclass, field
from typing import List, Optional

from .cadence import Cadence, CadenceType


@dataclass(frozen=True)
class DueOffset:
    """
    Delay applied after a cadence trigger fires.

    Only ``days`` is applied today; ``trackdays`` and ``odometer_km`` are
    stored so plans can carry them, but the engine ignores them.
    """

    days: int = 0
    trackdays: Optional[int] = None
    odometer_km: Optional[float] = None


@dataclass(frozen=True)
class AutoCompleteMatcher:
    """How a checklist item recognises the maintenance log that resolves it."""

    maintenance_type: Optional[str] = None
    odometer_tolerance: Optional[float] = None
    parts_required: List[str] = field(default_factory=list)


@dataclass
class MaintenancePlan:
    """A declarative maintenance plan with exactly one cadence."""

    id: str
    name: str
    cadence: Cadence
    is_template: bool = False
    owner_id: Optional[str] = None

    @property
    def cadence_type(self) -> CadenceType:
        return self.cadence.cadence_type


@dataclass
class PlanChecklistItem:
    """One maintenance action belonging to a plan."""

    id: str
    plan_id: str
    title: str
    description: str = ""
    maintenance_type: Optional[str] = None
    due_offset: DueOffset = field(default_factory=DueOffset)
    matcher: AutoCompleteMatcher = field(default_factory=AutoCompleteMatcher)
    sequence: int = 0
    is_critical: bool = False
