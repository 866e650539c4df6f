"""MaintenanceLog class for recorded service actions."""

from dataclasses import dataclass
from datetime import date
from typing import Optional


@dataclass
class MaintenanceLog:
    """A real-world service action performed on a vehicle."""

    id: Optional[str]
    vehicle_id: str
    date: date
    type: str
    odometer_km: Optional[float] = None
    notes: str = ""
    cost_cents: int = 0
