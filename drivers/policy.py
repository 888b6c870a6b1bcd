"""
Purpose: Central configuration for the simulated driver fleet.
What it does:

Stores all tunable values for spawning the roster:

DRIVER_NAMES = 20 names (one driver each)
VEHICLE_CLASS_CYCLE = Standard x4, Premium x2, XL x1
RATING_RANGE = 4.5 .. 5.0

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from dotenv import load_dotenv

DEFAULT_DRIVER_NAMES = [
    "Michael Chen",
    "Sarah Johnson",
    "David Martinez",
    "Emily Rodriguez",
    "James Wilson",
    "Maria Garcia",
    "Robert Taylor",
    "Jennifer Lee",
    "William Brown",
    "Lisa Anderson",
    "Kevin Nguyen",
    "Priya Patel",
    "Carlos Santos",
    "Yuki Tanaka",
    "Omar Hassan",
    "Sofia Kowalski",
    "Andre Jackson",
    "Mei Lin Wong",
    "Diego Fernandez",
    "Aisha Mohammed",
]


@dataclass(frozen=True)
class FleetPolicy:
    """
    Central configuration for the in-memory driver roster.
    """

    # --- Roster ---
    # One driver per name, ids are driver_1 .. driver_N.
    driver_names: List[str] = field(default_factory=lambda: list(DEFAULT_DRIVER_NAMES))

    # Vehicle classes are assigned round-robin from this cycle.
    vehicle_class_cycle: List[str] = field(
        default_factory=lambda: ["Standard", "Standard", "Standard", "Standard", "Premium", "Premium", "XL"]
    )

    # --- Ratings ---
    rating_range: Tuple[float, float] = (4.5, 5.0)

    # --- Region ---
    # Name of the region in routing.zones.REGIONS (None = MOCK_REGION env).
    region_name: Optional[str] = None

    def validate(self) -> None:
        """
        Basic sanity checks.
        """
        if not self.driver_names:
            raise ValueError("driver_names must not be empty")

        if not self.vehicle_class_cycle:
            raise ValueError("vehicle_class_cycle must not be empty")

        low, high = self.rating_range
        if not 0 <= low <= high <= 5:
            raise ValueError("rating_range must satisfy 0 <= low <= high <= 5")

    @classmethod
    def from_env(cls) -> FleetPolicy:
        load_dotenv()
        size = os.getenv("FLEET_SIZE")
        names = list(DEFAULT_DRIVER_NAMES)
        if size:
            count = int(size)
            names = [names[i] if i < len(names) else f"Driver {i + 1}" for i in range(count)]
        p = cls(driver_names=names, region_name=os.getenv("MOCK_REGION") or None)
        p.validate()
        return p


def default_fleet_policy() -> FleetPolicy:
    """
    Convenience factory for the default policy.
    """
    p = FleetPolicy()
    p.validate()
    return p
