"""
Purpose: Central configuration for driver movement simulation.
What it does:

Stores all tunable timings for the two ride phases:

TICK_INTERVAL_SECONDS = 0.5
PICKUP_DURATION = 120 .. 180 seconds (2-3 minutes, sampled per ride)
DESTINATION_DURATION = 300 seconds
PICKUP_PAUSE = 2 seconds
NEAR_ARRIVAL_THRESHOLD = 100 m

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Tuple

from dotenv import load_dotenv


@dataclass(frozen=True)
class MovementPolicy:
    """
    Central configuration for the per-ride movement simulator.
    """

    # --- Ticking ---
    tick_interval_seconds: float = 0.5

    # --- Phase durations ---
    # toPickup duration is sampled uniformly from this range for every ride.
    pickup_duration_range_seconds: Tuple[float, float] = (120.0, 180.0)
    destination_duration_seconds: float = 300.0

    # Stationary "arrived, waiting to depart" interval between the phases.
    pickup_pause_seconds: float = 2.0

    # --- Signals ---
    # Remaining distance under which "arriving" / "approachingDestination" fires.
    near_arrival_threshold_m: float = 100.0

    # --- Visualization ---
    # Number of segments in each phase polyline (points = route_points + 1).
    route_points: int = 30

    def validate(self) -> None:
        """
        Basic sanity checks.
        """
        if self.tick_interval_seconds <= 0:
            raise ValueError("tick_interval_seconds must be > 0")

        low, high = self.pickup_duration_range_seconds
        if low <= 0 or high < low:
            raise ValueError("pickup_duration_range_seconds must satisfy 0 < low <= high")

        if self.destination_duration_seconds <= 0:
            raise ValueError("destination_duration_seconds must be > 0")

        if self.pickup_pause_seconds < 0:
            raise ValueError("pickup_pause_seconds must be >= 0")

        if self.near_arrival_threshold_m < 0:
            raise ValueError("near_arrival_threshold_m must be >= 0")

        if self.route_points < 1:
            raise ValueError("route_points must be >= 1")

    @classmethod
    def from_env(cls) -> MovementPolicy:
        load_dotenv()
        defaults = cls()
        p = cls(
            tick_interval_seconds=float(os.getenv("SIM_TICK_SECONDS", defaults.tick_interval_seconds)),
            pickup_duration_range_seconds=(
                float(os.getenv("SIM_PICKUP_MIN_SECONDS", defaults.pickup_duration_range_seconds[0])),
                float(os.getenv("SIM_PICKUP_MAX_SECONDS", defaults.pickup_duration_range_seconds[1])),
            ),
            destination_duration_seconds=float(
                os.getenv("SIM_DESTINATION_SECONDS", defaults.destination_duration_seconds)
            ),
            pickup_pause_seconds=float(os.getenv("SIM_PICKUP_PAUSE_SECONDS", defaults.pickup_pause_seconds)),
            near_arrival_threshold_m=float(os.getenv("SIM_NEAR_THRESHOLD_M", defaults.near_arrival_threshold_m)),
        )
        p.validate()
        return p


def default_movement_policy() -> MovementPolicy:
    """
    Convenience factory for the default policy.
    """
    p = MovementPolicy()
    p.validate()
    return p
