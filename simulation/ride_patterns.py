"""
Purpose: Synthetic ride demand that follows the time of day.
What it does:
Each RidePattern names where rides start and end (location categories of the
region) and the hours it is active. generate_ride picks an active pattern by
weight, then a pickup and a distinct destination from its categories.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from routing.geo import LatLng
from routing.zones import Region, get_active_region, random_location

MAX_DISTINCT_ATTEMPTS = 10


@dataclass(frozen=True)
class RidePattern:
    name: str
    weight: float
    pickup: Tuple[str, ...]
    destination: Tuple[str, ...]
    hours: Optional[Tuple[int, int]]   # [start, end); None = all day
    description: str = ""

    def is_active(self, hour: int) -> bool:
        if self.hours is None:
            return True
        start, end = self.hours
        if start <= end:
            return start <= hour < end
        # Overnight range, e.g. 21 -> 3.
        return hour >= start or hour < end


RIDE_PATTERNS: List[RidePattern] = [
    RidePattern("morning_commute", 0.35, ("residential",), ("business", "transit"), (6, 10),
                "Morning commute to work"),
    RidePattern("evening_commute", 0.25, ("business",), ("residential", "entertainment"), (17, 20),
                "Evening commute home or to dinner"),
    RidePattern("airport_dropoff", 0.10, ("residential", "business"), ("transit",), None,
                "Trip to airport/station"),
    RidePattern("airport_pickup", 0.10, ("transit",), ("residential", "business"), None,
                "Trip from airport/station"),
    RidePattern("tourist", 0.10, ("landmarks", "entertainment"), ("landmarks", "entertainment"), (9, 18),
                "Tourist sightseeing"),
    RidePattern("nightlife", 0.10, ("entertainment", "business"), ("residential",), (21, 3),
                "Late night return home"),
]


@dataclass(frozen=True)
class GeneratedRide:
    pickup: LatLng
    destination: LatLng
    pattern: str
    description: str


def select_ride_pattern(
    hour: int,
    patterns: Sequence[RidePattern] = tuple(RIDE_PATTERNS),
    rng: Optional[random.Random] = None,
) -> RidePattern:
    """
    Weighted pick among patterns active at `hour` (all patterns if none are).
    """
    rng = rng or random
    active = [p for p in patterns if p.is_active(hour)] or list(patterns)

    remaining = rng.random() * sum(p.weight for p in active)
    for pattern in active:
        remaining -= pattern.weight
        if remaining <= 0:
            return pattern
    return active[0]


def generate_ride(
    region: Optional[Region] = None,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> GeneratedRide:
    region = region or get_active_region()
    hour = (now or datetime.now()).hour
    rng = rng or random

    pattern = select_ride_pattern(hour, rng=rng)
    pickup = random_location(region, pattern.pickup, rng)
    destination = random_location(region, pattern.destination, rng)

    attempts = 0
    while destination == pickup and attempts < MAX_DISTINCT_ATTEMPTS:
        destination = random_location(region, pattern.destination, rng)
        attempts += 1

    return GeneratedRide(
        pickup=pickup,
        destination=destination,
        pattern=pattern.name,
        description=pattern.description,
    )
