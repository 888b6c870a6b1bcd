"""
Purpose: Geographic configuration for the simulated city (single source of truth).
What it does:

Stores the mock region used for driver spawning and generated ride requests:

- region center and the driver spawn donut (used when a region has no zones)
- weighted driver zones (center + radius + selection weight)
- categorized named locations (residential, business, entertainment, transit, landmarks)

The active region is chosen with the MOCK_REGION environment variable.

Rule: No dispatch logic here, just geography and weighted picking.
"""

from __future__ import annotations

import os
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from dotenv import load_dotenv

from .geo import LatLng, random_point_in_donut, random_point_in_radius

load_dotenv()
DEFAULT_REGION = "sf_bay_area"


@dataclass(frozen=True)
class DriverZone:
    """
    A circular spawn area. Zones are picked proportionally to `weight`.
    """
    name: str
    center: LatLng
    radius_m: float
    weight: float


@dataclass(frozen=True)
class Region:
    name: str
    center: LatLng
    spawn_min_radius_m: float
    spawn_max_radius_m: float
    zones: List[DriverZone]
    locations: Dict[str, List[LatLng]] = field(default_factory=dict)

    def validate(self) -> None:
        if not self.zones and self.spawn_max_radius_m <= 0:
            raise ValueError(f"Region {self.name} needs driver zones or a spawn donut")
        if any(zone.weight <= 0 or zone.radius_m <= 0 for zone in self.zones):
            raise ValueError("Zone weights and radii must be > 0")
        if self.spawn_min_radius_m > self.spawn_max_radius_m:
            raise ValueError("spawn_min_radius_m must be <= spawn_max_radius_m")

    def all_locations(self) -> List[LatLng]:
        return [location for category in self.locations.values() for location in category]


def _loc(lat: float, lng: float, address: str) -> LatLng:
    return LatLng(lat=lat, lng=lng, address=address)


SF_BAY_AREA = Region(
    name="San Francisco Bay Area",
    center=_loc(37.7879, -122.4074, "Union Square"),
    spawn_min_radius_m=1000,
    spawn_max_radius_m=5000,
    zones=[
        DriverZone("downtown", LatLng(37.7879, -122.4074), radius_m=1500, weight=0.25),
        DriverZone("soma", LatLng(37.7785, -122.3950), radius_m=1200, weight=0.20),
        DriverZone("mission", LatLng(37.7599, -122.4148), radius_m=1500, weight=0.15),
        DriverZone("marina", LatLng(37.8025, -122.4382), radius_m=1000, weight=0.10),
        DriverZone("richmond", LatLng(37.7800, -122.4700), radius_m=1500, weight=0.10),
        DriverZone("sunset", LatLng(37.7600, -122.4800), radius_m=1500, weight=0.10),
        DriverZone("airport", LatLng(37.6213, -122.3790), radius_m=2000, weight=0.10),
    ],
    locations={
        "residential": [
            _loc(37.7599, -122.4148, "Mission Dolores"),
            _loc(37.7692, -122.4481, "Haight-Ashbury"),
            _loc(37.7609, -122.4350, "Castro District"),
            _loc(37.7544, -122.4477, "Twin Peaks"),
            _loc(37.7763, -122.4351, "Alamo Square"),
            _loc(37.7850, -122.4383, "Western Addition"),
            _loc(37.8021, -122.4186, "Russian Hill"),
            _loc(37.7989, -122.4269, "Pacific Heights"),
        ],
        "business": [
            _loc(37.7952, -122.4028, "Transamerica Pyramid"),
            _loc(37.7897, -122.3969, "Salesforce Tower"),
            _loc(37.7941, -122.3951, "Embarcadero Center"),
            _loc(37.7879, -122.4074, "Union Square"),
            _loc(37.7853, -122.4089, "SFMOMA"),
            _loc(37.7786, -122.3893, "Oracle Park"),
            _loc(37.7680, -122.3875, "Chase Center"),
            _loc(37.7749, -122.4194, "Civic Center"),
        ],
        "entertainment": [
            _loc(37.8080, -122.4177, "Fisherman's Wharf"),
            _loc(37.8024, -122.4058, "Pier 39"),
            _loc(37.8085, -122.4180, "Ghirardelli Square"),
            _loc(37.8025, -122.4382, "Palace of Fine Arts"),
            _loc(37.8071, -122.4340, "Fort Mason Center"),
            _loc(37.7989, -122.4117, "North Beach"),
            _loc(37.7941, -122.4078, "Chinatown"),
            _loc(37.7694, -122.4862, "Ocean Beach"),
        ],
        "transit": [
            _loc(37.6213, -122.3790, "San Francisco International Airport"),
            _loc(37.7764, -122.4168, "Civic Center BART"),
            _loc(37.7847, -122.4089, "Powell Street Station"),
            _loc(37.7955, -122.3937, "Ferry Building"),
            _loc(37.7793, -122.4139, "Montgomery Street BART"),
            _loc(37.7844, -122.4080, "Powell Street Cable Car"),
        ],
        "landmarks": [
            _loc(37.8199, -122.4783, "Golden Gate Bridge"),
            _loc(37.8267, -122.4230, "Alcatraz Ferry"),
            _loc(37.8022, -122.4060, "Coit Tower"),
            _loc(37.7756, -122.4193, "City Hall"),
            _loc(37.7699, -122.4661, "California Academy of Sciences"),
            _loc(37.7701, -122.4686, "Japanese Tea Garden"),
        ],
    },
)

REGIONS: Dict[str, Region] = {
    "sf_bay_area": SF_BAY_AREA,
}


def get_active_region(name: Optional[str] = None) -> Region:
    """
    Region named explicitly, else MOCK_REGION, else the SF Bay Area.
    """
    key = name or os.getenv("MOCK_REGION", DEFAULT_REGION)
    try:
        region = REGIONS[key]
    except KeyError:
        raise ValueError(f"Unknown region '{key}'. Known regions: {sorted(REGIONS)}")
    region.validate()
    return region


def select_driver_zone(zones: Sequence[DriverZone], rng: Optional[random.Random] = None) -> DriverZone:
    """
    Weighted random pick. Falls back to the first zone on float round-off.
    """
    if not zones:
        raise ValueError("No driver zones to select from")
    rng = rng or random

    total_weight = sum(zone.weight for zone in zones)
    remaining = rng.random() * total_weight
    for zone in zones:
        remaining -= zone.weight
        if remaining <= 0:
            return zone
    return zones[0]


def random_spawn_point(region: Region, rng: Optional[random.Random] = None) -> Tuple[str, LatLng]:
    """
    Where a driver appears: inside a weighted zone, or in the donut around the
    region center when the region has no zones. Returns (area name, point).
    """
    rng = rng or random
    if not region.zones:
        point = random_point_in_donut(region.center, region.spawn_min_radius_m, region.spawn_max_radius_m, rng)
        return "center", point

    zone = select_driver_zone(region.zones, rng)
    return zone.name, random_point_in_radius(zone.center, zone.radius_m, rng)


def random_location(region: Region, categories: Sequence[str], rng: Optional[random.Random] = None) -> LatLng:
    """
    Random named location from the given categories (all locations when none match).
    """
    rng = rng or random
    candidates = [loc for category in categories for loc in region.locations.get(category, [])]
    if not candidates:
        candidates = region.all_locations()
    return rng.choice(candidates)
