"""
Purpose: Pure geographic math (no state, no I/O).
What it does:

- distance (haversine, meters)
- interpolate (linear in lat/lng space)
- bearing (initial great-circle bearing, degrees in [0, 360))
- eta (seconds at an assumed average city speed)
- random_point_in_radius / random_point_in_donut (uniform-area sampling)
- route_polyline (evenly spaced points between two coordinates)

Rule: every function here is deterministic given its inputs and rng.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from typing import List, Optional

EARTH_RADIUS_M = 6371000.0
DEFAULT_CITY_SPEED_KMH = 40.0

# Floating-point slack (1 mm) on sampled radii versus haversine distance.
DONUT_TOLERANCE_M = 1e-3


class InvalidCoordinateError(ValueError):
    """Raised when a latitude/longitude falls outside the valid range."""
    pass


@dataclass(frozen=True)
class LatLng:
    """
    A WGS84 coordinate. `address` is display-only and ignored by equality.
    """
    lat: float
    lng: float
    address: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        validate_coordinate(self.lat, self.lng)

    @classmethod
    def from_dict(cls, data: dict) -> LatLng:
        if not isinstance(data, dict) or "lat" not in data or "lng" not in data:
            raise InvalidCoordinateError("Location must include lat and lng")
        try:
            lat = float(data["lat"])
            lng = float(data["lng"])
        except (TypeError, ValueError):
            raise InvalidCoordinateError("lat and lng must be numbers")
        return cls(lat=lat, lng=lng, address=data.get("address"))

    def to_dict(self) -> dict:
        payload = {"lat": self.lat, "lng": self.lng}
        if self.address:
            payload["address"] = self.address
        return payload


def validate_coordinate(lat: float, lng: float) -> None:
    if isinstance(lat, bool) or isinstance(lng, bool):
        raise InvalidCoordinateError("lat and lng must be numbers")
    if not (isinstance(lat, (int, float)) and isinstance(lng, (int, float))):
        raise InvalidCoordinateError("lat and lng must be numbers")
    if math.isnan(lat) or math.isnan(lng):
        raise InvalidCoordinateError("lat and lng must not be NaN")
    if not -90.0 <= lat <= 90.0:
        raise InvalidCoordinateError(f"Latitude {lat} outside [-90, 90]")
    if not -180.0 <= lng <= 180.0:
        raise InvalidCoordinateError(f"Longitude {lng} outside [-180, 180]")


def _wrap_longitude(lng: float) -> float:
    return ((lng + 180.0) % 360.0) - 180.0


def _clamp_latitude(lat: float) -> float:
    return max(-90.0, min(90.0, lat))


def distance(a: LatLng, b: LatLng) -> float:
    """
    Great-circle distance in meters (haversine).
    """
    lat1, lng1, lat2, lng2 = map(math.radians, (a.lat, a.lng, b.lat, b.lng))
    dlat = lat2 - lat1
    dlng = lng2 - lng1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


def interpolate(start: LatLng, end: LatLng, t: float) -> LatLng:
    """
    Linear interpolation in lat/lng space. t is clamped to [0, 1].
    """
    if t <= 0.0:
        return start
    if t >= 1.0:
        return end
    return LatLng(
        lat=start.lat + (end.lat - start.lat) * t,
        lng=start.lng + (end.lng - start.lng) * t,
    )


def bearing(origin: LatLng, target: LatLng) -> float:
    """
    Initial bearing along the great circle from origin to target, in [0, 360).
    """
    lat1, lat2 = math.radians(origin.lat), math.radians(target.lat)
    dlng = math.radians(target.lng - origin.lng)
    x = math.sin(dlng) * math.cos(lat2)
    y = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlng)
    degrees = math.degrees(math.atan2(x, y))
    return (degrees + 360.0) % 360.0


def eta(distance_m: float, speed_kmh: float = DEFAULT_CITY_SPEED_KMH) -> int:
    """
    Seconds needed to cover distance_m at speed_kmh, rounded.
    """
    if speed_kmh <= 0:
        raise ValueError("speed_kmh must be > 0")
    speed_ms = speed_kmh * 1000.0 / 3600.0
    return int(round(distance_m / speed_ms))


def offset(center: LatLng, distance_m: float, angle_rad: float) -> LatLng:
    """
    Destination point `distance_m` from center along `angle_rad`
    (0 = north, clockwise), on the same sphere distance() uses. Working on the
    sphere keeps east-west and north-south errors bounded at any latitude.
    """
    delta = distance_m / EARTH_RADIUS_M
    lat1 = math.radians(center.lat)
    lng1 = math.radians(center.lng)

    sin_lat2 = math.sin(lat1) * math.cos(delta) + math.cos(lat1) * math.sin(delta) * math.cos(angle_rad)
    lat2 = math.asin(max(-1.0, min(1.0, sin_lat2)))
    lng2 = lng1 + math.atan2(
        math.sin(angle_rad) * math.sin(delta) * math.cos(lat1),
        math.cos(delta) - math.sin(lat1) * math.sin(lat2),
    )

    return LatLng(
        lat=_clamp_latitude(math.degrees(lat2)),
        lng=_wrap_longitude(math.degrees(lng2)),
    )


def random_point_in_radius(center: LatLng, radius_m: float, rng: Optional[random.Random] = None) -> LatLng:
    """
    Uniform-area sample inside a circle: r = R * sqrt(u).
    """
    if radius_m < 0:
        raise ValueError("radius_m must be >= 0")
    rng = rng or random
    r = min(radius_m * math.sqrt(rng.random()), radius_m)
    angle = rng.random() * 2 * math.pi
    return offset(center, r, angle)


def random_point_in_donut(
    center: LatLng,
    min_radius_m: float,
    max_radius_m: float,
    rng: Optional[random.Random] = None,
) -> LatLng:
    """
    Uniform-area sample inside an annulus: r = sqrt(u * (R^2 - r0^2) + r0^2).
    Never closer than min_radius_m minus DONUT_TOLERANCE_M.
    """
    if min_radius_m < 0 or max_radius_m < min_radius_m:
        raise ValueError("Require 0 <= min_radius_m <= max_radius_m")
    rng = rng or random
    u = rng.random()
    r = math.sqrt(u * (max_radius_m ** 2 - min_radius_m ** 2) + min_radius_m ** 2)
    angle = rng.random() * 2 * math.pi
    return offset(center, r, angle)


def route_polyline(start: LatLng, end: LatLng, n: int = 30) -> List[LatLng]:
    """
    n + 1 evenly spaced points; first is start and last is end.
    """
    if n < 1:
        raise ValueError("n must be >= 1")
    return [interpolate(start, end, i / n) for i in range(n + 1)]
