"""
Purpose: Data models held by the driver app.
What it does:
Stats, the ride request (offer) the driver is looking at, the active ride
and the completion summary. These are the payloads carried by DriverState.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from routing.geo import LatLng


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """ISO-8601 (with or without a trailing Z). None when missing or malformed."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class DriverStats:
    online_time_s: float = 0.0
    completed_rides: int = 0
    total_earnings: float = 0.0
    acceptance_rate: float = 100.0
    rating: float = 5.0

    @classmethod
    def from_dict(cls, data: dict) -> DriverStats:
        return cls(
            online_time_s=float(data.get("onlineTime", 0.0)),
            completed_rides=int(data.get("completedRides", 0)),
            total_earnings=float(data.get("totalEarnings", 0.0)),
            acceptance_rate=float(data.get("acceptanceRate", 100.0)),
            rating=float(data.get("rating", 5.0)),
        )


ZERO_STATS = DriverStats()


@dataclass(frozen=True)
class RideRequest:
    """
    An offer as the driver sees it.
    """
    ride_id: str
    pickup: LatLng
    destination: LatLng
    distance_m: float
    estimated_earnings: float
    expires_at: datetime
    # Practice offer generated by the server, not a rider.
    simulated: bool = False

    def time_remaining(self, now: Optional[datetime] = None) -> float:
        now = now or _utcnow()
        return max(0.0, (self.expires_at - now).total_seconds())

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.time_remaining(now) <= 0

    @classmethod
    def from_offer(cls, offer: dict, now: Optional[datetime] = None, fallback_seconds: float = 30.0) -> RideRequest:
        """
        Build from the GET /drivers/{id}/offers payload. A missing or malformed
        expiresAt falls back to now + fallback_seconds.
        """
        now = now or _utcnow()
        expires_at = parse_timestamp(offer.get("expiresAt")) or now + timedelta(seconds=fallback_seconds)
        return cls(
            ride_id=offer["rideId"],
            pickup=LatLng.from_dict(offer["pickup"]),
            destination=LatLng.from_dict(offer["destination"]),
            distance_m=float(offer.get("distance", 0.0)),
            estimated_earnings=float(offer.get("estimatedEarnings", 0.0)),
            expires_at=expires_at,
            simulated=bool(offer.get("simulated", False)),
        )


@dataclass(frozen=True)
class PassengerInfo:
    name: str = "Passenger"
    rating: float = 4.8
    phone_number: Optional[str] = None


@dataclass(frozen=True)
class ActiveRide:
    ride_id: str
    pickup: LatLng
    destination: LatLng
    passenger: PassengerInfo
    current_driver_location: LatLng
    estimated_arrival_s: Optional[float] = None
    distance_to_destination_m: Optional[float] = None
    estimated_earnings: float = 0.0
    started_at: Optional[datetime] = None


@dataclass(frozen=True)
class RideSummary:
    ride_id: str
    pickup: LatLng
    destination: LatLng
    distance_m: float
    duration_s: float
    earnings: float
    completed_at: datetime
    passenger_rating: Optional[float] = None
