"""
Purpose: Core data models for the rides domain.
What it does:
Defines the Ride record and its status variant. A Ride is an immutable
snapshot; RideLifecycle swaps in a new snapshot on every status change.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from routing.geo import LatLng


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RideStatus(str, Enum):
    REQUESTED = "requested"
    SEARCHING = "searching"
    ASSIGNED = "assigned"
    ARRIVING = "arriving"
    IN_PROGRESS = "inProgress"
    APPROACHING_DESTINATION = "approachingDestination"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_DRIVERS_AVAILABLE = "noDriversAvailable"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def has_driver(self) -> bool:
        return self in DRIVER_BOUND_STATUSES


TERMINAL_STATUSES = frozenset({
    RideStatus.COMPLETED,
    RideStatus.CANCELLED,
    RideStatus.NO_DRIVERS_AVAILABLE,
})

# A ride references a driver exactly while it is in one of these.
DRIVER_BOUND_STATUSES = frozenset({
    RideStatus.ASSIGNED,
    RideStatus.ARRIVING,
    RideStatus.IN_PROGRESS,
    RideStatus.APPROACHING_DESTINATION,
})


class AssignmentSource(str, Enum):
    OFFER = "offer"   # a logged-in driver accepted the offer
    MATCH = "match"   # fallback nearest-driver match


@dataclass(frozen=True)
class Ride:
    id: str
    pickup: LatLng
    destination: LatLng
    status: RideStatus = RideStatus.REQUESTED
    driver_id: Optional[str] = None
    previous_driver_id: Optional[str] = None
    estimated_arrival_s: Optional[int] = None
    assigned_via: Optional[AssignmentSource] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        return not self.status.is_terminal

    def to_dict(self, driver: Optional[dict] = None) -> dict:
        """
        Wire format. `driver` is the already-serialized driver (the ride only
        keeps the id).
        """
        return {
            "rideId": self.id,
            "pickup": self.pickup.to_dict(),
            "destination": self.destination.to_dict(),
            "status": self.status.value,
            "driverId": self.driver_id,
            "driver": driver,
            "estimatedArrival": self.estimated_arrival_s,
            "assignedVia": self.assigned_via.value if self.assigned_via else None,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }
