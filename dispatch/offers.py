"""
Purpose: Pending-offer bookkeeping for the accept / reject / expiry race.
What it does:
Holds at most one PendingOffer per ride and at most one per driver. An offer
leaves the book through resolve() only, which pops it under a lock, so of
the three racing outcomes exactly one gets the offer back and the rest get None.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from common.scheduling import ScheduledHandle
from routing.geo import LatLng

logger = logging.getLogger(__name__)


class OfferOutcome(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    WITHDRAWN = "withdrawn"  # ride cancelled while the offer was pending


@dataclass
class PendingOffer:
    ride_id: str
    driver_id: str
    pickup: LatLng
    destination: LatLng
    distance_m: float
    estimated_earnings: float
    offered_at: datetime
    expires_at: datetime
    # Generated practice offer rather than a requested ride.
    simulated: bool = False
    expiry_handle: Optional[ScheduledHandle] = field(default=None, compare=False, repr=False)

    def to_dict(self) -> dict:
        return {
            "rideId": self.ride_id,
            "pickup": self.pickup.to_dict(),
            "destination": self.destination.to_dict(),
            "distance": round(self.distance_m),
            "estimatedEarnings": self.estimated_earnings,
            "offeredAt": self.offered_at.isoformat(),
            "expiresAt": self.expires_at.isoformat(),
            "simulated": self.simulated,
        }


class DuplicateOfferError(Exception):
    """Raised when a ride or a driver already holds a pending offer."""
    pass


class OfferBook:

    def __init__(self):
        self._by_ride: Dict[str, PendingOffer] = {}
        self._ride_by_driver: Dict[str, str] = {}
        self._lock = threading.Lock()

    def add(self, offer: PendingOffer) -> None:
        with self._lock:
            if offer.ride_id in self._by_ride:
                raise DuplicateOfferError(f"Ride {offer.ride_id} already has a pending offer")
            if offer.driver_id in self._ride_by_driver:
                raise DuplicateOfferError(f"Driver {offer.driver_id} already holds a pending offer")
            self._by_ride[offer.ride_id] = offer
            self._ride_by_driver[offer.driver_id] = offer.ride_id

    def for_ride(self, ride_id: str) -> Optional[PendingOffer]:
        with self._lock:
            return self._by_ride.get(ride_id)

    def for_driver(self, driver_id: str) -> Optional[PendingOffer]:
        with self._lock:
            ride_id = self._ride_by_driver.get(driver_id)
            return self._by_ride.get(ride_id) if ride_id is not None else None

    def drivers_with_offers(self, include_simulated: bool = True) -> List[str]:
        with self._lock:
            if include_simulated:
                return list(self._ride_by_driver)
            return [
                driver_id for driver_id, ride_id in self._ride_by_driver.items()
                if not self._by_ride[ride_id].simulated
            ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_ride)

    def __contains__(self, ride_id: str) -> bool:
        with self._lock:
            return ride_id in self._by_ride

    def resolve(self, ride_id: str, outcome: OfferOutcome, driver_id: Optional[str] = None) -> Optional[PendingOffer]:
        """
        The single resolution point. Removes and returns the offer if it is
        still pending (and, when `driver_id` is given, addressed to that
        driver). Returns None to every later caller. The expiry timer of a
        resolved offer is cancelled here.
        """
        with self._lock:
            offer = self._by_ride.get(ride_id)
            if offer is None:
                return None
            if driver_id is not None and offer.driver_id != driver_id:
                return None

            del self._by_ride[ride_id]
            self._ride_by_driver.pop(offer.driver_id, None)

        if offer.expiry_handle is not None and outcome != OfferOutcome.EXPIRED:
            offer.expiry_handle.cancel()

        logger.info("Offer for ride %s to driver %s %s", ride_id, offer.driver_id, outcome.value)
        return offer
