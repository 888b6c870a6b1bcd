"""
Purpose: The authoritative ride table.
What it does:

- create / get / list rides
- status changes, validated against the ride transition table
- driver assignment, atomic with the registry's check-and-set
- cancellation (marks the ride cancelled, runs cancel hooks, releases the driver)

Rule: status changes are the only mutation path. Listeners are notified after
the lock is released, so a listener may call back into the lifecycle.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import replace
from typing import Callable, Dict, List, Optional

from common.exceptions import RideNotAvailableError, RideNotFoundError
from drivers.registry import DriverRegistry
from routing.geo import LatLng

from .models import AssignmentSource, Ride, RideStatus, utcnow
from .state_machine import InvalidRideTransitionError, check_ride_transition

logger = logging.getLogger(__name__)

RideListener = Callable[[Ride], None]

ASSIGNABLE_STATUSES = (RideStatus.REQUESTED, RideStatus.SEARCHING)


class RideLifecycle:

    def __init__(self, registry: DriverRegistry, id_factory: Optional[Callable[[], str]] = None):
        self.registry = registry
        self.id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self._rides: Dict[str, Ride] = {}
        self._lock = threading.RLock()
        self._listeners: List[RideListener] = []
        self._cancel_hooks: List[RideListener] = []

    # --- Wiring ---

    def add_listener(self, listener: RideListener) -> None:
        """Called with the new snapshot after every status change."""
        self._listeners.append(listener)

    def add_cancel_hook(self, hook: RideListener) -> None:
        """Called on cancel with the cancelled ride, before the driver is released (stop timers here)."""
        self._cancel_hooks.append(hook)

    def _notify(self, ride: Ride) -> None:
        for listener in self._listeners:
            try:
                listener(ride)
            except Exception:
                logger.exception("Ride listener failed for ride %s", ride.id)

    # --- Queries ---

    def get(self, ride_id: str) -> Ride:
        with self._lock:
            try:
                return self._rides[ride_id]
            except KeyError:
                raise RideNotFoundError(f"No ride found with ID: {ride_id}")

    def all(self) -> List[Ride]:
        with self._lock:
            return list(self._rides.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._rides)

    # --- Mutations ---

    def create(self, pickup: LatLng, destination: LatLng) -> Ride:
        ride = Ride(id=self.id_factory(), pickup=pickup, destination=destination)
        with self._lock:
            self._rides[ride.id] = ride

        logger.info(
            "New ride request %s: %s -> %s",
            ride.id,
            pickup.address or f"{pickup.lat}, {pickup.lng}",
            destination.address or f"{destination.lat}, {destination.lng}",
        )
        return ride

    def _apply_status(self, ride: Ride, status: RideStatus) -> Ride:
        # Caller holds the lock.
        check_ride_transition(ride.id, ride.status, status)

        changes = {"status": status, "updated_at": utcnow()}
        if not status.has_driver and ride.driver_id is not None:
            changes["driver_id"] = None
            changes["previous_driver_id"] = ride.driver_id

        ride = replace(ride, **changes)
        self._rides[ride.id] = ride
        return ride

    def update_status(self, ride_id: str, status: RideStatus) -> Ride:
        """
        Validated status change. Same status again returns the ride unchanged
        (and notifies nobody). Terminal statuses drop the driver reference.
        """
        status = RideStatus(status)
        with self._lock:
            ride = self.get(ride_id)
            if ride.status == status:
                return ride
            ride = self._apply_status(ride, status)

        logger.info("Ride %s status updated to: %s", ride_id, status.value)
        self._notify(ride)
        return ride

    def try_update_status(self, ride_id: str, status: RideStatus) -> Optional[Ride]:
        """
        update_status for background callers (timers, simulation): an unknown
        ride or an invalid transition is logged and skipped instead of raised.
        """
        try:
            return self.update_status(ride_id, status)
        except RideNotFoundError:
            logger.warning("Status %s for unknown ride %s ignored", status, ride_id)
        except InvalidRideTransitionError as e:
            logger.warning("%s", e)
        return None

    def assign_driver(
        self,
        ride_id: str,
        driver_id: str,
        estimated_arrival_s: Optional[int] = None,
        via: AssignmentSource = AssignmentSource.MATCH,
    ) -> bool:
        """
        Bind a driver to a ride. Both sides change together or not at all:
        returns False if the ride is no longer waiting for a driver or the
        driver lost the registry's check-and-set.
        """
        with self._lock:
            ride = self.get(ride_id)
            if ride.status not in ASSIGNABLE_STATUSES:
                logger.info("Ride %s is %s, not assigning %s", ride_id, ride.status.value, driver_id)
                return False

            if not self.registry.assign(driver_id, ride_id):
                logger.info("Driver %s is no longer available for ride %s", driver_id, ride_id)
                return False

            ride = replace(
                ride,
                status=RideStatus.ASSIGNED,
                driver_id=driver_id,
                estimated_arrival_s=estimated_arrival_s,
                assigned_via=via,
                updated_at=utcnow(),
            )
            self._rides[ride_id] = ride

        logger.info("Ride %s assigned to %s via %s", ride_id, driver_id, via.value)
        self._notify(ride)
        return True

    def cancel(self, ride_id: str) -> Ride:
        """
        Cancel at any non-terminal status. Cancelling twice is a no-op;
        cancelling a completed / unmatched ride raises RideNotAvailableError.

        The ride is marked cancelled first, so a search or offer resolving
        while the hooks run can no longer assign a driver to it.
        """
        with self._lock:
            ride = self.get(ride_id)
            if ride.status == RideStatus.CANCELLED:
                return ride
            if ride.status.is_terminal:
                raise RideNotAvailableError(f"Ride {ride_id} is already {ride.status.value}")

            driver_id = ride.driver_id
            ride = self._apply_status(ride, RideStatus.CANCELLED)

        for hook in self._cancel_hooks:
            try:
                hook(ride)
            except Exception:
                logger.exception("Cancel hook failed for ride %s", ride_id)

        if driver_id is not None:
            self.registry.complete_ride(driver_id, ride_id=ride_id, relocate=False)

        logger.info("Ride %s cancelled", ride_id)
        self._notify(ride)
        return ride
