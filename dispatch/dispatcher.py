"""
Purpose: Orchestrator / decision pipeline (the "glue").
What it does:
Takes a newly requested ride and gets a driver onto it:

1. Offer: the nearest logged-in driver gets a time-boxed PendingOffer.
2. Race: accept, reject and the expiry timer all funnel into OfferBook.resolve,
   which hands the offer to exactly one of them.
3. Fallback: on reject/expiry (or with nobody logged in) the full simulated
   pool is searched and the match is handed to the MovementSimulator.
   No driver at all ends the ride as noDriversAvailable.
4. Direct offers: offer_to_driver sends a ride to one named driver through the
   same race. Its decline handler replaces the fallback. A real ride takes a
   driver away from a pending practice offer.

Rule: nothing here waits. Every delay is a scheduled callback with a handle,
and every handle is cancelled when its ride is cancelled.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Collection, Dict, List, Optional

from common.exceptions import DriverNotAvailableError, OfferNotFoundError
from common.scheduling import ScheduledHandle, Scheduler
from drivers.models import DriverMatch
from drivers.registry import DriverRegistry
from drivers.selection import MatchEngine
from drivers.sessions import DriverSessions
from rides.lifecycle import RideLifecycle
from rides.models import AssignmentSource, Ride, RideStatus
from routing.geo import distance, eta
from simulation.movement import MovementSimulator

from .offers import DuplicateOfferError, OfferBook, OfferOutcome, PendingOffer
from .policy import DispatchPolicy, default_dispatch_policy
from .push import PushService

logger = logging.getLogger(__name__)

# Called with (ride_id, outcome) when a direct offer is rejected or expires.
DeclineHandler = Callable[[str, OfferOutcome], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Dispatcher:
    """
    Coordinates one ride at a time from request to assignment.
    """

    def __init__(
        self,
        registry: DriverRegistry,
        sessions: DriverSessions,
        lifecycle: RideLifecycle,
        match_engine: MatchEngine,
        simulator: MovementSimulator,
        scheduler: Scheduler,
        offers: Optional[OfferBook] = None,
        push_service: Optional[PushService] = None,
        policy: Optional[DispatchPolicy] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.registry = registry
        self.sessions = sessions
        self.lifecycle = lifecycle
        self.match_engine = match_engine
        self.simulator = simulator
        self.scheduler = scheduler
        self.offers = offers if offers is not None else OfferBook()
        self.push_service = push_service or PushService()
        self.policy = policy or default_dispatch_policy()
        self.clock = clock

        self._searches: Dict[str, ScheduledHandle] = {}
        self._decline_handlers: Dict[str, DeclineHandler] = {}
        self._lock = threading.Lock()

    # --- Entry point ---

    def dispatch_ride(self, ride: Ride) -> Optional[PendingOffer]:
        """
        Start dispatching a freshly created ride. Returns the offer when one
        was sent to a logged-in driver, None when the ride went straight to
        fallback matching.
        """
        self.lifecycle.update_status(ride.id, RideStatus.SEARCHING)

        match = self.match_engine.find_nearest(
            ride.pickup,
            exclude=self.offers.drivers_with_offers(include_simulated=False),
            only=self.sessions.online_ids(),
        )
        if match is None:
            logger.info("No online drivers available for ride %s, using simulation", ride.id)
            self._fallback(ride.id)
            return None

        self._withdraw_simulated_offer(match.driver.id)
        try:
            return self._send_offer(ride, match)
        except DuplicateOfferError:
            logger.info("Driver %s picked up another offer first, using simulation for ride %s", match.driver.id, ride.id)
            self._fallback(ride.id, exclude=(match.driver.id,))
            return None

    def offer_to_driver(
        self,
        ride: Ride,
        driver_id: str,
        timeout: Optional[float] = None,
        on_declined: Optional[DeclineHandler] = None,
        simulated: bool = False,
    ) -> PendingOffer:
        """
        Offer `ride` to one driver, skipping the nearest-driver search. When
        `on_declined` is given it runs instead of fallback matching once the
        offer is rejected or expires. Raises DuplicateOfferError when the
        driver already holds an offer.
        """
        driver = self.registry.get(driver_id)
        distance_m = distance(driver.location, ride.pickup)
        match = DriverMatch(driver=driver, distance_m=distance_m, eta_s=eta(distance_m))

        self.lifecycle.update_status(ride.id, RideStatus.SEARCHING)
        if on_declined is not None:
            with self._lock:
                self._decline_handlers[ride.id] = on_declined
        try:
            return self._send_offer(ride, match, timeout=timeout, simulated=simulated)
        except DuplicateOfferError:
            with self._lock:
                self._decline_handlers.pop(ride.id, None)
            raise

    def _send_offer(
        self,
        ride: Ride,
        match: DriverMatch,
        timeout: Optional[float] = None,
        simulated: bool = False,
    ) -> PendingOffer:
        now = self.clock()
        timeout = timeout if timeout is not None else self.policy.offer_timeout_seconds
        offer = PendingOffer(
            ride_id=ride.id,
            driver_id=match.driver.id,
            pickup=ride.pickup,
            destination=ride.destination,
            distance_m=match.distance_m,
            estimated_earnings=self.estimate_fare(ride),
            offered_at=now,
            expires_at=now + timedelta(seconds=timeout),
            simulated=simulated,
        )
        self.offers.add(offer)

        handle = self.scheduler.call_later(timeout, self._expire_offer, ride.id, name=f"offer-{ride.id}")
        offer.expiry_handle = handle
        if self.offers.for_ride(ride.id) is not offer:
            # Resolved before the timer was attached.
            handle.cancel()

        self.sessions.record_offer(match.driver.id)
        self.push_service.broadcast_offer(match.driver.id, offer.to_dict())

        logger.info(
            "Offered ride %s to %s (%.0fm away, $%.2f, %.0fs to respond)",
            ride.id, match.driver.name, match.distance_m, offer.estimated_earnings, timeout,
        )
        return offer

    def estimate_fare(self, ride: Ride) -> float:
        return self.policy.estimate_fare(distance(ride.pickup, ride.destination))

    # --- Offer race ---

    def pending_offer_for_driver(self, driver_id: str) -> Optional[PendingOffer]:
        return self.offers.for_driver(driver_id)

    def resolve_driver_acceptance(self, ride_id: str, driver_id: str) -> Ride:
        """
        Race resolver for "Accept". Raises OfferNotFoundError when the offer
        already expired, was rejected, or was never this driver's.
        """
        self.lifecycle.get(ride_id)
        offer = self.offers.resolve(ride_id, OfferOutcome.ACCEPTED, driver_id=driver_id)
        if offer is None:
            raise OfferNotFoundError(f"No pending offer for ride {ride_id} and driver {driver_id}")

        assigned = self.lifecycle.assign_driver(
            ride_id, driver_id, estimated_arrival_s=eta(offer.distance_m), via=AssignmentSource.OFFER,
        )
        if not assigned:
            # The offer was ours but the driver could not be bound (busy, or the
            # ride moved on). Treat it like a rejection so the ride still progresses.
            self._after_decline(ride_id, OfferOutcome.REJECTED, exclude=(driver_id,))
            raise DriverNotAvailableError(f"Driver {driver_id} could not be assigned to ride {ride_id}")

        with self._lock:
            self._decline_handlers.pop(ride_id, None)
        self.sessions.record_acceptance(driver_id)
        logger.info("Driver %s accepted ride %s", driver_id, ride_id)
        return self.lifecycle.get(ride_id)

    def resolve_driver_rejection(self, ride_id: str, driver_id: str) -> None:
        """
        Race resolver for "Reject". Falls through to fallback immediately,
        without waiting for the expiry timer.
        """
        self.lifecycle.get(ride_id)
        offer = self.offers.resolve(ride_id, OfferOutcome.REJECTED, driver_id=driver_id)
        if offer is None:
            raise OfferNotFoundError(f"No pending offer for ride {ride_id} and driver {driver_id}")

        self.push_service.revoke_offer(driver_id, ride_id)
        self._after_decline(ride_id, OfferOutcome.REJECTED, exclude=(driver_id,))

    def _expire_offer(self, ride_id: str) -> None:
        offer = self.offers.resolve(ride_id, OfferOutcome.EXPIRED)
        if offer is None:
            # Accepted or rejected in the meantime.
            return

        logger.info("Ride %s offer expired (no response)", ride_id)
        self.push_service.revoke_offer(offer.driver_id, ride_id)
        self._after_decline(ride_id, OfferOutcome.EXPIRED)

    def _after_decline(self, ride_id: str, outcome: OfferOutcome, exclude: Collection[str] = ()) -> None:
        with self._lock:
            handler = self._decline_handlers.pop(ride_id, None)
        if handler is None:
            self._fallback(ride_id, exclude=exclude)
            return
        try:
            handler(ride_id, outcome)
        except Exception:
            logger.exception("Decline handler failed for ride %s", ride_id)

    def _withdraw_simulated_offer(self, driver_id: str) -> None:
        offer = self.offers.for_driver(driver_id)
        if offer is None or not offer.simulated:
            return
        if self.offers.resolve(offer.ride_id, OfferOutcome.WITHDRAWN, driver_id=driver_id) is None:
            return
        logger.info("Withdrew practice offer %s from driver %s for a requested ride", offer.ride_id, driver_id)
        self.push_service.revoke_offer(driver_id, offer.ride_id)
        self._after_decline(offer.ride_id, OfferOutcome.WITHDRAWN)

    def withdraw_driver_offer(self, driver_id: str) -> Optional[PendingOffer]:
        """
        Treat the driver's pending offer (if any) as rejected. Used on logout.
        """
        offer = self.offers.for_driver(driver_id)
        if offer is None:
            return None
        try:
            self.resolve_driver_rejection(offer.ride_id, driver_id)
        except OfferNotFoundError:
            return None
        return offer

    # --- Fallback ---

    def _fallback(self, ride_id: str, exclude: Collection[str] = (), attempt: int = 1) -> None:
        ride = self.lifecycle.get(ride_id)
        if ride.status.is_terminal:
            return

        excluded = set(exclude)

        def current_exclusions() -> List[str]:
            return list(excluded.union(self.offers.drivers_with_offers()))

        handle = self.match_engine.match_with_delay(
            ride.pickup,
            lambda match: self._on_match(ride_id, excluded, attempt, match),
            exclude=current_exclusions,
        )
        with self._lock:
            previous = self._searches.get(ride_id)
            self._searches[ride_id] = handle
        if previous is not None:
            previous.cancel()

    def _on_match(self, ride_id: str, excluded: Collection[str], attempt: int, match: Optional[DriverMatch]) -> None:
        with self._lock:
            self._searches.pop(ride_id, None)

        ride = self.lifecycle.get(ride_id)
        if ride.status.is_terminal:
            return

        if match is None:
            logger.info("No drivers available for ride %s", ride_id)
            self.lifecycle.try_update_status(ride_id, RideStatus.NO_DRIVERS_AVAILABLE)
            return

        driver = match.driver
        if self.lifecycle.assign_driver(ride_id, driver.id, estimated_arrival_s=match.eta_s, via=AssignmentSource.MATCH):
            logger.info(
                "Driver %s matched to ride %s (%.0fm, ETA %ss)",
                driver.name, ride_id, match.distance_m, match.eta_s,
            )
            self.simulator.start(ride_id, driver.id, ride.pickup, ride.destination)
            # Cancelled between the assignment and the start: its cancel hooks
            # found nothing to stop.
            if self.lifecycle.get(ride_id).status.is_terminal:
                self.simulator.stop(ride_id)
            return

        ride = self.lifecycle.get(ride_id)
        if ride.status not in (RideStatus.REQUESTED, RideStatus.SEARCHING):
            return

        if attempt >= self.policy.max_assignment_attempts:
            logger.warning("Ride %s: gave up after %d assignment attempts", ride_id, attempt)
            self.lifecycle.try_update_status(ride_id, RideStatus.NO_DRIVERS_AVAILABLE)
            return

        logger.info("Driver %s was taken before assignment, retrying ride %s", driver.id, ride_id)
        self._fallback(ride_id, exclude=excluded, attempt=attempt + 1)

    # --- Cancellation ---

    def on_ride_cancelled(self, ride: Ride) -> None:
        """
        Drop every dispatch-side timer of the ride: its pending offer (and expiry)
        and any search in flight.
        """
        offer = self.offers.resolve(ride.id, OfferOutcome.WITHDRAWN)
        if offer is not None:
            self.push_service.revoke_offer(offer.driver_id, ride.id)

        with self._lock:
            handle = self._searches.pop(ride.id, None)
            self._decline_handlers.pop(ride.id, None)
        if handle is not None:
            handle.cancel()

    def searching_rides(self) -> List[str]:
        with self._lock:
            return list(self._searches)
