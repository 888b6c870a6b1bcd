"""
Purpose: The driver app's single source of truth.
What it does:
Holds the current DriverState and moves it only through
DriverStateMachine.transition. Talks to the backend through DriverAPIClient
and runs three background activities on a Scheduler while the driver is
logged in:

- stats refresh: every stats_refresh_seconds, merge fresh stats into the
  current state (same variant, new stats).
- offer polling: every offer_poll_seconds while Online; stopped while an
  offer is shown or a ride is active.
- offer expiry: one-shot at the offer's deadline; back to Online and polling
  again, then a best-effort reject sent as its own scheduled unit.

Rule: every background callback carries the session token it was scheduled
under. Logout cancels all three handles, bumps the token, and only then
clears the driver id, so a late firing can never touch a newer session.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple, Type

from common.scheduling import ScheduledHandle, Scheduler
from dispatch.state_machines import DriverState, DriverStateException, DriverStateMachine
from dispatch.state_machines.driver_state import (
    ApproachingDestination,
    ArrivedAtPickup,
    Error,
    HeadingToPickup,
    LoggingIn,
    Offline,
    Online,
    RideCompleted,
    RideInProgress,
    RideOffered,
    current_stats,
    has_active_ride,
    is_online,
)
from routing.geo import LatLng, distance

from .api_client import DriverAPIClient, DriverAPIError
from .models import ActiveRide, DriverStats, PassengerInfo, RideRequest, RideSummary, ZERO_STATS
from .policy import DriverAppPolicy, default_driver_app_policy

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DriverFlowController:

    def __init__(
        self,
        api_client: DriverAPIClient,
        scheduler: Scheduler,
        policy: Optional[DriverAppPolicy] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.api = api_client
        self.scheduler = scheduler
        self.policy = policy or default_driver_app_policy()
        self.clock = clock

        self.driver_id: Optional[str] = None
        self.location: Optional[LatLng] = None

        self._state: DriverState = Offline()
        self._token = 0
        self._lock = threading.RLock()
        self._listeners: List[Callable[[DriverState], None]] = []

        self._stats_handle: Optional[ScheduledHandle] = None
        self._poll_handle: Optional[ScheduledHandle] = None
        self._expiry_handle: Optional[ScheduledHandle] = None

    @property
    def state(self) -> DriverState:
        return self._state

    def add_listener(self, listener: Callable[[DriverState], None]) -> None:
        self._listeners.append(listener)

        #----------------
        # State plumbing
        #----------------
    def _set_state(self, new: DriverState) -> None:
        self._state = new
        for listener in list(self._listeners):
            try:
                listener(new)
            except Exception:
                logger.exception("Driver state listener failed")

    def _transition(self, new: DriverState, expected: Optional[DriverState] = None) -> bool:
        """
        One validated transition. With `expected`, only applies if the state is
        still that exact object (i.e. nothing moved it while we were waiting).
        """
        with self._lock:
            if expected is not None and self._state is not expected:
                logger.info("State changed underneath us, dropping transition to %s", new.description)
                return False

            validated = DriverStateMachine.transition(self._state, new)
            if validated is None:
                return False
            self._set_state(validated)
            return True

    def _require(self, action: str, *kinds: Type) -> Tuple[DriverState, str]:
        with self._lock:
            state = self._state
            if not isinstance(state, kinds) or self.driver_id is None:
                raise DriverStateException(f"Cannot {action} while {state.description}")
            return state, self.driver_id

    def _is_current(self, token: int) -> bool:
        return token == self._token and self.driver_id is not None

        #----------------
        # Authentication
        #----------------
    def login(self, driver_id: str, location: Optional[LatLng] = None) -> DriverState:
        with self._lock:
            if not isinstance(self._state, Offline):
                raise DriverStateException(f"Cannot log in while {self._state.description}")
            self._transition(LoggingIn())

        location = location or self.location
        try:
            response = self.api.login(driver_id, location)
        except DriverAPIError as e:
            logger.error("Login failed for %s: %s", driver_id, e)
            self._transition(Error(message=f"Login failed: {e}", previous_state=Offline()))
            return self._state

        session = response["session"]
        stats = DriverStats(
            completed_rides=int(session.get("completedRides", 0)),
            total_earnings=float(session.get("totalEarnings", 0.0)),
            rating=float(response["driver"].get("rating", ZERO_STATS.rating)),
        )

        with self._lock:
            self.driver_id = driver_id
            self.location = location
            self._token += 1
            self._transition(Online(stats=stats))
            self._start_stats_timer()
            self._start_offer_polling()

        logger.info("Driver %s logged in successfully", response["driver"].get("name", driver_id))
        return self._state

    def logout(self) -> Optional[dict]:
        """
        Ends the session. Backend failures are logged; the local state goes
        Offline regardless.
        """
        _, driver_id = self._require("log out", Online, RideCompleted, Error)

        with self._lock:
            self._stop_timers()
            self._token += 1

        summary = None
        try:
            summary = self.api.logout(driver_id).get("sessionSummary")
        except DriverAPIError as e:
            logger.warning("Logout request failed for %s, going offline anyway: %s", driver_id, e)

        with self._lock:
            self._transition(Offline())
            self.driver_id = None

        logger.info("Driver %s logged out", driver_id)
        return summary

    def toggle_availability(self) -> Optional[dict]:
        """
        Going unavailable from the home screen ends the session.
        """
        self._require("toggle availability", Online)
        return self.logout()

    def dismiss_error(self) -> DriverState:
        """
        Leave the Error state: back to Online when logged in, else Offline.
        """
        state = self._state
        if not isinstance(state, Error):
            raise DriverStateException(f"Cannot dismiss error while {state.description}")
        stats = current_stats(state.previous_state) if state.previous_state is not None else None

        if isinstance(state.previous_state, Offline) or self.driver_id is None:
            self._transition(Offline(), expected=state)
            return self._state

        if self._transition(Online(stats=stats or ZERO_STATS), expected=state):
            self._start_offer_polling()
        return self._state

        #----------------
        # Offers
        #----------------
    def receive_ride_offer(self, request: RideRequest) -> DriverState:
        with self._lock:
            state, _ = self._require("receive a ride offer", Online)
            self._cancel("_poll_handle")

            if not self._transition(RideOffered(request=request, stats=state.stats), expected=state):
                return self._state

            remaining = request.time_remaining(self.clock())
            self._expiry_handle = self.scheduler.call_later(
                remaining, self._on_offer_expired, self._token, request.ride_id, name=f"offer-expiry-{request.ride_id}",
            )

        logger.info("New ride offer received: %s (%.0fs to respond)", request.ride_id, remaining)
        return self._state

    def accept_ride(self) -> DriverState:
        state, driver_id = self._require("accept a ride", RideOffered)
        self._cancel("_expiry_handle")
        request = state.request

        try:
            response = self.api.accept_ride(driver_id, request.ride_id)
        except DriverAPIError as e:
            logger.error("Failed to accept ride %s: %s", request.ride_id, e)
            self._transition(Error(message="Failed to accept ride", previous_state=state), expected=state)
            return self._state

        ride = ActiveRide(
            ride_id=request.ride_id,
            pickup=request.pickup,
            destination=request.destination,
            passenger=PassengerInfo(),
            current_driver_location=self.location or request.pickup,
            estimated_arrival_s=(response.get("ride") or {}).get("estimatedArrival"),
            distance_to_destination_m=distance(request.pickup, request.destination),
            estimated_earnings=request.estimated_earnings,
        )
        if self._transition(HeadingToPickup(ride=ride, stats=state.stats), expected=state):
            logger.info("Ride accepted: %s", request.ride_id)
        return self._state

    def reject_ride(self) -> DriverState:
        state, driver_id = self._require("reject a ride", RideOffered)
        self._cancel("_expiry_handle")

        try:
            self.api.reject_ride(driver_id, state.request.ride_id)
        except DriverAPIError as e:
            logger.warning("Failed to reject ride %s, returning online anyway: %s", state.request.ride_id, e)

        if self._transition(Online(stats=state.stats), expected=state):
            self._start_offer_polling()
            logger.info("Ride rejected: %s", state.request.ride_id)
        return self._state

        #----------------
        # Ride progress
        #----------------
    def _report_status(self, driver_id: str, ride: ActiveRide, status: str) -> None:
        try:
            self.api.update_ride_status(driver_id, ride.ride_id, status)
        except DriverAPIError as e:
            logger.error("Failed to report %s for ride %s: %s", status, ride.ride_id, e)
            raise

    def arrive_at_pickup(self) -> DriverState:
        state, driver_id = self._require("mark arrival", HeadingToPickup)
        self._report_status(driver_id, state.ride, "arrived")
        self._transition(ArrivedAtPickup(ride=state.ride, stats=state.stats), expected=state)
        return self._state

    def pickup_passenger(self) -> DriverState:
        state, driver_id = self._require("pick up the passenger", ArrivedAtPickup)
        self._report_status(driver_id, state.ride, "pickedUp")
        ride = replace(state.ride, started_at=self.clock())
        self._transition(RideInProgress(ride=ride, stats=state.stats), expected=state)
        return self._state

    def approach_destination(self) -> DriverState:
        state, driver_id = self._require("approach destination", RideInProgress)
        self._report_status(driver_id, state.ride, "approaching")
        self._transition(ApproachingDestination(ride=state.ride, stats=state.stats), expected=state)
        return self._state

    def complete_ride(self) -> DriverState:
        state, driver_id = self._require("complete the ride", RideInProgress, ApproachingDestination)
        ride = state.ride
        self._report_status(driver_id, ride, "completed")

        now = self.clock()
        summary = RideSummary(
            ride_id=ride.ride_id,
            pickup=ride.pickup,
            destination=ride.destination,
            distance_m=ride.distance_to_destination_m or 0.0,
            duration_s=(now - ride.started_at).total_seconds() if ride.started_at else 0.0,
            earnings=ride.estimated_earnings,
            completed_at=now,
        )
        stats = replace(
            state.stats,
            completed_rides=state.stats.completed_rides + 1,
            total_earnings=round(state.stats.total_earnings + summary.earnings, 2),
        )
        if self._transition(RideCompleted(summary=summary, stats=stats), expected=state):
            logger.info("Ride completed: %s, earned $%.2f", ride.ride_id, summary.earnings)
        return self._state

    def finish_ride_summary(self) -> DriverState:
        state, _ = self._require("finish the summary", RideCompleted)
        if self._transition(Online(stats=state.stats), expected=state):
            self._start_offer_polling()
        return self._state

        #----------------
        # Location
        #----------------
    def update_location(self, location: LatLng) -> None:
        """
        Best effort. Failures are logged and never change the state.
        """
        with self._lock:
            self.location = location
            driver_id = self.driver_id
            if has_active_ride(self._state):
                ride = replace(self._state.ride, current_driver_location=location)
                self._set_state(DriverStateMachine.with_ride(self._state, ride))
            if driver_id is None or not is_online(self._state):
                return

        try:
            self.api.update_location(driver_id, location)
        except DriverAPIError as e:
            logger.warning("Failed to update location: %s", e)

        #----------------
        # Background activities
        #----------------
    def _cancel(self, attr: str) -> None:
        with self._lock:
            handle = getattr(self, attr)
            setattr(self, attr, None)
        if handle is not None:
            handle.cancel()

    def _stop_timers(self) -> None:
        self._cancel("_stats_handle")
        self._cancel("_poll_handle")
        self._cancel("_expiry_handle")

    def _start_stats_timer(self) -> None:
        self._cancel("_stats_handle")
        with self._lock:
            self._stats_handle = self.scheduler.call_every(
                self.policy.stats_refresh_seconds, self._refresh_stats, self._token, name="driver-stats",
            )

    def _start_offer_polling(self) -> None:
        self._cancel("_poll_handle")
        with self._lock:
            self._poll_handle = self.scheduler.call_every(
                self.policy.offer_poll_seconds, self._poll_offers, self._token, name="driver-offer-poll",
            )

    def _refresh_stats(self, token: int) -> None:
        with self._lock:
            if not self._is_current(token):
                return
            driver_id = self.driver_id

        try:
            response = self.api.get_stats(driver_id)
        except DriverAPIError as e:
            logger.warning("Failed to update stats: %s", e)
            return

        stats = DriverStats.from_dict(response["stats"])
        with self._lock:
            if self._is_current(token):
                self._set_state(DriverStateMachine.with_stats(self._state, stats))

    def _poll_offers(self, token: int) -> None:
        with self._lock:
            if not self._is_current(token) or not isinstance(self._state, Online):
                return
            driver_id = self.driver_id

        try:
            response = self.api.get_offers(driver_id)
        except DriverAPIError as e:
            logger.warning("Failed to check for offers: %s", e)
            return

        offer = response.get("offer")
        if not response.get("hasOffer") or not offer:
            return

        try:
            request = RideRequest.from_offer(offer, now=self.clock(), fallback_seconds=self.policy.fallback_offer_seconds)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Ignoring malformed offer payload: %s", e)
            return

        with self._lock:
            if not self._is_current(token) or not isinstance(self._state, Online):
                return
            logger.info("Received ride offer: %s", request.ride_id)
            self.receive_ride_offer(request)

    def _on_offer_expired(self, token: int, ride_id: str) -> None:
        with self._lock:
            state = self._state
            if not self._is_current(token) or not isinstance(state, RideOffered) or state.request.ride_id != ride_id:
                return
            driver_id = self.driver_id
            self._expiry_handle = None
            if self._transition(Online(stats=state.stats), expected=state):
                self._start_offer_polling()

        logger.info("Ride offer expired: %s", ride_id)
        self.scheduler.call_later(
            0, self._notify_offer_expired, driver_id, ride_id, name=f"offer-expired-{ride_id}",
        )

    def _notify_offer_expired(self, driver_id: str, ride_id: str) -> None:
        # Best effort and single shot: the backend expires the offer on its own.
        try:
            self.api.reject_ride(driver_id, ride_id, max_retries=0)
        except DriverAPIError as e:
            logger.warning("Could not notify backend of expired offer %s: %s", ride_id, e)
