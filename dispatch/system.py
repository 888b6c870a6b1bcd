"""
Purpose: One object that owns and wires every dispatch component.
What it does:
Builds the registry, sessions, ride table, match engine, movement simulator,
dispatcher and practice offer stream around a single scheduler, connects
their callbacks, and exposes the operations the HTTP layer needs (one
method per endpoint).

Rule: views never reach into the components directly; they call these
methods and map the domain exceptions to status codes.
"""

from __future__ import annotations

import logging
import random
from typing import Dict, List, Optional, Tuple

from common.exceptions import RideNotAvailableError
from common.scheduling import Scheduler, ThreadScheduler
from drivers.models import Driver
from drivers.policy import FleetPolicy
from drivers.registry import DriverRegistry
from drivers.selection import MatchEngine
from drivers.sessions import DriverSession, DriverSessions, DriverStatsSnapshot, SessionSummary
from rides.lifecycle import RideLifecycle
from rides.models import Ride, RideStatus
from routing.geo import LatLng
from simulation.movement import EVENT_COMPLETED, MovementSimulator, PositionUpdate, SimulationListener
from simulation.policy import MovementPolicy

from .dispatcher import Dispatcher
from .offers import PendingOffer
from .policy import DispatchPolicy
from .practice_offers import PracticeOfferStream
from .push import FanoutPushService, PushService

logger = logging.getLogger(__name__)

# Status words the driver app sends -> ride status.
DRIVER_STATUS_MAP: Dict[str, RideStatus] = {
    "arrived": RideStatus.ARRIVING,
    "pickedUp": RideStatus.IN_PROGRESS,
    "approaching": RideStatus.APPROACHING_DESTINATION,
    "completed": RideStatus.COMPLETED,
}


class _SimulationBridge(SimulationListener):
    """
    Feeds simulator output into the ride table and the push channel.
    """

    def __init__(self, system: DispatchSystem):
        self.system = system

    def on_position(self, update: PositionUpdate) -> None:
        payload = update.to_dict()
        ride = self.system.lifecycle.get(update.ride_id)
        payload["status"] = ride.status.value
        self.system.push_service.broadcast_driver_position(payload)

    def on_status(self, ride_id: str, status: str) -> None:
        self.system.lifecycle.try_update_status(ride_id, RideStatus(status))

    def on_phase_complete(self, ride_id: str, event: str) -> None:
        if event != EVENT_COMPLETED:
            return
        ride = self.system.lifecycle.get(ride_id)
        if ride.previous_driver_id is not None:
            self.system.sessions.record_completion(ride.previous_driver_id, self.system.dispatcher.estimate_fare(ride))


class DispatchSystem:

    def __init__(
        self,
        registry: Optional[DriverRegistry] = None,
        scheduler: Optional[Scheduler] = None,
        push_service: Optional[PushService] = None,
        dispatch_policy: Optional[DispatchPolicy] = None,
        movement_policy: Optional[MovementPolicy] = None,
        fleet_policy: Optional[FleetPolicy] = None,
        sessions: Optional[DriverSessions] = None,
        rng: Optional[random.Random] = None,
    ):
        rng = rng or random.Random()
        dispatch_policy = dispatch_policy or DispatchPolicy.from_env()
        movement_policy = movement_policy or MovementPolicy.from_env()

        self.scheduler = scheduler if scheduler is not None else ThreadScheduler()
        self.push_service = FanoutPushService([push_service] if push_service is not None else [])
        # An empty roster is a valid roster; only a missing one is spawned.
        if registry is None:
            registry = DriverRegistry.spawn(fleet_policy or FleetPolicy.from_env(), rng=rng)
        self.registry = registry
        self.sessions = sessions if sessions is not None else DriverSessions()
        self.lifecycle = RideLifecycle(self.registry)
        self.match_engine = MatchEngine(
            self.registry,
            self.scheduler,
            search_delay_range=dispatch_policy.search_delay_range_seconds,
            rng=rng,
        )
        self.simulator = MovementSimulator(
            self.registry,
            self.scheduler,
            listener=_SimulationBridge(self),
            policy=movement_policy,
            rng=rng,
        )
        self.dispatcher = Dispatcher(
            registry=self.registry,
            sessions=self.sessions,
            lifecycle=self.lifecycle,
            match_engine=self.match_engine,
            simulator=self.simulator,
            scheduler=self.scheduler,
            push_service=self.push_service,
            policy=dispatch_policy,
        )
        self.practice_offers = PracticeOfferStream(
            registry=self.registry,
            sessions=self.sessions,
            lifecycle=self.lifecycle,
            dispatcher=self.dispatcher,
            scheduler=self.scheduler,
            policy=dispatch_policy,
            rng=rng,
        )

        self.lifecycle.add_listener(lambda ride: self.push_service.broadcast_ride_update(self.ride_payload(ride)))
        self.lifecycle.add_cancel_hook(self.dispatcher.on_ride_cancelled)
        self.lifecycle.add_cancel_hook(lambda ride: self.simulator.stop(ride.id))
        self.lifecycle.add_cancel_hook(self._resume_practice_offers)

    # --- Rides ---

    def request_ride(self, pickup: LatLng, destination: LatLng) -> Ride:
        ride = self.lifecycle.create(pickup, destination)
        self.dispatcher.dispatch_ride(ride)
        return self.lifecycle.get(ride.id)

    def get_ride(self, ride_id: str) -> Ride:
        return self.lifecycle.get(ride_id)

    def list_rides(self) -> List[Ride]:
        return self.lifecycle.all()

    def cancel_ride(self, ride_id: str) -> Ride:
        return self.lifecycle.cancel(ride_id)

    def _resume_practice_offers(self, ride: Ride) -> None:
        if ride.previous_driver_id is not None:
            self.practice_offers.resume(ride.previous_driver_id)

    def ride_payload(self, ride: Ride) -> dict:
        driver = self.registry.find(ride.driver_id) if ride.driver_id else None
        return ride.to_dict(driver=driver.to_dict() if driver else None)

    # --- Drivers ---

    def list_drivers(self) -> List[Driver]:
        return self.registry.all()

    def get_driver(self, driver_id: str) -> Tuple[Driver, Optional[DriverSession]]:
        driver = self.registry.get(driver_id)
        session = self.sessions.get(driver_id) if self.sessions.is_online(driver_id) else None
        return driver, session

    def login(self, driver_id: str, location: Optional[LatLng] = None) -> Tuple[Driver, DriverSession]:
        driver = self.registry.get(driver_id)
        if location is not None:
            driver = self.registry.update_location(driver_id, location)
        session = self.sessions.login(driver_id)
        self.practice_offers.start(driver_id)
        return driver, session

    def logout(self, driver_id: str) -> Optional[SessionSummary]:
        driver = self.registry.get(driver_id)
        self.practice_offers.stop(driver_id)
        withdrawn = self.dispatcher.withdraw_driver_offer(driver_id)
        if withdrawn is not None:
            logger.info("Driver %s logged out with a pending offer for ride %s", driver.name, withdrawn.ride_id)
        return self.sessions.logout(driver_id)

    def set_availability(self, driver_id: str, available: bool) -> Driver:
        return self.registry.set_availability(driver_id, available)

    def update_location(self, driver_id: str, location: LatLng) -> Driver:
        driver = self.registry.update_location(driver_id, location)
        self.sessions.touch(driver_id)
        return driver

    def pending_offer(self, driver_id: str) -> Optional[PendingOffer]:
        self.registry.get(driver_id)
        return self.dispatcher.pending_offer_for_driver(driver_id)

    def accept_offer(self, driver_id: str, ride_id: str) -> Ride:
        self.registry.get(driver_id)
        ride = self.dispatcher.resolve_driver_acceptance(ride_id, driver_id)
        self.practice_offers.stop(driver_id)
        return ride

    def reject_offer(self, driver_id: str, ride_id: str) -> None:
        self.registry.get(driver_id)
        self.dispatcher.resolve_driver_rejection(ride_id, driver_id)

    def update_ride_status(self, driver_id: str, ride_id: str, status: str) -> Ride:
        """
        Status reported by a real driver. On "completed" the driver is freed
        where it stands (a real driver reports its own position) and the
        session is credited with the fare.
        """
        if status not in DRIVER_STATUS_MAP:
            raise ValueError(f"Status must be one of: {', '.join(DRIVER_STATUS_MAP)}")

        driver = self.registry.get(driver_id)
        self.lifecycle.get(ride_id)
        if driver.current_ride_id != ride_id:
            raise RideNotAvailableError("This ride is not assigned to this driver")

        if self.simulator.is_active(ride_id):
            self.simulator.stop(ride_id)

        ride = self.lifecycle.update_status(ride_id, DRIVER_STATUS_MAP[status])

        if ride.status == RideStatus.COMPLETED:
            self.registry.complete_ride(driver_id, ride_id=ride_id, relocate=False)
            fare = self.dispatcher.estimate_fare(ride)
            self.sessions.record_completion(driver_id, fare)
            logger.info("Driver %s completed ride %s, earned $%.2f", driver.name, ride_id, fare)
            self.practice_offers.resume(driver_id)
        return ride

    def driver_stats(self, driver_id: str) -> Tuple[Driver, DriverStatsSnapshot]:
        driver = self.registry.get(driver_id)
        return driver, self.sessions.stats(driver_id, rating=driver.rating)

    # --- Service ---

    def health(self) -> dict:
        return {
            "status": "healthy",
            "drivers": {
                "total": len(self.registry),
                "available": len(self.registry.available()),
                "online": len(self.sessions.online_ids()),
            },
            "rides": {
                "total": len(self.lifecycle),
                "active": sum(1 for ride in self.lifecycle.all() if ride.is_active),
            },
            "activeSimulations": len(self.simulator.active_rides()),
        }

    def shutdown(self) -> None:
        self.practice_offers.stop_all()
        self.simulator.stop_all()
        for ride in self.lifecycle.all():
            self.dispatcher.on_ride_cancelled(ride)
        logger.info("Dispatch system shut down")


