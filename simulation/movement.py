"""
Purpose: Per-ride movement simulation (driver -> pickup -> destination).
What it does:

For each ride, two sequential phases separated by a short pause:

1. toPickup: the driver's current location -> pickup
2. toDestination: pickup -> destination

Each phase ticks on a fixed interval. Tick k of N places the driver at
interpolate(start, end, k / N), so progress only ever moves forward and the
last tick lands exactly on the phase end. Every tick updates the registry and
emits a PositionUpdate; the first tick under the near-arrival threshold also
emits "arriving" / "approachingDestination" (once per phase).

Rule: every timer a ride owns is held on its Simulation and cancelled by
stop(). A tick carrying an old generation number is ignored, so a duplicate
or late timer can never move a stopped (or restarted) ride.
"""

from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from common.scheduling import ScheduledHandle, Scheduler
from drivers.registry import DriverRegistry
from routing.geo import LatLng, bearing, distance, interpolate, route_polyline

from .policy import MovementPolicy, default_movement_policy

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    TO_PICKUP = "toPickup"
    TO_DESTINATION = "toDestination"


# Ride status signals emitted by the simulator.
STATUS_ARRIVING = "arriving"
STATUS_IN_PROGRESS = "inProgress"
STATUS_APPROACHING = "approachingDestination"
STATUS_COMPLETED = "completed"

# Phase completion events.
EVENT_ARRIVED = "arrived"
EVENT_COMPLETED = "completed"

NEAR_STATUS = {
    Phase.TO_PICKUP: STATUS_ARRIVING,
    Phase.TO_DESTINATION: STATUS_APPROACHING,
}


@dataclass(frozen=True)
class PositionUpdate:
    ride_id: str
    driver_id: str
    location: LatLng
    bearing: float
    phase: Phase
    distance_remaining_m: float
    progress: float
    target: LatLng
    route: Optional[List[LatLng]] = None

    def to_dict(self) -> dict:
        payload = {
            "rideId": self.ride_id,
            "driver": {
                "id": self.driver_id,
                "location": self.location.to_dict(),
                "bearing": round(self.bearing, 1),
            },
            "currentPhase": self.phase.value,
            "distanceRemaining": round(self.distance_remaining_m),
            "progress": self.progress,
            "destination": self.target.to_dict(),
        }
        if self.route is not None:
            payload["route"] = [point.to_dict() for point in self.route]
        return payload


class SimulationListener:
    """
    Receives everything a running simulation produces. Methods are no-ops so
    a listener only overrides what it needs.
    """

    def on_position(self, update: PositionUpdate) -> None:
        pass

    def on_status(self, ride_id: str, status: str) -> None:
        pass

    def on_phase_complete(self, ride_id: str, event: str) -> None:
        pass


@dataclass
class Simulation:
    ride_id: str
    driver_id: str
    pickup: LatLng
    destination: LatLng
    phase: Phase = Phase.TO_PICKUP
    start: Optional[LatLng] = None
    end: Optional[LatLng] = None
    route: List[LatLng] = field(default_factory=list)
    total_ticks: int = 1
    tick: int = 0
    near_signalled: bool = False
    last_bearing: float = 0.0
    generation: int = 0
    tick_handle: Optional[ScheduledHandle] = None
    pause_handle: Optional[ScheduledHandle] = None
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    @property
    def progress(self) -> float:
        return min(1.0, self.tick / self.total_ticks)

    def cancel_timers(self) -> None:
        for handle in (self.tick_handle, self.pause_handle):
            if handle is not None:
                handle.cancel()
        self.tick_handle = None
        self.pause_handle = None


class MovementSimulator:

    def __init__(
        self,
        registry: DriverRegistry,
        scheduler: Scheduler,
        listener: Optional[SimulationListener] = None,
        policy: Optional[MovementPolicy] = None,
        rng: Optional[random.Random] = None,
    ):
        self.registry = registry
        self.scheduler = scheduler
        self.listener = listener or SimulationListener()
        self.policy = policy or default_movement_policy()
        self.rng = rng or random.Random()
        self._simulations: Dict[str, Simulation] = {}
        self._lock = threading.Lock()

    # --- Queries ---

    def is_active(self, ride_id: str) -> bool:
        with self._lock:
            return ride_id in self._simulations

    def active_rides(self) -> List[str]:
        with self._lock:
            return list(self._simulations)

    def get(self, ride_id: str) -> Optional[Simulation]:
        with self._lock:
            return self._simulations.get(ride_id)

    # --- Control ---

    def start(self, ride_id: str, driver_id: str, pickup: LatLng, destination: LatLng) -> Simulation:
        """
        Begin the toPickup phase from the driver's current registry location.
        Starting a ride that is already simulating returns the running one.
        """
        with self._lock:
            existing = self._simulations.get(ride_id)
            if existing is not None:
                logger.warning("Simulation for ride %s already running", ride_id)
                return existing
            simulation = Simulation(ride_id=ride_id, driver_id=driver_id, pickup=pickup, destination=destination)
            self._simulations[ride_id] = simulation

        driver = self.registry.get(driver_id)
        low, high = self.policy.pickup_duration_range_seconds
        duration = self.rng.uniform(low, high)

        logger.info(
            "Starting simulation for ride %s with %s (%.0fm to pickup, %.1f min)",
            ride_id, driver.name, distance(driver.location, pickup), duration / 60,
        )

        with simulation.lock:
            if self._is_stale(simulation, 0):
                return simulation
            self._begin_phase(simulation, Phase.TO_PICKUP, driver.location, pickup, duration)
        return simulation

    def stop(self, ride_id: str) -> bool:
        """
        Cancel every outstanding timer of the ride. Returns False if the ride
        was not simulating. The driver is left where it is.
        """
        with self._lock:
            simulation = self._simulations.pop(ride_id, None)
        if simulation is None:
            return False

        with simulation.lock:
            simulation.generation += 1
            simulation.cancel_timers()

        logger.info("Stopped simulation for ride %s", ride_id)
        return True

    def stop_all(self) -> int:
        count = 0
        for ride_id in self.active_rides():
            if self.stop(ride_id):
                count += 1
        if count:
            logger.info("Stopped all simulations (%d)", count)
        return count

    # --- Phases ---

    def _begin_phase(self, simulation: Simulation, phase: Phase, start: LatLng, end: LatLng, duration: float) -> None:
        # Caller holds simulation.lock.
        simulation.phase = phase
        simulation.start = start
        simulation.end = end
        simulation.route = route_polyline(start, end, self.policy.route_points)
        simulation.total_ticks = max(1, round(duration / self.policy.tick_interval_seconds))
        simulation.tick = 0
        simulation.near_signalled = False
        simulation.last_bearing = bearing(start, end)

        remaining = distance(start, end)
        self.registry.update_location(simulation.driver_id, start)
        self._emit_position(simulation, start, remaining, include_route=True)

        simulation.tick_handle = self.scheduler.call_every(
            self.policy.tick_interval_seconds,
            self._on_tick,
            simulation,
            simulation.generation,
            name=f"tick-{simulation.ride_id}",
        )

    def _is_stale(self, simulation: Simulation, generation: int) -> bool:
        if simulation.generation != generation:
            return True
        with self._lock:
            return self._simulations.get(simulation.ride_id) is not simulation

    def _on_tick(self, simulation: Simulation, generation: int) -> None:
        with simulation.lock:
            if self._is_stale(simulation, generation):
                return

            simulation.tick += 1
            if simulation.tick >= simulation.total_ticks:
                self._finish_phase(simulation)
                return

            position = interpolate(simulation.start, simulation.end, simulation.progress)
            remaining = distance(position, simulation.end)
            if remaining > 0:
                simulation.last_bearing = bearing(position, simulation.end)
            self.registry.update_location(simulation.driver_id, position)

            step = max(1, simulation.total_ticks // 10)
            if simulation.tick % step == 0:
                logger.debug(
                    "Ride %s %d%% %s (%.0fm remaining)",
                    simulation.ride_id, int(simulation.progress * 100), simulation.phase.value, remaining,
                )

            if remaining < self.policy.near_arrival_threshold_m:
                self._signal_near(simulation, remaining)

            self._emit_position(simulation, position, remaining)

    def _signal_near(self, simulation: Simulation, remaining: float) -> None:
        if simulation.near_signalled:
            return
        simulation.near_signalled = True
        status = NEAR_STATUS[simulation.phase]
        logger.info("Ride %s: driver %s (%.0fm away)", simulation.ride_id, status, remaining)
        self._notify("on_status", simulation.ride_id, status)

    def _finish_phase(self, simulation: Simulation) -> None:
        # Caller holds simulation.lock. Progress is exactly 1.0 here.
        if simulation.tick_handle is not None:
            simulation.tick_handle.cancel()
            simulation.tick_handle = None

        end = simulation.end
        self.registry.update_location(simulation.driver_id, end)
        self._signal_near(simulation, 0.0)
        self._emit_position(simulation, end, 0.0)

        if simulation.phase == Phase.TO_PICKUP:
            logger.info("Driver %s arrived at pickup for ride %s", simulation.driver_id, simulation.ride_id)
            self._notify("on_phase_complete", simulation.ride_id, EVENT_ARRIVED)
            simulation.pause_handle = self.scheduler.call_later(
                self.policy.pickup_pause_seconds,
                self._on_pause_elapsed,
                simulation,
                simulation.generation,
                name=f"pause-{simulation.ride_id}",
            )
            return

        logger.info("Driver %s completed ride %s", simulation.driver_id, simulation.ride_id)
        with self._lock:
            if self._simulations.get(simulation.ride_id) is simulation:
                del self._simulations[simulation.ride_id]
        simulation.generation += 1

        self._notify("on_status", simulation.ride_id, STATUS_COMPLETED)
        self.registry.complete_ride(simulation.driver_id, ride_id=simulation.ride_id, relocate=True)
        self._notify("on_phase_complete", simulation.ride_id, EVENT_COMPLETED)

    def _on_pause_elapsed(self, simulation: Simulation, generation: int) -> None:
        with simulation.lock:
            if self._is_stale(simulation, generation):
                return
            simulation.pause_handle = None

            logger.info("Ride %s starting to destination", simulation.ride_id)
            self._notify("on_status", simulation.ride_id, STATUS_IN_PROGRESS)
            self._begin_phase(
                simulation,
                Phase.TO_DESTINATION,
                simulation.pickup,
                simulation.destination,
                self.policy.destination_duration_seconds,
            )

    def _emit_position(self, simulation: Simulation, location: LatLng, remaining: float, include_route: bool = False) -> None:
        update = PositionUpdate(
            ride_id=simulation.ride_id,
            driver_id=simulation.driver_id,
            location=location,
            bearing=simulation.last_bearing,
            phase=simulation.phase,
            distance_remaining_m=remaining,
            progress=simulation.progress,
            target=simulation.end,
            route=list(simulation.route) if include_route else None,
        )
        try:
            self.listener.on_position(update)
        except Exception:
            logger.exception("Position listener failed for ride %s", simulation.ride_id)

    def _notify(self, method: str, ride_id: str, value: str) -> None:
        try:
            getattr(self.listener, method)(ride_id, value)
        except Exception:
            logger.exception("Simulation listener %s failed for ride %s", method, ride_id)
