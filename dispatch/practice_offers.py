"""
Purpose: Practice ride offers for logged-in drivers.
What it does:
While a driver is logged in and idle, generates a ride between realistic
pickup / destination zones (simulation.ride_patterns) and offers it to that
driver through the Dispatcher, so the app sees offers without any riders.

- first offer shortly after login, then one per interval
- skipped while the driver holds another offer or is on a ride
- a declined practice ride is cancelled; a rejection brings the next one at once
- accepting stops the stream until the ride is over

Rule: one stream per driver. Every tick checks that its stream is still the
current one, so a stopped stream never sends another offer.
"""

from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from common.exceptions import RideNotAvailableError
from common.scheduling import ScheduledHandle, Scheduler
from drivers.registry import DriverRegistry
from drivers.sessions import DriverSessions
from rides.lifecycle import RideLifecycle
from routing.zones import Region
from simulation.ride_patterns import generate_ride

from .dispatcher import Dispatcher
from .offers import DuplicateOfferError, OfferOutcome
from .policy import DispatchPolicy, default_dispatch_policy

logger = logging.getLogger(__name__)


@dataclass
class _Stream:
    driver_id: str
    handles: List[ScheduledHandle] = field(default_factory=list)

    def cancel(self) -> None:
        for handle in self.handles:
            handle.cancel()


class PracticeOfferStream:

    def __init__(
        self,
        registry: DriverRegistry,
        sessions: DriverSessions,
        lifecycle: RideLifecycle,
        dispatcher: Dispatcher,
        scheduler: Scheduler,
        policy: Optional[DispatchPolicy] = None,
        region: Optional[Region] = None,
        rng: Optional[random.Random] = None,
    ):
        self.registry = registry
        self.sessions = sessions
        self.lifecycle = lifecycle
        self.dispatcher = dispatcher
        self.scheduler = scheduler
        self.policy = policy or default_dispatch_policy()
        self.region = region
        self.rng = rng or random.Random()

        self._streams: Dict[str, _Stream] = {}
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self.policy.practice_offers

    #----------------
    # Stream control
    #----------------

    def start(self, driver_id: str) -> bool:
        """
        (Re)start the driver's stream. Returns False when practice offers are
        switched off.
        """
        if not self.enabled:
            return False

        stream = _Stream(driver_id)
        stream.handles.append(self.scheduler.call_later(
            self.policy.practice_offer_first_delay_seconds, self._tick, stream, name=f"practice-first-{driver_id}",
        ))
        stream.handles.append(self.scheduler.call_every(
            self.policy.practice_offer_interval_seconds, self._tick, stream, name=f"practice-{driver_id}",
        ))

        with self._lock:
            previous = self._streams.get(driver_id)
            self._streams[driver_id] = stream
        if previous is not None:
            previous.cancel()

        logger.info("Practice offers started for driver %s", driver_id)
        return True

    def resume(self, driver_id: str) -> bool:
        """Start the stream again for an online driver that has none running."""
        if self.is_running(driver_id) or not self.sessions.is_online(driver_id):
            return False
        return self.start(driver_id)

    def stop(self, driver_id: str) -> bool:
        with self._lock:
            stream = self._streams.pop(driver_id, None)
        if stream is None:
            return False
        stream.cancel()
        logger.info("Practice offers stopped for driver %s", driver_id)
        return True

    def stop_all(self) -> None:
        with self._lock:
            streams = list(self._streams.values())
            self._streams.clear()
        for stream in streams:
            stream.cancel()

    def is_running(self, driver_id: str) -> bool:
        with self._lock:
            return driver_id in self._streams

    def _is_current(self, stream: _Stream) -> bool:
        with self._lock:
            return self._streams.get(stream.driver_id) is stream

    #----------------
    # Offers
    #----------------

    def _tick(self, stream: _Stream) -> None:
        driver_id = stream.driver_id
        if not self._is_current(stream) or not self.sessions.is_online(driver_id):
            return

        driver = self.registry.find(driver_id)
        if driver is None or not driver.is_assignable:
            return
        if self.dispatcher.pending_offer_for_driver(driver_id) is not None:
            return

        generated = generate_ride(self.region, rng=self.rng)
        ride = self.lifecycle.create(generated.pickup, generated.destination)
        try:
            self.dispatcher.offer_to_driver(
                ride,
                driver_id,
                timeout=self.policy.practice_offer_timeout_seconds,
                on_declined=lambda ride_id, outcome: self._on_declined(stream, ride_id, outcome),
                simulated=True,
            )
        except DuplicateOfferError:
            logger.debug("Driver %s got another offer first, dropping practice ride %s", driver_id, ride.id)
            self._discard(ride.id)
            return

        logger.info("Practice ride %s (%s) offered to driver %s", ride.id, generated.description, driver_id)

    def _on_declined(self, stream: _Stream, ride_id: str, outcome: OfferOutcome) -> None:
        self._discard(ride_id)
        if outcome == OfferOutcome.REJECTED and self._is_current(stream):
            self.scheduler.call_later(0, self._tick, stream, name=f"practice-next-{stream.driver_id}")

    def _discard(self, ride_id: str) -> None:
        try:
            self.lifecycle.cancel(ride_id)
        except RideNotAvailableError:
            logger.debug("Practice ride %s already ended", ride_id)
