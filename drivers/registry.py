"""
Purpose: The in-memory driver roster (the only owner of Driver state).
What it does:

- spawns the roster across weighted geographic zones (or the region's spawn donut)
- list all / list available / get by id
- update location, set availability
- assign to ride (atomic check-and-set), complete ride (+ relocation)

Rule: callers only ever receive frozen Driver snapshots. Every mutation goes
through a registry method, which keeps "current ride set <=> not assignable".
"""

from __future__ import annotations

import logging
import random
import threading
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from common.exceptions import ActiveRideError, DriverNotFoundError
from routing.geo import LatLng
from routing.zones import Region, get_active_region, random_spawn_point

from .models import Driver, VehicleClass
from .policy import FleetPolicy, default_fleet_policy

logger = logging.getLogger(__name__)


class DriverRegistry:
    """
    Thread-safe store of drivers keyed by id.
    """

    def __init__(
        self,
        drivers: Iterable[Driver] = (),
        region: Optional[Region] = None,
        rng: Optional[random.Random] = None,
    ):
        self._drivers: Dict[str, Driver] = {}
        self._lock = threading.RLock()
        self.region = region
        self.rng = rng or random.Random()

        for driver in drivers:
            self._drivers[driver.id] = driver

    # --- Construction ---

    @classmethod
    def spawn(
        cls,
        policy: Optional[FleetPolicy] = None,
        region: Optional[Region] = None,
        rng: Optional[random.Random] = None,
    ) -> DriverRegistry:
        """
        Build the roster, one driver per policy name, each placed in a weighted zone.
        """
        policy = policy or default_fleet_policy()
        region = region or get_active_region(policy.region_name)
        rng = rng or random.Random()

        registry = cls(region=region, rng=rng)
        low, high = policy.rating_range

        for index, name in enumerate(policy.driver_names):
            area, location = random_spawn_point(region, rng)
            vehicle_class = VehicleClass(policy.vehicle_class_cycle[index % len(policy.vehicle_class_cycle)])
            rating = round(low + rng.random() * (high - low), 1)

            driver = Driver.new(
                driver_id=f"driver_{index + 1}",
                name=name,
                lat=location.lat,
                lng=location.lng,
                vehicle_class=vehicle_class,
                rating=rating,
                rng=rng,
            )
            registry._drivers[driver.id] = driver
            logger.debug("Spawned %s in %s at %.4f, %.4f", name, area, location.lat, location.lng)

        logger.info("Initialized %d simulated drivers across %s", len(registry), region.name)
        return registry

    # --- Queries ---

    def __len__(self) -> int:
        with self._lock:
            return len(self._drivers)

    def __contains__(self, driver_id: str) -> bool:
        with self._lock:
            return driver_id in self._drivers

    def all(self) -> List[Driver]:
        with self._lock:
            return list(self._drivers.values())

    def available(self) -> List[Driver]:
        with self._lock:
            return [driver for driver in self._drivers.values() if driver.is_assignable]

    def get(self, driver_id: str) -> Driver:
        with self._lock:
            try:
                return self._drivers[driver_id]
            except KeyError:
                raise DriverNotFoundError(f"No driver found with ID: {driver_id}")

    def find(self, driver_id: str) -> Optional[Driver]:
        with self._lock:
            return self._drivers.get(driver_id)

    # --- Mutations ---

    def add(self, driver: Driver) -> None:
        with self._lock:
            self._drivers[driver.id] = driver

    def update_location(self, driver_id: str, location: LatLng) -> Driver:
        with self._lock:
            driver = replace(self.get(driver_id), location=location)
            self._drivers[driver_id] = driver
            return driver

    def set_availability(self, driver_id: str, available: bool) -> Driver:
        """
        Toggle whether the driver takes new rides. Going unavailable with an
        active ride is refused. Going available with an active ride changes
        nothing: completing the ride restores availability.
        """
        with self._lock:
            driver = self.get(driver_id)
            if driver.current_ride_id is not None:
                if not available:
                    raise ActiveRideError("Complete current ride before going offline")
                logger.info("Driver %s is on ride %s, availability unchanged", driver.name, driver.current_ride_id)
                return driver
            driver = replace(driver, available=available)
            self._drivers[driver_id] = driver
            logger.info("Driver %s is now %s", driver.name, "ONLINE" if available else "OFFLINE")
            return driver

    def assign(self, driver_id: str, ride_id: str) -> bool:
        """
        Atomic check-and-set. Returns False if the driver is already assigned or
        unavailable, in which case nothing changes.
        """
        with self._lock:
            driver = self.get(driver_id)
            if not driver.is_assignable:
                return False
            self._drivers[driver_id] = replace(driver, available=False, current_ride_id=ride_id)
            logger.info("Driver %s assigned to ride %s", driver.name, ride_id)
            return True

    def complete_ride(self, driver_id: str, ride_id: Optional[str] = None, relocate: bool = True) -> Driver:
        """
        Free the driver. When `ride_id` is given it must match the current ride
        (a stale release for an older ride is ignored). With `relocate`, the
        driver respawns in a freshly sampled zone to keep later matches varied.
        """
        with self._lock:
            driver = self.get(driver_id)
            if ride_id is not None and driver.current_ride_id != ride_id:
                logger.warning(
                    "Ignoring release of %s for ride %s (current ride: %s)",
                    driver_id, ride_id, driver.current_ride_id,
                )
                return driver

            driver = replace(driver, available=True, current_ride_id=None)
            if relocate:
                driver = replace(driver, location=self._sample_spawn_location(driver))
            self._drivers[driver_id] = driver
            return driver

    def _sample_spawn_location(self, driver: Driver) -> LatLng:
        region = self.region or get_active_region()
        area, location = random_spawn_point(region, self.rng)
        logger.info("%s relocated to %s: %.4f, %.4f", driver.name, area, location.lat, location.lng)
        return location
