"""
Purpose: Distance math for choosing the nearest available driver.
What it does:
Filters the roster down to assignable drivers, ranks them by great-circle
distance to the pickup and returns the closest one (with distance and ETA).
match_with_delay wraps the same search behind a simulated search latency.
"""

from __future__ import annotations

import logging
import random
from typing import Callable, Collection, Iterable, List, Optional, Union

from common.scheduling import ScheduledHandle, Scheduler
from routing.geo import LatLng, distance, eta

from .models import Driver, DriverMatch
from .registry import DriverRegistry

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_DELAY_RANGE = (2.0, 4.0)


def filter_eligible_drivers(
    drivers: Iterable[Driver],
    exclude: Collection[str] = (),
    only: Optional[Collection[str]] = None,
) -> List[Driver]:
    """
    Returns only drivers who are available and not on a ride.
    `exclude` removes ids outright; `only` restricts to a subset (e.g. online drivers).
    """
    eligible = []

    for driver in drivers:
        if not driver.is_assignable:
            continue

        if driver.id in exclude:
            continue

        if only is not None and driver.id not in only:
            continue

        eligible.append(driver)

    return eligible


def nearest_driver(pickup: LatLng, drivers: Iterable[Driver]) -> Optional[DriverMatch]:
    """
    Minimum-distance driver. Ties keep the first driver seen (iteration order).
    """
    best: Optional[Driver] = None
    best_distance = float("inf")

    for driver in drivers:
        d = distance(driver.location, pickup)
        if d < best_distance:
            best, best_distance = driver, d

    if best is None:
        return None
    return DriverMatch(driver=best, distance_m=best_distance, eta_s=eta(best_distance))


class MatchEngine:
    """
    Nearest-available-driver search against a DriverRegistry.
    """

    def __init__(
        self,
        registry: DriverRegistry,
        scheduler: Scheduler,
        search_delay_range=DEFAULT_SEARCH_DELAY_RANGE,
        rng: Optional[random.Random] = None,
    ):
        low, high = search_delay_range
        if low < 0 or high < low:
            raise ValueError("search_delay_range must satisfy 0 <= low <= high")

        self.registry = registry
        self.scheduler = scheduler
        self.search_delay_range = (low, high)
        self.rng = rng or random.Random()

    def find_nearest(
        self,
        pickup: LatLng,
        exclude: Collection[str] = (),
        only: Optional[Collection[str]] = None,
    ) -> Optional[DriverMatch]:
        eligible = filter_eligible_drivers(self.registry.available(), exclude=exclude, only=only)
        match = nearest_driver(pickup, eligible)

        if match is None:
            logger.info("No available drivers near %.4f, %.4f", pickup.lat, pickup.lng)
        else:
            logger.info(
                "Nearest driver: %s (%.0fm, ETA %ss)",
                match.driver.name, match.distance_m, match.eta_s,
            )
        return match

    def match_with_delay(
        self,
        pickup: LatLng,
        callback: Callable[[Optional[DriverMatch]], None],
        exclude: Union[Collection[str], Callable[[], Collection[str]]] = (),
    ) -> ScheduledHandle:
        """
        Runs find_nearest after a uniformly sampled search latency and hands the
        result to `callback`. Never blocks; cancel the returned handle to abort.
        `exclude` may be a callable, evaluated when the search actually runs.
        """
        low, high = self.search_delay_range
        delay = self.rng.uniform(low, high)
        logger.debug("Searching for a driver (%.1fs simulated latency)", delay)

        def run() -> None:
            excluded = exclude() if callable(exclude) else exclude
            callback(self.find_nearest(pickup, exclude=excluded))

        return self.scheduler.call_later(delay, run, name="match-search")
