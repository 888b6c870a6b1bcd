"""
Purpose: Central configuration for ride offers and fallback matching.
What it does:

Stores all tunable thresholds for the offer race and the fare estimate:

OFFER_TIMEOUT_SECONDS = 5
SEARCH_DELAY_RANGE_SECONDS = 2 .. 4
FARE = 2.00 + 1.50 per km
PRACTICE OFFERS = first after 2s, then every 15s, 30s to respond

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Tuple

from dotenv import load_dotenv


@dataclass(frozen=True)
class DispatchPolicy:
    """
    Central configuration for the offer / fallback pipeline.
    """

    # --- Offer race ---
    # How long a logged-in driver has to accept before the ride falls back
    # to the simulated pool. Short for the simulated environment; the driver
    # app shows 30s when the server sends no deadline.
    offer_timeout_seconds: float = 5.0

    # --- Fallback matching ---
    # Simulated search latency, sampled uniformly.
    search_delay_range_seconds: Tuple[float, float] = (2.0, 4.0)

    # How many times a fallback match is retried when the picked driver is
    # grabbed by another ride between search and assignment.
    max_assignment_attempts: int = 3

    # --- Fare estimate ---
    fare_base: float = 2.0
    fare_per_km: float = 1.5

    # --- Practice offers ---
    # Logged-in drivers get generated ride offers while idle. A declined
    # practice offer is discarded, never sent to fallback matching.
    practice_offers: bool = True
    practice_offer_first_delay_seconds: float = 2.0
    practice_offer_interval_seconds: float = 15.0
    practice_offer_timeout_seconds: float = 30.0

    def validate(self) -> None:
        """
        Basic sanity checks.
        """
        if self.offer_timeout_seconds <= 0:
            raise ValueError("offer_timeout_seconds must be > 0")

        low, high = self.search_delay_range_seconds
        if low < 0 or high < low:
            raise ValueError("search_delay_range_seconds must satisfy 0 <= low <= high")

        if self.max_assignment_attempts < 1:
            raise ValueError("max_assignment_attempts must be >= 1")

        if self.fare_base < 0 or self.fare_per_km < 0:
            raise ValueError("fares must be >= 0")

        if self.practice_offer_first_delay_seconds < 0:
            raise ValueError("practice_offer_first_delay_seconds must be >= 0")

        if self.practice_offer_interval_seconds <= 0 or self.practice_offer_timeout_seconds <= 0:
            raise ValueError("practice offer interval and timeout must be > 0")

    def estimate_fare(self, distance_m: float) -> float:
        return round(self.fare_base + (distance_m / 1000.0) * self.fare_per_km, 2)

    @classmethod
    def from_env(cls) -> DispatchPolicy:
        load_dotenv()
        defaults = cls()
        p = cls(
            offer_timeout_seconds=float(os.getenv("OFFER_TIMEOUT_SECONDS", defaults.offer_timeout_seconds)),
            search_delay_range_seconds=(
                float(os.getenv("SEARCH_DELAY_MIN_SECONDS", defaults.search_delay_range_seconds[0])),
                float(os.getenv("SEARCH_DELAY_MAX_SECONDS", defaults.search_delay_range_seconds[1])),
            ),
            max_assignment_attempts=int(os.getenv("MAX_ASSIGNMENT_ATTEMPTS", defaults.max_assignment_attempts)),
            fare_base=float(os.getenv("FARE_BASE", defaults.fare_base)),
            fare_per_km=float(os.getenv("FARE_PER_KM", defaults.fare_per_km)),
            practice_offers=os.getenv("PRACTICE_OFFERS", "true").lower() in ("1", "true", "yes"),
            practice_offer_first_delay_seconds=float(
                os.getenv("PRACTICE_OFFER_FIRST_DELAY_SECONDS", defaults.practice_offer_first_delay_seconds)
            ),
            practice_offer_interval_seconds=float(
                os.getenv("PRACTICE_OFFER_INTERVAL_SECONDS", defaults.practice_offer_interval_seconds)
            ),
            practice_offer_timeout_seconds=float(
                os.getenv("PRACTICE_OFFER_TIMEOUT_SECONDS", defaults.practice_offer_timeout_seconds)
            ),
        )
        p.validate()
        return p


def default_dispatch_policy() -> DispatchPolicy:
    """
    Convenience factory for the default policy.
    """
    p = DispatchPolicy()
    p.validate()
    return p
