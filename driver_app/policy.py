"""
Purpose: Central configuration for the driver app's background work and HTTP client.
What it does:

STATS_REFRESH = every 10 s
OFFER_POLL = every 3 s
RETRIES = 3, backoff 0.5 s * 2^attempt
REQUEST_TIMEOUT = 30 s
FALLBACK_OFFER_WINDOW = 30 s (used when an offer arrives without a deadline)

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


@dataclass(frozen=True)
class DriverAppPolicy:

    # --- Background activities ---
    stats_refresh_seconds: float = 10.0
    offer_poll_seconds: float = 3.0

    # --- Retry ---
    max_retries: int = 3
    retry_base_delay_seconds: float = 0.5

    # --- HTTP ---
    request_timeout_seconds: float = 30.0

    # --- Offers ---
    fallback_offer_seconds: float = 30.0

    def validate(self) -> None:
        """
        Basic sanity checks.
        """
        if self.stats_refresh_seconds <= 0 or self.offer_poll_seconds <= 0:
            raise ValueError("refresh and poll intervals must be > 0")

        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")

        if self.retry_base_delay_seconds < 0:
            raise ValueError("retry_base_delay_seconds must be >= 0")

        if self.request_timeout_seconds <= 0:
            raise ValueError("request_timeout_seconds must be > 0")

        if self.fallback_offer_seconds <= 0:
            raise ValueError("fallback_offer_seconds must be > 0")

    @classmethod
    def from_env(cls) -> DriverAppPolicy:
        load_dotenv()
        defaults = cls()
        p = cls(
            stats_refresh_seconds=float(os.getenv("DRIVER_STATS_REFRESH_SECONDS", defaults.stats_refresh_seconds)),
            offer_poll_seconds=float(os.getenv("DRIVER_OFFER_POLL_SECONDS", defaults.offer_poll_seconds)),
            max_retries=int(os.getenv("DRIVER_API_MAX_RETRIES", defaults.max_retries)),
            retry_base_delay_seconds=float(os.getenv("DRIVER_API_RETRY_DELAY_SECONDS", defaults.retry_base_delay_seconds)),
            request_timeout_seconds=float(os.getenv("DRIVER_API_TIMEOUT_SECONDS", defaults.request_timeout_seconds)),
            fallback_offer_seconds=float(os.getenv("DRIVER_FALLBACK_OFFER_SECONDS", defaults.fallback_offer_seconds)),
        )
        p.validate()
        return p


def default_driver_app_policy() -> DriverAppPolicy:
    """
    Convenience factory for the default policy.
    """
    p = DriverAppPolicy()
    p.validate()
    return p
