#Purpose: The driver app's HTTP "adapter/client".
#Sole responsibility: talk to the dispatch backend via HTTP and return decoded JSON.
#Encapsulates:
#URL construction (/drivers/{id}/...)
#timeouts and retry with exponential backoff
#classifying failures as retryable (network, 5xx) or final (4xx, bad JSON)
#It should not contain driver state logic.

import logging
import os
import time
from typing import Any, Callable, Dict, Optional

import requests
from dotenv import load_dotenv

from routing.geo import LatLng

from .policy import DriverAppPolicy, default_driver_app_policy

logger = logging.getLogger(__name__)

# Read the dispatch API base URL from environment
# Example in .env:
# DISPATCH_API_URL=http://localhost:8000/api
load_dotenv()
BASE_URL = os.getenv("DISPATCH_API_URL", "http://localhost:8000/api")


class DriverAPIError(Exception):
    """Base class for driver client errors."""
    pass


class TransientNetworkError(DriverAPIError):
    """Timeout, connection/DNS failure or a 5xx response. Retried."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DriverAPIResponseError(DriverAPIError):
    """A 4xx response. Never retried."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"HTTP {status_code}: {message}")
        self.status_code = status_code
        self.message = message


class DriverAPIDecodeError(DriverAPIError):
    """The response body was not the JSON we expected. Never retried."""
    pass


class DriverAPIClient:
    """
    Driver API Client

    One method per backend endpoint. Every call goes through _request, which
    retries transient failures up to policy.max_retries times, sleeping
    base_delay * 2^attempt between attempts.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        policy: Optional[DriverAppPolicy] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base_url = (base_url or BASE_URL).rstrip("/")
        self.policy = policy or default_driver_app_policy()
        self.session = session or requests.Session()
        self.sleep = sleep

        #----------------
        # Retry plumbing
        #----------------
    def _send(self, method: str, url: str, payload: Optional[dict]) -> Any:
        try:
            response = self.session.request(method, url, json=payload, timeout=self.policy.request_timeout_seconds)
        except requests.Timeout as e:
            raise TransientNetworkError(f"Request timed out: {e}")
        except requests.ConnectionError as e:
            raise TransientNetworkError(f"Connection failed: {e}")
        except requests.RequestException as e:
            raise DriverAPIError(f"Request failed: {e}")

        if response.status_code >= 500:
            raise TransientNetworkError(f"Bad server response ({response.status_code})", response.status_code)

        if response.status_code >= 400:
            try:
                body = response.json()
                message = body.get("message") or body.get("error") or response.reason
            except ValueError:
                message = response.reason or "error"
            raise DriverAPIResponseError(response.status_code, str(message))

        try:
            return response.json()
        except ValueError as e:
            raise DriverAPIDecodeError(f"Invalid JSON from {url}: {e}")

    def _request(self, method: str, path: str, payload: Optional[dict] = None, max_retries: Optional[int] = None) -> Any:
        max_retries = self.policy.max_retries if max_retries is None else max_retries
        url = f"{self.base_url}{path}"

        for attempt in range(max_retries + 1):
            try:
                result = self._send(method, url, payload)
            except TransientNetworkError as e:
                if attempt >= max_retries:
                    logger.error("Max retries (%d) exceeded for %s %s: %s", max_retries, method, path, e)
                    raise
                delay = self.policy.retry_base_delay_seconds * (2 ** attempt)
                logger.warning(
                    "Request failed (attempt %d/%d): %s. Retrying in %.1fs",
                    attempt + 1, max_retries + 1, e, delay,
                )
                self.sleep(delay)
                continue

            if attempt > 0:
                logger.info("Request succeeded after %d retries", attempt)
            return result

    @staticmethod
    def _require(data: Any, *keys: str) -> Dict[str, Any]:
        if not isinstance(data, dict) or any(key not in data for key in keys):
            raise DriverAPIDecodeError(f"Response missing keys {keys}")
        return data

        #----------------
        # Authentication
        #----------------
    def login(self, driver_id: str, location: Optional[LatLng] = None) -> Dict[str, Any]:
        logger.info("Logging in driver: %s", driver_id)
        payload: Dict[str, Any] = {"driverId": driver_id}
        if location is not None:
            payload["location"] = location.to_dict()
        return self._require(self._request("POST", "/drivers/login", payload), "driver", "session")

    def logout(self, driver_id: str) -> Dict[str, Any]:
        logger.info("Logging out driver: %s", driver_id)
        return self._require(self._request("POST", f"/drivers/{driver_id}/logout"))

        #----------------
        # Availability & location
        #----------------
    def set_availability(self, driver_id: str, available: bool) -> Dict[str, Any]:
        return self._require(
            self._request("PUT", f"/drivers/{driver_id}/availability", {"available": available}), "driver",
        )

    def update_location(self, driver_id: str, location: LatLng) -> Dict[str, Any]:
        # Location updates are frequent and disposable: one retry at most.
        return self._require(
            self._request("PUT", f"/drivers/{driver_id}/location", {"lat": location.lat, "lng": location.lng}, max_retries=1),
        )

        #----------------
        # Offers & rides
        #----------------
    def get_offers(self, driver_id: str) -> Dict[str, Any]:
        return self._require(self._request("GET", f"/drivers/{driver_id}/offers"), "hasOffer")

    def accept_ride(self, driver_id: str, ride_id: str) -> Dict[str, Any]:
        logger.info("Accepting ride: %s", ride_id)
        return self._require(self._request("POST", f"/drivers/{driver_id}/rides/{ride_id}/accept"))

    def reject_ride(self, driver_id: str, ride_id: str, max_retries: Optional[int] = None) -> Dict[str, Any]:
        logger.info("Rejecting ride: %s", ride_id)
        return self._require(
            self._request("POST", f"/drivers/{driver_id}/rides/{ride_id}/reject", max_retries=max_retries),
        )

    def update_ride_status(self, driver_id: str, ride_id: str, status: str) -> Dict[str, Any]:
        logger.info("Updating ride %s status to: %s", ride_id, status)
        return self._require(
            self._request("PUT", f"/drivers/{driver_id}/rides/{ride_id}/status", {"status": status}),
        )

        #----------------
        # Statistics
        #----------------
    def get_stats(self, driver_id: str) -> Dict[str, Any]:
        return self._require(self._request("GET", f"/drivers/{driver_id}/stats"), "driver", "stats")
