# driver_app/__init__.py
# Driver-side client: HTTP client with retry and local models.
# DriverFlowController lives in driver_app.flow_controller (it imports the
# state machine, which itself depends on driver_app.models).

from .api_client import (
    DriverAPIClient,
    DriverAPIDecodeError,
    DriverAPIError,
    DriverAPIResponseError,
    TransientNetworkError,
)
from .models import ActiveRide, DriverStats, PassengerInfo, RideRequest, RideSummary
from .policy import DriverAppPolicy, default_driver_app_policy

__all__ = [
    "DriverAPIClient",
    "DriverAPIDecodeError",
    "DriverAPIError",
    "DriverAPIResponseError",
    "TransientNetworkError",
    "ActiveRide",
    "DriverStats",
    "PassengerInfo",
    "RideRequest",
    "RideSummary",
    "DriverAppPolicy",
    "default_driver_app_policy",
]
