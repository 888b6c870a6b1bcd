# drivers/__init__.py
# Driver roster, login sessions and nearest-driver matching.

from .models import Driver, DriverMatch, VehicleClass
from .policy import FleetPolicy, default_fleet_policy
from .registry import DriverRegistry
from .selection import MatchEngine, filter_eligible_drivers, nearest_driver
from .sessions import DriverSessions, DriverStatsSnapshot, SessionSummary

__all__ = [
    "Driver",
    "DriverMatch",
    "VehicleClass",
    "FleetPolicy",
    "default_fleet_policy",
    "DriverRegistry",
    "MatchEngine",
    "filter_eligible_drivers",
    "nearest_driver",
    "DriverSessions",
    "DriverStatsSnapshot",
    "SessionSummary",
]
