# simulation/__init__.py
# Driver movement along ride phases, and synthetic ride demand.

from .movement import MovementSimulator, Phase, PositionUpdate, SimulationListener
from .policy import MovementPolicy, default_movement_policy
from .ride_patterns import RIDE_PATTERNS, GeneratedRide, RidePattern, generate_ride, select_ride_pattern

__all__ = [
    "MovementSimulator",
    "Phase",
    "PositionUpdate",
    "SimulationListener",
    "MovementPolicy",
    "default_movement_policy",
    "RIDE_PATTERNS",
    "GeneratedRide",
    "RidePattern",
    "generate_ride",
    "select_ride_pattern",
]
