# rides/__init__.py
# The ride record, its status variant and the ride table.

from .lifecycle import RideLifecycle
from .models import AssignmentSource, Ride, RideStatus
from .state_machine import ALLOWED_RIDE_TRANSITIONS, InvalidRideTransitionError, can_transition

__all__ = [
    "RideLifecycle",
    "AssignmentSource",
    "Ride",
    "RideStatus",
    "ALLOWED_RIDE_TRANSITIONS",
    "InvalidRideTransitionError",
    "can_transition",
]
