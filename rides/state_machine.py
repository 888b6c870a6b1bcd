from typing import Dict, FrozenSet

from .models import RideStatus


class InvalidRideTransitionError(Exception):
    """Raised when an invalid ride status transition is attempted."""
    pass


ALLOWED_RIDE_TRANSITIONS: Dict[RideStatus, FrozenSet[RideStatus]] = {
    RideStatus.REQUESTED: frozenset({
        RideStatus.SEARCHING,
        RideStatus.ASSIGNED,
        RideStatus.NO_DRIVERS_AVAILABLE,
        RideStatus.CANCELLED,
    }),
    RideStatus.SEARCHING: frozenset({
        RideStatus.ASSIGNED,
        RideStatus.NO_DRIVERS_AVAILABLE,
        RideStatus.CANCELLED,
    }),
    RideStatus.ASSIGNED: frozenset({
        RideStatus.ARRIVING,
        RideStatus.IN_PROGRESS,
        RideStatus.CANCELLED,
    }),
    RideStatus.ARRIVING: frozenset({
        RideStatus.IN_PROGRESS,
        RideStatus.CANCELLED,
    }),
    RideStatus.IN_PROGRESS: frozenset({
        RideStatus.APPROACHING_DESTINATION,
        RideStatus.COMPLETED,
        RideStatus.CANCELLED,
    }),
    RideStatus.APPROACHING_DESTINATION: frozenset({
        RideStatus.COMPLETED,
        RideStatus.CANCELLED,
    }),
    RideStatus.COMPLETED: frozenset(),
    RideStatus.CANCELLED: frozenset(),
    RideStatus.NO_DRIVERS_AVAILABLE: frozenset(),
}


def can_transition(current: RideStatus, new: RideStatus) -> bool:
    return new in ALLOWED_RIDE_TRANSITIONS[current]


def check_ride_transition(ride_id: str, current: RideStatus, new: RideStatus) -> None:
    """
    Called before every ride status change.
    Re-applying the current status is the caller's no-op, not a transition.
    """
    if not can_transition(current, new):
        raise InvalidRideTransitionError(
            f"Cannot transition ride {ride_id} from {current.value} to {new.value}"
        )
