"""
Purpose: The driver app's state, and the rules for moving between states.
What it does:
DriverState is a sum type: one frozen dataclass per variant, each carrying
only the payload that variant needs. DriverStateMachine checks a proposed
(current, new) pair against ALLOWED_TRANSITIONS and returns the new state or
None. A rejected transition never mutates anything; the caller keeps the
exact object it already had.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import ClassVar, Dict, FrozenSet, Optional, Union

from driver_app.models import ActiveRide, DriverStats, RideRequest, RideSummary

logger = logging.getLogger(__name__)


class DriverStateException(Exception):
    """Raised when an action is attempted from a state that does not allow it."""
    pass


class DriverStateKind(str, Enum):
    OFFLINE = "offline"
    LOGGING_IN = "loggingIn"
    ONLINE = "online"
    RIDE_OFFERED = "rideOffered"
    HEADING_TO_PICKUP = "headingToPickup"
    ARRIVED_AT_PICKUP = "arrivedAtPickup"
    RIDE_IN_PROGRESS = "rideInProgress"
    APPROACHING_DESTINATION = "approachingDestination"
    RIDE_COMPLETED = "rideCompleted"
    ERROR = "error"


# --- Variants ---

@dataclass(frozen=True)
class Offline:
    kind: ClassVar[DriverStateKind] = DriverStateKind.OFFLINE
    description: ClassVar[str] = "Offline"


@dataclass(frozen=True)
class LoggingIn:
    kind: ClassVar[DriverStateKind] = DriverStateKind.LOGGING_IN
    description: ClassVar[str] = "Logging in..."


@dataclass(frozen=True)
class Online:
    stats: DriverStats
    kind: ClassVar[DriverStateKind] = DriverStateKind.ONLINE
    description: ClassVar[str] = "Online - Available"


@dataclass(frozen=True)
class RideOffered:
    request: RideRequest
    stats: DriverStats
    kind: ClassVar[DriverStateKind] = DriverStateKind.RIDE_OFFERED
    description: ClassVar[str] = "New Ride Request"


@dataclass(frozen=True)
class HeadingToPickup:
    ride: ActiveRide
    stats: DriverStats
    kind: ClassVar[DriverStateKind] = DriverStateKind.HEADING_TO_PICKUP
    description: ClassVar[str] = "Heading to Pickup"


@dataclass(frozen=True)
class ArrivedAtPickup:
    ride: ActiveRide
    stats: DriverStats
    kind: ClassVar[DriverStateKind] = DriverStateKind.ARRIVED_AT_PICKUP
    description: ClassVar[str] = "Arrived at Pickup"


@dataclass(frozen=True)
class RideInProgress:
    ride: ActiveRide
    stats: DriverStats
    kind: ClassVar[DriverStateKind] = DriverStateKind.RIDE_IN_PROGRESS
    description: ClassVar[str] = "Ride in Progress"


@dataclass(frozen=True)
class ApproachingDestination:
    ride: ActiveRide
    stats: DriverStats
    kind: ClassVar[DriverStateKind] = DriverStateKind.APPROACHING_DESTINATION
    description: ClassVar[str] = "Approaching Destination"


@dataclass(frozen=True)
class RideCompleted:
    summary: RideSummary
    stats: DriverStats
    kind: ClassVar[DriverStateKind] = DriverStateKind.RIDE_COMPLETED
    description: ClassVar[str] = "Ride Completed"


@dataclass(frozen=True)
class Error:
    message: str
    previous_state: Optional["DriverState"] = None
    kind: ClassVar[DriverStateKind] = DriverStateKind.ERROR

    @property
    def description(self) -> str:
        return f"Error: {self.message}"


DriverState = Union[
    Offline,
    LoggingIn,
    Online,
    RideOffered,
    HeadingToPickup,
    ArrivedAtPickup,
    RideInProgress,
    ApproachingDestination,
    RideCompleted,
    Error,
]

RIDE_STATES = (HeadingToPickup, ArrivedAtPickup, RideInProgress, ApproachingDestination)
STATS_STATES = (Online, RideOffered) + RIDE_STATES + (RideCompleted,)


def is_online(state: DriverState) -> bool:
    return not isinstance(state, (Offline, LoggingIn, Error))


def has_active_ride(state: DriverState) -> bool:
    return isinstance(state, RIDE_STATES)


def current_stats(state: DriverState) -> Optional[DriverStats]:
    if isinstance(state, STATS_STATES):
        return state.stats
    return None


def current_ride(state: DriverState) -> Optional[ActiveRide]:
    if isinstance(state, RIDE_STATES):
        return state.ride
    return None


# --- Transition table ---

K = DriverStateKind

ALLOWED_TRANSITIONS: Dict[DriverStateKind, FrozenSet[DriverStateKind]] = {
    K.OFFLINE: frozenset({K.LOGGING_IN}),
    K.LOGGING_IN: frozenset({K.ONLINE, K.ERROR}),
    K.ONLINE: frozenset({K.RIDE_OFFERED, K.OFFLINE, K.ERROR}),
    K.RIDE_OFFERED: frozenset({K.HEADING_TO_PICKUP, K.ONLINE, K.ERROR}),
    K.HEADING_TO_PICKUP: frozenset({K.ARRIVED_AT_PICKUP, K.ONLINE, K.ERROR}),
    K.ARRIVED_AT_PICKUP: frozenset({K.RIDE_IN_PROGRESS, K.ONLINE, K.ERROR}),
    K.RIDE_IN_PROGRESS: frozenset({K.APPROACHING_DESTINATION, K.RIDE_COMPLETED, K.ERROR}),
    K.APPROACHING_DESTINATION: frozenset({K.RIDE_COMPLETED, K.ERROR}),
    K.RIDE_COMPLETED: frozenset({K.ONLINE, K.OFFLINE}),
    # Only with a previous state to recover from (checked in is_valid_transition).
    K.ERROR: frozenset({K.OFFLINE, K.ONLINE}),
}


class DriverStateMachine:
    """
    Pure transition validation. Holds no state of its own.
    """

    @staticmethod
    def is_valid_transition(current: DriverState, new: DriverState) -> bool:
        if new.kind not in ALLOWED_TRANSITIONS[current.kind]:
            return False
        if isinstance(current, Error) and current.previous_state is None:
            return False
        return True

    @staticmethod
    def transition(current: DriverState, new: DriverState) -> Optional[DriverState]:
        """
        Returns `new` when the transition is allowed, otherwise None.
        """
        if not DriverStateMachine.is_valid_transition(current, new):
            logger.warning("Invalid state transition: %s -> %s", current.description, new.description)
            return None

        logger.info("State transition: %s -> %s", current.description, new.description)
        return new

    @staticmethod
    def with_stats(state: DriverState, stats: DriverStats) -> DriverState:
        """
        Same variant, new stats. States without stats come back unchanged.
        """
        if isinstance(state, STATS_STATES):
            return replace(state, stats=stats)
        return state

    @staticmethod
    def with_ride(state: DriverState, ride: ActiveRide) -> DriverState:
        """
        Same variant, updated active ride. States without a ride come back unchanged.
        """
        if isinstance(state, RIDE_STATES):
            return replace(state, ride=ride)
        return state
