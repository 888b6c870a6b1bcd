# dispatch/state_machines/__init__.py
# Transition rules for the driver app's state.

from .driver_state import (
    ALLOWED_TRANSITIONS,
    DriverState,
    DriverStateException,
    DriverStateKind,
    DriverStateMachine,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "DriverState",
    "DriverStateException",
    "DriverStateKind",
    "DriverStateMachine",
]
