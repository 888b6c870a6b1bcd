"""Custom exceptions for dispatch, drivers and rides."""


class RideNotFoundError(Exception):
    """Raised when a ride cannot be found."""
    pass


class RideNotAvailableError(Exception):
    """Raised when a ride is not in a state that allows the operation."""
    pass


class DriverNotFoundError(Exception):
    """Raised when a driver id is not in the roster."""
    pass


class DriverNotAvailableError(Exception):
    """Raised when a driver cannot take a ride (offline, busy or already assigned)."""
    pass


class ActiveRideError(Exception):
    """Raised when an operation is refused because the driver has an active ride."""
    pass


class OfferNotFoundError(Exception):
    """Raised when no pending offer exists for the ride/driver pair."""
    pass


class SessionNotFoundError(Exception):
    """Raised when a driver has no active login session."""
    pass
