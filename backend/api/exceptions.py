"""
Maps domain exceptions to HTTP responses with a JSON error body.

Unknown id -> 404, validation / wrong ride / active ride -> 400,
offer no longer pending / driver taken -> 409, anything else -> 500.
"""

import logging

from rest_framework import status
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler

from common.exceptions import (
    ActiveRideError,
    DriverNotAvailableError,
    DriverNotFoundError,
    OfferNotFoundError,
    RideNotAvailableError,
    RideNotFoundError,
    SessionNotFoundError,
)
from rides.state_machine import InvalidRideTransitionError

logger = logging.getLogger(__name__)

ERROR_STATUS = [
    (RideNotFoundError, status.HTTP_404_NOT_FOUND),
    (DriverNotFoundError, status.HTTP_404_NOT_FOUND),
    (OfferNotFoundError, status.HTTP_409_CONFLICT),
    (DriverNotAvailableError, status.HTTP_409_CONFLICT),
    (ActiveRideError, status.HTTP_400_BAD_REQUEST),
    (RideNotAvailableError, status.HTTP_400_BAD_REQUEST),
    (InvalidRideTransitionError, status.HTTP_400_BAD_REQUEST),
    (SessionNotFoundError, status.HTTP_400_BAD_REQUEST),
    # InvalidCoordinateError and bad status words.
    (ValueError, status.HTTP_400_BAD_REQUEST),
]


def dispatch_exception_handler(exc, context):
    response = exception_handler(exc, context)
    if response is not None:
        if isinstance(exc, ValidationError):
            response.data = {"error": "Invalid request", "details": response.data}
        return response

    for exc_type, code in ERROR_STATUS:
        if isinstance(exc, exc_type):
            return Response({"error": str(exc)}, status=code)

    view = context.get("view")
    logger.error("Unhandled error in %s", type(view).__name__, exc_info=exc)
    return Response({"error": "Internal server error"}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
