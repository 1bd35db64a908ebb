"""
Translation of domain errors into HTTP responses.
"""

from fastapi import HTTPException, status

from rider_dispatch.core.logging import get_logger
from rider_dispatch.services.errors import (
    DispatchError,
    InvalidTransitionError,
    LocationValidationError,
    OrderConflictError,
    OrderNotFoundError,
    OrderPermissionError,
    RiderNotFoundError,
)

logger = get_logger(__name__)


def status_code_for(error: DispatchError) -> int:
    match error:
        case OrderNotFoundError() | RiderNotFoundError():
            return status.HTTP_404_NOT_FOUND
        case OrderConflictError() | InvalidTransitionError():
            return status.HTTP_409_CONFLICT
        case OrderPermissionError():
            return status.HTTP_403_FORBIDDEN
        case LocationValidationError():
            return status.HTTP_400_BAD_REQUEST
        case _:
            return status.HTTP_400_BAD_REQUEST


def to_http_exception(error: DispatchError) -> HTTPException:
    """
    Build the HTTPException for a domain error.

    The detail carries the error class name so clients can tell a lost claim
    from an order that never existed.
    """
    status_code = status_code_for(error)
    logger.info(
        "Domain error",
        error_type=type(error).__name__,
        message=error.message,
        status_code=status_code,
        **error.context,
    )
    return HTTPException(
        status_code=status_code,
        detail={"error": type(error).__name__, "message": error.message},
    )
