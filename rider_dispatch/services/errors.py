"""
Domain errors shared by the dispatch services.

Every error carries a human-readable message plus structured context that is
passed straight into log records. Routers translate these into HTTP responses;
storage failures use the per-repository ``*RepositoryError`` types instead.
"""

from typing import Any, Optional

from rider_dispatch.services.orders.enums import OrderStatus


class DispatchError(Exception):
    """Base exception for dispatch domain errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class OrderNotFoundError(DispatchError):
    """Raised when an order does not exist."""

    pass


class OrderConflictError(DispatchError):
    """Raised when a claim is lost or the order changed underneath the caller."""

    pass


class InvalidTransitionError(DispatchError):
    """Raised when a requested status is not reachable in one step."""

    def __init__(
        self,
        message: str,
        current_state: OrderStatus,
        target_state: Optional[OrderStatus],
        **context: Any,
    ):
        super().__init__(message, **context)
        self.current_state = current_state
        self.target_state = target_state


class OrderPermissionError(DispatchError):
    """Raised when the caller may not act on the order."""

    pass


class LocationValidationError(DispatchError):
    """Raised when a location sample is malformed or out of range."""

    pass


class RiderNotFoundError(DispatchError):
    """Raised when a rider profile or its stored position is missing."""

    pass
