"""Order state machine with transition validation and side effects.

The state machine is pure: it decides whether a transition is legal and which
column values it writes, but it never touches the database. The repository
applies those values through conditional UPDATE statements so a transition
only lands if the row is still in the state that was validated.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from rider_dispatch.core.logging import get_logger
from rider_dispatch.services.errors import InvalidTransitionError
from rider_dispatch.services.orders.enums import (
    OrderStatus,
    get_allowed_order_transitions,
    validate_order_status_transition,
)

logger = get_logger(__name__)


class OrderStateMachine:
    """State machine for the delivery lifecycle.

    Handles transition validation and the per-status column side effects
    (confirmed_at, picked_up_at, delivered_at, cancelled_at).
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        """Initialize state machine.

        Args:
            clock: Optional time source, defaults to timezone-aware UTC now
        """
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._side_effects: Dict[
            OrderStatus, Callable[[datetime], Dict[str, Any]]
        ] = {
            OrderStatus.PENDING: self._effect_released,
            OrderStatus.CONFIRMED: self._effect_confirmed,
            OrderStatus.PICKED_UP: self._effect_picked_up,
            OrderStatus.DELIVERED: self._effect_delivered,
            OrderStatus.CANCELLED: self._effect_cancelled,
        }

    def now(self) -> datetime:
        return self._clock()

    def validate_transition(
        self,
        current_status: OrderStatus,
        target_status: OrderStatus,
        **context: Any,
    ) -> bool:
        """Validate that a transition is one of the allowed single steps.

        Args:
            current_status: Status the order is in now
            target_status: Desired target status
            **context: Extra fields for logging and the error

        Returns:
            True if transition is valid

        Raises:
            InvalidTransitionError: If transition is invalid
        """
        if not validate_order_status_transition(current_status, target_status):
            allowed = get_allowed_order_transitions(current_status)
            logger.info(
                "State transition rejected",
                current_status=current_status.value,
                target_status=target_status.value,
                **context,
            )
            raise InvalidTransitionError(
                f"Invalid transition from {current_status.value} to "
                f"{target_status.value}",
                current_state=current_status,
                target_state=target_status,
                allowed_transitions=sorted(s.value for s in allowed),
                **context,
            )
        return True

    def validate_advance(
        self,
        current_status: OrderStatus,
        requested_status: OrderStatus,
        **context: Any,
    ) -> OrderStatus:
        """Validate a forward step along the delivery sequence.

        Only the immediate successor of the current status is accepted;
        cancellation and pass have their own operations.

        Returns:
            The validated next status

        Raises:
            InvalidTransitionError: If requested status is not the successor
        """
        successor = current_status.next_status()
        if successor is None or requested_status != successor:
            raise InvalidTransitionError(
                f"Cannot advance from {current_status.value} to "
                f"{requested_status.value}",
                current_state=current_status,
                target_state=requested_status,
                expected_next=successor.value if successor else None,
                **context,
            )
        return successor

    def transition_values(
        self,
        target_status: OrderStatus,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Column values written when an order enters ``target_status``."""
        now = now or self.now()
        values: Dict[str, Any] = {"status": target_status, "updated_at": now}
        side_effect = self._side_effects.get(target_status)
        if side_effect is not None:
            values.update(side_effect(now))
        return values

    # Side Effects

    def _effect_released(self, now: datetime) -> Dict[str, Any]:
        return {"rider_id": None, "confirmed_at": None}

    def _effect_confirmed(self, now: datetime) -> Dict[str, Any]:
        return {"confirmed_at": now}

    def _effect_picked_up(self, now: datetime) -> Dict[str, Any]:
        return {"picked_up_at": now}

    def _effect_delivered(self, now: datetime) -> Dict[str, Any]:
        return {"delivered_at": now}

    def _effect_cancelled(self, now: datetime) -> Dict[str, Any]:
        return {"cancelled_at": now}


def get_order_state_machine() -> OrderStateMachine:
    """Factory function to create OrderStateMachine instance."""
    return OrderStateMachine()
