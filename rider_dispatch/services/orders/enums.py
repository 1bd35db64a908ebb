"""Order status enums and lifecycle transition rules.

The canonical lifecycle is the six-step delivery sequence plus a terminal
cancelled state:

    pending -> confirmed -> preparing -> picked_up -> delivering -> delivered
    (any non-terminal state) -> cancelled

The customer-facing five-state vocabulary (PENDING / ASSIGNED / DELIVERING /
COMPLETED / CANCELLED) is a display collapse of this sequence and is never
stored.
"""

from enum import Enum
from typing import Dict, FrozenSet, Optional, Set


class OrderStatus(str, Enum):
    """Order lifecycle status."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    PICKED_UP = "picked_up"
    DELIVERING = "delivering"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @classmethod
    def from_string(cls, value: str) -> "OrderStatus":
        """Convert string to OrderStatus enum.

        Args:
            value: String representation of status

        Returns:
            OrderStatus enum value

        Raises:
            ValueError: If value is not a valid status
        """
        try:
            return cls(value.lower())
        except ValueError:
            valid_values = ", ".join([s.value for s in cls])
            raise ValueError(
                f"Invalid order status: {value}. "
                f"Valid values are: {valid_values}"
            )

    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    def is_active(self) -> bool:
        """Check if the order is held by a rider and still in progress."""
        return self in ACTIVE_STATUSES

    def is_en_route(self) -> bool:
        """Check if live tracking is meaningful for this status."""
        return self in EN_ROUTE_STATUSES

    def can_cancel(self) -> bool:
        return not self.is_terminal()

    def can_pass(self) -> bool:
        """Check if a holding rider may still return the order to the pool."""
        return self in PASSABLE_STATUSES

    def next_status(self) -> Optional["OrderStatus"]:
        """Return the single legal forward successor, if any."""
        return DELIVERY_SUCCESSOR.get(self)

    @property
    def display_status(self) -> "DisplayStatus":
        return DISPLAY_COLLAPSE[self]

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


class DisplayStatus(str, Enum):
    """Customer-facing collapse of the delivery lifecycle."""

    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    DELIVERING = "DELIVERING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class OrderAction(str, Enum):
    """Actions a rider can take from an order card on the dispatch board."""

    CLAIM = "claim"
    PASS = "pass"
    ADVANCE = "advance"
    CANCEL = "cancel"


DELIVERY_SEQUENCE: tuple[OrderStatus, ...] = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.PICKED_UP,
    OrderStatus.DELIVERING,
    OrderStatus.DELIVERED,
)

DELIVERY_SUCCESSOR: Dict[OrderStatus, OrderStatus] = {
    current: following
    for current, following in zip(DELIVERY_SEQUENCE, DELIVERY_SEQUENCE[1:])
}

TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.DELIVERED, OrderStatus.CANCELLED}
)

ACTIVE_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {
        OrderStatus.CONFIRMED,
        OrderStatus.PREPARING,
        OrderStatus.PICKED_UP,
        OrderStatus.DELIVERING,
    }
)

EN_ROUTE_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.PICKED_UP, OrderStatus.DELIVERING}
)

PASSABLE_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.CONFIRMED, OrderStatus.PREPARING}
)

DISPLAY_COLLAPSE: Dict[OrderStatus, DisplayStatus] = {
    OrderStatus.PENDING: DisplayStatus.PENDING,
    OrderStatus.CONFIRMED: DisplayStatus.ASSIGNED,
    OrderStatus.PREPARING: DisplayStatus.ASSIGNED,
    OrderStatus.PICKED_UP: DisplayStatus.DELIVERING,
    OrderStatus.DELIVERING: DisplayStatus.DELIVERING,
    OrderStatus.DELIVERED: DisplayStatus.COMPLETED,
    OrderStatus.CANCELLED: DisplayStatus.CANCELLED,
}


def get_allowed_order_transitions(current_status: OrderStatus) -> Set[OrderStatus]:
    """Get every status reachable in one step from the current one.

    Pass (back to pending) is included for statuses a holding rider may
    still hand back.

    Args:
        current_status: Current order status

    Returns:
        Set of reachable statuses
    """
    allowed: Set[OrderStatus] = set()
    successor = current_status.next_status()
    if successor is not None:
        allowed.add(successor)
    if current_status.can_cancel():
        allowed.add(OrderStatus.CANCELLED)
    if current_status.can_pass():
        allowed.add(OrderStatus.PENDING)
    return allowed


def validate_order_status_transition(
    current_status: OrderStatus,
    target_status: OrderStatus,
) -> bool:
    """Validate if an order status transition is allowed.

    Args:
        current_status: Current order status
        target_status: Target order status

    Returns:
        True if transition is valid, False otherwise
    """
    return target_status in get_allowed_order_transitions(current_status)
