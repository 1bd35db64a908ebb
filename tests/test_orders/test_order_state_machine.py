"""
Tests for the order status rules and the pure state machine.
"""

from datetime import datetime, timezone

import pytest

from rider_dispatch.services.errors import InvalidTransitionError
from rider_dispatch.services.orders.enums import (
    DisplayStatus,
    OrderStatus,
    get_allowed_order_transitions,
    validate_order_status_transition,
)
from rider_dispatch.services.orders.state_machine import (
    OrderStateMachine,
    get_order_state_machine,
)

FIXED_NOW = datetime(2026, 3, 1, 8, 30, tzinfo=timezone.utc)


@pytest.fixture
def state_machine() -> OrderStateMachine:
    return OrderStateMachine(clock=lambda: FIXED_NOW)


# ============================================================================
# Status Rules
# ============================================================================


class TestOrderStatusRules:
    """Successor chain, terminal states and the display collapse."""

    @pytest.mark.parametrize(
        "current,expected",
        [
            (OrderStatus.PENDING, OrderStatus.CONFIRMED),
            (OrderStatus.CONFIRMED, OrderStatus.PREPARING),
            (OrderStatus.PREPARING, OrderStatus.PICKED_UP),
            (OrderStatus.PICKED_UP, OrderStatus.DELIVERING),
            (OrderStatus.DELIVERING, OrderStatus.DELIVERED),
            (OrderStatus.DELIVERED, None),
            (OrderStatus.CANCELLED, None),
        ],
    )
    def test_next_status(self, current: OrderStatus, expected) -> None:
        assert current.next_status() == expected

    def test_terminal_statuses_allow_nothing(self) -> None:
        for status in (OrderStatus.DELIVERED, OrderStatus.CANCELLED):
            assert status.is_terminal()
            assert get_allowed_order_transitions(status) == set()

    def test_pass_only_before_pickup(self) -> None:
        assert OrderStatus.CONFIRMED.can_pass()
        assert OrderStatus.PREPARING.can_pass()
        assert not OrderStatus.PICKED_UP.can_pass()
        assert not OrderStatus.DELIVERING.can_pass()
        assert not OrderStatus.PENDING.can_pass()

    def test_en_route_statuses(self) -> None:
        en_route = {s for s in OrderStatus if s.is_en_route()}
        assert en_route == {OrderStatus.PICKED_UP, OrderStatus.DELIVERING}

    @pytest.mark.parametrize(
        "status,display",
        [
            (OrderStatus.PENDING, DisplayStatus.PENDING),
            (OrderStatus.CONFIRMED, DisplayStatus.ASSIGNED),
            (OrderStatus.PREPARING, DisplayStatus.ASSIGNED),
            (OrderStatus.PICKED_UP, DisplayStatus.DELIVERING),
            (OrderStatus.DELIVERING, DisplayStatus.DELIVERING),
            (OrderStatus.DELIVERED, DisplayStatus.COMPLETED),
            (OrderStatus.CANCELLED, DisplayStatus.CANCELLED),
        ],
    )
    def test_display_collapse(self, status: OrderStatus, display: DisplayStatus) -> None:
        assert status.display_status == display

    def test_from_string_is_case_insensitive(self) -> None:
        assert OrderStatus.from_string("PICKED_UP") == OrderStatus.PICKED_UP

    def test_from_string_rejects_unknown(self) -> None:
        with pytest.raises(ValueError, match="Invalid order status"):
            OrderStatus.from_string("shipped")

    def test_allowed_transitions_from_confirmed(self) -> None:
        assert get_allowed_order_transitions(OrderStatus.CONFIRMED) == {
            OrderStatus.PREPARING,
            OrderStatus.CANCELLED,
            OrderStatus.PENDING,
        }

    def test_skipping_a_step_is_invalid(self) -> None:
        assert not validate_order_status_transition(OrderStatus.CONFIRMED, OrderStatus.DELIVERED)


# ============================================================================
# State Machine
# ============================================================================


class TestOrderStateMachine:
    def test_factory_function(self) -> None:
        assert isinstance(get_order_state_machine(), OrderStateMachine)

    def test_validate_transition_accepts_cancel(self, state_machine: OrderStateMachine) -> None:
        assert state_machine.validate_transition(OrderStatus.DELIVERING, OrderStatus.CANCELLED)

    def test_validate_transition_rejects_terminal(self, state_machine: OrderStateMachine) -> None:
        with pytest.raises(InvalidTransitionError) as exc_info:
            state_machine.validate_transition(
                OrderStatus.DELIVERED, OrderStatus.CANCELLED, order_id="o-1"
            )

        error = exc_info.value
        assert error.current_state == OrderStatus.DELIVERED
        assert error.target_state == OrderStatus.CANCELLED
        assert error.context["allowed_transitions"] == []
        assert error.context["order_id"] == "o-1"

    def test_validate_advance_returns_successor(self, state_machine: OrderStateMachine) -> None:
        assert (
            state_machine.validate_advance(OrderStatus.PREPARING, OrderStatus.PICKED_UP)
            == OrderStatus.PICKED_UP
        )

    @pytest.mark.parametrize(
        "current,requested",
        [
            (OrderStatus.CONFIRMED, OrderStatus.DELIVERED),
            (OrderStatus.CONFIRMED, OrderStatus.CANCELLED),
            (OrderStatus.PREPARING, OrderStatus.PENDING),
            (OrderStatus.DELIVERED, OrderStatus.DELIVERED),
        ],
    )
    def test_validate_advance_rejects_non_successor(
        self,
        state_machine: OrderStateMachine,
        current: OrderStatus,
        requested: OrderStatus,
    ) -> None:
        with pytest.raises(InvalidTransitionError):
            state_machine.validate_advance(current, requested)

    def test_transition_values_for_claim(self, state_machine: OrderStateMachine) -> None:
        values = state_machine.transition_values(OrderStatus.CONFIRMED)
        assert values == {
            "status": OrderStatus.CONFIRMED,
            "updated_at": FIXED_NOW,
            "confirmed_at": FIXED_NOW,
        }

    def test_transition_values_for_pass_release_rider(self, state_machine: OrderStateMachine) -> None:
        values = state_machine.transition_values(OrderStatus.PENDING)
        assert values["rider_id"] is None
        assert values["confirmed_at"] is None

    def test_transition_values_without_side_effect(self, state_machine: OrderStateMachine) -> None:
        values = state_machine.transition_values(OrderStatus.PREPARING)
        assert set(values) == {"status", "updated_at"}

    @pytest.mark.parametrize(
        "target,column",
        [
            (OrderStatus.PICKED_UP, "picked_up_at"),
            (OrderStatus.DELIVERED, "delivered_at"),
            (OrderStatus.CANCELLED, "cancelled_at"),
        ],
    )
    def test_transition_values_stamp_columns(
        self, state_machine: OrderStateMachine, target: OrderStatus, column: str
    ) -> None:
        assert state_machine.transition_values(target)[column] == FIXED_NOW
