"""
Tests for OrderLifecycleService against a real SQLite database.

Covers claim (including concurrent claimers), pass, advance with delivery
credit, cancellation rules, order intake and the change signals published
after each commit.
"""

import asyncio
import uuid
from decimal import Decimal

import pytest
from sqlalchemy import select

from rider_dispatch.database.models import Order, Profile, UserRole
from rider_dispatch.services.errors import (
    InvalidTransitionError,
    OrderConflictError,
    OrderNotFoundError,
    OrderPermissionError,
    RiderNotFoundError,
)
from rider_dispatch.services.orders.enums import OrderStatus
from rider_dispatch.services.orders.service import OrderLifecycleService
from rider_dispatch.services.profiles.repository import ProfileRepository
from rider_dispatch.services.realtime.change_feed import ChangeEventType


@pytest.fixture
def lifecycle(db_session, change_feed) -> OrderLifecycleService:
    return OrderLifecycleService(db_session, change_feed=change_feed)


async def reload_profile(session, profile_id) -> Profile:
    return await ProfileRepository(session).get_by_id(profile_id)


# ============================================================================
# Claim
# ============================================================================


class TestClaim:
    async def test_claim_assigns_rider(self, lifecycle, customer, rider, make_order) -> None:
        order = await make_order(customer)

        claimed = await lifecycle.claim(order.id, rider.id)

        assert claimed.status == OrderStatus.CONFIRMED
        assert claimed.rider_id == rider.id
        assert claimed.confirmed_at is not None
        assert claimed.rider.display_name == "Juan Dela Cruz"

    async def test_claim_records_history_and_last_order(
        self, lifecycle, db_session, customer, rider, make_order
    ) -> None:
        order = await make_order(customer)

        await lifecycle.claim(order.id, rider.id)

        history = await lifecycle.get_status_history(order.id)
        assert [(h.from_status, h.to_status) for h in history][-1] == (
            OrderStatus.PENDING,
            OrderStatus.CONFIRMED,
        )
        assert history[-1].changed_by == rider.id
        assert (await reload_profile(db_session, rider.id)).last_order_at is not None

    async def test_claim_taken_order_conflicts(
        self, lifecycle, customer, rider, make_profile, make_order
    ) -> None:
        other = await make_profile(UserRole.RIDER, is_active=True)
        order = await make_order(customer, status=OrderStatus.CONFIRMED, rider=other)

        with pytest.raises(OrderConflictError):
            await lifecycle.claim(order.id, rider.id)

    async def test_claim_unknown_order(self, lifecycle, rider) -> None:
        with pytest.raises(OrderNotFoundError):
            await lifecycle.claim(uuid.uuid4(), rider.id)

    async def test_inactive_rider_cannot_claim(
        self, lifecycle, customer, make_profile, make_order
    ) -> None:
        idle = await make_profile(UserRole.RIDER, is_active=False)
        order = await make_order(customer)

        with pytest.raises(OrderPermissionError):
            await lifecycle.claim(order.id, idle.id)

    async def test_customer_cannot_claim(self, lifecycle, customer, make_order) -> None:
        order = await make_order(customer)

        with pytest.raises(OrderPermissionError):
            await lifecycle.claim(order.id, customer.id)

    async def test_unknown_rider_cannot_claim(
        self, lifecycle, db_session, customer, make_order
    ) -> None:
        order = await make_order(customer)

        with pytest.raises(RiderNotFoundError):
            await lifecycle.claim(order.id, uuid.uuid4())

        stored = await db_session.scalar(
            select(Order).where(Order.id == order.id).execution_options(populate_existing=True)
        )
        assert stored.status == OrderStatus.PENDING
        assert stored.rider_id is None

    async def test_concurrent_claims_have_one_winner(
        self, session_factory, change_feed, customer, make_profile, make_order
    ) -> None:
        """Five riders race for one order; exactly one wins."""
        order = await make_order(customer)
        riders = [await make_profile(UserRole.RIDER, is_active=True) for _ in range(5)]

        async def attempt(rider: Profile):
            async with session_factory() as session:
                service = OrderLifecycleService(session, change_feed=change_feed)
                try:
                    return await service.claim(order.id, rider.id)
                except OrderConflictError as e:
                    return e

        results = await asyncio.gather(*(attempt(r) for r in riders))

        winners = [r for r in results if isinstance(r, Order)]
        losers = [r for r in results if isinstance(r, OrderConflictError)]
        assert len(winners) == 1
        assert len(losers) == 4

        async with session_factory() as session:
            stored = await session.scalar(select(Order).where(Order.id == order.id))
            assert stored.rider_id == winners[0].rider_id
            assert stored.status == OrderStatus.CONFIRMED

    async def test_claim_publishes_update(
        self, lifecycle, change_feed, customer, rider, make_order
    ) -> None:
        order = await make_order(customer)
        subscription = change_feed.subscribe()

        await lifecycle.claim(order.id, rider.id)

        event = await asyncio.wait_for(subscription.get(), timeout=1)
        assert event.event_type == ChangeEventType.UPDATE
        assert event.order_id == order.id
        assert event.status == OrderStatus.CONFIRMED

    async def test_failed_claim_publishes_nothing(
        self, lifecycle, change_feed, rider
    ) -> None:
        subscription = change_feed.subscribe()

        with pytest.raises(OrderNotFoundError):
            await lifecycle.claim(uuid.uuid4(), rider.id)

        assert subscription._queue.empty()


# ============================================================================
# Pass
# ============================================================================


class TestPass:
    async def test_pass_returns_order_to_pool(
        self, lifecycle, customer, rider, make_order
    ) -> None:
        order = await make_order(customer, status=OrderStatus.CONFIRMED, rider=rider)

        passed = await lifecycle.pass_order(order.id, rider.id)

        assert passed.status == OrderStatus.PENDING
        assert passed.rider_id is None
        assert passed.confirmed_at is None

    async def test_pass_from_preparing(self, lifecycle, customer, rider, make_order) -> None:
        order = await make_order(customer, status=OrderStatus.PREPARING, rider=rider)

        passed = await lifecycle.pass_order(order.id, rider.id)

        assert passed.status == OrderStatus.PENDING

    async def test_only_holder_can_pass(
        self, lifecycle, customer, rider, make_profile, make_order
    ) -> None:
        other = await make_profile(UserRole.RIDER, is_active=True)
        order = await make_order(customer, status=OrderStatus.CONFIRMED, rider=other)

        with pytest.raises(OrderPermissionError):
            await lifecycle.pass_order(order.id, rider.id)

    async def test_cannot_pass_after_pickup(
        self, lifecycle, customer, rider, make_order
    ) -> None:
        order = await make_order(customer, status=OrderStatus.PICKED_UP, rider=rider)

        with pytest.raises(InvalidTransitionError):
            await lifecycle.pass_order(order.id, rider.id)

    async def test_passed_order_can_be_reclaimed(
        self, lifecycle, customer, rider, make_profile, make_order
    ) -> None:
        order = await make_order(customer, status=OrderStatus.CONFIRMED, rider=rider)
        await lifecycle.pass_order(order.id, rider.id)
        other = await make_profile(UserRole.RIDER, is_active=True)

        claimed = await lifecycle.claim(order.id, other.id)

        assert claimed.rider_id == other.id


# ============================================================================
# Advance
# ============================================================================


class TestAdvance:
    async def test_walks_full_delivery_sequence(
        self, lifecycle, customer, rider, make_order
    ) -> None:
        order = await make_order(customer)
        await lifecycle.claim(order.id, rider.id)

        for target in (
            OrderStatus.PREPARING,
            OrderStatus.PICKED_UP,
            OrderStatus.DELIVERING,
            OrderStatus.DELIVERED,
        ):
            advanced = await lifecycle.advance(order.id, rider.id, target)
            assert advanced.status == target

        assert advanced.picked_up_at is not None
        assert advanced.delivered_at is not None

        history = await lifecycle.get_status_history(order.id)
        assert [h.to_status for h in history] == [
            OrderStatus.PENDING,
            OrderStatus.CONFIRMED,
            OrderStatus.PREPARING,
            OrderStatus.PICKED_UP,
            OrderStatus.DELIVERING,
            OrderStatus.DELIVERED,
        ]

    async def test_delivery_credits_rider(
        self, lifecycle, db_session, customer, rider, make_order
    ) -> None:
        order = await make_order(
            customer,
            status=OrderStatus.DELIVERING,
            rider=rider,
            delivery_fee=Decimal("45.50"),
        )

        await lifecycle.advance(order.id, rider.id, OrderStatus.DELIVERED)

        credited = await reload_profile(db_session, rider.id)
        assert credited.total_deliveries == 1
        assert credited.total_earnings == Decimal("45.50")

    async def test_skipping_a_step_is_rejected(
        self, lifecycle, db_session, customer, rider, make_order
    ) -> None:
        order = await make_order(customer, status=OrderStatus.CONFIRMED, rider=rider)

        with pytest.raises(InvalidTransitionError):
            await lifecycle.advance(order.id, rider.id, OrderStatus.DELIVERED)

        unchanged = await lifecycle.get_order(order.id)
        assert unchanged.status == OrderStatus.CONFIRMED
        assert (await reload_profile(db_session, rider.id)).total_deliveries == 0

    async def test_only_assigned_rider_can_advance(
        self, lifecycle, customer, rider, make_profile, make_order
    ) -> None:
        other = await make_profile(UserRole.RIDER, is_active=True)
        order = await make_order(customer, status=OrderStatus.CONFIRMED, rider=other)

        with pytest.raises(OrderPermissionError):
            await lifecycle.advance(order.id, rider.id, OrderStatus.PREPARING)

    async def test_unassigned_order_cannot_be_advanced(
        self, lifecycle, customer, rider, make_order
    ) -> None:
        order = await make_order(customer)

        with pytest.raises(OrderPermissionError):
            await lifecycle.advance(order.id, rider.id, OrderStatus.CONFIRMED)


# ============================================================================
# Cancel
# ============================================================================


class TestCancel:
    async def test_customer_cancels_own_pending_order(
        self, lifecycle, customer, make_order
    ) -> None:
        order = await make_order(customer)

        cancelled = await lifecycle.cancel(order.id, customer.id, reason="Changed my mind")

        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.cancelled_at is not None
        history = await lifecycle.get_status_history(order.id)
        assert history[-1].change_reason == "Changed my mind"

    async def test_customer_cannot_cancel_others_order(
        self, lifecycle, customer, make_profile, make_order
    ) -> None:
        stranger = await make_profile(UserRole.CUSTOMER)
        order = await make_order(customer)

        with pytest.raises(OrderPermissionError):
            await lifecycle.cancel(order.id, stranger.id)

    async def test_rider_cancels_held_order(
        self, lifecycle, customer, rider, make_order
    ) -> None:
        order = await make_order(customer, status=OrderStatus.DELIVERING, rider=rider)

        cancelled = await lifecycle.cancel(order.id, rider.id)

        assert cancelled.status == OrderStatus.CANCELLED

    async def test_admin_cancels_any_order(
        self, lifecycle, admin, customer, rider, make_order
    ) -> None:
        order = await make_order(customer, status=OrderStatus.PREPARING, rider=rider)

        cancelled = await lifecycle.cancel(order.id, admin.id)

        assert cancelled.status == OrderStatus.CANCELLED

    @pytest.mark.parametrize("terminal", [OrderStatus.DELIVERED, OrderStatus.CANCELLED])
    async def test_terminal_orders_cannot_be_cancelled(
        self, lifecycle, admin, customer, rider, make_order, terminal
    ) -> None:
        order = await make_order(customer, status=terminal, rider=rider)

        with pytest.raises(InvalidTransitionError):
            await lifecycle.cancel(order.id, admin.id)

    async def test_cancel_unknown_order(self, lifecycle, admin) -> None:
        with pytest.raises(OrderNotFoundError):
            await lifecycle.cancel(uuid.uuid4(), admin.id)


# ============================================================================
# Intake
# ============================================================================


class TestCreateOrder:
    async def test_create_order_computes_totals(
        self, lifecycle, change_feed, customer
    ) -> None:
        subscription = change_feed.subscribe(event_types=[ChangeEventType.INSERT])

        order = await lifecycle.create_order(
            customer_id=customer.id,
            items=[
                {"product_id": uuid.uuid4(), "product_name": "Eggs", "quantity": 2, "unit_price": Decimal("95.00")},
                {"product_id": uuid.uuid4(), "product_name": "Milk", "quantity": 1, "unit_price": Decimal("110.50")},
            ],
            delivery_fee=Decimal("49.00"),
            dropoff_address="45 Mabini St",
            dropoff_lat=14.6,
            dropoff_lng=121.0,
        )

        assert order.status == OrderStatus.PENDING
        assert order.rider_id is None
        assert order.subtotal == Decimal("300.50")
        assert order.total_amount == Decimal("349.50")
        assert len(order.items) == 2
        assert order.customer.id == customer.id

        event = await asyncio.wait_for(subscription.get(), timeout=1)
        assert event.event_type == ChangeEventType.INSERT
        assert event.order_id == order.id

    async def test_unknown_customer_rejected(self, lifecycle) -> None:
        with pytest.raises(OrderPermissionError):
            await lifecycle.create_order(
                customer_id=uuid.uuid4(),
                items=[{"product_id": uuid.uuid4(), "quantity": 1, "unit_price": Decimal("1.00")}],
                delivery_fee=Decimal("0.00"),
            )
