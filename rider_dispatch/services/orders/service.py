"""
Order lifecycle service.

This module implements the OrderLifecycleService which owns every status
change an order goes through after checkout: rider claim, pass back to the
pool, forward advance along the delivery sequence and cancellation. Each
operation is one unit of work: conditional writes, the status history row
and any counter updates commit together or not at all. Change signals are
published only after a successful commit.
"""

import uuid
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any, AsyncIterator, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from rider_dispatch.core.logging import get_logger, log_performance
from rider_dispatch.database.models.order import Order
from rider_dispatch.database.models.profile import Profile, UserRole
from rider_dispatch.services.errors import (
    OrderConflictError,
    OrderNotFoundError,
    OrderPermissionError,
    RiderNotFoundError,
)
from rider_dispatch.services.orders.enums import OrderStatus
from rider_dispatch.services.orders.repository import OrderRepository
from rider_dispatch.services.orders.state_machine import OrderStateMachine
from rider_dispatch.services.profiles.repository import ProfileRepository
from rider_dispatch.services.realtime.change_feed import (
    ChangeEventType,
    ChangeFeed,
    OrderChangeEvent,
)

logger = get_logger(__name__)


class OrderLifecycleService:
    """
    Order lifecycle orchestration.

    Attributes:
        repository: Order repository for data access
        profiles: Profile repository for actor lookups
        state_machine: Transition rules and per-status side effects
        change_feed: Optional feed notified after each commit
    """

    def __init__(
        self,
        session: AsyncSession,
        change_feed: Optional[ChangeFeed] = None,
        state_machine: Optional[OrderStateMachine] = None,
    ):
        self.session = session
        self.repository = OrderRepository(session)
        self.profiles = ProfileRepository(session)
        self.state_machine = state_machine or OrderStateMachine()
        self.change_feed = change_feed

    @asynccontextmanager
    async def _unit_of_work(self, operation: str, order_id: Optional[uuid.UUID]) -> AsyncIterator[None]:
        try:
            yield
            await self.session.commit()
        except Exception as e:
            await self.session.rollback()
            logger.info(
                "Order operation rolled back",
                operation=operation,
                order_id=str(order_id) if order_id else None,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

    async def _require_order(self, order_id: uuid.UUID) -> Order:
        order = await self.repository.get_order_by_id(order_id, include_parties=False)
        if order is None:
            raise OrderNotFoundError("Order not found", order_id=str(order_id))
        return order

    async def _require_rider(self, rider_id: uuid.UUID, must_be_active: bool = False) -> Profile:
        rider = await self.profiles.get_by_id(rider_id)
        if rider is None:
            raise RiderNotFoundError("Rider not found", rider_id=str(rider_id))
        if not rider.is_rider:
            raise OrderPermissionError(
                "Only riders can take dispatch actions",
                rider_id=str(rider_id),
                role=rider.role.value,
            )
        if must_be_active and not rider.is_active:
            raise OrderPermissionError(
                "Rider is not accepting orders",
                rider_id=str(rider_id),
            )
        return rider

    async def _finish(self, order_id: uuid.UUID, event_type: ChangeEventType) -> Order:
        order = await self.repository.get_order_by_id(order_id)
        if self.change_feed is not None:
            await self.change_feed.publish(
                OrderChangeEvent(event_type=event_type, order_id=order.id, status=order.status)
            )
        return order

    async def claim(self, order_id: uuid.UUID, rider_id: uuid.UUID) -> Order:
        """
        Assign a pending, unassigned order to the calling rider.

        Among any number of concurrent claimers exactly one succeeds; the rest
        get OrderConflictError.

        Raises:
            OrderNotFoundError: If the order does not exist
            OrderConflictError: If the order is no longer claimable
            OrderPermissionError: If the caller is not an active rider
        """
        with log_performance(logger, "order_claim", order_id=str(order_id)):
            async with self._unit_of_work("claim", order_id):
                await self._require_rider(rider_id, must_be_active=True)

                now = self.state_machine.now()
                values = self.state_machine.transition_values(OrderStatus.CONFIRMED, now)
                won = await self.repository.claim(order_id, rider_id, values)

                if not won:
                    current = await self.repository.get_order_by_id(
                        order_id, include_parties=False
                    )
                    if current is None:
                        raise OrderNotFoundError("Order not found", order_id=str(order_id))
                    raise OrderConflictError(
                        "Order is no longer available",
                        order_id=str(order_id),
                        current_status=current.status.value,
                    )

                await self.repository.touch_rider_last_order(rider_id, now)
                await self.repository.record_status_change(
                    order_id,
                    OrderStatus.PENDING,
                    OrderStatus.CONFIRMED,
                    changed_by=rider_id,
                    change_reason="Claimed by rider",
                )

        logger.info("Order claimed", order_id=str(order_id), rider_id=str(rider_id))
        return await self._finish(order_id, ChangeEventType.UPDATE)

    async def pass_order(self, order_id: uuid.UUID, rider_id: uuid.UUID) -> Order:
        """
        Return a held order to the pool before pickup.

        Raises:
            OrderNotFoundError: If the order does not exist
            OrderPermissionError: If the caller does not hold the order
            InvalidTransitionError: If the order is already picked up or later
            OrderConflictError: If the order changed concurrently
        """
        async with self._unit_of_work("pass", order_id):
            order = await self._require_order(order_id)
            if order.rider_id != rider_id:
                raise OrderPermissionError(
                    "Only the assigned rider can pass this order",
                    order_id=str(order_id),
                    rider_id=str(rider_id),
                )

            current = order.status
            self.state_machine.validate_transition(
                current, OrderStatus.PENDING, order_id=str(order_id)
            )

            won = await self.repository.apply_transition(
                order_id,
                expected_status=current,
                values=self.state_machine.transition_values(OrderStatus.PENDING),
                expected_rider_id=rider_id,
            )
            if not won:
                raise OrderConflictError(
                    "Order changed while passing",
                    order_id=str(order_id),
                    expected_status=current.value,
                )

            await self.repository.record_status_change(
                order_id,
                current,
                OrderStatus.PENDING,
                changed_by=rider_id,
                change_reason="Passed by rider",
            )

        logger.info("Order passed", order_id=str(order_id), rider_id=str(rider_id))
        return await self._finish(order_id, ChangeEventType.UPDATE)

    async def advance(
        self,
        order_id: uuid.UUID,
        rider_id: uuid.UUID,
        next_status: OrderStatus,
    ) -> Order:
        """
        Move a held order one step forward along the delivery sequence.

        Reaching ``delivered`` credits the rider's delivery count and earnings
        in the same transaction.

        Raises:
            OrderNotFoundError: If the order does not exist
            OrderPermissionError: If the caller is not the assigned rider
            InvalidTransitionError: If next_status is not the immediate successor
            OrderConflictError: If the order changed concurrently
        """
        async with self._unit_of_work("advance", order_id):
            order = await self._require_order(order_id)
            if order.rider_id is None or order.rider_id != rider_id:
                raise OrderPermissionError(
                    "Only the assigned rider can advance this order",
                    order_id=str(order_id),
                    rider_id=str(rider_id),
                )

            current = order.status
            target = self.state_machine.validate_advance(
                current, next_status, order_id=str(order_id)
            )
            delivery_fee: Decimal = order.delivery_fee

            won = await self.repository.apply_transition(
                order_id,
                expected_status=current,
                values=self.state_machine.transition_values(target),
                expected_rider_id=rider_id,
            )
            if not won:
                raise OrderConflictError(
                    "Order changed while advancing",
                    order_id=str(order_id),
                    expected_status=current.value,
                )

            if target == OrderStatus.DELIVERED:
                await self.repository.credit_delivery(rider_id, delivery_fee)

            await self.repository.record_status_change(
                order_id,
                current,
                target,
                changed_by=rider_id,
            )

        logger.info(
            "Order advanced",
            order_id=str(order_id),
            rider_id=str(rider_id),
            from_status=current.value,
            to_status=target.value,
        )
        return await self._finish(order_id, ChangeEventType.UPDATE)

    async def cancel(
        self,
        order_id: uuid.UUID,
        actor_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> Order:
        """
        Cancel an order from any non-terminal state.

        Admins and riders may cancel any order; customers only their own.

        Raises:
            OrderNotFoundError: If the order does not exist
            OrderPermissionError: If the actor may not cancel the order
            InvalidTransitionError: If the order is already terminal
            OrderConflictError: If the order changed concurrently
        """
        async with self._unit_of_work("cancel", order_id):
            actor = await self.profiles.get_by_id(actor_id)
            if actor is None:
                raise OrderPermissionError("Unknown actor", actor_id=str(actor_id))

            order = await self._require_order(order_id)
            match actor.role:
                case UserRole.ADMIN | UserRole.RIDER:
                    pass
                case UserRole.CUSTOMER:
                    if order.user_id != actor_id:
                        raise OrderPermissionError(
                            "Customers can only cancel their own orders",
                            order_id=str(order_id),
                            actor_id=str(actor_id),
                        )

            current = order.status
            self.state_machine.validate_transition(
                current, OrderStatus.CANCELLED, order_id=str(order_id)
            )

            won = await self.repository.apply_transition(
                order_id,
                expected_status=current,
                values=self.state_machine.transition_values(OrderStatus.CANCELLED),
            )
            if not won:
                raise OrderConflictError(
                    "Order changed while cancelling",
                    order_id=str(order_id),
                    expected_status=current.value,
                )

            await self.repository.record_status_change(
                order_id,
                current,
                OrderStatus.CANCELLED,
                changed_by=actor_id,
                change_reason=reason,
            )

        logger.info(
            "Order cancelled",
            order_id=str(order_id),
            actor_id=str(actor_id),
            from_status=current.value,
        )
        return await self._finish(order_id, ChangeEventType.UPDATE)

    async def create_order(
        self,
        customer_id: uuid.UUID,
        items: Sequence[dict[str, Any]],
        delivery_fee: Decimal,
        dropoff_address: Optional[str] = None,
        dropoff_lat: Optional[float] = None,
        dropoff_lng: Optional[float] = None,
        landmark: Optional[str] = None,
        payment_method: str = "cod",
    ) -> Order:
        """
        Minimal order intake: persist a pending order and signal INSERT.

        Raises:
            OrderPermissionError: If the customer profile does not exist
        """
        async with self._unit_of_work("create", None):
            customer = await self.profiles.get_by_id(customer_id)
            if customer is None:
                raise OrderPermissionError("Unknown customer", customer_id=str(customer_id))

            order = await self.repository.create_order_with_items(
                user_id=customer_id,
                items=items,
                delivery_fee=delivery_fee,
                dropoff_address=dropoff_address,
                dropoff_lat=dropoff_lat,
                dropoff_lng=dropoff_lng,
                landmark=landmark,
                payment_method=payment_method,
            )
            order_id = order.id

        return await self._finish(order_id, ChangeEventType.INSERT)

    async def get_order(self, order_id: uuid.UUID) -> Order:
        order = await self.repository.get_order_by_id(order_id)
        if order is None:
            raise OrderNotFoundError("Order not found", order_id=str(order_id))
        return order

    async def get_status_history(self, order_id: uuid.UUID):
        await self._require_order(order_id)
        return await self.repository.get_status_history(order_id)
