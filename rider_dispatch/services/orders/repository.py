"""
Order data access repository with conditional-write transitions.

Every status change is issued as a single UPDATE whose WHERE clause encodes
the state the caller validated against (status, and rider ownership where it
matters). The affected row count tells the caller whether it won; nothing is
ever decided by a client-side read followed by an unconditional write.
Transactions are owned by the calling service.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import and_, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rider_dispatch.core.logging import get_logger
from rider_dispatch.database.models.order import Order, OrderItem, OrderStatusHistory
from rider_dispatch.database.models.profile import Profile
from rider_dispatch.services.orders.enums import ACTIVE_STATUSES, OrderStatus

logger = get_logger(__name__)


class OrderRepositoryError(Exception):
    """Base exception for order repository errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class OrderCreationError(OrderRepositoryError):
    """Raised when order creation fails."""

    pass


class OrderUpdateError(OrderRepositoryError):
    """Raised when an order write fails at the storage layer."""

    pass


class OrderRepository:
    """
    Repository for order data access operations.

    Provides async reads with relationship loading and conditional writes
    for every lifecycle transition.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_order_with_items(
        self,
        user_id: uuid.UUID,
        items: Sequence[dict[str, Any]],
        delivery_fee: Decimal,
        dropoff_address: Optional[str],
        dropoff_lat: Optional[float],
        dropoff_lng: Optional[float],
        landmark: Optional[str] = None,
        payment_method: str = "cod",
    ) -> Order:
        """
        Create a pending, unassigned order with its line items.

        Args:
            user_id: Customer profile placing the order
            items: Line items with product_id, product_name, quantity, unit_price
            delivery_fee: Fee paid to the rider on delivery
            dropoff_address: Destination address
            dropoff_lat: Destination latitude
            dropoff_lng: Destination longitude
            landmark: Optional landmark
            payment_method: Payment method chosen at checkout

        Returns:
            Created order (flushed, not committed)

        Raises:
            OrderCreationError: If order creation fails
        """
        subtotal = sum(
            (Decimal(item["unit_price"]) * item["quantity"] for item in items),
            Decimal("0.00"),
        )

        try:
            order = Order(
                user_id=user_id,
                status=OrderStatus.PENDING,
                rider_id=None,
                subtotal=subtotal,
                delivery_fee=delivery_fee,
                total_amount=subtotal + delivery_fee,
                dropoff_address=dropoff_address,
                dropoff_lat=dropoff_lat,
                dropoff_lng=dropoff_lng,
                landmark=landmark,
                payment_method=payment_method,
            )
            self.session.add(order)
            await self.session.flush()

            for item in items:
                self.session.add(
                    OrderItem(
                        order_id=order.id,
                        product_id=item["product_id"],
                        product_name=item.get("product_name"),
                        quantity=item["quantity"],
                        unit_price=Decimal(item["unit_price"]),
                    )
                )

            self.session.add(
                OrderStatusHistory(
                    order_id=order.id,
                    from_status=None,
                    to_status=OrderStatus.PENDING,
                    changed_by=user_id,
                    change_reason="Order created",
                )
            )
            await self.session.flush()

            logger.info(
                "Order created",
                order_id=str(order.id),
                item_count=len(items),
                total_amount=str(order.total_amount),
            )
            return order

        except IntegrityError as e:
            logger.error("Order creation failed - integrity error", error=str(e))
            raise OrderCreationError(
                "Order creation failed due to data integrity violation",
                user_id=str(user_id),
                error=str(e),
            ) from e
        except SQLAlchemyError as e:
            logger.error("Order creation failed - database error", error=str(e))
            raise OrderCreationError(
                "Order creation failed due to database error",
                user_id=str(user_id),
                error=str(e),
            ) from e

    async def get_order_by_id(
        self,
        order_id: uuid.UUID,
        include_parties: bool = True,
        include_history: bool = False,
    ) -> Optional[Order]:
        """
        Get order by ID, always reloading column state from the database.

        Args:
            order_id: Order identifier
            include_parties: Whether to load the customer and rider profiles
            include_history: Whether to load status history

        Returns:
            Order if found, None otherwise

        Raises:
            OrderRepositoryError: If query fails
        """
        stmt = (
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )

        options = []
        if include_parties:
            options.extend([selectinload(Order.customer), selectinload(Order.rider)])
        if include_history:
            options.append(selectinload(Order.status_history))
        if options:
            stmt = stmt.options(*options)

        try:
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Failed to fetch order", order_id=str(order_id), error=str(e))
            raise OrderRepositoryError(
                "Failed to fetch order",
                order_id=str(order_id),
                error=str(e),
            ) from e

    async def list_available(self, limit: int) -> Sequence[Order]:
        """
        Dispatch candidate view: pending, unassigned orders, newest first.

        Args:
            limit: Maximum number of orders to return

        Returns:
            Orders with customer and rider profiles loaded
        """
        stmt = (
            select(Order)
            .where(
                and_(
                    Order.status == OrderStatus.PENDING,
                    Order.rider_id.is_(None),
                )
            )
            .options(selectinload(Order.customer), selectinload(Order.rider))
            .order_by(Order.created_at.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return await self._fetch_orders(stmt, "list_available")

    async def list_for_rider(
        self,
        rider_id: uuid.UUID,
        statuses: Optional[Iterable[OrderStatus]] = None,
        limit: Optional[int] = None,
    ) -> Sequence[Order]:
        """
        Orders held by a rider, newest first.

        Args:
            rider_id: Rider profile identifier
            statuses: Optional status filter
            limit: Optional maximum number of orders

        Returns:
            Orders with customer and rider profiles loaded
        """
        conditions = [Order.rider_id == rider_id]
        if statuses is not None:
            conditions.append(Order.status.in_(list(statuses)))

        stmt = (
            select(Order)
            .where(and_(*conditions))
            .options(selectinload(Order.customer), selectinload(Order.rider))
            .order_by(Order.created_at.desc())
            .execution_options(populate_existing=True)
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        return await self._fetch_orders(stmt, "list_for_rider")

    async def _fetch_orders(self, stmt, operation: str) -> Sequence[Order]:
        try:
            result = await self.session.execute(stmt)
            return result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("Failed to list orders", operation=operation, error=str(e))
            raise OrderRepositoryError(
                "Failed to list orders",
                operation=operation,
                error=str(e),
            ) from e

    async def claim(
        self,
        order_id: uuid.UUID,
        rider_id: uuid.UUID,
        values: dict[str, Any],
    ) -> bool:
        """
        Atomically assign a pending, unassigned order to a rider.

        The UPDATE only matches while ``status = pending AND rider_id IS NULL``,
        so among concurrent claimers exactly one sees a matched row.

        Returns:
            True if this call won the claim
        """
        stmt = (
            update(Order)
            .where(
                and_(
                    Order.id == order_id,
                    Order.status == OrderStatus.PENDING,
                    Order.rider_id.is_(None),
                )
            )
            .values(rider_id=rider_id, **values)
            .execution_options(synchronize_session=False)
        )
        return await self._conditional_write(stmt, "claim", order_id)

    async def apply_transition(
        self,
        order_id: uuid.UUID,
        expected_status: OrderStatus,
        values: dict[str, Any],
        expected_rider_id: Optional[uuid.UUID] = None,
    ) -> bool:
        """
        Apply transition values only if the order is still in ``expected_status``
        (and still held by ``expected_rider_id`` when given).

        Returns:
            True if the row was updated
        """
        conditions = [Order.id == order_id, Order.status == expected_status]
        if expected_rider_id is not None:
            conditions.append(Order.rider_id == expected_rider_id)

        stmt = (
            update(Order)
            .where(and_(*conditions))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return await self._conditional_write(stmt, "transition", order_id)

    async def _conditional_write(self, stmt, operation: str, order_id: uuid.UUID) -> bool:
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(
                "Conditional order write failed",
                operation=operation,
                order_id=str(order_id),
                error=str(e),
            )
            raise OrderUpdateError(
                "Failed to update order",
                operation=operation,
                order_id=str(order_id),
                error=str(e),
            ) from e

        matched = result.rowcount == 1
        logger.debug(
            "Conditional order write",
            operation=operation,
            order_id=str(order_id),
            matched=matched,
        )
        return matched

    async def record_status_change(
        self,
        order_id: uuid.UUID,
        from_status: Optional[OrderStatus],
        to_status: OrderStatus,
        changed_by: Optional[uuid.UUID],
        change_reason: Optional[str] = None,
    ) -> None:
        self.session.add(
            OrderStatusHistory(
                order_id=order_id,
                from_status=from_status,
                to_status=to_status,
                changed_by=changed_by,
                change_reason=change_reason,
            )
        )
        await self.session.flush()

    async def get_status_history(self, order_id: uuid.UUID) -> Sequence[OrderStatusHistory]:
        stmt = (
            select(OrderStatusHistory)
            .where(OrderStatusHistory.order_id == order_id)
            .order_by(OrderStatusHistory.created_at, OrderStatusHistory.id)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def touch_rider_last_order(self, rider_id: uuid.UUID, now: datetime) -> None:
        await self.session.execute(
            update(Profile)
            .where(Profile.id == rider_id)
            .values(last_order_at=now)
            .execution_options(synchronize_session=False)
        )

    async def credit_delivery(self, rider_id: uuid.UUID, delivery_fee: Decimal) -> None:
        """Increment the rider's delivery count and earnings in place."""
        await self.session.execute(
            update(Profile)
            .where(Profile.id == rider_id)
            .values(
                total_deliveries=Profile.total_deliveries + 1,
                total_earnings=Profile.total_earnings + delivery_fee,
            )
            .execution_options(synchronize_session=False)
        )

    async def get_rider_day_totals(
        self,
        rider_id: uuid.UUID,
        day_start: datetime,
    ) -> tuple[int, Decimal]:
        """
        Count and fee sum of orders the rider delivered since ``day_start``.
        """
        stmt = select(
            func.count(Order.id),
            func.coalesce(func.sum(Order.delivery_fee), 0),
        ).where(
            and_(
                Order.rider_id == rider_id,
                Order.status == OrderStatus.DELIVERED,
                Order.delivered_at >= day_start,
            )
        )
        try:
            result = await self.session.execute(stmt)
            count, fees = result.one()
        except SQLAlchemyError as e:
            raise OrderRepositoryError(
                "Failed to compute rider day totals",
                rider_id=str(rider_id),
                error=str(e),
            ) from e
        return int(count), Decimal(str(fees)).quantize(Decimal("0.01"))

    async def count_active_for_rider(self, rider_id: uuid.UUID) -> int:
        stmt = select(func.count(Order.id)).where(
            and_(
                Order.rider_id == rider_id,
                Order.status.in_(list(ACTIVE_STATUSES)),
            )
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())
