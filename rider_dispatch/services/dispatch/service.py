"""
Rider dispatch board.

Composes the views a rider works from (the pool of available orders, the
orders they hold, their stats and history) and routes board actions into the
order lifecycle service. After every action the board is rebuilt from the
database so the caller never renders optimistic state.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from rider_dispatch.core.config import get_settings
from rider_dispatch.core.logging import get_logger
from rider_dispatch.database.models.order import Order
from rider_dispatch.database.models.profile import Profile
from rider_dispatch.services.errors import (
    InvalidTransitionError,
    OrderPermissionError,
    RiderNotFoundError,
)
from rider_dispatch.services.orders.enums import ACTIVE_STATUSES, OrderAction, OrderStatus
from rider_dispatch.services.orders.repository import OrderRepository
from rider_dispatch.services.orders.service import OrderLifecycleService
from rider_dispatch.services.profiles.repository import ProfileRepository
from rider_dispatch.services.realtime.change_feed import ChangeFeed

logger = get_logger(__name__)


@dataclass(frozen=True)
class RiderStats:
    active_orders: int
    completed_today: int
    earnings_today: Decimal
    total_deliveries: int
    total_earnings: Decimal
    daily_quota: int
    is_active: bool


@dataclass(frozen=True)
class BoardSnapshot:
    available: Sequence[Order]
    mine: Sequence[Order]
    stats: RiderStats
    order: Optional[Order] = None


def start_of_day(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


class DispatchBoard:
    """Rider-facing dispatch views and actions."""

    def __init__(
        self,
        session: AsyncSession,
        change_feed: Optional[ChangeFeed] = None,
        page_size: Optional[int] = None,
    ):
        self.session = session
        self.orders = OrderRepository(session)
        self.profiles = ProfileRepository(session)
        self.lifecycle = OrderLifecycleService(session, change_feed=change_feed)
        self.page_size = page_size or get_settings().dispatch_page_size

    async def _require_rider(self, rider_id: uuid.UUID) -> Profile:
        rider = await self.profiles.get_by_id(rider_id)
        if rider is None:
            raise RiderNotFoundError("Rider not found", rider_id=str(rider_id))
        if not rider.is_rider:
            raise OrderPermissionError(
                "Only riders can use the dispatch board",
                profile_id=str(rider_id),
                role=rider.role.value,
            )
        return rider

    async def list_available(self, rider_id: uuid.UUID) -> Sequence[Order]:
        """Pending, unassigned orders newest first; empty while the rider is inactive."""
        rider = await self._require_rider(rider_id)
        if not rider.is_active:
            return []
        return await self.orders.list_available(self.page_size)

    async def list_mine(self, rider_id: uuid.UUID) -> Sequence[Order]:
        await self._require_rider(rider_id)
        return await self.orders.list_for_rider(rider_id, statuses=ACTIVE_STATUSES)

    async def ride_history(self, rider_id: uuid.UUID, limit: Optional[int] = None) -> Sequence[Order]:
        await self._require_rider(rider_id)
        return await self.orders.list_for_rider(rider_id, limit=limit)

    async def rider_stats(self, rider_id: uuid.UUID) -> RiderStats:
        rider = await self._require_rider(rider_id)
        active = await self.orders.count_active_for_rider(rider_id)
        completed_today, earnings_today = await self.orders.get_rider_day_totals(
            rider_id, start_of_day()
        )
        return RiderStats(
            active_orders=active,
            completed_today=completed_today,
            earnings_today=earnings_today,
            total_deliveries=rider.total_deliveries,
            total_earnings=rider.total_earnings,
            daily_quota=rider.daily_quota,
            is_active=rider.is_active,
        )

    async def set_availability(self, rider_id: uuid.UUID, is_active: bool) -> RiderStats:
        """Toggle whether the rider is accepting new orders."""
        await self._require_rider(rider_id)
        try:
            await self.profiles.set_availability(rider_id, is_active)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        logger.info("Rider availability changed", rider_id=str(rider_id), is_active=is_active)
        return await self.rider_stats(rider_id)

    async def snapshot(self, rider_id: uuid.UUID, order: Optional[Order] = None) -> BoardSnapshot:
        return BoardSnapshot(
            available=await self.list_available(rider_id),
            mine=await self.list_mine(rider_id),
            stats=await self.rider_stats(rider_id),
            order=order,
        )

    async def perform(
        self,
        action: OrderAction,
        order_id: uuid.UUID,
        rider_id: uuid.UUID,
        next_status: Optional[OrderStatus] = None,
    ) -> BoardSnapshot:
        """
        Run a board action and return the rebuilt board.

        Errors from the lifecycle propagate unchanged and leave the board
        untouched.

        Raises:
            InvalidTransitionError: If advance is requested without next_status
        """
        await self._require_rider(rider_id)

        match action:
            case OrderAction.CLAIM:
                order = await self.lifecycle.claim(order_id, rider_id)
            case OrderAction.PASS:
                order = await self.lifecycle.pass_order(order_id, rider_id)
            case OrderAction.ADVANCE:
                if next_status is None:
                    current = await self.lifecycle.get_order(order_id)
                    raise InvalidTransitionError(
                        "next_status is required to advance",
                        current_state=current.status,
                        target_state=None,
                        order_id=str(order_id),
                    )
                order = await self.lifecycle.advance(order_id, rider_id, next_status)
            case OrderAction.CANCEL:
                order = await self.lifecycle.cancel(order_id, rider_id)

        logger.info(
            "Dispatch action performed",
            action=action.value,
            order_id=str(order_id),
            rider_id=str(rider_id),
            status=order.status.value,
        )
        return await self.snapshot(rider_id, order=order)
