"""
Rider location data access.

The current position is a single register on the rider's profile row,
written with a conditional UPDATE so an older sample can never overwrite a
newer one regardless of arrival order. The per-order trail is append-only.
"""

import uuid
from datetime import datetime
from typing import Any, Optional, Sequence

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rider_dispatch.core.logging import get_logger
from rider_dispatch.database.models.location import RiderLocationHistory
from rider_dispatch.database.models.profile import Profile

logger = get_logger(__name__)


class LocationRepositoryError(Exception):
    """Base exception for location repository errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class LocationRepository:
    """Repository for the rider position register and trail."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def update_current_if_newer(
        self,
        rider_id: uuid.UUID,
        lat: float,
        lng: float,
        timestamp_ms: int,
        stored_at: datetime,
    ) -> bool:
        """
        Write the rider's current position unless a newer sample is stored.

        Returns:
            True if the register now holds this sample
        """
        stmt = (
            update(Profile)
            .where(
                and_(
                    Profile.id == rider_id,
                    or_(
                        Profile.location_timestamp.is_(None),
                        Profile.location_timestamp <= timestamp_ms,
                    ),
                )
            )
            .values(
                lat=lat,
                lng=lng,
                location_timestamp=timestamp_ms,
                location_updated_at=stored_at,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(
                "Failed to store rider location",
                rider_id=str(rider_id),
                error=str(e),
            )
            raise LocationRepositoryError(
                "Failed to store rider location",
                rider_id=str(rider_id),
                error=str(e),
            ) from e
        return result.rowcount == 1

    async def append_history(
        self,
        rider_id: uuid.UUID,
        order_id: uuid.UUID,
        lat: float,
        lng: float,
        timestamp_ms: int,
    ) -> RiderLocationHistory:
        entry = RiderLocationHistory(
            rider_id=rider_id,
            order_id=order_id,
            lat=lat,
            lng=lng,
            timestamp=timestamp_ms,
        )
        self.session.add(entry)
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to append location history",
                rider_id=str(rider_id),
                order_id=str(order_id),
                error=str(e),
            )
            raise LocationRepositoryError(
                "Failed to append location history",
                rider_id=str(rider_id),
                order_id=str(order_id),
                error=str(e),
            ) from e
        return entry

    async def get_history(
        self,
        rider_id: uuid.UUID,
        order_id: Optional[uuid.UUID] = None,
        limit: Optional[int] = None,
    ) -> Sequence[RiderLocationHistory]:
        """Trail for a rider, optionally narrowed to one order, oldest first."""
        conditions = [RiderLocationHistory.rider_id == rider_id]
        if order_id is not None:
            conditions.append(RiderLocationHistory.order_id == order_id)

        stmt = (
            select(RiderLocationHistory)
            .where(and_(*conditions))
            .order_by(RiderLocationHistory.timestamp, RiderLocationHistory.created_at)
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        try:
            result = await self.session.execute(stmt)
            return result.scalars().all()
        except SQLAlchemyError as e:
            raise LocationRepositoryError(
                "Failed to fetch location history",
                rider_id=str(rider_id),
                error=str(e),
            ) from e
