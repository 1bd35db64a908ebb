"""
Rider location store.

Accepts position samples reported by rider devices, keeps the latest sample
per rider and records the trail of samples reported while working an order.
"""

import math
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rider_dispatch.core.logging import get_logger
from rider_dispatch.database.models.location import RiderLocationHistory
from rider_dispatch.database.models.order import Order
from rider_dispatch.services.errors import (
    LocationValidationError,
    OrderNotFoundError,
    RiderNotFoundError,
)
from rider_dispatch.services.locations.repository import (
    LocationRepository,
    LocationRepositoryError,
)
from rider_dispatch.services.profiles.repository import ProfileRepository

logger = get_logger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class LocationFix:
    """A rider position at a point in time (epoch milliseconds)."""

    lat: float
    lng: float
    timestamp: int


@dataclass(frozen=True)
class IngestResult:
    """Outcome of storing one sample.

    ``accepted`` is False when a newer sample was already stored; the sample
    may still have been appended to the order trail.
    """

    accepted: bool
    location: LocationFix


def validate_coordinates(lat: Optional[float], lng: Optional[float]) -> tuple[float, float]:
    """
    Check a coordinate pair is present, finite and within range.

    Raises:
        LocationValidationError: If either coordinate is missing or invalid
    """
    if lat is None or lng is None:
        raise LocationValidationError("Missing required fields: lat and lng")

    lat, lng = float(lat), float(lng)
    if not (math.isfinite(lat) and math.isfinite(lng)):
        raise LocationValidationError("Coordinates must be finite numbers", lat=lat, lng=lng)
    if not -90.0 <= lat <= 90.0:
        raise LocationValidationError("Latitude must be between -90 and 90", lat=lat)
    if not -180.0 <= lng <= 180.0:
        raise LocationValidationError("Longitude must be between -180 and 180", lng=lng)
    return lat, lng


class LocationService:
    """Ingests and serves rider positions."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.repository = LocationRepository(session)
        self.profiles = ProfileRepository(session)

    async def ingest(
        self,
        rider_id: uuid.UUID,
        lat: Optional[float],
        lng: Optional[float],
        timestamp_ms: Optional[int] = None,
        order_id: Optional[uuid.UUID] = None,
    ) -> IngestResult:
        """
        Store one position sample.

        Args:
            rider_id: Reporting rider
            lat: Latitude in degrees
            lng: Longitude in degrees
            timestamp_ms: Sample time in epoch milliseconds, defaults to now
            order_id: Order the rider is working, if any

        Returns:
            IngestResult with the stored sample

        Raises:
            LocationValidationError: If coordinates are missing or out of range
            RiderNotFoundError: If the rider profile does not exist
            OrderNotFoundError: If order_id does not resolve
        """
        lat, lng = validate_coordinates(lat, lng)
        if timestamp_ms is None:
            timestamp_ms = now_ms()

        try:
            rider = await self.profiles.get_by_id(rider_id)
            if rider is None or not rider.is_rider:
                raise RiderNotFoundError("Rider not found", rider_id=str(rider_id))

            if order_id is not None:
                exists = await self.session.scalar(select(Order.id).where(Order.id == order_id))
                if exists is None:
                    raise OrderNotFoundError("Order not found", order_id=str(order_id))

            accepted = await self.repository.update_current_if_newer(
                rider_id,
                lat,
                lng,
                timestamp_ms,
                stored_at=datetime.now(timezone.utc),
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        if order_id is not None:
            await self._append_trail(rider_id, order_id, lat, lng, timestamp_ms)

        if not accepted:
            logger.debug(
                "Stale location sample ignored for current position",
                rider_id=str(rider_id),
                timestamp=timestamp_ms,
            )

        return IngestResult(
            accepted=accepted,
            location=LocationFix(lat=lat, lng=lng, timestamp=timestamp_ms),
        )

    async def _append_trail(
        self,
        rider_id: uuid.UUID,
        order_id: uuid.UUID,
        lat: float,
        lng: float,
        timestamp_ms: int,
    ) -> bool:
        """Best-effort trail append; the current position is already committed."""
        try:
            await self.repository.append_history(rider_id, order_id, lat, lng, timestamp_ms)
            await self.session.commit()
        except LocationRepositoryError as e:
            await self.session.rollback()
            logger.warning(
                "Location trail not recorded",
                rider_id=str(rider_id),
                order_id=str(order_id),
                error=e.context.get("error"),
            )
            return False
        return True

    async def get_current(self, rider_id: uuid.UUID) -> LocationFix:
        """
        Latest stored position of a rider.

        Raises:
            RiderNotFoundError: If the rider or its position is missing
        """
        rider = await self.profiles.get_by_id(rider_id)
        if rider is None:
            raise RiderNotFoundError("Rider not found", rider_id=str(rider_id))
        if not rider.has_location or rider.location_timestamp is None:
            raise RiderNotFoundError("Rider location not found", rider_id=str(rider_id))
        return LocationFix(lat=rider.lat, lng=rider.lng, timestamp=rider.location_timestamp)

    async def get_history(
        self,
        rider_id: uuid.UUID,
        order_id: Optional[uuid.UUID] = None,
        limit: Optional[int] = None,
    ) -> Sequence[RiderLocationHistory]:
        return await self.repository.get_history(rider_id, order_id=order_id, limit=limit)
