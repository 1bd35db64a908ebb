"""
Live tracking snapshots for customers.

A snapshot joins an order's destination with its rider's latest stored
position and derives distance and ETA. No snapshot exists unless the order
is en route and every input is present.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from rider_dispatch.core.config import get_settings
from rider_dispatch.core.logging import get_logger
from rider_dispatch.database.models.order import Order
from rider_dispatch.services.errors import OrderNotFoundError
from rider_dispatch.services.orders.enums import OrderStatus
from rider_dispatch.services.orders.repository import OrderRepository
from rider_dispatch.services.tracking.geo import (
    Coordinates,
    eta_minutes,
    haversine_km,
    round_half_up,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class TrackingSnapshot:
    order_id: uuid.UUID
    status: OrderStatus
    rider_location: Coordinates
    destination: Coordinates
    distance_km: float
    eta_minutes: int
    timestamp: int


def build_snapshot(order: Order, speed_kmh: float) -> Optional[TrackingSnapshot]:
    """
    Derive a snapshot from an order with its rider loaded.

    Returns None when the order is not en route, has no rider, the rider has
    no stored position, or the order has no destination coordinates.
    """
    if not order.status.is_en_route():
        return None
    rider = order.rider
    if rider is None or not rider.has_location or rider.location_timestamp is None:
        return None
    if not order.has_destination:
        return None

    rider_location = Coordinates(rider.lat, rider.lng)
    destination = Coordinates(order.dropoff_lat, order.dropoff_lng)
    distance = haversine_km(rider_location, destination)

    return TrackingSnapshot(
        order_id=order.id,
        status=order.status,
        rider_location=rider_location,
        destination=destination,
        distance_km=round_half_up(distance, 2),
        eta_minutes=eta_minutes(distance, speed_kmh),
        timestamp=rider.location_timestamp,
    )


class TrackingService:
    """Serves tracking snapshots for orders."""

    def __init__(self, session: AsyncSession, speed_kmh: Optional[float] = None):
        self.repository = OrderRepository(session)
        self.speed_kmh = speed_kmh or get_settings().average_delivery_speed_kmh

    async def snapshot(self, order_id: uuid.UUID) -> Optional[TrackingSnapshot]:
        """
        Current tracking snapshot for an order.

        Raises:
            OrderNotFoundError: If the order does not exist
        """
        order = await self.repository.get_order_by_id(order_id)
        if order is None:
            raise OrderNotFoundError("Order not found", order_id=str(order_id))

        snapshot = build_snapshot(order, self.speed_kmh)
        logger.debug(
            "Tracking snapshot computed",
            order_id=str(order_id),
            status=order.status.value,
            available=snapshot is not None,
        )
        return snapshot
