"""Live tracking schemas."""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from rider_dispatch.services.orders.enums import OrderStatus
from rider_dispatch.services.tracking.service import TrackingSnapshot


class Point(BaseModel):
    lat: float
    lng: float


class TrackingDetail(BaseModel):
    order_id: UUID
    status: OrderStatus
    rider_location: Point
    destination: Point
    distance_km: float
    eta_minutes: int
    timestamp: int

    @classmethod
    def from_snapshot(cls, snapshot: TrackingSnapshot) -> "TrackingDetail":
        return cls(
            order_id=snapshot.order_id,
            status=snapshot.status,
            rider_location=Point(lat=snapshot.rider_location.lat, lng=snapshot.rider_location.lng),
            destination=Point(lat=snapshot.destination.lat, lng=snapshot.destination.lng),
            distance_km=snapshot.distance_km,
            eta_minutes=snapshot.eta_minutes,
            timestamp=snapshot.timestamp,
        )


class TrackingResponse(BaseModel):
    tracking: Optional[TrackingDetail] = None
