"""Dispatch board schemas."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from rider_dispatch.schemas.orders import OrderResponse


class RiderStatsResponse(BaseModel):
    """Rider dashboard counters."""

    model_config = ConfigDict(from_attributes=True)

    active_orders: int
    completed_today: int
    earnings_today: Decimal
    total_deliveries: int
    total_earnings: Decimal
    daily_quota: int
    is_active: bool


class AvailabilityRequest(BaseModel):
    is_active: bool = Field(..., description="Whether the rider accepts new orders")


class BoardResponse(BaseModel):
    """Board state rebuilt after a dispatch action."""

    model_config = ConfigDict(from_attributes=True)

    order: Optional[OrderResponse] = None
    available: list[OrderResponse]
    mine: list[OrderResponse]
    stats: RiderStatsResponse
