"""
Order Pydantic schemas for API request/response validation.

This module defines the schemas for order intake, lifecycle transitions and
the order card payloads rendered on the dispatch board and order lists.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    model_validator,
)

from rider_dispatch.services.orders.enums import DisplayStatus, OrderStatus


class OrderItemRequest(BaseModel):
    """Line item snapshot submitted at checkout."""

    model_config = ConfigDict(str_strip_whitespace=True)

    product_id: UUID = Field(..., description="Catalog product identifier")
    product_name: Optional[str] = Field(None, max_length=255)
    quantity: int = Field(..., gt=0, le=999, description="Quantity ordered")
    unit_price: Decimal = Field(
        ...,
        ge=0,
        max_digits=10,
        decimal_places=2,
        description="Unit price at order time",
    )


class OrderCreateRequest(BaseModel):
    """Minimal order intake request."""

    model_config = ConfigDict(str_strip_whitespace=True)

    items: list[OrderItemRequest] = Field(..., min_length=1, max_length=100)
    delivery_fee: Decimal = Field(
        default=Decimal("0.00"),
        ge=0,
        max_digits=10,
        decimal_places=2,
    )
    dropoff_address: Optional[str] = Field(None, max_length=500)
    dropoff_lat: Optional[float] = Field(None, ge=-90, le=90)
    dropoff_lng: Optional[float] = Field(None, ge=-180, le=180)
    landmark: Optional[str] = Field(None, max_length=255)
    payment_method: str = Field(default="cod", min_length=1, max_length=50)

    @model_validator(mode="after")
    def validate_destination(self) -> "OrderCreateRequest":
        """Destination coordinates are given together or not at all."""
        if (self.dropoff_lat is None) != (self.dropoff_lng is None):
            raise ValueError("dropoff_lat and dropoff_lng must be provided together")
        return self


class AdvanceOrderRequest(BaseModel):
    """Request to move an order to its next status."""

    next_status: OrderStatus = Field(..., description="Immediate successor status")


class CancelOrderRequest(BaseModel):
    """Request to cancel an order."""

    reason: Optional[str] = Field(None, max_length=255)


class PartyResponse(BaseModel):
    """Display fields of the customer or rider on an order card."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    display_name: str
    mobile: Optional[str] = None
    address: Optional[str] = None


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    product_id: UUID
    product_name: Optional[str] = None
    quantity: int
    unit_price: Decimal


class OrderResponse(BaseModel):
    """Order card response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    status: OrderStatus
    user_id: UUID
    rider_id: Optional[UUID] = None
    subtotal: Decimal
    delivery_fee: Decimal
    total_amount: Decimal
    dropoff_address: Optional[str] = None
    dropoff_lat: Optional[float] = None
    dropoff_lng: Optional[float] = None
    landmark: Optional[str] = None
    payment_method: str
    created_at: datetime
    confirmed_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    customer: Optional[PartyResponse] = None
    rider: Optional[PartyResponse] = None
    items: list[OrderItemResponse] = Field(default_factory=list)

    @computed_field
    @property
    def display_status(self) -> DisplayStatus:
        return self.status.display_status


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]
    count: int


class StatusHistoryResponse(BaseModel):
    """One recorded status change."""

    model_config = ConfigDict(from_attributes=True)

    from_status: Optional[OrderStatus] = None
    to_status: OrderStatus
    changed_by: Optional[UUID] = None
    change_reason: Optional[str] = None
    created_at: datetime
