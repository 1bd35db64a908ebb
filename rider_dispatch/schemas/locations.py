"""
Rider location schemas.

Wire names follow the rider app payload (``riderId``, ``orderId``). Coordinates
are optional at the schema level so a missing value is reported by the
location service as a validation error rather than a schema error.
"""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class LocationPoint(BaseModel):
    lat: Optional[float] = None
    lng: Optional[float] = None
    timestamp: Optional[int] = Field(None, ge=0, description="Epoch milliseconds")


class LocationUpdateRequest(BaseModel):
    """Location sample posted by a rider device."""

    model_config = ConfigDict(populate_by_name=True)

    rider_id: UUID = Field(..., alias="riderId")
    order_id: Optional[UUID] = Field(None, alias="orderId")
    location: Optional[LocationPoint] = None


class LocationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    lat: float
    lng: float
    timestamp: int


class LocationUpdateResponse(BaseModel):
    success: bool = True
    accepted: bool
    location: LocationResponse


class CurrentLocationResponse(BaseModel):
    location: LocationResponse


class LocationHistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    order_id: UUID
    lat: float
    lng: float
    timestamp: int


class LocationHistoryResponse(BaseModel):
    rider_id: UUID
    order_id: Optional[UUID] = None
    points: list[LocationHistoryEntry]
