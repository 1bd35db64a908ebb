"""
Rider location API endpoints.

Ingestion of position samples reported by rider devices and reads of the
latest position and per-order trail.
"""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from rider_dispatch.api.deps import CurrentProfile, get_location_service
from rider_dispatch.api.errors import to_http_exception
from rider_dispatch.core.config import get_settings
from rider_dispatch.core.logging import get_logger
from rider_dispatch.core.rate_limit import limiter
from rider_dispatch.database.models.profile import Profile, UserRole
from rider_dispatch.schemas.locations import (
    CurrentLocationResponse,
    LocationHistoryEntry,
    LocationHistoryResponse,
    LocationResponse,
    LocationUpdateRequest,
    LocationUpdateResponse,
)
from rider_dispatch.services.errors import DispatchError
from rider_dispatch.services.locations.repository import LocationRepositoryError
from rider_dispatch.services.locations.service import LocationService

logger = get_logger(__name__)
settings = get_settings()

router = APIRouter(prefix="/riders", tags=["locations"])

Locations = Annotated[LocationService, Depends(get_location_service)]


def _ensure_self_or_admin(profile: Profile, rider_id: UUID) -> None:
    match profile.role:
        case UserRole.ADMIN:
            return
        case UserRole.RIDER if profile.id == rider_id:
            return
        case UserRole.RIDER | UserRole.CUSTOMER:
            logger.warning(
                "Access denied: location of another rider",
                profile_id=str(profile.id),
                rider_id=str(rider_id),
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not authorized for this rider",
            )


@router.post(
    "/location",
    response_model=LocationUpdateResponse,
    summary="Report rider location",
)
@limiter.limit(settings.location_rate_limit)
async def update_location(
    request: Request,
    body: LocationUpdateRequest,
    profile: CurrentProfile,
    locations: Locations,
) -> LocationUpdateResponse:
    """
    Store a rider position sample.

    Raises:
        HTTPException: 400 on missing or invalid coordinates, 404 on an
            unknown order or rider, 500 on storage failure
    """
    _ensure_self_or_admin(profile, body.rider_id)

    point = body.location
    try:
        result = await locations.ingest(
            rider_id=body.rider_id,
            lat=point.lat if point else None,
            lng=point.lng if point else None,
            timestamp_ms=point.timestamp if point else None,
            order_id=body.order_id,
        )
    except DispatchError as e:
        raise to_http_exception(e) from e
    except LocationRepositoryError as e:
        logger.error("Failed to update rider location", rider_id=str(body.rider_id), **e.context)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update rider location",
        ) from e

    return LocationUpdateResponse(
        success=True,
        accepted=result.accepted,
        location=LocationResponse.model_validate(result.location),
    )


@router.get(
    "/location",
    response_model=CurrentLocationResponse,
    summary="Get a rider's current location",
)
async def get_location(
    profile: CurrentProfile,
    locations: Locations,
    rider_id: Optional[UUID] = Query(None, alias="riderId"),
) -> CurrentLocationResponse:
    if rider_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Rider ID is required",
        )

    try:
        fix = await locations.get_current(rider_id)
    except DispatchError as e:
        raise to_http_exception(e) from e

    return CurrentLocationResponse(location=LocationResponse.model_validate(fix))


@router.get(
    "/{rider_id}/location/history",
    response_model=LocationHistoryResponse,
    summary="Get a rider's location trail",
)
async def get_location_history(
    rider_id: UUID,
    profile: CurrentProfile,
    locations: Locations,
    order_id: Optional[UUID] = Query(None, alias="orderId"),
    limit: Optional[int] = Query(None, ge=1, le=1000),
) -> LocationHistoryResponse:
    _ensure_self_or_admin(profile, rider_id)

    points = await locations.get_history(rider_id, order_id=order_id, limit=limit)
    return LocationHistoryResponse(
        rider_id=rider_id,
        order_id=order_id,
        points=[LocationHistoryEntry.model_validate(p) for p in points],
    )
