"""
FastAPI dependencies for authentication, authorization and services.

This module provides dependency functions for JWT authentication, role-based
access control and construction of the per-request domain services.
"""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from rider_dispatch.core.logging import get_logger, set_actor_id
from rider_dispatch.core.security import TokenError, decode_token
from rider_dispatch.database.connection import get_db
from rider_dispatch.database.models.profile import Profile, UserRole
from rider_dispatch.services.dispatch.service import DispatchBoard
from rider_dispatch.services.locations.service import LocationService
from rider_dispatch.services.orders.service import OrderLifecycleService
from rider_dispatch.services.profiles.repository import ProfileRepository
from rider_dispatch.services.realtime.change_feed import ChangeFeed, get_change_feed
from rider_dispatch.services.tracking.service import TrackingService

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_profile(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Profile:
    """
    Validate the bearer token and load the caller's profile.

    Raises:
        HTTPException: 401 if the token is missing, invalid or the profile is unknown
    """
    if credentials is None:
        logger.warning("Authentication failed: No credentials provided")
        raise _credentials_exception()

    try:
        payload = decode_token(credentials.credentials)
    except TokenError as e:
        logger.warning("Authentication failed", code=e.code)
        raise _credentials_exception()

    profile_id = payload.get("sub")
    try:
        subject = UUID(profile_id)
    except (TypeError, ValueError, AttributeError):
        logger.warning("Authentication failed: Invalid subject", subject=profile_id)
        raise _credentials_exception()

    profile = await ProfileRepository(db).get_by_id(subject)

    if profile is None:
        logger.warning("Authentication failed: Profile not found", profile_id=profile_id)
        raise _credentials_exception()

    set_actor_id(str(profile.id))
    return profile


def require_role(*allowed_roles: UserRole):
    """
    Create a dependency that requires specific profile roles.

    Example:
        @router.get("/dispatch/orders/available")
        async def list_available(rider: Profile = Depends(require_role(UserRole.RIDER))):
            ...
    """

    async def role_checker(
        profile: Annotated[Profile, Depends(get_current_profile)],
    ) -> Profile:
        if profile.role not in allowed_roles:
            logger.warning(
                "Access denied: Insufficient permissions",
                profile_id=str(profile.id),
                role=profile.role.value,
                required_roles=[r.value for r in allowed_roles],
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return profile

    return role_checker


def get_feed(request: Request) -> ChangeFeed:
    return getattr(request.app.state, "change_feed", None) or get_change_feed()


async def get_lifecycle_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    feed: Annotated[ChangeFeed, Depends(get_feed)],
) -> OrderLifecycleService:
    return OrderLifecycleService(db, change_feed=feed)


async def get_dispatch_board(
    db: Annotated[AsyncSession, Depends(get_db)],
    feed: Annotated[ChangeFeed, Depends(get_feed)],
) -> DispatchBoard:
    return DispatchBoard(db, change_feed=feed)


async def get_location_service(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> LocationService:
    return LocationService(db)


async def get_tracking_service(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TrackingService:
    return TrackingService(db)


CurrentProfile = Annotated[Profile, Depends(get_current_profile)]
CurrentRider = Annotated[Profile, Depends(require_role(UserRole.RIDER))]
CurrentCustomer = Annotated[Profile, Depends(require_role(UserRole.CUSTOMER))]
