"""
Order API endpoints.

Minimal order intake for the checkout flow, order detail and status
history, customer/admin cancellation and the live tracking snapshot.
"""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from rider_dispatch.api.deps import (
    CurrentCustomer,
    CurrentProfile,
    get_lifecycle_service,
    get_tracking_service,
)
from rider_dispatch.api.errors import to_http_exception
from rider_dispatch.core.logging import get_logger
from rider_dispatch.database.models.order import Order
from rider_dispatch.database.models.profile import Profile, UserRole
from rider_dispatch.schemas.orders import (
    CancelOrderRequest,
    OrderCreateRequest,
    OrderResponse,
    StatusHistoryResponse,
)
from rider_dispatch.schemas.tracking import TrackingDetail, TrackingResponse
from rider_dispatch.services.errors import DispatchError
from rider_dispatch.services.orders.enums import OrderStatus
from rider_dispatch.services.orders.service import OrderLifecycleService
from rider_dispatch.services.tracking.service import TrackingService

logger = get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])

Lifecycle = Annotated[OrderLifecycleService, Depends(get_lifecycle_service)]
Tracking = Annotated[TrackingService, Depends(get_tracking_service)]


def _can_view(profile: Profile, order: Order) -> bool:
    match profile.role:
        case UserRole.ADMIN:
            return True
        case UserRole.CUSTOMER:
            return order.user_id == profile.id
        case UserRole.RIDER:
            return order.rider_id == profile.id or order.status == OrderStatus.PENDING


async def _load_visible_order(
    lifecycle: OrderLifecycleService,
    order_id: UUID,
    profile: Profile,
) -> Order:
    try:
        order = await lifecycle.get_order(order_id)
    except DispatchError as e:
        raise to_http_exception(e) from e

    if not _can_view(profile, order):
        logger.warning(
            "Access denied: order not visible to profile",
            order_id=str(order_id),
            profile_id=str(profile.id),
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to access this order",
        )
    return order


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place an order",
)
async def create_order(
    body: OrderCreateRequest,
    customer: CurrentCustomer,
    lifecycle: Lifecycle,
) -> OrderResponse:
    """
    Persist a pending order and notify dispatch boards.

    Raises:
        HTTPException: 422 on an invalid payload
    """
    logger.info("Creating order", customer_id=str(customer.id), item_count=len(body.items))
    try:
        order = await lifecycle.create_order(
            customer_id=customer.id,
            items=[item.model_dump() for item in body.items],
            delivery_fee=body.delivery_fee,
            dropoff_address=body.dropoff_address,
            dropoff_lat=body.dropoff_lat,
            dropoff_lng=body.dropoff_lng,
            landmark=body.landmark,
            payment_method=body.payment_method,
        )
    except DispatchError as e:
        raise to_http_exception(e) from e
    return OrderResponse.model_validate(order)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: UUID,
    profile: CurrentProfile,
    lifecycle: Lifecycle,
) -> OrderResponse:
    order = await _load_visible_order(lifecycle, order_id, profile)
    return OrderResponse.model_validate(order)


@router.get("/{order_id}/history", response_model=list[StatusHistoryResponse])
async def get_order_history(
    order_id: UUID,
    profile: CurrentProfile,
    lifecycle: Lifecycle,
) -> list[StatusHistoryResponse]:
    await _load_visible_order(lifecycle, order_id, profile)
    history = await lifecycle.get_status_history(order_id)
    return [StatusHistoryResponse.model_validate(h) for h in history]


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: UUID,
    profile: CurrentProfile,
    lifecycle: Lifecycle,
    body: Optional[CancelOrderRequest] = None,
) -> OrderResponse:
    """
    Cancel an order as its customer or as an admin.

    Raises:
        HTTPException: 404 if not found, 403 if not permitted, 409 if terminal
    """
    try:
        order = await lifecycle.cancel(
            order_id,
            profile.id,
            reason=body.reason if body else None,
        )
    except DispatchError as e:
        raise to_http_exception(e) from e
    return OrderResponse.model_validate(order)


@router.get("/{order_id}/tracking", response_model=TrackingResponse)
async def get_tracking(
    order_id: UUID,
    profile: CurrentProfile,
    lifecycle: Lifecycle,
    tracking: Tracking,
) -> TrackingResponse:
    """Live rider position, distance and ETA; ``tracking`` is null when unavailable."""
    await _load_visible_order(lifecycle, order_id, profile)
    try:
        snapshot = await tracking.snapshot(order_id)
    except DispatchError as e:
        raise to_http_exception(e) from e

    if snapshot is None:
        return TrackingResponse(tracking=None)
    return TrackingResponse(tracking=TrackingDetail.from_snapshot(snapshot))
