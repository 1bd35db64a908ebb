"""
Dispatch board API endpoints.

Rider-facing lists, stats and availability, the four order actions, and the
order change WebSocket that tells boards when to refresh.
"""

import asyncio
from typing import Annotated, Optional
from uuid import UUID

from fastapi import (
    APIRouter,
    Depends,
    Query,
    WebSocket,
    WebSocketDisconnect,
    status,
)

from rider_dispatch.api.deps import CurrentRider, get_dispatch_board
from rider_dispatch.api.errors import to_http_exception
from rider_dispatch.core.logging import get_logger
from rider_dispatch.core.security import get_token_subject
from rider_dispatch.schemas.dispatch import (
    AvailabilityRequest,
    BoardResponse,
    RiderStatsResponse,
)
from rider_dispatch.schemas.orders import (
    AdvanceOrderRequest,
    OrderListResponse,
    OrderResponse,
)
from rider_dispatch.services.dispatch.service import DispatchBoard
from rider_dispatch.services.errors import DispatchError
from rider_dispatch.services.orders.enums import OrderAction, OrderStatus
from rider_dispatch.services.realtime.change_feed import ChangeEventType, get_change_feed

logger = get_logger(__name__)

router = APIRouter(prefix="/dispatch", tags=["dispatch"])

Board = Annotated[DispatchBoard, Depends(get_dispatch_board)]


def _order_list(orders) -> OrderListResponse:
    return OrderListResponse(
        orders=[OrderResponse.model_validate(o) for o in orders],
        count=len(orders),
    )


@router.get("/orders/available", response_model=OrderListResponse)
async def list_available(rider: CurrentRider, board: Board) -> OrderListResponse:
    """Pending, unassigned orders newest first; empty while the rider is inactive."""
    try:
        orders = await board.list_available(rider.id)
    except DispatchError as e:
        raise to_http_exception(e) from e
    return _order_list(orders)


@router.get("/orders/mine", response_model=OrderListResponse)
async def list_mine(rider: CurrentRider, board: Board) -> OrderListResponse:
    try:
        orders = await board.list_mine(rider.id)
    except DispatchError as e:
        raise to_http_exception(e) from e
    return _order_list(orders)


@router.get("/history", response_model=OrderListResponse)
async def ride_history(
    rider: CurrentRider,
    board: Board,
    limit: Optional[int] = Query(None, ge=1, le=500),
) -> OrderListResponse:
    try:
        orders = await board.ride_history(rider.id, limit=limit)
    except DispatchError as e:
        raise to_http_exception(e) from e
    return _order_list(orders)


@router.get("/stats", response_model=RiderStatsResponse)
async def rider_stats(rider: CurrentRider, board: Board) -> RiderStatsResponse:
    try:
        stats = await board.rider_stats(rider.id)
    except DispatchError as e:
        raise to_http_exception(e) from e
    return RiderStatsResponse.model_validate(stats)


@router.put("/availability", response_model=RiderStatsResponse)
async def set_availability(
    body: AvailabilityRequest,
    rider: CurrentRider,
    board: Board,
) -> RiderStatsResponse:
    try:
        stats = await board.set_availability(rider.id, body.is_active)
    except DispatchError as e:
        raise to_http_exception(e) from e
    return RiderStatsResponse.model_validate(stats)


async def _perform(
    board: DispatchBoard,
    action: OrderAction,
    order_id: UUID,
    rider_id: UUID,
    next_status: Optional[OrderStatus] = None,
) -> BoardResponse:
    try:
        snapshot = await board.perform(action, order_id, rider_id, next_status=next_status)
    except DispatchError as e:
        raise to_http_exception(e) from e
    return BoardResponse.model_validate(snapshot)


@router.post("/orders/{order_id}/claim", response_model=BoardResponse)
async def claim_order(order_id: UUID, rider: CurrentRider, board: Board) -> BoardResponse:
    """
    Claim a pending order.

    Raises:
        HTTPException: 404 if the order does not exist, 409 if another rider
            already holds it, 403 if the rider is not accepting orders
    """
    return await _perform(board, OrderAction.CLAIM, order_id, rider.id)


@router.post("/orders/{order_id}/pass", response_model=BoardResponse)
async def pass_order(order_id: UUID, rider: CurrentRider, board: Board) -> BoardResponse:
    return await _perform(board, OrderAction.PASS, order_id, rider.id)


@router.post("/orders/{order_id}/advance", response_model=BoardResponse)
async def advance_order(
    order_id: UUID,
    body: AdvanceOrderRequest,
    rider: CurrentRider,
    board: Board,
) -> BoardResponse:
    return await _perform(
        board, OrderAction.ADVANCE, order_id, rider.id, next_status=body.next_status
    )


@router.post("/orders/{order_id}/cancel", response_model=BoardResponse)
async def cancel_order(order_id: UUID, rider: CurrentRider, board: Board) -> BoardResponse:
    return await _perform(board, OrderAction.CANCEL, order_id, rider.id)


def _parse_event_types(raw: Optional[str]) -> Optional[set[ChangeEventType]]:
    if not raw:
        return None
    return {ChangeEventType(part.strip().upper()) for part in raw.split(",") if part.strip()}


@router.websocket("/changes")
async def order_changes(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    events: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
) -> None:
    """
    Stream order change signals.

    Query parameters: ``token`` (access token), ``events`` (comma separated
    INSERT/UPDATE) and ``status`` (only events whose new status matches).
    Each message is ``{"event", "order_id", "status"}``.
    """
    if token is None or get_token_subject(token) is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    try:
        event_types = _parse_event_types(events)
        order_status = OrderStatus.from_string(status_filter) if status_filter else None
    except ValueError:
        await websocket.close(code=status.WS_1003_UNSUPPORTED_DATA)
        return

    feed = getattr(websocket.app.state, "change_feed", None) or get_change_feed()
    await websocket.accept()

    subscription = feed.subscribe(event_types, status=order_status)
    receiver = asyncio.create_task(websocket.receive_text())
    getter = asyncio.create_task(subscription.get())
    try:
        while True:
            done, _ = await asyncio.wait(
                {getter, receiver}, return_when=asyncio.FIRST_COMPLETED
            )
            if getter in done:
                event = getter.result()
                if event is None:
                    break
                await websocket.send_json(event.to_dict())
                getter = asyncio.create_task(subscription.get())
            if receiver in done:
                receiver.result()
                receiver = asyncio.create_task(websocket.receive_text())
    except WebSocketDisconnect:
        logger.debug("Change feed client disconnected")
    finally:
        subscription.close()
        getter.cancel()
        receiver.cancel()
