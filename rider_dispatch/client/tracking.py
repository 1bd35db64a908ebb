"""
Customer-side live tracking poller.

Polls the assigned rider's latest position while the order is en route and
derives distance and ETA against the order destination. Whenever there is no
fresh data, or the order is not en route, there is no estimate at all.
"""

import asyncio
import uuid
from dataclasses import dataclass
from typing import Optional

import httpx

from rider_dispatch.core.config import get_settings
from rider_dispatch.core.logging import get_logger
from rider_dispatch.services.orders.enums import OrderStatus
from rider_dispatch.services.tracking.geo import (
    Coordinates,
    eta_minutes,
    haversine_km,
    round_half_up,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class TrackingEstimate:
    rider_location: Coordinates
    distance_km: float
    eta_minutes: int
    timestamp: int


class TrackingPoller:
    """Polls ``GET /riders/location`` for one order's rider."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        status: OrderStatus,
        rider_id: Optional[uuid.UUID],
        destination: Optional[Coordinates],
        interval_ms: Optional[int] = None,
        speed_kmh: Optional[float] = None,
        access_token: Optional[str] = None,
    ):
        settings = get_settings()
        self.client = client
        self.status = status
        self.rider_id = rider_id
        self.destination = destination
        self.interval = (interval_ms or settings.location_poll_interval_ms) / 1000
        self.speed_kmh = speed_kmh or settings.average_delivery_speed_kmh
        self.endpoint = f"{settings.api_v1_prefix}/riders/location"
        self._headers = {"Authorization": f"Bearer {access_token}"} if access_token else {}

        self.estimate: Optional[TrackingEstimate] = None
        self.polls = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def should_poll(self) -> bool:
        return self.status.is_en_route() and self.rider_id is not None

    @property
    def is_polling(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_polling or not self.should_poll:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def set_status(self, status: OrderStatus) -> None:
        """Follow an order status change; leaving the en-route phase ends polling."""
        self.status = status
        if not self.should_poll:
            self.estimate = None
            await self.stop()
        else:
            self.start()

    async def _run(self) -> None:
        while True:
            await self.poll_once()
            await asyncio.sleep(self.interval)

    async def poll_once(self) -> Optional[TrackingEstimate]:
        """Fetch the rider position once and recompute the estimate."""
        self.polls += 1
        if not self.should_poll or self.destination is None:
            self.estimate = None
            return None

        try:
            response = await self.client.get(
                self.endpoint,
                params={"riderId": str(self.rider_id)},
                headers=self._headers,
            )
            response.raise_for_status()
            location = response.json().get("location")
            rider_location = Coordinates(float(location["lat"]), float(location["lng"]))
            timestamp = int(location["timestamp"])
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.debug(
                "No rider location this cycle",
                rider_id=str(self.rider_id),
                error=str(e),
            )
            self.estimate = None
            return None

        distance = haversine_km(rider_location, self.destination)
        self.estimate = TrackingEstimate(
            rider_location=rider_location,
            distance_km=round_half_up(distance, 2),
            eta_minutes=eta_minutes(distance, self.speed_kmh),
            timestamp=timestamp,
        )
        return self.estimate
