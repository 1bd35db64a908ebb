"""
Rider location reporter.

While a rider session is tracking, the reporter samples the geolocation
source through two channels at once (a continuous watch and a fixed interval
poll), keeps the latest fix in memory and forwards every fix to the location
ingestion endpoint. Forwarding is best effort: failures are logged and
counted but never stop sampling.
"""

import asyncio
import uuid
from typing import Any, Optional

import httpx

from rider_dispatch.client.geolocation import (
    GeolocationError,
    GeolocationSource,
    PositionOptions,
    PositionSample,
    PositionTimeoutError,
)
from rider_dispatch.core.config import get_settings
from rider_dispatch.core.logging import get_logger

logger = get_logger(__name__)


class LocationReporter:
    """
    Samples a geolocation source and forwards fixes for one rider.

    Attributes:
        current_location: Latest successful fix, if any
        error: Message of the latest failed fix, cleared by the next success
        is_loading: True until the first fix or failure after start
        forwarded_count: Fixes accepted by the ingestion endpoint
        forward_failures: Fixes that could not be forwarded
    """

    def __init__(
        self,
        source: GeolocationSource,
        client: httpx.AsyncClient,
        rider_id: uuid.UUID,
        order_id: Optional[uuid.UUID] = None,
        options: Optional[PositionOptions] = None,
        interval_ms: Optional[int] = None,
        access_token: Optional[str] = None,
    ):
        settings = get_settings()
        self.source = source
        self.client = client
        self.rider_id = rider_id
        self.order_id = order_id
        self.options = options or PositionOptions.from_settings()
        self.interval = (interval_ms or settings.location_poll_interval_ms) / 1000
        self.endpoint = f"{settings.api_v1_prefix}/riders/location"
        self._headers = {"Authorization": f"Bearer {access_token}"} if access_token else {}

        self.current_location: Optional[PositionSample] = None
        self.error: Optional[str] = None
        self.is_loading = False
        self.forwarded_count = 0
        self.forward_failures = 0

        self._watch_task: Optional[asyncio.Task] = None
        self._interval_task: Optional[asyncio.Task] = None
        self._start_lock = asyncio.Lock()
        # Bumped by every stop so an in-flight start can tell it was cancelled
        self._generation = 0

    @property
    def is_tracking(self) -> bool:
        return any(
            task is not None and not task.done()
            for task in (self._watch_task, self._interval_task)
        )

    async def start_tracking(self) -> None:
        """
        Request an initial fix, then start the watch and the interval poll.

        A permission denial on the initial fix leaves the reporter stopped, as
        does a stop_tracking() call that arrives before the fix. Concurrent
        calls start at most one watch and one interval poll.
        """
        async with self._start_lock:
            if self.is_tracking:
                return

            generation = self._generation
            self.is_loading = True
            self.error = None

            try:
                sample = await self._request_fix()
            except GeolocationError as e:
                if generation != self._generation:
                    return
                self._fail(e)
                if not e.is_transient:
                    logger.warning("Location permission denied", rider_id=str(self.rider_id))
                    return
            else:
                if generation != self._generation:
                    return
                await self._accept(sample)

            # stop_tracking() ran while the initial fix was pending
            if generation != self._generation:
                return
            self._start_tasks()

    def _start_tasks(self) -> None:
        self._watch_task = asyncio.create_task(self._watch_loop())
        self._interval_task = asyncio.create_task(self._interval_loop())
        logger.info(
            "Location tracking started",
            rider_id=str(self.rider_id),
            order_id=str(self.order_id) if self.order_id else None,
            interval_s=self.interval,
        )

    async def stop_tracking(self) -> None:
        """Cancel the watch and the interval poll. Safe to call repeatedly."""
        self._generation += 1
        tasks = [t for t in (self._watch_task, self._interval_task) if t is not None]
        self._watch_task = None
        self._interval_task = None
        self.is_loading = False

        current = asyncio.current_task()
        for task in tasks:
            if task is not current:
                task.cancel()
        for task in tasks:
            if task is current:
                continue
            try:
                await task
            except asyncio.CancelledError:
                pass

        if tasks:
            logger.info("Location tracking stopped", rider_id=str(self.rider_id))

    async def _request_fix(self) -> PositionSample:
        try:
            return await asyncio.wait_for(
                self.source.get_current_position(self.options),
                timeout=self.options.timeout_ms / 1000,
            )
        except asyncio.TimeoutError as e:
            raise PositionTimeoutError() from e

    def _fail(self, error: GeolocationError) -> None:
        self.error = error.message
        self.is_loading = False

    async def _accept(self, sample: PositionSample) -> None:
        self.current_location = sample
        self.error = None
        self.is_loading = False
        await self.forward(sample)

    async def _on_denied(self, error: GeolocationError) -> None:
        self._fail(error)
        logger.warning("Location permission revoked", rider_id=str(self.rider_id))
        await self.stop_tracking()

    async def _watch_loop(self) -> None:
        while True:
            try:
                async for sample in self.source.watch_position(self.options):
                    await self._accept(sample)
                return
            except GeolocationError as e:
                if not e.is_transient:
                    await self._on_denied(e)
                    return
                self._fail(e)
                logger.info(
                    "Location watch error",
                    rider_id=str(self.rider_id),
                    error=e.message,
                )
            await asyncio.sleep(self.interval)

    async def _interval_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                sample = await self._request_fix()
            except GeolocationError as e:
                if not e.is_transient:
                    await self._on_denied(e)
                    return
                self._fail(e)
                logger.info(
                    "Interval location update failed",
                    rider_id=str(self.rider_id),
                    error=e.message,
                )
                continue
            await self._accept(sample)

    def _payload(self, sample: PositionSample) -> dict[str, Any]:
        return {
            "riderId": str(self.rider_id),
            "orderId": str(self.order_id) if self.order_id else None,
            "location": {
                "lat": sample.lat,
                "lng": sample.lng,
                "timestamp": sample.timestamp_ms,
            },
        }

    async def forward(self, sample: PositionSample) -> bool:
        """
        POST one fix to the ingestion endpoint.

        Returns:
            True if the endpoint accepted the request
        """
        try:
            response = await self.client.post(
                self.endpoint,
                json=self._payload(sample),
                headers=self._headers,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            self.forward_failures += 1
            logger.warning(
                "Failed to update rider location",
                rider_id=str(self.rider_id),
                status_code=e.response.status_code,
                failures=self.forward_failures,
            )
            return False
        except httpx.HTTPError as e:
            self.forward_failures += 1
            logger.warning(
                "Failed to update rider location",
                rider_id=str(self.rider_id),
                error=str(e),
                error_type=type(e).__name__,
                failures=self.forward_failures,
            )
            return False

        self.forwarded_count += 1
        return True
