"""
Tests for the rider location reporter.
"""

import asyncio
import json
import uuid

import httpx
import pytest

from rider_dispatch.client.geolocation import (
    PermissionDeniedError,
    PositionOptions,
    PositionSample,
    PositionUnavailableError,
    ScriptedGeolocationSource,
    error_from_code,
)
from rider_dispatch.client.reporter import LocationReporter

RIDER_ID = uuid.uuid4()
FIX = PositionSample(lat=14.5995, lng=120.9842, accuracy=5.0, timestamp_ms=1_700_000_000_000)


class Recorder:
    """MockTransport handler that records request bodies."""

    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.bodies: list[dict] = []
        self.headers: list[httpx.Headers] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.bodies.append(json.loads(request.content))
        self.headers.append(request.headers)
        return httpx.Response(self.status_code, json={"success": self.status_code == 200})


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
async def http_client(recorder):
    async with httpx.AsyncClient(
        transport=httpx.MockTransport(recorder), base_url="http://test"
    ) as client:
        yield client


def reporter_for(source, http_client, **kwargs) -> LocationReporter:
    return LocationReporter(
        source,
        http_client,
        rider_id=RIDER_ID,
        interval_ms=60_000,
        options=PositionOptions(timeout_ms=1_000),
        **kwargs,
    )


async def wait_until(predicate, timeout: float = 1.0) -> None:
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout=timeout)


class TestStartTracking:
    async def test_initial_fix_is_forwarded(self, http_client, recorder) -> None:
        order_id = uuid.uuid4()
        reporter = reporter_for(
            ScriptedGeolocationSource([FIX]), http_client, order_id=order_id, access_token="tok"
        )

        await reporter.start_tracking()
        try:
            assert reporter.is_tracking
            assert reporter.current_location == FIX
            assert reporter.error is None
            assert reporter.is_loading is False
            assert reporter.forwarded_count == 1
            assert recorder.bodies == [
                {
                    "riderId": str(RIDER_ID),
                    "orderId": str(order_id),
                    "location": {"lat": 14.5995, "lng": 120.9842, "timestamp": 1_700_000_000_000},
                }
            ]
            assert recorder.headers[0]["authorization"] == "Bearer tok"
        finally:
            await reporter.stop_tracking()

    async def test_permission_denied_does_not_start(self, http_client, recorder) -> None:
        reporter = reporter_for(ScriptedGeolocationSource([PermissionDeniedError()]), http_client)

        await reporter.start_tracking()

        assert not reporter.is_tracking
        assert reporter.error == "Location permission denied. Please enable location access."
        assert reporter.is_loading is False
        assert recorder.bodies == []

    async def test_transient_initial_error_keeps_tracking(self, http_client) -> None:
        source = ScriptedGeolocationSource([PositionUnavailableError()], watch=[FIX])
        reporter = reporter_for(source, http_client)

        await reporter.start_tracking()
        try:
            assert reporter.is_tracking
            await wait_until(lambda: reporter.current_location is not None)
            assert reporter.error is None
            assert reporter.forwarded_count == 1
        finally:
            await reporter.stop_tracking()

    async def test_start_twice_is_noop(self, http_client) -> None:
        source = ScriptedGeolocationSource([FIX])
        reporter = reporter_for(source, http_client)

        await reporter.start_tracking()
        await reporter.start_tracking()
        await asyncio.sleep(0.01)
        try:
            assert source.requests == 1
            assert source.watches == 1
        finally:
            await reporter.stop_tracking()

    async def test_stop_during_initial_fix_prevents_start(self, http_client, recorder) -> None:
        source = ScriptedGeolocationSource([FIX], delay=0.2)
        reporter = reporter_for(source, http_client)

        starting = asyncio.create_task(reporter.start_tracking())
        await asyncio.sleep(0.05)
        await reporter.stop_tracking()
        await starting

        assert not reporter.is_tracking
        assert source.watches == 0
        assert recorder.bodies == []
        assert reporter.is_loading is False

    async def test_restart_after_cancelled_start(self, http_client) -> None:
        source = ScriptedGeolocationSource([FIX], delay=0.1)
        reporter = reporter_for(source, http_client)

        starting = asyncio.create_task(reporter.start_tracking())
        await asyncio.sleep(0.02)
        await reporter.stop_tracking()
        await starting

        await reporter.start_tracking()
        await asyncio.sleep(0.01)
        try:
            assert reporter.is_tracking
            assert source.watches == 1
        finally:
            await reporter.stop_tracking()

    async def test_concurrent_starts_share_one_pair_of_tasks(self, http_client) -> None:
        source = ScriptedGeolocationSource([FIX], delay=0.05)
        reporter = reporter_for(source, http_client)

        await asyncio.gather(reporter.start_tracking(), reporter.start_tracking())
        await asyncio.sleep(0.01)
        assert source.requests == 1
        assert source.watches == 1

        await reporter.stop_tracking()

        assert not reporter.is_tracking
        assert running_reporter_loops() == []


REPORTER_LOOPS = ("LocationReporter._watch_loop", "LocationReporter._interval_loop")


def running_reporter_loops() -> list[asyncio.Task]:
    return [
        task
        for task in asyncio.all_tasks()
        if not task.done()
        and task.get_coro().__qualname__ in REPORTER_LOOPS
    ]


class TestWatch:
    async def test_watch_fixes_update_latest_location(self, http_client, recorder) -> None:
        later = PositionSample(lat=14.60, lng=120.99, accuracy=None, timestamp_ms=1_700_000_005_000)
        reporter = reporter_for(ScriptedGeolocationSource([FIX], watch=[later]), http_client)

        await reporter.start_tracking()
        try:
            await wait_until(lambda: reporter.forwarded_count == 2)
            assert reporter.current_location == later
            assert [b["location"]["timestamp"] for b in recorder.bodies] == [
                1_700_000_000_000,
                1_700_000_005_000,
            ]
        finally:
            await reporter.stop_tracking()

    async def test_revoked_permission_stops_tracking(self, http_client) -> None:
        source = ScriptedGeolocationSource([FIX], watch=[PermissionDeniedError()])
        reporter = reporter_for(source, http_client)

        await reporter.start_tracking()
        await wait_until(lambda: not reporter.is_tracking)

        assert reporter.error == PermissionDeniedError.default_message
        assert reporter.current_location == FIX


class TestForward:
    async def test_http_failure_is_counted(self) -> None:
        recorder = Recorder(status_code=500)
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(recorder), base_url="http://test"
        ) as client:
            reporter = reporter_for(ScriptedGeolocationSource([FIX]), client)

            assert await reporter.forward(FIX) is False

        assert reporter.forward_failures == 1
        assert reporter.forwarded_count == 0

    async def test_transport_failure_is_counted(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(
            transport=httpx.MockTransport(refuse), base_url="http://test"
        ) as client:
            reporter = reporter_for(ScriptedGeolocationSource([FIX]), client)
            await reporter.start_tracking()
            try:
                assert reporter.is_tracking
                assert reporter.current_location == FIX
                assert reporter.forward_failures == 1
            finally:
                await reporter.stop_tracking()

    async def test_order_id_is_optional(self, http_client, recorder) -> None:
        reporter = reporter_for(ScriptedGeolocationSource([FIX]), http_client)

        await reporter.forward(FIX)

        assert recorder.bodies[0]["orderId"] is None


class TestStopTracking:
    async def test_stop_is_idempotent(self, http_client) -> None:
        reporter = reporter_for(ScriptedGeolocationSource([FIX]), http_client)
        await reporter.start_tracking()

        await reporter.stop_tracking()
        await reporter.stop_tracking()

        assert not reporter.is_tracking

    async def test_stop_without_start(self, http_client) -> None:
        reporter = reporter_for(ScriptedGeolocationSource([FIX]), http_client)

        await reporter.stop_tracking()

        assert not reporter.is_tracking


@pytest.mark.parametrize(
    "code,message",
    [
        (1, "Location permission denied. Please enable location access."),
        (2, "Location information is unavailable."),
        (3, "Location request timed out."),
        (99, "An unknown error occurred while retrieving location."),
    ],
)
def test_error_messages_by_code(code, message) -> None:
    assert error_from_code(code).message == message
