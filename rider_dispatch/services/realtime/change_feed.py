"""
In-process order change feed with an optional Redis pub/sub bridge.

Subscribers receive lightweight "something changed" signals for orders and
re-query whatever view they render. Each subscriber owns a bounded asyncio
queue; when it fills up the oldest signal is discarded, since a newer signal
for the same view supersedes it.
"""

import asyncio
import json
import uuid
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Any, AsyncIterator, Iterable, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from rider_dispatch.core.config import get_settings
from rider_dispatch.core.logging import get_logger
from rider_dispatch.services.orders.enums import OrderStatus

logger = get_logger(__name__)

ORDER_CHANGES_CHANNEL = "orders:changes"


class ChangeEventType(str, Enum):
    """Row-level change kinds carried by the feed."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"


@dataclass(frozen=True)
class OrderChangeEvent:
    """Signal that an order row was inserted or updated."""

    event_type: ChangeEventType
    order_id: uuid.UUID
    status: OrderStatus

    def to_dict(self) -> dict[str, str]:
        return {
            "event": self.event_type.value,
            "order_id": str(self.order_id),
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderChangeEvent":
        return cls(
            event_type=ChangeEventType(data["event"]),
            order_id=uuid.UUID(data["order_id"]),
            status=OrderStatus(data["status"]),
        )


_CLOSED = object()


@dataclass(eq=False)
class Subscription:
    """
    A filtered view of the feed.

    Iterate it with ``async for`` to receive events; iteration ends once
    ``close()`` has been called and any buffered events are drained.
    """

    feed: "ChangeFeed"
    event_types: frozenset[ChangeEventType]
    status: Optional[OrderStatus] = None
    queue_size: int = 100
    dropped: int = 0
    _queue: asyncio.Queue = field(init=False, repr=False)
    _closed: bool = field(default=False, init=False)

    def __post_init__(self) -> None:
        self._queue = asyncio.Queue(maxsize=self.queue_size)

    @property
    def closed(self) -> bool:
        return self._closed

    def matches(self, event: OrderChangeEvent) -> bool:
        if event.event_type not in self.event_types:
            return False
        return self.status is None or event.status == self.status

    def offer(self, item: Any) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(item)

    async def get(self) -> Optional[OrderChangeEvent]:
        """Wait for the next event; returns None once the subscription is closed."""
        if self._closed and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return item

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.feed._remove(self)
        self.offer(_CLOSED)

    def __aiter__(self) -> AsyncIterator[OrderChangeEvent]:
        return self

    async def __anext__(self) -> OrderChangeEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()


class ChangeFeed:
    """Fan-out hub for order change events."""

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._subscriptions: list[Subscription] = []
        self._bridge: Optional["RedisChangeBridge"] = None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(
        self,
        event_types: Optional[Iterable[ChangeEventType]] = None,
        status: Optional[OrderStatus] = None,
    ) -> Subscription:
        """
        Register a subscriber.

        Args:
            event_types: Event kinds to receive, defaults to all
            status: Only receive events whose new status equals this one

        Returns:
            Subscription to iterate and close
        """
        types = frozenset(event_types) if event_types else frozenset(ChangeEventType)
        subscription = Subscription(
            feed=self,
            event_types=types,
            status=status,
            queue_size=self.queue_size,
        )
        self._subscriptions.append(subscription)
        logger.debug(
            "Change feed subscription opened",
            event_types=sorted(t.value for t in types),
            status=status.value if status else None,
            subscribers=len(self._subscriptions),
        )
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def deliver(self, event: OrderChangeEvent) -> int:
        """Fan an event out to local subscribers only."""
        delivered = 0
        for subscription in list(self._subscriptions):
            if subscription.matches(event):
                subscription.offer(event)
                delivered += 1
        return delivered

    async def publish(self, event: OrderChangeEvent) -> int:
        """
        Publish an event locally and, when bridged, to other workers.

        Returns:
            Number of local subscribers the event was delivered to
        """
        delivered = self.deliver(event)
        logger.debug(
            "Order change published",
            event_type=event.event_type.value,
            order_id=str(event.order_id),
            status=event.status.value,
            delivered=delivered,
        )
        if self._bridge is not None:
            await self._bridge.forward(event)
        return delivered

    def attach_bridge(self, bridge: Optional["RedisChangeBridge"]) -> None:
        self._bridge = bridge

    def close(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.close()


class RedisChangeBridge:
    """
    Relays change events between worker processes over Redis pub/sub.

    Local events are republished on ``channel`` tagged with this bridge's
    instance id; messages from other instances are delivered to the local
    feed. Relay failures are logged and never reach the publisher.
    """

    def __init__(
        self,
        feed: ChangeFeed,
        url: Optional[str] = None,
        channel: str = ORDER_CHANGES_CHANNEL,
        client: Optional[redis.Redis] = None,
    ):
        self.feed = feed
        self.channel = channel
        self.instance_id = uuid.uuid4().hex
        self._url = url or get_settings().redis_url
        self._client = client
        self._pubsub = None
        self._listener: Optional[asyncio.Task] = None

    async def start(self) -> None:
        if self._client is None:
            self._client = redis.from_url(self._url, decode_responses=True)
        self._pubsub = self._client.pubsub(ignore_subscribe_messages=True)
        await self._pubsub.subscribe(self.channel)
        self._listener = asyncio.create_task(self._listen())
        self.feed.attach_bridge(self)
        logger.info("Redis change bridge started", channel=self.channel)

    async def stop(self) -> None:
        self.feed.attach_bridge(None)
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        if self._pubsub is not None:
            await self._pubsub.unsubscribe(self.channel)
            await self._pubsub.aclose()
            self._pubsub = None
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        logger.info("Redis change bridge stopped", channel=self.channel)

    async def forward(self, event: OrderChangeEvent) -> None:
        if self._client is None:
            return
        payload = {**event.to_dict(), "origin": self.instance_id}
        try:
            await self._client.publish(self.channel, json.dumps(payload))
        except RedisError as e:
            logger.warning(
                "Failed to relay order change",
                order_id=str(event.order_id),
                error=str(e),
            )

    def handle_message(self, data: str) -> Optional[OrderChangeEvent]:
        """Decode a relayed message and deliver it unless it originated here."""
        try:
            payload = json.loads(data)
            if payload.get("origin") == self.instance_id:
                return None
            event = OrderChangeEvent.from_dict(payload)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Discarding malformed order change", error=str(e))
            return None
        self.feed.deliver(event)
        return event

    async def _listen(self) -> None:
        async for message in self._pubsub.listen():
            if message.get("type") != "message":
                continue
            self.handle_message(message["data"])


@lru_cache()
def get_change_feed() -> ChangeFeed:
    """Process-wide change feed sized from settings."""
    return ChangeFeed(queue_size=get_settings().change_feed_queue_size)
