"""pytest configuration and fixtures for the order and inventory handlers.

Provides a recording stand-in for the Redis client so handlers can be
exercised without a running server, plus seeded ledgers and coordinators.
"""

import asyncio
import json
from collections import deque

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from services.common.bus import MessageBus
from services.common.event_store import EventStore
from services.inventory.app.aggregate import InventoryLedger
from services.order.app.commands import OrderCoordinator
from services.order.app.events import OrderCreated, OrderItem

SEED = {"ITEM-001": 100, "ITEM-002": 50}


class RecordingPubSub:
    def __init__(self, redis: "RecordingRedis") -> None:
        self.redis = redis
        self.channels: set[str] = set()
        self.closed = False

    async def subscribe(self, *channels: str) -> None:
        if self.redis.fail_subscribe:
            raise RedisConnectionError("Connection refused")
        self.channels.update(channels)

    async def unsubscribe(self, *channels: str) -> None:
        self.channels.difference_update(channels)

    async def get_message(self, ignore_subscribe_messages: bool = False, timeout: float = 0.0):
        """Returns the next queued payload; queued exceptions are raised instead."""
        for channel in self.channels:
            queue = self.redis.inbox.get(channel)
            if queue:
                item = queue.popleft()
                if isinstance(item, Exception):
                    raise item
                return {"type": "message", "channel": channel, "data": item}
        await asyncio.sleep(0)
        return None

    async def aclose(self) -> None:
        self.closed = True


class RecordingRedis:
    """Records publishes; `inbox` feeds raw payloads (or receive errors) to subscribers."""

    def __init__(
        self,
        fail_publish: bool = False,
        fail_ping: bool = False,
        fail_subscribe: bool = False,
    ) -> None:
        self.published: list[tuple[str, dict]] = []
        self.inbox: dict[str, deque] = {}
        self.pubsubs: list[RecordingPubSub] = []
        self.fail_publish = fail_publish
        self.fail_ping = fail_ping
        self.fail_subscribe = fail_subscribe
        self.closed = False

    async def ping(self) -> bool:
        if self.fail_ping:
            raise RedisConnectionError("Connection refused")
        return True

    async def publish(self, channel: str, data: str) -> int:
        if self.fail_publish:
            raise RedisConnectionError("Connection reset by peer")
        self.published.append((channel, json.loads(data)))
        return 1

    def pubsub(self) -> RecordingPubSub:
        pubsub = RecordingPubSub(self)
        self.pubsubs.append(pubsub)
        return pubsub

    def feed(self, channel: str, *payloads: str | Exception) -> None:
        self.inbox.setdefault(channel, deque()).extend(payloads)

    def messages(self, channel: str) -> list[dict]:
        return [payload for ch, payload in self.published if ch == channel]

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def redis() -> RecordingRedis:
    return RecordingRedis()


@pytest.fixture
def bus(redis: RecordingRedis) -> MessageBus:
    return MessageBus(redis, "redis://test")


@pytest.fixture
def store() -> EventStore:
    return EventStore()


@pytest.fixture
def ledger() -> InventoryLedger:
    return InventoryLedger(SEED)


@pytest.fixture
def coordinator(bus: MessageBus, store: EventStore) -> OrderCoordinator:
    """Coordinator without a ledger (standalone order service)."""
    return OrderCoordinator(bus, store)


@pytest.fixture
def combined_coordinator(bus: MessageBus, store: EventStore, ledger: InventoryLedger) -> OrderCoordinator:
    """Coordinator driving an in-process ledger (combined deployment)."""
    return OrderCoordinator(bus, store, ledger=ledger)


@pytest.fixture
def make_order():
    """Factory for OrderCreated events."""

    def _make(
        order_id: str = "ORD-1",
        user_id: str = "U1",
        total_amount: float = 42.50,
        items: list[tuple[str, int]] | None = None,
    ) -> OrderCreated:
        lines = items if items is not None else [("ITEM-001", 10)]
        return OrderCreated(
            order_id=order_id,
            user_id=user_id,
            total_amount=total_amount,
            items=[OrderItem(item_id=i, quantity=q, price=4.25) for i, q in lines],
        )

    return _make


@pytest.fixture
def failing_bus() -> MessageBus:
    """Bus whose publishes all fail, as if the connection dropped."""
    return MessageBus(RecordingRedis(fail_publish=True), "redis://test")


@pytest.fixture
def unreachable_redis() -> RecordingRedis:
    return RecordingRedis(fail_ping=True)


@pytest.fixture
def unsubscribable_bus() -> MessageBus:
    """Bus whose subscribe calls fail."""
    return MessageBus(RecordingRedis(fail_subscribe=True), "redis://test")
