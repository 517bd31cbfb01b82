"""Inventory command handler tests: what gets published, and when."""

import pytest

from services.common import channels
from services.common.errors import ErrorKind
from services.inventory.app import commands
from services.inventory.app.events import InventoryItem


def lines(*pairs):
    return [InventoryItem(item_id=i, quantity=q) for i, q in pairs]


@pytest.mark.asyncio
async def test_reserve_publishes_reserved_then_updated(ledger, bus, store, redis):
    result = await commands.reserve_inventory(ledger, bus, store, "ORD-1", lines(("ITEM-001", 10)))

    assert result.success
    assert ledger.stock_of("ITEM-001") == 90
    assert [ch for ch, _ in redis.published] == [
        channels.INVENTORY_RESERVED,
        channels.INVENTORY_UPDATED,
    ]
    reserved = redis.messages(channels.INVENTORY_RESERVED)[0]
    assert reserved == {
        "reservationId": result.value.reservation_id,
        "orderId": "ORD-1",
        "items": [{"itemId": "ITEM-001", "quantity": 10}],
    }
    assert redis.messages(channels.INVENTORY_UPDATED) == [
        {"itemId": "ITEM-001", "newQuantity": 90}
    ]


@pytest.mark.asyncio
async def test_release_publishes_released_and_restores_stock(ledger, bus, store, redis):
    reserved = await commands.reserve_inventory(ledger, bus, store, "ORD-1", lines(("ITEM-001", 10)))
    redis.published.clear()

    result = await commands.release_inventory(ledger, bus, store, "ORD-1")

    assert result.success
    assert ledger.stock_of("ITEM-001") == 100
    assert redis.messages(channels.INVENTORY_RELEASED) == [
        {
            "reservationId": reserved.value.reservation_id,
            "orderId": "ORD-1",
            "items": [{"itemId": "ITEM-001", "quantity": 10}],
        }
    ]
    assert redis.messages(channels.INVENTORY_UPDATED) == [
        {"itemId": "ITEM-001", "newQuantity": 100}
    ]


@pytest.mark.asyncio
async def test_insufficient_stock_publishes_nothing(ledger, bus, store, redis):
    result = await commands.reserve_inventory(ledger, bus, store, "ORD-2", lines(("ITEM-002", 60)))

    assert result.error == ErrorKind.INSUFFICIENT_STOCK
    assert redis.published == []
    assert ledger.reservation_for("ORD-2") is None
    assert [e["event_type"] for e in store.load_events("ORD-2")] == ["InventoryReservationFailed"]


@pytest.mark.asyncio
async def test_duplicate_reserve_publishes_once(ledger, bus, store, redis):
    await commands.reserve_inventory(ledger, bus, store, "ORD-1", lines(("ITEM-001", 10)))
    await commands.reserve_inventory(ledger, bus, store, "ORD-1", lines(("ITEM-001", 10)))

    assert len(redis.messages(channels.INVENTORY_RESERVED)) == 1
    assert ledger.stock_of("ITEM-001") == 90


@pytest.mark.asyncio
async def test_release_without_reservation_publishes_nothing(ledger, bus, store, redis):
    result = await commands.release_inventory(ledger, bus, store, "ORD-404")

    assert result.error == ErrorKind.NOT_FOUND
    assert redis.published == []
    assert ledger.levels() == {"ITEM-001": 100, "ITEM-002": 50}


@pytest.mark.asyncio
async def test_one_update_per_distinct_item(ledger, bus, store, redis):
    await commands.reserve_inventory(
        ledger, bus, store, "ORD-1", lines(("ITEM-001", 5), ("ITEM-002", 5), ("ITEM-001", 5))
    )

    assert redis.messages(channels.INVENTORY_UPDATED) == [
        {"itemId": "ITEM-001", "newQuantity": 90},
        {"itemId": "ITEM-002", "newQuantity": 45},
    ]


@pytest.mark.asyncio
async def test_publish_failure_keeps_reservation(ledger, store, failing_bus):
    result = await commands.reserve_inventory(ledger, failing_bus, store, "ORD-1", lines(("ITEM-001", 10)))

    assert result.success
    assert ledger.stock_of("ITEM-001") == 90
    assert ledger.reservation_for("ORD-1") is not None
