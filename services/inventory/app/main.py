"""
Inventory Service — FastAPI エントリポイント

単独デプロイ用の在庫サービス。バス上の以下のチャネルを購読する:

    order.created    → 注文の在庫を予約
    order.cancelled  → 注文の予約を解放

inventory.reserved / inventory.released / inventory.updated を発行する。
台帳の状態はメモリ上にあり、プロセスが生きている間だけ保持される。
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request

from services.common import channels
from services.common.bus import MessageBus, drain, start_subscribers
from services.common.event_store import EventStore
from services.order.app.events import OrderCancelled, OrderCreated

from . import commands, queries
from .aggregate import InventoryLedger
from .catalog import load_catalog

REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379")
INVENTORY_SEED = os.environ.get("INVENTORY_SEED")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def subscription_routes(ledger: InventoryLedger, bus: MessageBus, store: EventStore) -> dict:
    async def on_order_created(event: OrderCreated):
        logger.info("Received order created for %s", event.order_id)
        return await commands.reserve_inventory(ledger, bus, store, event.order_id, event.items)

    async def on_order_cancelled(event: OrderCancelled):
        logger.info("Received order cancelled for %s", event.order_id)
        return await commands.release_inventory(ledger, bus, store, event.order_id)

    return {
        channels.ORDER_CREATED: (OrderCreated, on_order_created),
        channels.ORDER_CANCELLED: (OrderCancelled, on_order_cancelled),
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    """バスに接続し、チャネルごとにサブスクライバーを起動する。終了時は処理中のメッセージを捌く。"""
    bus = await MessageBus.connect(REDIS_URL)
    ledger = InventoryLedger(load_catalog(INVENTORY_SEED))
    store = EventStore()
    app.state.bus = bus
    app.state.ledger = ledger
    app.state.store = store
    logger.info("Current inventory levels: %s", ledger.levels())

    shutdown_event = asyncio.Event()
    tasks = start_subscribers(bus, subscription_routes(ledger, bus, store), shutdown_event)
    yield
    logger.info("Shutting down inventory service")
    shutdown_event.set()
    await drain(tasks)
    await bus.close()


app = FastAPI(title="Inventory Service", lifespan=lifespan)


# ── Command Endpoints (Write 側) ─────────────────


@app.post("/commands/inventory/{order_id}/release")
async def cmd_release(order_id: str, request: Request):
    """オペレーターによる予約解放コマンド"""
    state = request.app.state
    result = await commands.release_inventory(state.ledger, state.bus, state.store, order_id)
    if not result.success:
        raise HTTPException(status_code=404, detail=result.reason)
    return {**result.to_dict(), "reservation": result.value.to_dict()}


# ── Query Endpoints (Read 側) ────────────────────


@app.get("/queries/inventory")
async def query_list_inventory(request: Request):
    return queries.list_items(request.app.state.ledger)


@app.get("/queries/inventory/{item_id}")
async def query_get_item(item_id: str, request: Request):
    item = queries.get_item(request.app.state.ledger, item_id)
    if not item:
        raise HTTPException(404, "Item not found")
    return item


@app.get("/queries/reservations/{order_id}")
async def query_get_reservation(order_id: str, request: Request):
    reservation = queries.get_reservation(request.app.state.ledger, order_id)
    if not reservation:
        raise HTTPException(404, "Reservation not found")
    return reservation


# ── Event Store (デバッグ用) ─────────────────────


@app.get("/events")
async def get_all_events(request: Request):
    return request.app.state.store.load_all_events()


@app.get("/events/{aggregate_id}")
async def get_aggregate_events(aggregate_id: str, request: Request):
    return request.app.state.store.load_events(aggregate_id)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "inventory-service"}
