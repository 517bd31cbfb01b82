"""
Order Service — FastAPI エントリポイント

order.created / payment.failed / shipment.delivered を購読し、
order.cancelled / order.completed を発行する。

ORDER_INVENTORY_MODE=combined の場合は在庫台帳を同じプロセス内で動かし、
注文作成・キャンセルのイベントで直接操作する。
それ以外は、発行されたイベントを独立した在庫サービスが処理する。

コマンド (POST) とクエリ (GET) はルートを分けている。
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel

from services.common import channels
from services.common.bus import MessageBus, drain, start_subscribers
from services.common.errors import ErrorKind
from services.common.event_store import EventStore
from services.inventory.app import queries as inventory_queries
from services.inventory.app.aggregate import InventoryLedger
from services.inventory.app.catalog import load_catalog

from . import queries
from .aggregate import OrderStatus
from .commands import OrderCoordinator
from .events import OrderCreated, PaymentFailed, ShipmentDelivered

REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379")
ORDER_INVENTORY_MODE = os.environ.get("ORDER_INVENTORY_MODE", "standalone")
INVENTORY_SEED = os.environ.get("INVENTORY_SEED")
STATUS_REPORT_INTERVAL = float(os.environ.get("STATUS_REPORT_INTERVAL", "30"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def subscription_routes(coordinator: OrderCoordinator) -> dict:
    return {
        channels.ORDER_CREATED: (OrderCreated, coordinator.on_order_created),
        channels.PAYMENT_FAILED: (PaymentFailed, coordinator.on_payment_failed),
        channels.SHIPMENT_DELIVERED: (ShipmentDelivered, coordinator.on_shipment_delivered),
    }


async def run_status_reporter(
    coordinator: OrderCoordinator,
    interval: float,
    shutdown_event: asyncio.Event,
) -> None:
    """シャットダウンまで `interval` 秒ごとに注文件数をログに出す"""
    while not shutdown_event.is_set():
        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            logger.info("Status: %s", queries.format_summary(coordinator.summary()))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """バスに接続して購読を開始する。終了時は処理中のメッセージを捌いてから切断する。"""
    bus = await MessageBus.connect(REDIS_URL)

    ledger = None
    if ORDER_INVENTORY_MODE == "combined":
        ledger = InventoryLedger(load_catalog(INVENTORY_SEED))
        logger.info("Inventory ledger attached, levels: %s", ledger.levels())

    coordinator = OrderCoordinator(bus, EventStore(), ledger=ledger)
    app.state.bus = bus
    app.state.coordinator = coordinator

    shutdown_event = asyncio.Event()
    tasks = start_subscribers(bus, subscription_routes(coordinator), shutdown_event)
    tasks.append(
        asyncio.create_task(
            run_status_reporter(coordinator, STATUS_REPORT_INTERVAL, shutdown_event)
        )
    )
    logger.info("Order service is running, waiting for events")
    yield
    logger.info("Shutting down order service")
    shutdown_event.set()
    await drain(tasks)
    await bus.close()


app = FastAPI(title="Order Service", lifespan=lifespan)


# ── Request Models ───────────────────────────────


class CancelOrderRequest(BaseModel):
    reason: str = "Cancelled by operator"


# ── Command Endpoints (Write 側) ─────────────────


@app.post("/commands/orders/{order_id}/cancel")
async def cmd_cancel_order(order_id: str, req: CancelOrderRequest, request: Request):
    """オペレーターによる注文キャンセル（未知の注文は 404、終端状態なら 409）"""
    result = await request.app.state.coordinator.cancel_order(order_id, req.reason)
    if not result.success:
        status_code = 404 if result.error == ErrorKind.UNKNOWN_ORDER else 409
        raise HTTPException(status_code=status_code, detail=result.reason)
    return {"order_id": order_id, "status": result.value.status.value}


# ── Query Endpoints (Read 側) ────────────────────


@app.get("/queries/orders")
async def query_list_orders(request: Request, status: OrderStatus | None = None):
    return queries.list_orders(request.app.state.coordinator, status)


@app.get("/queries/orders-summary")
async def query_orders_summary(request: Request):
    return queries.status_summary(request.app.state.coordinator)


@app.get("/queries/orders/{order_id}")
async def query_get_order(order_id: str, request: Request):
    order = queries.get_order(request.app.state.coordinator, order_id)
    if not order:
        raise HTTPException(404, "Order not found")
    return order


@app.get("/queries/inventory")
async def query_inventory(request: Request):
    """在庫台帳を同一プロセスで動かしている場合のみ利用可能"""
    ledger = request.app.state.coordinator.ledger
    if ledger is None:
        raise HTTPException(404, "Inventory ledger is not attached")
    return inventory_queries.list_items(ledger)


# ── Event Store (デバッグ用) ─────────────────────


@app.get("/events")
async def get_all_events(request: Request):
    return request.app.state.coordinator.store.load_all_events()


@app.get("/events/{order_id}")
async def get_order_events(order_id: str, request: Request):
    return request.app.state.coordinator.store.load_events(order_id)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "order-service"}
