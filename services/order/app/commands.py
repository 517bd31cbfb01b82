"""
Order Service — 注文ライフサイクル コーディネーター (CQRS の Write 側)

order.created で受け取った注文をすべて追跡し、
他サービスが発行した事実をもとに終端状態へ進める:

    payment.failed      → CANCELLED、order.cancelled を発行
    shipment.delivered  → COMPLETED、order.completed を発行

イベントは重複・遅延・順序入れ替わりがありうる。ルール:
  - 同じ ID の order.created は最初の1件だけ注文を作り、以降は何もしない
  - 1注文の読み取り→変更→書き込みは直列化し、先にコミットした終端遷移が勝つ。
    もう一方のイベントは終端ガードで弾かれる
  - 発行は状態変更のコミット後に行い、発行に失敗してもロールバックしない

在庫台帳が接続されている場合（combined デプロイ）は、
注文作成時に在庫を予約し、キャンセル時に解放する。
"""

import logging
import threading
from datetime import datetime, timezone

from services.common import channels
from services.common.bus import MessageBus
from services.common.errors import CommandResult, ErrorKind
from services.common.event_store import EventStore
from services.inventory.app import commands as inventory_commands
from services.inventory.app.aggregate import InventoryLedger

from .aggregate import OrderAggregate, OrderStatus
from .events import (
    OrderCancelled,
    OrderCompleted,
    OrderCreated,
    PaymentFailed,
    ShipmentDelivered,
)

logger = logging.getLogger(__name__)


class OrderCoordinator:
    def __init__(
        self,
        bus: MessageBus,
        store: EventStore | None = None,
        ledger: InventoryLedger | None = None,
        inventory_store: EventStore | None = None,
    ) -> None:
        self.bus = bus
        self.store = store or EventStore()
        self.ledger = ledger
        self.inventory_store = inventory_store or EventStore()
        self._orders: dict[str, OrderAggregate] = {}
        self._lock = threading.Lock()

    # ── バスイベントハンドラ ─────────────────────

    async def on_order_created(self, event: OrderCreated) -> CommandResult:
        """
        新しい注文を PENDING として登録する。

        既知の ID の order.created が再送されても何も変えない。
        台帳が接続されていれば在庫を予約する。予約に失敗した場合、注文は
        予約なしの PENDING のままで、何も発行しない。
        """
        event_data = {
            "order_id": event.order_id,
            "user_id": event.user_id,
            "total_amount": event.total_amount,
            "items": list(event.items),
            "timestamp": datetime.now(timezone.utc),
        }

        with self._lock:
            if event.order_id in self._orders:
                logger.info("Order %s already exists, ignoring duplicate", event.order_id)
                return CommandResult.fail(
                    ErrorKind.DUPLICATE_EVENT, f"Order {event.order_id} already exists"
                )
            agg = OrderAggregate()
            agg.version = self.store.append_event(
                event.order_id, "Order", "OrderCreated", event_data, 0
            )
            agg.apply_order_created(event_data)
            self._orders[event.order_id] = agg
            snapshot = agg.snapshot()

        logger.info(
            "Order %s registered for user %s (%d items, total %.2f)",
            event.order_id,
            event.user_id,
            len(event.items),
            event.total_amount,
        )

        if self.ledger is not None:
            reserved = await inventory_commands.reserve_inventory(
                self.ledger, self.bus, self.inventory_store, event.order_id, event.items
            )
            if not reserved.success:
                # 再試行も取り寄せもしない。注文は PENDING のまま待つ
                logger.warning(
                    "Order %s stays pending without reservation", event.order_id
                )

        return CommandResult.ok(snapshot)

    async def on_payment_failed(self, event: PaymentFailed) -> CommandResult:
        logger.info(
            "Payment %s failed for order %s: %s",
            event.payment_id,
            event.order_id,
            event.failure_reason,
        )
        result = await self._cancel(event.order_id, f"Payment failed: {event.failure_reason}")
        if not result.success:
            logger.info("Ignoring payment failure for order %s: %s", event.order_id, result.reason)
        return result

    async def on_shipment_delivered(self, event: ShipmentDelivered) -> CommandResult:
        # completion_time は配送完了を処理した時刻（delivery_time ではない）
        completion_time = datetime.now(timezone.utc)
        result = self._transition(
            event.order_id,
            "OrderCompleted",
            {"order_id": event.order_id, "completion_time": completion_time},
        )
        if not result.success:
            logger.info("Ignoring shipment delivery for order %s: %s", event.order_id, result.reason)
            return result

        logger.info(
            "Order %s completed, shipment %s delivered at %s",
            event.order_id,
            event.shipment_id,
            event.delivery_time.isoformat(),
        )
        await self.bus.publish(
            channels.ORDER_COMPLETED,
            OrderCompleted(order_id=event.order_id, completion_time=completion_time),
        )
        return result

    # ── オペレーターコマンド ─────────────────────

    async def cancel_order(self, order_id: str, reason: str) -> CommandResult:
        """
        要求に応じて注文をキャンセルする。

        バスハンドラと異なり、未知の注文や終端状態の注文は
        失敗の結果として呼び出し側に返す。
        """
        result = await self._cancel(order_id, reason)
        if not result.success:
            logger.warning("Cannot cancel order %s: %s", order_id, result.reason)
        return result

    # ── 内部処理 ─────────────────────────────────

    async def _cancel(self, order_id: str, reason: str) -> CommandResult:
        result = self._transition(
            order_id,
            "OrderCancelled",
            {"order_id": order_id, "reason": reason, "timestamp": datetime.now(timezone.utc)},
        )
        if not result.success:
            return result

        logger.info("Order %s cancelled: %s", order_id, reason)
        if self.ledger is not None:
            await inventory_commands.release_inventory(
                self.ledger, self.bus, self.inventory_store, order_id
            )
        await self.bus.publish(
            channels.ORDER_CANCELLED, OrderCancelled(order_id=order_id, reason=reason)
        )
        return result

    def _transition(self, order_id: str, event_type: str, event_data: dict) -> CommandResult:
        """PENDING の注文を終端状態へ遷移させる。全体をロック内で実行する。"""
        with self._lock:
            agg = self._orders.get(order_id)
            if agg is None:
                return CommandResult.fail(ErrorKind.UNKNOWN_ORDER, f"Order {order_id} not found")
            if agg.is_terminal:
                return CommandResult.fail(
                    ErrorKind.TERMINAL_STATE_VIOLATION,
                    f"Order {order_id} is already {agg.status.value}",
                )
            version = self.store.append_event(order_id, "Order", event_type, event_data, agg.version)
            agg.apply_event(event_type, event_data)
            agg.version = version
            return CommandResult.ok(agg.snapshot())

    # ── 読み取り ─────────────────────────────────

    def get_order(self, order_id: str) -> OrderAggregate | None:
        with self._lock:
            agg = self._orders.get(order_id)
            return agg.snapshot() if agg else None

    def list_by_status(self, status: OrderStatus) -> list[OrderAggregate]:
        with self._lock:
            return [agg.snapshot() for agg in self._orders.values() if agg.status == status]

    def list_orders(self) -> list[OrderAggregate]:
        with self._lock:
            return [agg.snapshot() for agg in self._orders.values()]

    def count_by_status(self, status: OrderStatus) -> int:
        with self._lock:
            return sum(1 for agg in self._orders.values() if agg.status == status)

    def summary(self) -> dict:
        with self._lock:
            counts = {status.value.lower(): 0 for status in OrderStatus}
            for agg in self._orders.values():
                counts[agg.status.value.lower()] += 1
            return {"total": len(self._orders), **counts}
