"""
Inventory Service — コマンドハンドラ (CQRS の Write 側)

注文作成時に在庫を予約し、キャンセル時に解放する。
判断するのは台帳で、ハンドラは結果を記録して他サービスに知らせる。

イベントは台帳のコミット後に発行する。発行の失敗はログに出して
結果として返すが、台帳の変更は取り消さない。
"""

import logging
from collections.abc import Iterable

from services.common import channels
from services.common.bus import MessageBus
from services.common.errors import CommandResult
from services.common.event_store import EventStore

from .aggregate import InventoryLedger, Reservation, StockLine
from .events import InventoryReleased, InventoryReserved, InventoryUpdated

logger = logging.getLogger(__name__)


def _record(store: EventStore, order_id: str, event_type: str, event_data: dict) -> None:
    # 予約は注文単位で追跡するため、注文 ID を集約 ID とする
    events = store.load_events(order_id)
    current_version = events[-1]["version"] if events else 0
    store.append_event(order_id, "Reservation", event_type, event_data, current_version)


async def reserve_inventory(
    ledger: InventoryLedger,
    bus: MessageBus,
    store: EventStore,
    order_id: str,
    lines: Iterable[StockLine],
) -> CommandResult:
    """
    在庫予約コマンド

    1. 台帳に全明細一括（all-or-nothing）の予約を依頼
    2. 成功したら inventory.reserved、続けて品目ごとに inventory.updated を発行
    3. 在庫不足なら何も発行しない。注文は予約を持たない
    """
    result = ledger.check_and_reserve(order_id, lines)

    if not result.success:
        _record(store, order_id, "InventoryReservationFailed", {
            "order_id": order_id,
            "reason": result.reason,
        })
        logger.warning("Reservation for order %s failed: %s", order_id, result.reason)
        return result

    reservation: Reservation = result.value
    if not result.changed:
        logger.info(
            "Order %s already holds reservation %s, ignoring duplicate",
            order_id,
            reservation.reservation_id,
        )
        return result

    # await より前に在庫数を控え、発行する数量をこのコミットに一致させる
    updates = [
        InventoryUpdated(item_id=item_id, new_quantity=ledger.stock_of(item_id))
        for item_id in dict.fromkeys(i.item_id for i in reservation.items)
    ]
    _record(store, order_id, "InventoryReserved", reservation.to_dict())
    logger.info("Inventory reserved for order %s (%s)", order_id, reservation.reservation_id)

    await bus.publish(
        channels.INVENTORY_RESERVED,
        InventoryReserved(
            reservation_id=reservation.reservation_id,
            order_id=order_id,
            items=list(reservation.items),
        ),
    )
    for update in updates:
        await bus.publish(channels.INVENTORY_UPDATED, update)

    return result


async def release_inventory(
    ledger: InventoryLedger,
    bus: MessageBus,
    store: EventStore,
    order_id: str,
) -> CommandResult:
    """
    在庫解放コマンド（キャンセルされた注文の補償）

    繰り返しても安全。2回目の解放は予約が見つからず何も変えない。
    """
    result = ledger.release(order_id)

    if not result.success:
        logger.info("No reservation found for order %s", order_id)
        return result

    reservation: Reservation = result.value
    updates = [
        InventoryUpdated(item_id=item_id, new_quantity=ledger.stock_of(item_id))
        for item_id in dict.fromkeys(i.item_id for i in reservation.items)
    ]
    _record(store, order_id, "InventoryReleased", reservation.to_dict())
    logger.info("Inventory released for order %s (%s)", order_id, reservation.reservation_id)

    await bus.publish(
        channels.INVENTORY_RELEASED,
        InventoryReleased(
            reservation_id=reservation.reservation_id,
            order_id=order_id,
            items=list(reservation.items),
        ),
    )
    for update in updates:
        await bus.publish(channels.INVENTORY_UPDATED, update)

    return result
