"""
Inventory Service — 在庫台帳

品目ごとの引当可能在庫と、有効な予約を管理する。

保存則: すべての品目について
    引当可能数 + 有効な予約数量の合計 == 初期数量
が、結果整合ではなく毎回の呼び出し後に成り立つ。

変更はすべて台帳全体のロック内で行うため、同じ品目への2つの予約が
どちらも在庫チェックを通過することはない。
"""

import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol
from uuid import uuid4

from services.common.errors import CommandResult, ErrorKind

from .events import InventoryItem


class StockLine(Protocol):
    item_id: str
    quantity: int


@dataclass(frozen=True)
class Reservation:
    reservation_id: str
    order_id: str
    items: tuple[InventoryItem, ...]
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "reservation_id": self.reservation_id,
            "order_id": self.order_id,
            "items": [{"item_id": i.item_id, "quantity": i.quantity} for i in self.items],
            "created_at": self.created_at.isoformat(),
        }


def new_reservation_id() -> str:
    return f"RES-{uuid4().hex[:12].upper()}"


class InventoryLedger:
    def __init__(self, catalog: Mapping[str, int]) -> None:
        for item_id, quantity in catalog.items():
            if quantity < 0:
                raise ValueError(f"Seed quantity for {item_id} must be >= 0, got {quantity}")
        self._initial: dict[str, int] = dict(catalog)
        self._stock: dict[str, int] = dict(catalog)
        self._reservations: dict[str, Reservation] = {}
        self._by_order: dict[str, str] = {}
        self._lock = threading.Lock()

    # ── コマンド ─────────────────────────────────

    def check_and_reserve(self, order_id: str, lines: Iterable[StockLine]) -> CommandResult:
        """
        全明細を予約するか、1つも予約しない。

        同じ品目の明細はチェック前に合算する。
        注文がすでに予約を持っていれば、その予約をそのまま返す (changed=False)。
        """
        items = tuple(InventoryItem(item_id=line.item_id, quantity=line.quantity) for line in lines)
        requested: dict[str, int] = {}
        for item in items:
            requested[item.item_id] = requested.get(item.item_id, 0) + item.quantity

        with self._lock:
            existing_id = self._by_order.get(order_id)
            if existing_id is not None:
                return CommandResult.ok(
                    self._reservations[existing_id],
                    reason="Reservation already active",
                    changed=False,
                )

            shortages = [
                f"{item_id}: requested={qty}, available={self._stock.get(item_id, 0)}"
                for item_id, qty in requested.items()
                if self._stock.get(item_id, 0) < qty
            ]
            if shortages:
                return CommandResult.fail(
                    ErrorKind.INSUFFICIENT_STOCK,
                    "Insufficient stock: " + "; ".join(shortages),
                )

            reservation = Reservation(
                reservation_id=new_reservation_id(),
                order_id=order_id,
                items=items,
            )
            self._apply_reserved(requested)
            self._reservations[reservation.reservation_id] = reservation
            self._by_order[order_id] = reservation.reservation_id
            return CommandResult.ok(reservation)

    def release(self, order_id: str) -> CommandResult:
        """注文の予約を在庫に戻す"""
        with self._lock:
            reservation_id = self._by_order.pop(order_id, None)
            if reservation_id is None:
                return CommandResult.fail(
                    ErrorKind.NOT_FOUND, f"No reservation found for order {order_id}"
                )
            reservation = self._reservations.pop(reservation_id)
            self._apply_released(reservation.items)
            return CommandResult.ok(reservation)

    def _apply_reserved(self, requested: Mapping[str, int]) -> None:
        for item_id, qty in requested.items():
            self._stock[item_id] -= qty

    def _apply_released(self, items: Iterable[InventoryItem]) -> None:
        for item in items:
            self._stock[item.item_id] = self._stock.get(item.item_id, 0) + item.quantity

    # ── 読み取り ─────────────────────────────────

    def stock_of(self, item_id: str) -> int:
        with self._lock:
            return self._stock.get(item_id, 0)

    def initial_quantity(self, item_id: str) -> int:
        return self._initial.get(item_id, 0)

    def reserved_quantity(self, item_id: str) -> int:
        with self._lock:
            return sum(
                i.quantity
                for r in self._reservations.values()
                for i in r.items
                if i.item_id == item_id
            )

    def reservation_for(self, order_id: str) -> Reservation | None:
        with self._lock:
            reservation_id = self._by_order.get(order_id)
            return self._reservations.get(reservation_id) if reservation_id else None

    def active_reservations(self) -> list[Reservation]:
        with self._lock:
            return list(self._reservations.values())

    def levels(self) -> dict[str, int]:
        with self._lock:
            return dict(self._stock)
