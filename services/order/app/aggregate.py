"""
Order Service — 注文集約 (Aggregate)

apply_xxx メソッドはイベントを1件ずつ注文の状態に適用する。

状態遷移:
    PENDING → CANCELLED  (決済失敗 / オペレーターによるキャンセル)
    PENDING → COMPLETED  (配送完了)

CANCELLED と COMPLETED は終端状態。一度到達したらステータスは変わらない。
"""

import copy
from datetime import datetime, timezone
from enum import Enum

from .events import OrderItem


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


TERMINAL_STATUSES = frozenset({OrderStatus.CANCELLED, OrderStatus.COMPLETED})


class OrderAggregate:
    def __init__(self) -> None:
        self.id: str | None = None
        self.user_id: str = ""
        self.total_amount: float = 0
        self.items: list[OrderItem] = []
        self.status: OrderStatus | None = None
        self.created_at: datetime | None = None
        self.cancellation_reason: str | None = None
        self.completed_at: datetime | None = None
        self.version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    # ── イベント適用 ────────────────────────────

    def apply_order_created(self, data: dict) -> None:
        self.id = data["order_id"]
        self.user_id = data["user_id"]
        self.total_amount = data["total_amount"]
        self.items = list(data["items"])
        self.status = OrderStatus.PENDING
        self.created_at = data.get("timestamp") or datetime.now(timezone.utc)

    def apply_order_cancelled(self, data: dict) -> None:
        self.status = OrderStatus.CANCELLED
        self.cancellation_reason = data["reason"]

    def apply_order_completed(self, data: dict) -> None:
        self.status = OrderStatus.COMPLETED
        self.completed_at = data["completion_time"]

    def apply_event(self, event_type: str, event_data: dict) -> None:
        handler = {
            "OrderCreated": self.apply_order_created,
            "OrderCancelled": self.apply_order_cancelled,
            "OrderCompleted": self.apply_order_completed,
        }.get(event_type)
        if handler:
            handler(event_data)

    def snapshot(self) -> "OrderAggregate":
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        return {
            "order_id": self.id,
            "user_id": self.user_id,
            "total_amount": self.total_amount,
            "items": [item.model_dump() for item in self.items],
            "status": self.status.value if self.status else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "cancellation_reason": self.cancellation_reason,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "version": self.version,
        }
