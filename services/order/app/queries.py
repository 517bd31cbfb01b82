"""
Order Service — クエリハンドラ (CQRS の Read 側)

読み取りはコーディネーターのスナップショット経由で行うため、
遷移途中の注文が見えることはない。
"""

from .aggregate import OrderStatus
from .commands import OrderCoordinator


def get_order(coordinator: OrderCoordinator, order_id: str) -> dict | None:
    agg = coordinator.get_order(order_id)
    return agg.to_dict() if agg else None


def list_orders(coordinator: OrderCoordinator, status: OrderStatus | None = None) -> list[dict]:
    """全注文を新しい順に返す（status で絞り込み可）"""
    if status is None:
        orders = coordinator.list_orders()
    else:
        orders = coordinator.list_by_status(status)
    orders.sort(key=lambda agg: agg.created_at, reverse=True)
    return [agg.to_dict() for agg in orders]


def status_summary(coordinator: OrderCoordinator) -> dict:
    return coordinator.summary()


def format_summary(summary: dict) -> str:
    return (
        f"{summary['total']} total orders "
        f"({summary['pending']} pending, {summary['completed']} completed, "
        f"{summary['cancelled']} cancelled)"
    )
