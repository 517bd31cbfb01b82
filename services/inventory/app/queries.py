"""
Inventory Service — クエリハンドラ (CQRS の Read 側)
"""

from .aggregate import InventoryLedger


def get_item(ledger: InventoryLedger, item_id: str) -> dict | None:
    levels = ledger.levels()
    if item_id not in levels:
        return None
    return {
        "item_id": item_id,
        "available": levels[item_id],
        "reserved": ledger.reserved_quantity(item_id),
        "initial": ledger.initial_quantity(item_id),
    }


def list_items(ledger: InventoryLedger) -> list[dict]:
    return [
        {
            "item_id": item_id,
            "available": available,
            "reserved": ledger.reserved_quantity(item_id),
            "initial": ledger.initial_quantity(item_id),
        }
        for item_id, available in sorted(ledger.levels().items())
    ]


def get_reservation(ledger: InventoryLedger, order_id: str) -> dict | None:
    reservation = ledger.reservation_for(order_id)
    return reservation.to_dict() if reservation else None
