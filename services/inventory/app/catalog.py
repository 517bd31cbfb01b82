"""
Inventory Service — 初期在庫カタログ

台帳の初期在庫数。INVENTORY_SEED に {"ITEM-001": 10, "ITEM-009": 3} のような
JSON オブジェクトを指定すると上書きできる。
"""

import json

DEFAULT_CATALOG: dict[str, int] = {
    "ITEM-001": 100,
    "ITEM-002": 50,
    "ITEM-003": 200,
    "ITEM-004": 75,
}


def load_catalog(raw: str | None) -> dict[str, int]:
    if not raw:
        return dict(DEFAULT_CATALOG)

    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("INVENTORY_SEED must be a JSON object of item_id -> quantity")

    catalog: dict[str, int] = {}
    for item_id, quantity in data.items():
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 0:
            raise ValueError(f"Invalid seed quantity for {item_id}: {quantity!r}")
        catalog[str(item_id)] = quantity
    return catalog
