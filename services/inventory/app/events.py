"""
Inventory Service — イベント定義

在庫台帳が発行するイベント。
"""

from pydantic import Field

from services.common.events import BusEvent


class InventoryItem(BusEvent):
    item_id: str
    quantity: int = Field(ge=1)


class InventoryReserved(BusEvent):
    """注文のために在庫が確保された"""
    reservation_id: str
    order_id: str
    items: list[InventoryItem]


class InventoryReleased(BusEvent):
    """予約が在庫に戻された（注文キャンセル）"""
    reservation_id: str
    order_id: str
    items: list[InventoryItem]


class InventoryUpdated(BusEvent):
    """1品目の引当可能数が変わった"""
    item_id: str
    new_quantity: int
