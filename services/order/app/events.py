"""
Order Service — イベント定義

注文に関する事実。過去形で命名し、不変(immutable)。
OrderCreated / PaymentFailed / ShipmentDelivered は他サービスから届き、
OrderCancelled / OrderCompleted はこのサービスが発行する。
"""

from datetime import datetime

from pydantic import Field

from services.common.events import BusEvent


class OrderItem(BusEvent):
    item_id: str
    quantity: int = Field(ge=1)
    price: float = Field(ge=0)


class OrderCreated(BusEvent):
    """注文が作成された"""
    order_id: str
    user_id: str
    total_amount: float = Field(ge=0)
    items: list[OrderItem]


class PaymentFailed(BusEvent):
    """注文の決済が失敗した"""
    payment_id: str
    order_id: str
    failure_reason: str


class ShipmentDelivered(BusEvent):
    """注文の配送が顧客に届いた"""
    order_id: str
    shipment_id: str
    delivery_time: datetime


class OrderCancelled(BusEvent):
    """注文がキャンセルされた"""
    order_id: str
    reason: str


class OrderCompleted(BusEvent):
    """注文が完了した。completion_time はこのサービスが処理した時刻"""
    order_id: str
    completion_time: datetime
