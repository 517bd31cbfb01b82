"""
Common — バスのチャネル名

全サービスがこのサブジェクトで発行・購読する。
各サブジェクトで運ぶペイロードのフィールド名も契約の一部。
"""

# 注文ライフサイクル
ORDER_CREATED = "order.created"
ORDER_CANCELLED = "order.cancelled"
ORDER_COMPLETED = "order.completed"

# 決済・配送サービスからの事実
PAYMENT_FAILED = "payment.failed"
SHIPMENT_DELIVERED = "shipment.delivered"

# 在庫
INVENTORY_RESERVED = "inventory.reserved"
INVENTORY_RELEASED = "inventory.released"
INVENTORY_UPDATED = "inventory.updated"
