from __future__ import annotations

from skylink.models.booking import OrderEvent, OrderEventType


EVENT_TOPIC_MAP = {
    OrderEventType.ORDER_CREATED: "order.lifecycle",
    OrderEventType.ORDER_CONFIRMED: "order.lifecycle",
    OrderEventType.ORDER_CANCELLED: "order.lifecycle",
    OrderEventType.SERVICES_ADDED: "order.services",
    OrderEventType.SERVICE_REMOVED: "order.services",
    OrderEventType.CHECKED_IN: "order.checkin",
    OrderEventType.WALLET_DEBITED: "wallet.ledger",
    OrderEventType.WALLET_CREDITED: "wallet.ledger",
}


def partition_key(event: OrderEvent) -> str:
    if event.order_number:
        return event.order_number
    return f"user-{event.user_id}"
