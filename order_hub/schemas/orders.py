from datetime import datetime

from shared.events import OrderPayload, OrderStatus, WireModel


class OrderListResponse(WireModel):
    orders: list[OrderPayload]


class OrderResponse(WireModel):
    order: OrderPayload


class StatusHistoryEntry(WireModel):
    status: OrderStatus
    created_at: datetime


class StatusHistoryResponse(WireModel):
    history: list[StatusHistoryEntry]
