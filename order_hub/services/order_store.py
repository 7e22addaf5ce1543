"""
Order Store: durable orders, their line items and status history.

Orders are never deleted; CANCELLED is terminal but retained.
"""

import uuid
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from order_hub.database import utcnow
from order_hub.models.order import Order, OrderItem, OrderStatusHistory
from shared.events import OrderItemPayload, OrderPayload, OrderStatus, PaymentMethod

CENT = Decimal("0.01")


@dataclass
class LineSnapshot:
    product_id: uuid.UUID
    name: str
    unit_price: Decimal
    quantity: int

    @property
    def subtotal(self) -> Decimal:
        return (self.unit_price * self.quantity).quantize(CENT)


def compute_total(lines: list[LineSnapshot]) -> Decimal:
    return sum((line.subtotal for line in lines), Decimal("0.00")).quantize(CENT)


def to_payload(order: Order) -> OrderPayload:
    return OrderPayload(
        id=order.id,
        number=str(order.number),
        customer_name=order.customer_name,
        instructions=order.instructions,
        payment_method=order.payment_method,
        is_paid=order.is_paid,
        status=order.status,
        items=[
            OrderItemPayload(
                product_id=item.product_id,
                name=item.product_name,
                unit_price=item.unit_price,
                quantity=item.quantity,
                subtotal=item.subtotal,
            )
            for item in order.items
        ],
        total_amount=Decimal(order.total_amount).quantize(CENT),
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


async def next_number(db: AsyncSession) -> int:
    result = await db.execute(select(func.coalesce(func.max(Order.number), 0)))
    return int(result.scalar_one()) + 1


async def create_order(
    db: AsyncSession,
    number: int,
    customer_name: str,
    instructions: str | None,
    payment_method: PaymentMethod,
    lines: list[LineSnapshot],
) -> Order:
    now = utcnow()
    order = Order(
        number=number,
        customer_name=customer_name,
        instructions=instructions,
        payment_method=payment_method,
        is_paid=False,
        status=OrderStatus.NEW,
        total_amount=compute_total(lines),
        created_at=now,
        updated_at=now,
        items=[
            OrderItem(
                product_id=line.product_id,
                position=position,
                product_name=line.name,
                unit_price=line.unit_price,
                quantity=line.quantity,
                subtotal=line.subtotal,
            )
            for position, line in enumerate(lines)
        ],
        status_history=[OrderStatusHistory(status=OrderStatus.NEW, created_at=now)],
    )
    db.add(order)
    await db.flush()  # assigns order.id
    return order


async def get_order(db: AsyncSession, order_id: uuid.UUID, for_update: bool = False) -> Order | None:
    stmt = select(Order).where(Order.id == order_id).options(selectinload(Order.items))
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    return result.scalars().first()


async def list_orders(db: AsyncSession) -> list[Order]:
    result = await db.execute(
        select(Order).options(selectinload(Order.items)).order_by(Order.number.desc())
    )
    return list(result.scalars().all())


async def set_status(db: AsyncSession, order: Order, status: OrderStatus) -> None:
    now = utcnow()
    order.status = status
    order.updated_at = now
    db.add(OrderStatusHistory(order_id=order.id, status=status, created_at=now))


def set_paid(order: Order, is_paid: bool) -> None:
    order.is_paid = is_paid
    order.updated_at = utcnow()


async def get_status_history(db: AsyncSession, order_id: uuid.UUID) -> list[OrderStatusHistory]:
    result = await db.execute(
        select(OrderStatusHistory)
        .where(OrderStatusHistory.order_id == order_id)
        .order_by(OrderStatusHistory.id)
    )
    return list(result.scalars().all())
