"""
Local projections of server state and the pure merges that keep them current.

Every function here takes a projection and returns a new one; inputs are
never mutated, so each merge can be tested without a transport.

Rules:
  - products are patched by id in place; unknown ids are ignored, nothing
    is appended (the full catalog only arrives through the snapshot read)
  - kitchens prepend new orders and patch status/isPaid/updatedAt by id
  - the cart is never touched by server events; it is checked against
    observed stock only when the customer adds an item
"""

import uuid
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any

from shared.errors import ValidationError
from shared.events import (
    CLIENTS_COUNT,
    NEW_ORDER_RECEIVED,
    ORDER_CONFIRMATION,
    ORDER_ERROR,
    ORDER_STATUS_CHANGED,
    ORDER_UPDATED,
    PRODUCTS_UPDATED,
    ClientsCount,
    NewOrderLine,
    NewOrderMessage,
    OrderPayload,
    OrderStatus,
    PaymentMethod,
    ProductPayload,
)
from shared.localization import resolve_text
from sync_client.normalize import normalize_order, normalize_product


class OutOfStockError(ValidationError):
    """The product is unavailable or has no stock left."""


class StockLimitError(ValidationError):
    """The cart already holds every unit the catalog reported in stock."""


@dataclass(frozen=True)
class CartItem:
    product_id: uuid.UUID
    name: str
    unit_price: Decimal
    quantity: int


@dataclass(frozen=True)
class CustomerProjection:
    products: tuple[ProductPayload, ...] = ()
    cart: tuple[CartItem, ...] = ()
    customer_name: str = ""
    instructions: str = ""
    payment_method: PaymentMethod = PaymentMethod.CARD
    order_submitted: bool = False
    order_id: uuid.UUID | None = None
    order_number: str = ""
    order_status: OrderStatus | None = None
    is_paid: bool = False
    last_error: str | None = None


@dataclass(frozen=True)
class KitchenProjection:
    orders: tuple[OrderPayload, ...] = ()
    clients_count: ClientsCount = field(default_factory=ClientsCount)


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------


def merge_products(
    current: tuple[ProductPayload, ...],
    patch: list[ProductPayload],
) -> tuple[ProductPayload, ...]:
    by_id = {product.id: product for product in patch}
    return tuple(by_id.get(product.id, product) for product in current)


def products_by_category(projection: CustomerProjection, category) -> list[ProductPayload]:
    return [p for p in projection.products if p.category == category and p.is_available]


# ---------------------------------------------------------------------------
# Orders (kitchen)
# ---------------------------------------------------------------------------


def prepend_order(current: tuple[OrderPayload, ...], order: OrderPayload) -> tuple[OrderPayload, ...]:
    if any(existing.id == order.id for existing in current):
        # Replayed announcement, e.g. after a reconnect raced the snapshot
        return tuple(order if existing.id == order.id else existing for existing in current)
    return (order, *current)


def patch_order(current: tuple[OrderPayload, ...], patch: dict) -> tuple[OrderPayload, ...]:
    """Apply status/isPaid/updatedAt from *patch*; other local fields are kept."""
    order_id = uuid.UUID(str(patch.get("orderId") or patch.get("id")))
    changes: dict[str, Any] = {}
    if patch.get("status"):
        changes["status"] = OrderStatus(patch["status"])
    if patch.get("isPaid") is not None:
        changes["is_paid"] = bool(patch["isPaid"])
    if patch.get("updatedAt"):
        changes["updated_at"] = patch["updatedAt"]
    return tuple(
        order.model_validate({**order.model_dump(), **changes}) if order.id == order_id else order
        for order in current
    )


def orders_with_status(projection: KitchenProjection, status: OrderStatus | None) -> list[OrderPayload]:
    """Orders for one kitchen tab; ``None`` means all."""
    return [o for o in projection.orders if status is None or o.status == status]


# ---------------------------------------------------------------------------
# Cart (customer)
# ---------------------------------------------------------------------------


def add_to_cart(projection: CustomerProjection, product_id: uuid.UUID, language: str | None = None) -> CustomerProjection:
    product = next((p for p in projection.products if p.id == product_id), None)
    if product is None or not product.orderable:
        raise OutOfStockError("Product is out of stock")

    existing = next((item for item in projection.cart if item.product_id == product_id), None)
    if existing is not None and existing.quantity >= product.stock:
        raise StockLimitError(f"Only {product.stock} in stock")

    if existing is not None:
        cart = tuple(
            replace(item, quantity=item.quantity + 1) if item.product_id == product_id else item
            for item in projection.cart
        )
    else:
        name = resolve_text(product, language).name
        cart = (*projection.cart, CartItem(product.id, name, product.price, 1))
    return replace(projection, cart=cart)


def remove_from_cart(projection: CustomerProjection, product_id: uuid.UUID) -> CustomerProjection:
    return replace(projection, cart=tuple(i for i in projection.cart if i.product_id != product_id))


def cart_total(projection: CustomerProjection) -> Decimal:
    return sum((i.unit_price * i.quantity for i in projection.cart), Decimal("0.00")).quantize(Decimal("0.01"))


def build_submission(projection: CustomerProjection) -> NewOrderMessage:
    if not projection.cart:
        raise ValidationError("Cart is empty")
    if not projection.customer_name.strip():
        raise ValidationError("Customer name is required")
    return NewOrderMessage(
        customer_name=projection.customer_name,
        instructions=projection.instructions or None,
        payment_method=projection.payment_method,
        items=[
            NewOrderLine(product_id=i.product_id, quantity=i.quantity, name=i.name, price=i.unit_price)
            for i in projection.cart
        ],
        total=cart_total(projection),
    )


def reset_order(projection: CustomerProjection) -> CustomerProjection:
    """Start over for a new order; the catalog view is kept."""
    return CustomerProjection(products=projection.products, payment_method=projection.payment_method)


def apply_order_snapshot(projection: CustomerProjection, order: OrderPayload) -> CustomerProjection:
    """Adopt the server's view of the followed order after a reconnect."""
    if order.id != projection.order_id:
        return projection
    return replace(
        projection,
        order_submitted=True,
        order_number=order.number,
        order_status=order.status,
        is_paid=order.is_paid,
    )



# ---------------------------------------------------------------------------
# Event dispatch
# ---------------------------------------------------------------------------


def _apply_customer(projection: CustomerProjection, event: str, data: dict) -> CustomerProjection:
    if event == PRODUCTS_UPDATED:
        patch = [normalize_product(p) for p in data.get("products", [])]
        return replace(projection, products=merge_products(projection.products, patch))

    if event == ORDER_CONFIRMATION:
        order_id = data.get("orderId")
        return replace(
            projection,
            order_submitted=True,
            order_id=uuid.UUID(str(order_id)) if order_id else None,
            order_number=str(data.get("orderNumber", "")),
            order_status=OrderStatus.NEW,
            last_error=None,
        )

    if event == ORDER_STATUS_CHANGED:
        order_id = data.get("orderId")
        # Only the followed order; none is followed after reset_order
        if projection.order_id is None or not order_id or uuid.UUID(str(order_id)) != projection.order_id:
            return projection
        changes: dict[str, Any] = {}
        if data.get("status"):
            changes["order_status"] = OrderStatus(data["status"])
        if data.get("isPaid") is not None:
            changes["is_paid"] = bool(data["isPaid"])
        return replace(projection, **changes)

    if event == ORDER_ERROR:
        # The cart stays as it was so the customer can revise it
        return replace(projection, order_submitted=False, last_error=data.get("message"))

    return projection


def _apply_kitchen(projection: KitchenProjection, event: str, data: dict) -> KitchenProjection:
    if event == NEW_ORDER_RECEIVED:
        return replace(projection, orders=prepend_order(projection.orders, normalize_order(data)))

    if event in (ORDER_STATUS_CHANGED, ORDER_UPDATED):
        return replace(projection, orders=patch_order(projection.orders, data))

    if event == CLIENTS_COUNT:
        return replace(projection, clients_count=ClientsCount.model_validate(data))

    return projection


def apply_event(projection, event: str, data: dict):
    """Merge one server event into *projection* and return the result."""
    if isinstance(projection, CustomerProjection):
        return _apply_customer(projection, event, data)
    if isinstance(projection, KitchenProjection):
        return _apply_kitchen(projection, event, data)
    raise TypeError(f"Unsupported projection: {type(projection).__name__}")
