"""
Normalization of order and product payloads received by clients.

The server emits one canonical shape, but snapshots and events from older
servers arrive with other field names:

  - raw persisted rows: ``items[].productSnapshot.nom``, ``items[].unitPrice``
  - legacy/compat:      ``nom``, ``paiement``, ``panier[].{nom, prix, quantite}``,
                        string ``total``

This module is the only place that knows about those variants.
"""

from decimal import Decimal, InvalidOperation
from typing import Any

from shared.events import OrderItemPayload, OrderPayload, ProductPayload

CENT = Decimal("0.01")
DEFAULT_ITEM_NAME = "Product"


def _first(data: dict, *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return default


def _decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def normalize_item(item: dict) -> OrderItemPayload:
    snapshot = item.get("productSnapshot") or {}
    quantity = int(_first(item, "quantity", "quantite", default=1))
    unit_price = _decimal(_first(item, "unitPrice", "unit_price", "prix", "price")) or Decimal("0")
    subtotal = _decimal(item.get("subtotal"))
    return OrderItemPayload(
        product_id=_first(item, "productId", "product_id", "id"),
        name=_first(item, "name") or snapshot.get("nom") or snapshot.get("name") or _first(item, "nom", default=DEFAULT_ITEM_NAME),
        unit_price=unit_price,
        quantity=quantity,
        subtotal=subtotal if subtotal is not None else (unit_price * quantity).quantize(CENT),
    )


def normalize_order(data: dict) -> OrderPayload:
    """Return the canonical order for any tolerated input shape."""
    raw_items = data.get("items")
    if not isinstance(raw_items, list):
        raw_items = data.get("panier") or []
    items = [normalize_item(item) for item in raw_items]

    total = _decimal(_first(data, "totalAmount", "total_amount", "total"))
    if total is None:
        total = sum((item.subtotal for item in items), Decimal("0"))

    return OrderPayload(
        id=data["id"],
        number=str(_first(data, "number", default="")),
        customer_name=_first(data, "customerName", "customer_name", "nom", default=""),
        instructions=data.get("instructions") or None,
        payment_method=_first(data, "paymentMethod", "payment_method", "paiement", default="CARD"),
        is_paid=bool(_first(data, "isPaid", "is_paid", default=False)),
        status=_first(data, "status", default="NEW"),
        items=items,
        total_amount=total.quantize(CENT),
        created_at=_first(data, "createdAt", "created_at", "date"),
        updated_at=_first(data, "updatedAt", "updated_at", "createdAt", "created_at", "date"),
    )


def normalize_product(data: dict) -> ProductPayload:
    return ProductPayload.model_validate(data)
