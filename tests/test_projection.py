"""Tests for the client projections and their event merges."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from shared.errors import ValidationError
from shared.events import (
    CLIENTS_COUNT,
    NEW_ORDER_RECEIVED,
    ORDER_CONFIRMATION,
    ORDER_ERROR,
    ORDER_STATUS_CHANGED,
    ORDER_UPDATED,
    PRODUCTS_UPDATED,
    Category,
    LocalizedText,
    OrderItemPayload,
    OrderPayload,
    OrderStatus,
    PaymentMethod,
    ProductPayload,
)
from sync_client.projection import (
    CustomerProjection,
    KitchenProjection,
    OutOfStockError,
    StockLimitError,
    add_to_cart,
    apply_event,
    apply_order_snapshot,
    build_submission,
    cart_total,
    orders_with_status,
    products_by_category,
    remove_from_cart,
    reset_order,
)


def _product(name="Coca-Cola", stock=5, available=True, price="1.50", category=Category.DRINK, **extra):
    return ProductPayload(
        id=extra.pop("id", uuid.uuid4()),
        name=name,
        price=Decimal(price),
        category=category,
        stock=stock,
        is_available=available,
        **extra,
    )


def _order(number="1", status=OrderStatus.NEW, customer="Alice") -> OrderPayload:
    now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    product_id = uuid.uuid4()
    return OrderPayload(
        id=uuid.uuid4(),
        number=number,
        customer_name=customer,
        payment_method=PaymentMethod.CARD,
        is_paid=False,
        status=status,
        items=[
            OrderItemPayload(
                product_id=product_id,
                name="Burger",
                unit_price=Decimal("8.90"),
                quantity=1,
                subtotal=Decimal("8.90"),
            )
        ],
        total_amount=Decimal("8.90"),
        created_at=now,
        updated_at=now,
    )


class TestProductsUpdated:
    def test_patches_in_place_and_keeps_order(self):
        coke, fries, cookie = _product(), _product("Fries"), _product("Cookie")
        projection = CustomerProjection(products=(coke, fries, cookie))

        changed = fries.model_copy(update={"stock": 0})
        result = apply_event(projection, PRODUCTS_UPDATED, {"products": [changed.wire()]})

        assert [p.name for p in result.products] == ["Coca-Cola", "Fries", "Cookie"]
        assert result.products[1].stock == 0
        assert result.products[0] == coke

    def test_unknown_products_are_ignored(self):
        coke = _product()
        projection = CustomerProjection(products=(coke,))
        stranger = _product("Stranger")

        result = apply_event(projection, PRODUCTS_UPDATED, {"products": [stranger.wire()]})

        assert result.products == (coke,)

    def test_cart_is_untouched(self):
        coke = _product(stock=2)
        projection = add_to_cart(CustomerProjection(products=(coke,)), coke.id)

        emptied = coke.model_copy(update={"stock": 0})
        result = apply_event(projection, PRODUCTS_UPDATED, {"products": [emptied.wire()]})

        assert result.cart == projection.cart

    def test_category_listing_hides_unavailable(self):
        coke, pepsi = _product(), _product("Pepsi", available=False)
        burger = _product("Burger", category=Category.FOOD)
        projection = CustomerProjection(products=(coke, pepsi, burger))
        assert products_by_category(projection, Category.DRINK) == [coke]


class TestCart:
    def test_add_until_stock_limit(self):
        coke = _product(stock=2)
        projection = CustomerProjection(products=(coke,))

        projection = add_to_cart(projection, coke.id)
        projection = add_to_cart(projection, coke.id)
        assert projection.cart[0].quantity == 2

        with pytest.raises(StockLimitError):
            add_to_cart(projection, coke.id)

    def test_out_of_stock_product(self):
        coke = _product(stock=0)
        with pytest.raises(OutOfStockError):
            add_to_cart(CustomerProjection(products=(coke,)), coke.id)

    def test_unavailable_product(self):
        coke = _product(available=False)
        with pytest.raises(OutOfStockError):
            add_to_cart(CustomerProjection(products=(coke,)), coke.id)

    def test_item_name_uses_language(self):
        crepe = _product("Crêpe", translations={"en": LocalizedText(name="Pancake")})
        projection = add_to_cart(CustomerProjection(products=(crepe,)), crepe.id, language="en")
        assert projection.cart[0].name == "Pancake"

    def test_remove_and_total(self):
        coke, fries = _product(price="1.50"), _product("Fries", price="2.25")
        projection = CustomerProjection(products=(coke, fries))
        projection = add_to_cart(add_to_cart(add_to_cart(projection, coke.id), coke.id), fries.id)
        assert cart_total(projection) == Decimal("5.25")

        projection = remove_from_cart(projection, coke.id)
        assert [i.name for i in projection.cart] == ["Fries"]
        assert cart_total(projection) == Decimal("2.25")

    def test_build_submission(self):
        coke = _product(price="1.50")
        projection = add_to_cart(CustomerProjection(products=(coke,), customer_name="Alice"), coke.id)

        message = build_submission(projection).wire()

        assert message["customerName"] == "Alice"
        assert message["paymentMethod"] == "CARD"
        assert message["items"][0]["productId"] == str(coke.id)
        assert message["items"][0]["quantity"] == 1
        assert Decimal(message["total"]) == Decimal("1.50")

    def test_build_submission_requires_items_and_name(self):
        coke = _product()
        with pytest.raises(ValidationError):
            build_submission(CustomerProjection(products=(coke,), customer_name="Alice"))
        with pytest.raises(ValidationError):
            build_submission(add_to_cart(CustomerProjection(products=(coke,)), coke.id))


class TestCustomerOrderEvents:
    def test_confirmation_records_order(self):
        order_id = uuid.uuid4()
        result = apply_event(
            CustomerProjection(), ORDER_CONFIRMATION, {"orderId": str(order_id), "orderNumber": "7"}
        )
        assert result.order_submitted is True
        assert result.order_id == order_id
        assert result.order_number == "7"
        assert result.order_status is OrderStatus.NEW

    def test_status_change_for_own_order(self):
        order_id = uuid.uuid4()
        projection = CustomerProjection(order_id=order_id, order_status=OrderStatus.NEW)

        projection = apply_event(projection, ORDER_STATUS_CHANGED, {"orderId": str(order_id), "status": "READY"})
        projection = apply_event(projection, ORDER_STATUS_CHANGED, {"orderId": str(order_id), "isPaid": True})

        assert projection.order_status is OrderStatus.READY
        assert projection.is_paid is True

    def test_status_change_for_other_order_is_ignored(self):
        projection = CustomerProjection(order_id=uuid.uuid4(), order_status=OrderStatus.NEW)
        result = apply_event(projection, ORDER_STATUS_CHANGED, {"orderId": str(uuid.uuid4()), "status": "READY"})
        assert result == projection

    def test_order_error_keeps_cart(self):
        coke = _product()
        projection = add_to_cart(CustomerProjection(products=(coke,), customer_name="Alice"), coke.id)
        projection = apply_event(projection, ORDER_ERROR, {"code": "stock_exhausted", "message": "Not enough stock"})

        assert projection.order_submitted is False
        assert projection.last_error == "Not enough stock"
        assert projection.cart[0].product_id == coke.id

    def test_reset_order_keeps_catalog(self):
        coke = _product()
        projection = add_to_cart(
            CustomerProjection(products=(coke,), customer_name="Alice", payment_method=PaymentMethod.CASH), coke.id
        )
        projection = apply_event(projection, ORDER_CONFIRMATION, {"orderId": str(uuid.uuid4()), "orderNumber": "1"})

        fresh = reset_order(projection)

        assert fresh.products == (coke,)
        assert fresh.cart == ()
        assert fresh.customer_name == ""
        assert fresh.order_id is None
        assert fresh.order_submitted is False
        assert fresh.payment_method is PaymentMethod.CASH

    def test_late_status_change_after_reset_is_ignored(self):
        order_id = uuid.uuid4()
        confirmed = apply_event(
            CustomerProjection(), ORDER_CONFIRMATION, {"orderId": str(order_id), "orderNumber": "1"}
        )
        fresh = reset_order(confirmed)

        result = apply_event(fresh, ORDER_STATUS_CHANGED, {"orderId": str(order_id), "status": "READY", "isPaid": True})

        assert result.order_status is None
        assert result.is_paid is False

    def test_order_snapshot_restores_followed_order(self):
        order = _order("4", status=OrderStatus.READY).model_copy(update={"is_paid": True})
        projection = CustomerProjection(order_id=order.id)

        result = apply_order_snapshot(projection, order)

        assert result.order_status is OrderStatus.READY
        assert result.is_paid is True
        assert result.order_number == "4"
        assert apply_order_snapshot(CustomerProjection(order_id=uuid.uuid4()), order).order_status is None



class TestKitchenEvents:
    def test_new_order_is_prepended(self):
        older = _order("1")
        newer = _order("2")
        projection = KitchenProjection(orders=(older,))

        result = apply_event(projection, NEW_ORDER_RECEIVED, newer.wire())

        assert [o.number for o in result.orders] == ["2", "1"]

    def test_replayed_order_is_not_duplicated(self):
        order = _order("1")
        projection = KitchenProjection(orders=(order,))
        result = apply_event(projection, NEW_ORDER_RECEIVED, order.wire())
        assert len(result.orders) == 1

    def test_status_patch_keeps_other_fields(self):
        order = _order("1")
        projection = KitchenProjection(orders=(order,))

        result = apply_event(
            projection,
            ORDER_STATUS_CHANGED,
            {"orderId": str(order.id), "status": "PREPARING", "updatedAt": "2024-05-01T12:10:00Z"},
        )

        patched = result.orders[0]
        assert patched.status is OrderStatus.PREPARING
        assert patched.is_paid is False
        assert patched.customer_name == "Alice"
        assert patched.items == order.items
        assert patched.updated_at > order.updated_at

    def test_payment_patch_keeps_status(self):
        order = _order("1", status=OrderStatus.READY)
        result = apply_event(
            KitchenProjection(orders=(order,)), ORDER_STATUS_CHANGED, {"orderId": str(order.id), "isPaid": True}
        )
        assert result.orders[0].status is OrderStatus.READY
        assert result.orders[0].is_paid is True

    def test_order_updated_is_merged_like_status_change(self):
        order = _order("1")
        result = apply_event(
            KitchenProjection(orders=(order,)), ORDER_UPDATED, {"id": str(order.id), "status": "CANCELLED"}
        )
        assert result.orders[0].status is OrderStatus.CANCELLED

    def test_clients_count(self):
        result = apply_event(KitchenProjection(), CLIENTS_COUNT, {"customers": 3, "kitchen": 1})
        assert (result.clients_count.customers, result.clients_count.kitchen) == (3, 1)

    def test_tabs_filter_by_status(self):
        new, ready = _order("1"), _order("2", status=OrderStatus.READY)
        projection = KitchenProjection(orders=(ready, new))
        assert orders_with_status(projection, OrderStatus.READY) == [ready]
        assert len(orders_with_status(projection, None)) == 2

    def test_projection_is_not_mutated(self):
        order = _order("1")
        projection = KitchenProjection(orders=(order,))
        apply_event(projection, ORDER_STATUS_CHANGED, {"orderId": str(order.id), "status": "READY"})
        assert projection.orders[0].status is OrderStatus.NEW
