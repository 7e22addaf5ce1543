"""Tests for catalog change detection and the products_updated broadcast."""

import uuid
from decimal import Decimal

import pytest

from order_hub.services.catalog_broadcast import changed_products
from shared.errors import NotFoundError, ValidationError
from shared.events import PRODUCTS_UPDATED, Category, ProductPayload
from tests.fakes import seed_product, stock_of


def _payload(**overrides) -> ProductPayload:
    fields = {
        "id": uuid.uuid4(),
        "name": "Cookie",
        "price": Decimal("2.00"),
        "category": Category.DESSERT,
        "stock": 4,
        "is_available": True,
    }
    fields.update(overrides)
    return ProductPayload(**fields)


class TestChangedProducts:
    def test_unchanged_records_are_skipped(self):
        cookie = _payload()
        assert changed_products({cookie.id: cookie}, [cookie]) == []

    def test_stock_change_is_reported(self):
        cookie = _payload()
        after = cookie.model_copy(update={"stock": 3})
        assert changed_products({cookie.id: cookie}, [after]) == [after]

    def test_record_missing_before_counts_as_changed(self):
        cookie = _payload()
        assert changed_products({}, [cookie]) == [cookie]


class TestUpdateProduct:
    async def test_stock_edit_is_broadcast_to_customers(self, broadcaster, sessions, customer, kitchen):
        coke = await seed_product(sessions, stock=2)

        updated = await broadcaster.update_product(coke.id, stock=7)

        assert updated.stock == 7
        assert await stock_of(sessions, coke.id) == 7
        events = customer.connection.events(PRODUCTS_UPDATED)
        assert len(events) == 1
        assert events[0]["products"][0]["id"] == str(coke.id)
        assert events[0]["products"][0]["stock"] == 7
        assert events[0]["products"][0]["isAvailable"] is True
        assert kitchen.connection.events(PRODUCTS_UPDATED) == []

    async def test_availability_edit_is_broadcast(self, broadcaster, sessions, customer):
        coke = await seed_product(sessions)

        updated = await broadcaster.update_product(coke.id, is_available=False)

        assert updated.is_available is False
        assert updated.orderable is False
        assert customer.connection.events(PRODUCTS_UPDATED)[0]["products"][0]["isAvailable"] is False

    async def test_no_op_edit_is_not_broadcast(self, broadcaster, sessions, customer):
        coke = await seed_product(sessions, stock=5)
        await broadcaster.update_product(coke.id, stock=5)
        assert customer.connection.events(PRODUCTS_UPDATED) == []

    async def test_negative_stock_is_rejected(self, broadcaster, sessions, customer):
        coke = await seed_product(sessions, stock=5)
        with pytest.raises(ValidationError):
            await broadcaster.update_product(coke.id, stock=-1)
        assert await stock_of(sessions, coke.id) == 5
        assert customer.connection.frames == []

    async def test_unknown_product(self, broadcaster):
        with pytest.raises(NotFoundError):
            await broadcaster.update_product(uuid.uuid4(), stock=1)

    async def test_payload_carries_translations(self, broadcaster, sessions, customer):
        coke = await seed_product(sessions)
        await broadcaster.update_product(coke.id, stock=1)
        product = customer.connection.events(PRODUCTS_UPDATED)[0]["products"][0]
        assert product["translations"]["en"]["description"] == "Ice cold refreshing Coke"
