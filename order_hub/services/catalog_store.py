"""
Catalog Store: durable product records.

Plain async functions over an ``AsyncSession``; callers own the
transaction boundary.
"""

import uuid
from collections.abc import Iterable

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from order_hub.database import utcnow
from order_hub.models.product import Product
from shared.errors import NotFoundError, ValidationError
from shared.events import LocalizedText, ProductPayload


def to_payload(product: Product) -> ProductPayload:
    return ProductPayload(
        id=product.id,
        name=product.name,
        description=product.description,
        translations={
            lang: LocalizedText.model_validate(text)
            for lang, text in (product.translations or {}).items()
        },
        price=product.price,
        category=product.category,
        stock=product.stock,
        is_available=product.is_available,
    )


async def list_products(db: AsyncSession) -> list[Product]:
    result = await db.execute(select(Product).order_by(Product.category, Product.name))
    return list(result.scalars().all())


async def get_product(db: AsyncSession, product_id: uuid.UUID) -> Product | None:
    result = await db.execute(select(Product).where(Product.id == product_id))
    return result.scalars().first()


async def get_products(db: AsyncSession, product_ids: Iterable[uuid.UUID]) -> dict[uuid.UUID, Product]:
    ids = set(product_ids)
    if not ids:
        return {}
    # populate_existing: stock may have changed through a bulk UPDATE in this session
    result = await db.execute(
        select(Product).where(Product.id.in_(ids)).execution_options(populate_existing=True)
    )
    return {p.id: p for p in result.scalars().all()}


async def decrement_stock(db: AsyncSession, product_id: uuid.UUID, quantity: int) -> bool:
    """Atomically take *quantity* units; False if that would drive stock below zero."""
    result = await db.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def update_product(
    db: AsyncSession,
    product_id: uuid.UUID,
    stock: int | None = None,
    is_available: bool | None = None,
) -> Product:
    if stock is not None and stock < 0:
        raise ValidationError("Stock cannot be negative")

    product = await get_product(db, product_id)
    if product is None:
        raise NotFoundError("Product not found")

    if stock is not None:
        product.stock = stock
    if is_available is not None:
        product.is_available = is_available
    await db.flush()
    return product
