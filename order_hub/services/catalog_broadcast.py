"""
Catalog Broadcast Coordinator.

Turns catalog mutations (stock taken by an order, administrative stock or
availability edits) into a single ``products_updated`` event for every
customer session. Only products whose record actually changed are sent,
never the whole catalog.

Every catalog writer holds ``lock`` from its commit until its broadcast has
gone out, so customers receive stock updates in commit order.
"""

import asyncio
import logging
import uuid
from collections.abc import Iterable, Mapping

from opentelemetry import trace
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_hub.services import catalog_store
from order_hub.services.event_hub import EventHub
from shared.events import PRODUCTS_UPDATED, ClientRole, ProductPayload, ProductsUpdated

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def changed_products(
    before: Mapping[uuid.UUID, ProductPayload],
    after: Iterable[ProductPayload],
) -> list[ProductPayload]:
    """Records in *after* that differ from (or are missing in) *before*."""
    return [product for product in after if before.get(product.id) != product]


class CatalogBroadcaster:
    def __init__(self, hub: EventHub, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._hub = hub
        self._sessions = sessions
        self.lock = asyncio.Lock()

    async def publish(self, products: list[ProductPayload]) -> int:
        if not products:
            return 0
        delivered = await self._hub.emit_to_role(
            ClientRole.CUSTOMER, PRODUCTS_UPDATED, ProductsUpdated(products=products)
        )
        logger.info(
            "Broadcast catalog update",
            extra={
                "product_ids": [str(p.id) for p in products],
                "recipients": delivered,
            },
        )
        return delivered

    async def publish_changes(
        self,
        before: Mapping[uuid.UUID, ProductPayload],
        after: Iterable[ProductPayload],
    ) -> list[ProductPayload]:
        changed = changed_products(before, after)
        await self.publish(changed)
        return changed

    async def update_product(
        self,
        product_id: uuid.UUID,
        stock: int | None = None,
        is_available: bool | None = None,
    ) -> ProductPayload:
        """Administrative stock/availability edit followed by a broadcast of the change."""
        with tracer.start_as_current_span("catalog.update_product"):
            async with self.lock:
                async with self._sessions() as db:
                    async with db.begin():
                        product = await catalog_store.get_product(db, product_id)
                        before = {product_id: catalog_store.to_payload(product)} if product else {}
                        product = await catalog_store.update_product(db, product_id, stock, is_available)
                        updated = catalog_store.to_payload(product)

                logger.info(
                    "Product updated",
                    extra={
                        "product_id": str(product_id),
                        "stock": updated.stock,
                        "is_available": updated.is_available,
                    },
                )
                await self.publish_changes(before, [updated])
                return updated

