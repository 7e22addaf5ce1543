"""
Order Lifecycle Engine.

Owns the order status state machine::

    NEW -> PREPARING -> READY -> COMPLETED
      \\________\\__________\\-----> CANCELLED

COMPLETED and CANCELLED are terminal. Any other transition requested by a
kitchen session is accepted, forwards or backwards. The payment flag may
be flipped in any state.

Concurrency:
  - Submissions run one at a time under the catalog lock, which covers
    order-number allocation and the conditional stock decrements inside a
    single transaction, then the resulting events. A failed decrement rolls
    back everything. Administrative catalog edits share the lock, so
    customers see stock changes in commit order.
  - Status/payment changes take a lock scoped to the order id, so two
    updates of the same order never interleave their read-modify-write.
    Events are emitted under that lock to keep per-session order. A lock
    lives only while some update holds or awaits it.

Submissions are not deduplicated: a client that re-sends ``new_order``
gets a second order.
"""

import asyncio
import logging
import uuid
import weakref
from collections import defaultdict
from decimal import Decimal

from opentelemetry import trace
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_hub.metrics import ORDER_SUBMISSIONS, STATUS_UPDATES
from order_hub.services import catalog_store, order_store
from order_hub.services.catalog_broadcast import CatalogBroadcaster
from order_hub.services.event_hub import EventHub, Session
from order_hub.services.order_store import LineSnapshot
from shared.errors import InvalidTransitionError, NotFoundError, StockExhaustedError, ValidationError
from shared.events import (
    NEW_ORDER_RECEIVED,
    ORDER_CONFIRMATION,
    ORDER_STATUS_CHANGED,
    ClientRole,
    NewOrderLine,
    OrderConfirmation,
    OrderPayload,
    OrderStatus,
    OrderStatusChanged,
    PaymentMethod,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _validate_submission(customer_name: str, lines: list[NewOrderLine]) -> None:
    if not customer_name or not customer_name.strip():
        raise ValidationError("Customer name is required")
    if not lines:
        raise ValidationError("Order must contain at least one item")
    for line in lines:
        if line.quantity < 1:
            raise ValidationError(f"Quantity for product {line.product_id} must be at least 1")


def _requested_quantities(lines: list[NewOrderLine]) -> dict[uuid.UUID, int]:
    """Total quantity per product; a product may appear on several lines."""
    totals: dict[uuid.UUID, int] = defaultdict(int)
    for line in lines:
        totals[line.product_id] += line.quantity
    return dict(totals)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class OrderLifecycle:
    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        hub: EventHub,
        broadcaster: CatalogBroadcaster,
    ) -> None:
        self._sessions = sessions
        self._hub = hub
        self._broadcaster = broadcaster
        self._order_locks: weakref.WeakValueDictionary[uuid.UUID, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, order_id: uuid.UUID) -> asyncio.Lock:
        lock = self._order_locks.get(order_id)
        if lock is None:
            lock = asyncio.Lock()
            self._order_locks[order_id] = lock
        return lock

    async def submit_order(
        self,
        customer_name: str,
        instructions: str | None,
        payment_method: PaymentMethod,
        lines: list[NewOrderLine],
        session: Session | None = None,
        client_total: Decimal | None = None,
    ) -> OrderPayload:
        """Persist a NEW order, take its stock, and notify submitter, kitchens and customers."""
        try:
            _validate_submission(customer_name, lines)
        except ValidationError:
            ORDER_SUBMISSIONS.labels("validation_error").inc()
            raise

        requested = _requested_quantities(lines)

        with tracer.start_as_current_span("order.submit") as span:
            # Held through the broadcast so products_updated follows commit order
            async with self._broadcaster.lock:
                try:
                    order, before, after = await self._persist_submission(
                        customer_name.strip(),
                        (instructions or "").strip() or None,
                        payment_method,
                        lines,
                        requested,
                    )
                except (ValidationError, NotFoundError, StockExhaustedError) as exc:
                    ORDER_SUBMISSIONS.labels(exc.code).inc()
                    logger.info(
                        "Order submission rejected",
                        extra={"reason": exc.code, "error": str(exc)},
                    )
                    raise

                span.set_attribute("order.id", str(order.id))
                span.set_attribute("order.number", order.number)
                ORDER_SUBMISSIONS.labels("created").inc()

                if client_total is not None and Decimal(client_total).quantize(order_store.CENT) != order.total_amount:
                    logger.warning(
                        "Client-computed total differs from server total",
                        extra={
                            "order_id": str(order.id),
                            "client_total": str(client_total),
                            "total_amount": str(order.total_amount),
                        },
                    )

                logger.info(
                    "Order created",
                    extra={
                        "order_id": str(order.id),
                        "order_number": order.number,
                        "item_count": len(order.items),
                        "total_amount": str(order.total_amount),
                        "session_id": session.id if session else None,
                    },
                )

                async with self._lock_for(order.id):
                    if session is not None:
                        self._hub.claim_order(order.id, session)
                        await self._hub.emit_to_session(
                            session.id,
                            ORDER_CONFIRMATION,
                            OrderConfirmation(order_id=order.id, order_number=order.number),
                        )
                    await self._hub.emit_to_role(ClientRole.KITCHEN, NEW_ORDER_RECEIVED, order)

                await self._broadcaster.publish_changes(before, after)
                return order

    async def _persist_submission(
        self,
        customer_name: str,
        instructions: str | None,
        payment_method: PaymentMethod,
        lines: list[NewOrderLine],
        requested: dict[uuid.UUID, int],
    ):
        async with self._sessions() as db:
            async with db.begin():
                products = await catalog_store.get_products(db, requested)

                missing = set(requested) - set(products)
                if missing:
                    raise NotFoundError(f"Products not found: {sorted(str(m) for m in missing)}")
                unavailable = [p.name for p in products.values() if not p.is_available]
                if unavailable:
                    raise ValidationError(f"Products not available: {sorted(unavailable)}")

                before = {pid: catalog_store.to_payload(p) for pid, p in products.items()}

                # Snapshot name/price before any write so the order is immune to later catalog edits
                snapshots = [
                    LineSnapshot(
                        product_id=line.product_id,
                        name=products[line.product_id].name,
                        unit_price=products[line.product_id].price,
                        quantity=line.quantity,
                    )
                    for line in lines
                ]

                for product_id, quantity in requested.items():
                    if not await catalog_store.decrement_stock(db, product_id, quantity):
                        raise StockExhaustedError(
                            f"Not enough stock for {products[product_id].name}: requested {quantity}"
                        )

                number = await order_store.next_number(db)
                order = await order_store.create_order(
                    db, number, customer_name, instructions, payment_method, snapshots
                )
                payload = order_store.to_payload(order)

                refreshed = await catalog_store.get_products(db, requested)
                after = [catalog_store.to_payload(p) for p in refreshed.values()]

        return payload, before, after

    async def update_status(self, order_id: uuid.UUID, status: OrderStatus) -> OrderStatusChanged:
        return await self.apply_update(order_id, status=status)

    async def update_payment(self, order_id: uuid.UUID, is_paid: bool) -> OrderStatusChanged:
        return await self.apply_update(order_id, is_paid=is_paid)

    async def apply_update(
        self,
        order_id: uuid.UUID,
        status: OrderStatus | None = None,
        is_paid: bool | None = None,
    ) -> OrderStatusChanged:
        """Apply a status and/or payment change atomically and report it once.

        A status change on a terminal order rejects the whole request,
        including any payment change it carried.
        """
        if status is None and is_paid is None:
            STATUS_UPDATES.labels("validation_error").inc()
            raise ValidationError("Nothing to update: provide status and/or isPaid")

        with tracer.start_as_current_span("order.update") as span:
            span.set_attribute("order.id", str(order_id))
            async with self._lock_for(order_id):
                async with self._sessions() as db:
                    async with db.begin():
                        order = await order_store.get_order(db, order_id, for_update=True)
                        if order is None:
                            STATUS_UPDATES.labels("not_found").inc()
                            raise NotFoundError("Order not found")

                        previous = order.status
                        if status is not None:
                            if not previous.can_transition_to(status):
                                STATUS_UPDATES.labels("invalid_transition").inc()
                                raise InvalidTransitionError(
                                    f"Order {order.number} is {previous.value} and cannot change status"
                                )
                            await order_store.set_status(db, order, status)
                        if is_paid is not None:
                            order_store.set_paid(order, is_paid)

                        event = OrderStatusChanged(
                            order_id=order.id,
                            status=order.status if status is not None else None,
                            is_paid=order.is_paid if is_paid is not None else None,
                            updated_at=order.updated_at,
                        )

                STATUS_UPDATES.labels("applied").inc()
                logger.info(
                    "Order updated",
                    extra={
                        "order_id": str(order_id),
                        "previous_status": previous.value,
                        "status": status.value if status else None,
                        "is_paid": is_paid,
                    },
                )

                await self._hub.emit_to_role(ClientRole.KITCHEN, ORDER_STATUS_CHANGED, event)
                await self._hub.emit_to_order_owner(order_id, ORDER_STATUS_CHANGED, event)
                return event

    async def get_order(self, order_id: uuid.UUID) -> OrderPayload:
        async with self._sessions() as db:
            order = await order_store.get_order(db, order_id)
            if order is None:
                raise NotFoundError("Order not found")
            return order_store.to_payload(order)

    async def list_orders(self) -> list[OrderPayload]:
        async with self._sessions() as db:
            return [order_store.to_payload(o) for o in await order_store.list_orders(db)]
