"""
Connecting client for one customer or kitchen session.

Lifecycle:
  1. open the WebSocket (bounded attempts, each under a timeout, with
     exponential backoff between attempts)
  2. send ``register`` with the session's role (and, for a customer, the
     order it still follows so status changes keep reaching it)
  3. fetch the authoritative snapshot over HTTP (products and the followed
     order for customers, orders for kitchens); the hub replays nothing, so
     this is repeated after every reconnect
  4. apply incoming events to the local projection until the channel closes

Exceeding the attempt budget leaves the client DISCONNECTED and raises
TransportError; it never retries forever.
"""

import asyncio
import json
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import replace
from enum import Enum
from typing import Any

import httpx
from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from shared.errors import TransportError
from shared.events import (
    NEW_ORDER,
    REGISTER,
    UPDATE_ORDER_STATUS,
    ClientRole,
    OrderStatus,
    RegisterMessage,
    UpdateOrderStatusMessage,
)
from sync_client.config import ClientSettings
from sync_client.normalize import normalize_order, normalize_product
from sync_client.projection import (
    CustomerProjection,
    KitchenProjection,
    apply_event,
    apply_order_snapshot,
    build_submission,
)

logger = logging.getLogger(__name__)

Connector = Callable[[str], Awaitable[Any]]


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class SyncClient:
    def __init__(
        self,
        settings: ClientSettings | None = None,
        *,
        connector: Connector = ws_connect,
        http: httpx.AsyncClient | None = None,
        on_change: Callable[[str, Any], None] | None = None,
    ) -> None:
        self.settings = settings or ClientSettings()
        self.role = ClientRole(self.settings.role)
        self.state = ConnectionState.DISCONNECTED
        self.error: str | None = None
        self.projection = CustomerProjection() if self.role is ClientRole.CUSTOMER else KitchenProjection()

        self._connector = connector
        self._http = http or httpx.AsyncClient(base_url=self.settings.server_url, timeout=self.settings.connect_timeout)
        self.on_change = on_change
        self._ws = None

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Connect, register and resynchronize, or raise TransportError."""
        self.state = ConnectionState.CONNECTING
        attempts = self.settings.reconnection_attempts
        last_error: str | None = None

        for attempt in range(1, attempts + 1):
            try:
                self._ws = await asyncio.wait_for(
                    self._connector(self.settings.ws_url), timeout=self.settings.connect_timeout
                )
                await self._send(REGISTER, self._registration().wire())
                await self.resync()
            except (OSError, asyncio.TimeoutError, WebSocketException, httpx.HTTPError) as exc:
                last_error = str(exc) or type(exc).__name__
                logger.warning(
                    "Connection attempt %d/%d failed",
                    attempt,
                    attempts,
                    extra={"role": self.role.value, "error": last_error},
                )
                await self._close_socket()
                if attempt < attempts:
                    await asyncio.sleep(self.settings.reconnection_delay * 2 ** (attempt - 1))
                continue

            self.state = ConnectionState.CONNECTED
            self.error = None
            logger.info("Session connected", extra={"role": self.role.value, "attempt": attempt})
            return

        self.state = ConnectionState.DISCONNECTED
        self.error = f"Failed to connect to server: {last_error}"
        logger.error("Giving up on connection", extra={"role": self.role.value, "error": last_error})
        raise TransportError(self.error)

    def _registration(self) -> RegisterMessage:
        order_id = getattr(self.projection, "order_id", None)
        return RegisterMessage(client_type=self.role.value, order_id=order_id)

    async def resync(self) -> None:
        """Replace the projection's server-owned state with a fresh snapshot."""
        if self.role is ClientRole.CUSTOMER:
            response = await self._http.get("/api/products")
            response.raise_for_status()
            products = tuple(normalize_product(p) for p in response.json()["products"])
            self.projection = replace(self.projection, products=products)
            if self.projection.order_id is not None:
                await self._resync_order(self.projection.order_id)
        else:
            response = await self._http.get("/api/orders")
            response.raise_for_status()
            orders = tuple(normalize_order(o) for o in response.json()["orders"])
            self.projection = replace(self.projection, orders=orders)
        self._notify("snapshot", None)

    async def _resync_order(self, order_id: uuid.UUID) -> None:
        # Status changes missed while disconnected are never replayed
        response = await self._http.get(f"/api/orders/{order_id}")
        if response.status_code == 404:
            logger.warning(
                "Followed order no longer exists",
                extra={"role": self.role.value, "order_id": str(order_id)},
            )
            return
        response.raise_for_status()
        order = normalize_order(response.json()["order"])
        self.projection = apply_order_snapshot(self.projection, order)

    async def run(self) -> None:
        """Apply events until the channel closes, reconnecting within the retry budget."""
        while True:
            if self.state is not ConnectionState.CONNECTED:
                await self.connect()
            try:
                async for raw in self._ws:
                    try:
                        self.handle_message(raw)
                    except (ValueError, KeyError, TypeError) as exc:
                        logger.warning(
                            "Dropping unreadable frame",
                            extra={"role": self.role.value, "error": str(exc)},
                        )
            except ConnectionClosed as exc:
                logger.warning("Connection lost", extra={"role": self.role.value, "error": str(exc)})
            self.state = ConnectionState.DISCONNECTED
            await self._close_socket()

    async def close(self) -> None:
        await self._close_socket()
        self.state = ConnectionState.DISCONNECTED
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def handle_message(self, raw: str | bytes | dict) -> None:
        frame = raw if isinstance(raw, dict) else json.loads(raw)
        event = frame.get("event")
        data = frame.get("data") or {}
        if not event:
            logger.warning("Ignoring frame without event name", extra={"role": self.role.value})
            return
        self.projection = apply_event(self.projection, event, data)
        logger.debug("Applied event", extra={"role": self.role.value, "event": event})
        self._notify(event, data)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def submit_order(self) -> None:
        """Send the current cart as a new order.

        Confirmation arrives later as ``order_confirmation``; a rejection
        arrives as ``order_error`` and leaves the cart intact.
        """
        self._require_connected()
        message = build_submission(self.projection)
        await self._send(NEW_ORDER, message.wire())
        self.projection = replace(self.projection, order_submitted=True, last_error=None)

    async def update_order_status(
        self,
        order_id: uuid.UUID,
        status: OrderStatus | None = None,
        is_paid: bool | None = None,
    ) -> None:
        self._require_connected()
        message = UpdateOrderStatusMessage(order_id=order_id, status=status, is_paid=is_paid)
        await self._send(UPDATE_ORDER_STATUS, message.model_dump(mode="json", by_alias=True, exclude_none=True))

    def _require_connected(self) -> None:
        if self.state is not ConnectionState.CONNECTED or self._ws is None:
            raise TransportError("Not connected to server")

    async def _send(self, event: str, data: dict) -> None:
        await self._ws.send(json.dumps({"event": event, "data": data}))

    async def _close_socket(self) -> None:
        if self._ws is not None:
            try:
                await self._ws.close()
            except (OSError, WebSocketException):
                logger.debug("Error while closing socket", exc_info=True)
            self._ws = None

    def _notify(self, event: str, data: Any) -> None:
        if self.on_change is not None:
            self.on_change(event, data)

