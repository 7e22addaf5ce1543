"""
WebSocket endpoint for the real-time event channel.

Each frame is ``{"event": <name>, "data": <payload>}``. Failures of a
request are reported with ``order_error`` to the requesting session only.
"""

import json
import logging
import uuid

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PayloadError

from order_hub.services.event_hub import EventHub, Session
from order_hub.services.order_service import OrderLifecycle
from shared.errors import NotFoundError, OrderHubError, ValidationError
from shared.events import (
    NEW_ORDER,
    ORDER_ERROR,
    REGISTER,
    UPDATE_ORDER_STATUS,
    ClientRole,
    Frame,
    NewOrderMessage,
    OrderError,
    RegisterMessage,
    UpdateOrderStatusMessage,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _parse(model, data: dict):
    try:
        return model.model_validate(data)
    except PayloadError as exc:
        raise ValidationError(f"Invalid payload: {exc.error_count()} error(s)") from exc


async def _reclaim(hub: EventHub, lifecycle: OrderLifecycle, session: Session, order_id: uuid.UUID) -> None:
    """Route a reconnecting customer's order events to its new session."""
    try:
        await lifecycle.get_order(order_id)
    except NotFoundError:
        logger.info("Ignoring claim on unknown order", extra={"session_id": session.id, "order_id": str(order_id)})
        return
    hub.claim_order(order_id, session)


async def _dispatch(session: Session, frame: Frame, hub: EventHub, lifecycle: OrderLifecycle) -> None:
    if frame.event == REGISTER:
        message = _parse(RegisterMessage, frame.data)
        if message.order_id is not None and message.client_type == ClientRole.CUSTOMER.value:
            await _reclaim(hub, lifecycle, session, message.order_id)
        await hub.register(session, message.client_type)

    elif frame.event == NEW_ORDER:
        message = _parse(NewOrderMessage, frame.data)
        await lifecycle.submit_order(
            message.customer_name,
            message.instructions,
            message.payment_method,
            message.items,
            session=session,
            client_total=message.total,
        )

    elif frame.event == UPDATE_ORDER_STATUS:
        if session.role is not ClientRole.KITCHEN:
            raise ValidationError("Only kitchen sessions may update orders")
        message = _parse(UpdateOrderStatusMessage, frame.data)
        await lifecycle.apply_update(message.order_id, status=message.status, is_paid=message.is_paid)

    else:
        logger.warning("Ignoring unknown event", extra={"session_id": session.id, "event": frame.event})


async def _report(hub: EventHub, session: Session, error: OrderError) -> None:
    await hub.emit_to_session(session.id, ORDER_ERROR, error)


@router.websocket("/ws")
async def event_channel(websocket: WebSocket) -> None:
    hub: EventHub = websocket.app.state.hub
    lifecycle: OrderLifecycle = websocket.app.state.lifecycle

    await websocket.accept()
    session = hub.connect(websocket)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            raw = message.get("text")
            if raw is None:
                error = OrderError(code=ValidationError.code, message="Binary frames are not supported")
                await _report(hub, session, error)
                continue
            try:
                frame = Frame.model_validate(json.loads(raw))
            except (json.JSONDecodeError, PayloadError):
                await _report(hub, session, OrderError(code=ValidationError.code, message="Malformed frame"))
                continue

            try:
                await _dispatch(session, frame, hub, lifecycle)
            except OrderHubError as exc:
                await _report(hub, session, OrderError(code=exc.code, message=str(exc)))
            except Exception:
                logger.exception(
                    "Unhandled error while processing event",
                    extra={"session_id": session.id, "event": frame.event},
                )
                await _report(hub, session, OrderError(code="internal_error", message="Internal server error"))
    except WebSocketDisconnect:
        pass
    finally:
        await hub.disconnect(session)
