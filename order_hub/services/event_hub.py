"""
Event Hub: registry of live real-time sessions and broadcast primitives.

Sessions are partitioned by role (customer / kitchen). Delivery is
best-effort: a session that has gone away is skipped and never causes an
emit to fail for the other recipients. The hub keeps no event history;
reconnecting clients re-register and re-fetch authoritative state.

All state here is process-wide and lives exactly as long as the hub.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Protocol

from pydantic import BaseModel

from order_hub.metrics import EVENTS_DROPPED, EVENTS_EMITTED, LIVE_SESSIONS
from shared.events import CLIENTS_COUNT, ClientRole, ClientsCount, WireModel

logger = logging.getLogger(__name__)


class Connection(Protocol):
    async def send_json(self, data: Any) -> None: ...


@dataclass(eq=False)
class Session:
    connection: Connection
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    role: ClientRole | None = None
    connected: bool = True

    _send_lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)

    async def send(self, event: str, data: dict) -> None:
        # One writer at a time keeps frames for this session in emit order.
        async with self._send_lock:
            await self.connection.send_json({"event": event, "data": data})


def _as_wire(payload: BaseModel | dict) -> dict:
    if isinstance(payload, WireModel):
        return payload.wire()
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json", by_alias=True)
    return payload


class EventHub:
    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._groups: dict[ClientRole, dict[str, Session]] = {role: {} for role in ClientRole}
        self._order_owners: dict[uuid.UUID, str] = {}

    # ------------------------------------------------------------------
    # Session registry
    # ------------------------------------------------------------------

    def connect(self, connection: Connection) -> Session:
        session = Session(connection=connection)
        self._sessions[session.id] = session
        logger.info("Session connected", extra={"session_id": session.id})
        return session

    async def register(self, session: Session, role: str) -> bool:
        """Put *session* in the broadcast group for *role*.

        Unrecognized roles are logged and ignored: the session stays in no
        group and receives no broadcasts.
        """
        try:
            new_role = ClientRole(role)
        except ValueError:
            logger.warning(
                "Ignoring registration with unrecognized role",
                extra={"session_id": session.id, "role": str(role)},
            )
            return False

        if session.role is not None and session.role != new_role:
            self._groups[session.role].pop(session.id, None)
        session.role = new_role
        self._groups[new_role][session.id] = session
        self._refresh_gauges()

        logger.info("Session registered", extra={"session_id": session.id, "role": new_role.value})
        await self._broadcast_counts()
        return True

    async def disconnect(self, session: Session) -> None:
        session.connected = False
        self._sessions.pop(session.id, None)
        if session.role is not None:
            self._groups[session.role].pop(session.id, None)
        self._order_owners = {
            order_id: owner for order_id, owner in self._order_owners.items() if owner != session.id
        }
        self._refresh_gauges()

        logger.info(
            "Session disconnected",
            extra={"session_id": session.id, "role": session.role.value if session.role else None},
        )
        await self._broadcast_counts()

    def claim_order(self, order_id: uuid.UUID, session: Session) -> None:
        """Record *session* as the customer session owning *order_id*."""
        self._order_owners[order_id] = session.id

    def owner_of(self, order_id: uuid.UUID) -> str | None:
        return self._order_owners.get(order_id)

    def counts(self) -> ClientsCount:
        return ClientsCount(
            customers=len(self._groups[ClientRole.CUSTOMER]),
            kitchen=len(self._groups[ClientRole.KITCHEN]),
        )

    def sessions(self, role: ClientRole) -> list[Session]:
        return list(self._groups[role].values())

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def emit_to_role(self, role: ClientRole, event: str, payload: BaseModel | dict) -> int:
        """Deliver to every registered session of *role*; returns the number reached."""
        data = _as_wire(payload)
        delivered = 0
        for session in list(self._groups[role].values()):
            if await self._deliver(session, event, data):
                delivered += 1
        return delivered

    async def emit_to_session(self, session_id: str | None, event: str, payload: BaseModel | dict) -> bool:
        session = self._sessions.get(session_id) if session_id else None
        if session is None:
            EVENTS_DROPPED.labels(event).inc()
            logger.debug("Dropping event for absent session", extra={"session_id": session_id, "event": event})
            return False
        return await self._deliver(session, event, _as_wire(payload))

    async def emit_to_order_owner(self, order_id: uuid.UUID, event: str, payload: BaseModel | dict) -> bool:
        return await self.emit_to_session(self.owner_of(order_id), event, payload)

    async def _deliver(self, session: Session, event: str, data: dict) -> bool:
        if not session.connected:
            EVENTS_DROPPED.labels(event).inc()
            return False
        try:
            await session.send(event, data)
        except Exception as exc:
            # The peer vanished between heartbeats; the receive loop will clean up.
            session.connected = False
            EVENTS_DROPPED.labels(event).inc()
            logger.warning(
                "Delivery failed, marking session disconnected",
                extra={"session_id": session.id, "event": event, "error": str(exc)},
            )
            return False
        EVENTS_EMITTED.labels(event).inc()
        return True

    async def _broadcast_counts(self) -> None:
        await self.emit_to_role(ClientRole.KITCHEN, CLIENTS_COUNT, self.counts())

    def _refresh_gauges(self) -> None:
        for role, group in self._groups.items():
            LIVE_SESSIONS.labels(role.value).set(len(group))
