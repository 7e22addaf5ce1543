"""Shared fixtures: a throwaway SQLite database, an event hub and registered sessions."""

import pytest

from order_hub.database import build_engine, build_sessionmaker, create_tables
from order_hub.services.catalog_broadcast import CatalogBroadcaster
from order_hub.services.event_hub import EventHub
from order_hub.services.order_service import OrderLifecycle
from tests.fakes import FakeConnection


@pytest.fixture
async def sessions(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    await create_tables(engine)
    yield build_sessionmaker(engine)
    await engine.dispose()


@pytest.fixture
def hub():
    return EventHub()


@pytest.fixture
def broadcaster(hub, sessions):
    return CatalogBroadcaster(hub, sessions)


@pytest.fixture
def lifecycle(sessions, hub, broadcaster):
    return OrderLifecycle(sessions, hub, broadcaster)


@pytest.fixture
async def customer(hub):
    session = hub.connect(FakeConnection())
    await hub.register(session, "customer")
    return session


@pytest.fixture
async def kitchen(hub):
    session = hub.connect(FakeConnection())
    await hub.register(session, "kitchen")
    return session
