import asyncio
import os
import tempfile

# Configure before any storefront module reads the environment
_catalog_dir = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_catalog_dir, 'catalog.db')}"
os.environ["TELEMETRY_ENABLED"] = "false"

import fakeredis
import pytest
from fastapi.testclient import TestClient

from storefront.database import SessionLocal, init_db
from storefront.main import create_app
from storefront.schemas import CartEntry, Order
from storefront.services.fulfillment_service import FulfillmentScheduler
from storefront.services.order_service import OrderService
from storefront.state_store import StateStore

STEP_DELAYS = (4.0, 2.0, 2.0)


class FakeClock:
    """Wall clock that only moves when told to."""

    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def make_entry(product_id=1, name="Cement", price=500.0, category="material"):
    return CartEntry(id=product_id, name=name, price=price, category=category)


def put_order(store, order):
    """Write an order straight into the store, bypassing checkout."""
    store.redis_client.hset(store.orders_key, order.id, order.model_dump_json(by_alias=True))
    store.redis_client.rpush(store.order_index_key, order.id)
    return order


@pytest.fixture()
def redis_server():
    return fakeredis.FakeServer()


@pytest.fixture()
def redis_client(redis_server):
    return fakeredis.FakeRedis(server=redis_server, decode_responses=True)


@pytest.fixture()
def store(redis_client):
    return StateStore(redis_client, namespace="test")


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def event_loop_for_timers():
    loop = asyncio.new_event_loop()
    yield loop
    loop.close()


@pytest.fixture()
def scheduler(store, clock, event_loop_for_timers):
    scheduler = FulfillmentScheduler(
        store,
        step_delays=STEP_DELAYS,
        clock=clock,
        loop=event_loop_for_timers
    )
    yield scheduler
    scheduler.cancel_all()


@pytest.fixture()
def order_service(store, scheduler, clock):
    return OrderService(store, scheduler, clock=clock)


@pytest.fixture()
def delivered_order(store):
    return put_order(store, Order(id="X", product_name="Cement", status="Delivered", rating=0))


@pytest.fixture()
def db():
    init_db()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def app(redis_client, clock):
    return create_app(redis_client=redis_client, namespace="test", step_delays=STEP_DELAYS, clock=clock)


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client
