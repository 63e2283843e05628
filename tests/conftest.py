import uuid
from datetime import datetime, timezone

import fakeredis
import pytest

from orders_api.main import Settings, create_app
from orders_api.models import LineItem, Order
from orders_api.orders_store import ORDER_INDEX, ORDER_KEY_PREFIX, OrderStore

CUSTOMER_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")


@pytest.fixture
def redis_client():
    server = fakeredis.FakeServer()
    return fakeredis.FakeRedis(server=server, decode_responses=True)


@pytest.fixture
def store(redis_client):
    return OrderStore(redis_client)


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def app(store, settings):
    app = create_app(store=store, settings=settings)
    app.config.update(TESTING=True)
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_order():
    def _make(order_id, items=2):
        return Order(
            order_id=order_id,
            customer_id=CUSTOMER_ID,
            line_items=[
                LineItem(item_id=uuid.uuid4(), quantity=i + 1, price=100 * (i + 1))
                for i in range(items)
            ],
            created_at=datetime(2024, 5, 10, 14, 30, tzinfo=timezone.utc),
        )

    return _make


def assert_index_consistent(redis_client):
    """Every live order key is indexed and every indexed key is live."""
    live = set(redis_client.scan_iter(match=f"{ORDER_KEY_PREFIX}*"))
    indexed = redis_client.smembers(ORDER_INDEX)
    assert live == indexed
