import uuid
from datetime import datetime, timezone

import pytest

from orders_api.models import MAX_ORDER_ID, LineItem, Order, new_order_id


def test_order_round_trip(make_order):
    order = make_order(123)
    assert Order.from_dict(order.as_dict()) == order


def test_order_without_created_at_round_trip():
    order = Order(order_id=MAX_ORDER_ID, customer_id=uuid.uuid4())
    data = order.as_dict()

    assert data["created_at"] is None
    assert data["line_items"] == []
    assert Order.from_dict(data) == order


def test_line_item_order_is_preserved(make_order):
    order = make_order(1, items=5)
    restored = Order.from_dict(order.as_dict())
    assert [item.item_id for item in restored.line_items] == [item.item_id for item in order.line_items]


def test_as_dict_uses_wire_field_names():
    item_id = uuid.uuid4()
    order = Order(
        order_id=1,
        customer_id=uuid.UUID("11111111-1111-1111-1111-111111111111"),
        line_items=[LineItem(item_id=item_id, quantity=2, price=250)],
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )

    assert order.as_dict() == {
        "order_id": 1,
        "customer_id": "11111111-1111-1111-1111-111111111111",
        "line_items": [{"item_id": str(item_id), "quantity": 2, "price": 250}],
        "created_at": "2024-01-01T00:00:00+00:00",
    }


@pytest.mark.parametrize(
    "data",
    [
        {"customer_id": str(uuid.uuid4())},
        {"order_id": -1, "customer_id": str(uuid.uuid4())},
        {"order_id": MAX_ORDER_ID + 1, "customer_id": str(uuid.uuid4())},
        {"order_id": "7", "customer_id": str(uuid.uuid4())},
        {"order_id": 7, "customer_id": "not-a-uuid"},
        {"order_id": 7, "customer_id": str(uuid.uuid4()), "line_items": {"item_id": "x"}},
        {"order_id": 7, "customer_id": str(uuid.uuid4()), "created_at": "yesterday"},
    ],
)
def test_order_from_dict_rejects_bad_shape(data):
    with pytest.raises((KeyError, TypeError, ValueError)):
        Order.from_dict(data)


@pytest.mark.parametrize("quantity", [-1, 1.5, True, "2"])
def test_line_item_rejects_bad_quantity(quantity):
    with pytest.raises(ValueError):
        LineItem.from_dict({"item_id": str(uuid.uuid4()), "quantity": quantity, "price": 1})


def test_new_order_id_is_unsigned_64_bit():
    ids = {new_order_id() for _ in range(100)}
    assert all(0 <= i <= MAX_ORDER_ID for i in ids)
    assert len(ids) > 1
