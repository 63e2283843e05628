from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

# order_id is an unsigned 64-bit integer
MAX_ORDER_ID = 2 ** 64 - 1


def new_order_id() -> int:
    """Random 64-bit order id; collisions are rejected by the store, not here."""
    return secrets.randbits(64)


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass
class LineItem:
    item_id: uuid.UUID
    quantity: int
    price: int

    def as_dict(self) -> Dict[str, Any]:
        return {
            "item_id": str(self.item_id),
            "quantity": self.quantity,
            "price": self.price,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LineItem":
        quantity = data["quantity"]
        price = data["price"]
        for name, value in (("quantity", quantity), ("price", price)):
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValueError(f"{name} must be a non-negative integer")
        return cls(item_id=uuid.UUID(str(data["item_id"])), quantity=quantity, price=price)


@dataclass
class Order:
    order_id: int
    customer_id: uuid.UUID
    line_items: List[LineItem] = field(default_factory=list)
    created_at: Optional[datetime] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "customer_id": str(self.customer_id),
            "line_items": [item.as_dict() for item in self.line_items],
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Order":
        """
        Build an Order from its JSON form.
        Raises ValueError / TypeError / KeyError when the mapping has the wrong shape.
        """
        order_id = data["order_id"]
        if isinstance(order_id, bool) or not isinstance(order_id, int) or not 0 <= order_id <= MAX_ORDER_ID:
            raise ValueError(f"order_id out of range: {order_id!r}")

        raw_items = data.get("line_items") or []
        if not isinstance(raw_items, list):
            raise TypeError("line_items must be a list")

        created_raw = data.get("created_at")
        created_at = datetime.fromisoformat(created_raw) if created_raw else None

        return cls(
            order_id=order_id,
            customer_id=uuid.UUID(str(data["customer_id"])),
            line_items=[LineItem.from_dict(item) for item in raw_items],
            created_at=created_at,
        )
