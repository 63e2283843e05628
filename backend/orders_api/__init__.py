"""Order management service: a Flask API over a Redis-backed order store."""

from .models import LineItem, Order
from .orders_store import FindAllPage, FindResult, OrderStore

__all__ = ["LineItem", "Order", "OrderStore", "FindAllPage", "FindResult"]
