# backend/orders_api/orders_store.py
"""
Redis-backed order storage.

Layout (persisted contract, do not rename without a migration):
    order:<order_id>  -> JSON document of the order
    orders            -> set of every live "order:<id>" key

A key is a member of ``orders`` iff its primary entry exists. Insert and
delete change both halves inside one MULTI/EXEC transaction, so a failure
leaves either both changes or neither.

Listing walks the ``orders`` set with SSCAN. The set is unordered and SSCAN
only guarantees that elements present for the whole sweep are returned at
least once: with concurrent inserts or deletes an order can be missed or
returned twice across pages.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any, Iterator, List, Optional

from redis import Redis
from redis.exceptions import RedisError

from .models import Order

ORDER_INDEX = "orders"
ORDER_KEY_PREFIX = "order:"
DEFAULT_PAGE_SIZE = 50


def order_key(order_id: int) -> str:
    return f"{ORDER_KEY_PREFIX}{order_id}"


class StoreError(Exception):
    """Base class for everything OrderStore raises."""


class EncodingError(StoreError):
    """The order could not be serialized; nothing was written."""


class DecodingError(StoreError):
    """Stored bytes are not a valid order (corruption or schema drift)."""


class DuplicateOrder(StoreError):
    """Insert hit an order_id that already exists."""


class OrderNotFound(StoreError):
    """No live order under this id."""


class BackendError(StoreError):
    """Redis transport or command failure."""


class DeadlineExceeded(BackendError):
    """The caller's deadline passed before the operation could finish."""


@dataclass
class FindAllPage:
    cursor: int = 0
    size: int = DEFAULT_PAGE_SIZE


@dataclass
class FindResult:
    orders: List[Order] = field(default_factory=list)
    cursor: int = 0

    @property
    def done(self) -> bool:
        # Redis answers cursor 0 once the sweep has wrapped around. Only
        # meaningful on a result: 0 is also the cursor that starts a sweep.
        return self.cursor == 0


def _check_deadline(deadline: Optional[float]) -> None:
    if deadline is not None and time.monotonic() >= deadline:
        raise DeadlineExceeded("deadline exceeded")


class OrderStore:
    """
    CRUD over orders with a consistent ``orders`` index.

    The Redis client is owned by the caller, shared by every request and
    must stay open for the lifetime of the store. Every method takes an
    optional ``deadline`` (a ``time.monotonic()`` instant); it is checked
    before each round trip and before a transaction is committed, so an
    expired deadline never leaves half a mutation behind.
    """

    def __init__(self, client: Redis):
        self._client = client

    # ── serialization ────────────────────────────────────────────────────────
    @staticmethod
    def _encode(order: Order) -> str:
        # Refuse anything _decode would reject, so every stored record reads back.
        try:
            data = order.as_dict()
            Order.from_dict(data)
            return json.dumps(data)
        except (TypeError, ValueError, KeyError, AttributeError) as e:
            raise EncodingError(f"failed to encode order {order.order_id!r}: {e}") from e

    @staticmethod
    def _decode(raw: Any, key: str) -> Order:
        try:
            return Order.from_dict(json.loads(raw))
        except (TypeError, ValueError, KeyError) as e:
            raise DecodingError(f"failed to decode {key}: {e}") from e

    # ── operations ───────────────────────────────────────────────────────────
    def insert(self, order: Order, *, deadline: Optional[float] = None) -> None:
        data = self._encode(order)
        key = order_key(order.order_id)

        _check_deadline(deadline)
        try:
            with self._client.pipeline(transaction=True) as txn:
                txn.set(key, data, nx=True)
                txn.sadd(ORDER_INDEX, key)
                _check_deadline(deadline)
                created, _ = txn.execute()
        except RedisError as e:
            raise BackendError(f"failed to insert {key}: {e}") from e

        # SET NX refused, so the key was already live and already indexed:
        # the SADD above was a no-op.
        if not created:
            raise DuplicateOrder(f"order {order.order_id} already exists")

    def find_by_id(self, order_id: int, *, deadline: Optional[float] = None) -> Order:
        key = order_key(order_id)

        _check_deadline(deadline)
        try:
            raw = self._client.get(key)
        except RedisError as e:
            raise BackendError(f"failed to get {key}: {e}") from e

        if raw is None:
            raise OrderNotFound(f"order {order_id} does not exist")
        return self._decode(raw, key)

    def update(self, order: Order, *, deadline: Optional[float] = None) -> None:
        """Replace an existing order. The index is left alone: the key is already in it."""
        data = self._encode(order)
        key = order_key(order.order_id)

        _check_deadline(deadline)
        try:
            replaced = self._client.set(key, data, xx=True)
        except RedisError as e:
            raise BackendError(f"failed to set {key}: {e}") from e

        if not replaced:
            raise OrderNotFound(f"order {order.order_id} does not exist")

    def delete_by_id(self, order_id: int, *, deadline: Optional[float] = None) -> None:
        key = order_key(order_id)

        _check_deadline(deadline)
        try:
            with self._client.pipeline(transaction=True) as txn:
                txn.delete(key)
                txn.srem(ORDER_INDEX, key)
                _check_deadline(deadline)
                deleted, _ = txn.execute()
        except RedisError as e:
            raise BackendError(f"failed to delete {key}: {e}") from e

        if not deleted:
            raise OrderNotFound(f"order {order_id} does not exist")

    def find_all(self, page: Optional[FindAllPage] = None, *, deadline: Optional[float] = None) -> FindResult:
        """
        Return one page of orders and the cursor for the next page.

        ``page.size`` is passed to SSCAN as COUNT, which Redis treats as a
        hint. Keys deleted between the scan and the MGET are skipped.
        Stop paginating when ``result.done`` is true, not when a page comes
        back empty: a page may be empty in the middle of a sweep.
        """
        page = page or FindAllPage()
        if page.size <= 0:
            raise ValueError("page size must be positive")

        _check_deadline(deadline)
        try:
            cursor, keys = self._client.sscan(
                ORDER_INDEX, cursor=page.cursor, match=f"{ORDER_KEY_PREFIX}*", count=page.size
            )
        except RedisError as e:
            raise BackendError(f"failed to scan {ORDER_INDEX}: {e}") from e

        if not keys:
            return FindResult(orders=[], cursor=int(cursor))

        _check_deadline(deadline)
        try:
            values = self._client.mget(keys)
        except RedisError as e:
            raise BackendError(f"failed to get orders: {e}") from e

        orders: List[Order] = []
        for key, raw in zip(keys, values):
            if raw is None:
                continue
            orders.append(self._decode(raw, key))
        return FindResult(orders=orders, cursor=int(cursor))

    def iter_all(self, size: int = DEFAULT_PAGE_SIZE, *, deadline: Optional[float] = None) -> Iterator[Order]:
        """Sweep the whole index page by page. Same weak guarantees as find_all."""
        page = FindAllPage(cursor=0, size=size)
        while True:
            result = self.find_all(page, deadline=deadline)
            yield from result.orders
            if result.done:
                return
            page = FindAllPage(cursor=result.cursor, size=size)
