import logging
import os
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from dotenv import load_dotenv
from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS
from redis import Redis

from .models import MAX_ORDER_ID, LineItem, Order, new_order_id, utcnow
from .orders_store import (
    BackendError,
    DeadlineExceeded,
    DecodingError,
    DuplicateOrder,
    EncodingError,
    FindAllPage,
    OrderNotFound,
    OrderStore,
    StoreError,
)

logger = logging.getLogger(__name__)


# ── ENV / CONFIG ──────────────────────────────────────────────────────────────
@dataclass
class Settings:
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout: float = 5.0
    request_timeout: float = 10.0
    page_size: int = 50
    cors_origins: str = "*"
    host: str = "127.0.0.1"
    port: int = 3000
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.page_size <= 0:
            raise ValueError(f"ORDERS_PAGE_SIZE must be positive, got {self.page_size}")

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            redis_url=os.getenv("REDIS_URL", cls.redis_url),
            redis_socket_timeout=float(os.getenv("REDIS_SOCKET_TIMEOUT", cls.redis_socket_timeout)),
            request_timeout=float(os.getenv("REQUEST_TIMEOUT", cls.request_timeout)),
            page_size=int(os.getenv("ORDERS_PAGE_SIZE", cls.page_size)),
            cors_origins=os.getenv("CORS_ORIGINS", cls.cors_origins),
            host=os.getenv("HOST", cls.host),
            port=int(os.getenv("PORT", cls.port)),
            log_level=os.getenv("LOG_LEVEL", cls.log_level),
        )


def redis_from_settings(settings: Settings) -> Redis:
    return Redis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_timeout,
    )


class InvalidRequest(Exception):
    """Request body or path/query parameter has the wrong shape."""


# ── helpers ──────────────────────────────────────────────────────────────────
def _store() -> OrderStore:
    return current_app.extensions["order_store"]


def _settings() -> Settings:
    return current_app.extensions["order_settings"]


def _deadline() -> float:
    return time.monotonic() + _settings().request_timeout


def _parse_order_id(raw: str) -> int:
    if not (raw.isascii() and raw.isdigit()):
        raise InvalidRequest(f"invalid order id: {raw!r}")
    order_id = int(raw)
    if order_id > MAX_ORDER_ID:
        raise InvalidRequest(f"invalid order id: {raw!r}")
    return order_id


def _parse_cursor(raw: Optional[str]) -> int:
    if not raw:
        return 0
    if not (raw.isascii() and raw.isdigit()):
        raise InvalidRequest(f"invalid cursor: {raw!r}")
    cursor = int(raw)
    if cursor > MAX_ORDER_ID:
        raise InvalidRequest(f"invalid cursor: {raw!r}")
    return cursor


def _read_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidRequest("body must be a JSON object")
    return data


def _parse_line_items(raw: Any) -> List[LineItem]:
    if not isinstance(raw, list):
        raise InvalidRequest("line_items must be a list")
    try:
        return [LineItem.from_dict(item) for item in raw]
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidRequest(f"invalid line item: {e}") from e


def _parse_customer_id(raw: Any) -> uuid.UUID:
    try:
        return uuid.UUID(str(raw))
    except ValueError as e:
        raise InvalidRequest(f"invalid customer_id: {raw!r}") from e


def _store_error_response(e: StoreError) -> Tuple[Dict[str, Any], int]:
    if isinstance(e, OrderNotFound):
        return {"message": str(e)}, 404
    if isinstance(e, DuplicateOrder):
        return {"message": str(e)}, 409
    if isinstance(e, DeadlineExceeded):
        logger.warning("request deadline exceeded: %s", e)
        return {"message": "request timed out"}, 504
    if isinstance(e, (BackendError, DecodingError, EncodingError)):
        logger.exception("order store failure: %s", e)
        return {"message": "internal error"}, 500
    logger.exception("unexpected order store error: %s", e)
    return {"message": "internal error"}, 500


# ── routes ───────────────────────────────────────────────────────────────────
bp = Blueprint("orders", __name__)


@bp.get("/health")
def health():
    return {"ok": True}


@bp.post("/orders")
def create_order():
    body = _read_body()
    order = Order(
        order_id=new_order_id(),
        customer_id=_parse_customer_id(body.get("customer_id")),
        line_items=_parse_line_items(body.get("line_items")),
        created_at=utcnow(),
    )
    _store().insert(order, deadline=_deadline())
    logger.info("created order %s", order.order_id)
    return jsonify(order.as_dict()), 201


@bp.get("/orders")
def list_orders():
    cursor = _parse_cursor(request.args.get("cursor"))
    page = FindAllPage(cursor=cursor, size=_settings().page_size)
    result = _store().find_all(page, deadline=_deadline())

    response: Dict[str, Any] = {"items": [order.as_dict() for order in result.orders]}
    if not result.done:
        response["next"] = result.cursor
    return jsonify(response)


@bp.get("/orders/<order_id>")
def get_order(order_id: str):
    order = _store().find_by_id(_parse_order_id(order_id), deadline=_deadline())
    return jsonify(order.as_dict())


@bp.put("/orders/<order_id>")
def update_order(order_id: str):
    oid = _parse_order_id(order_id)
    body = _read_body()
    line_items = _parse_line_items(body.get("line_items"))

    deadline = _deadline()
    order = _store().find_by_id(oid, deadline=deadline)
    order.line_items = line_items
    _store().update(order, deadline=deadline)
    logger.info("updated order %s", oid)
    return jsonify(order.as_dict())


@bp.delete("/orders/<order_id>")
def delete_order(order_id: str):
    oid = _parse_order_id(order_id)
    _store().delete_by_id(oid, deadline=_deadline())
    logger.info("deleted order %s", oid)
    return ("", 204)


@bp.app_errorhandler(InvalidRequest)
def handle_bad_request(e: InvalidRequest):
    logger.info("rejected request %s %s: %s", request.method, request.path, e)
    return {"message": str(e)}, 400


@bp.app_errorhandler(StoreError)
def handle_store_error(e: StoreError):
    return _store_error_response(e)


def create_app(store: Optional[OrderStore] = None, settings: Optional[Settings] = None) -> Flask:
    """
    Build the Flask app around an explicitly constructed OrderStore.
    Without a store, one is created from ``settings.redis_url``.
    """
    settings = settings or Settings.from_env()
    if store is None:
        store = OrderStore(redis_from_settings(settings))

    app = Flask(__name__)
    CORS(app, resources={r"/*": {"origins": settings.cors_origins}})
    app.extensions["order_store"] = store
    app.extensions["order_settings"] = settings
    app.register_blueprint(bp)
    return app
