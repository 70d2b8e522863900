"""
Request context tracking for log correlation.

Every log line emitted while serving a request carries the request's
transaction id and, once authenticated, the acting principal id.
"""

import logging
import time
import uuid
from collections.abc import Callable
from contextvars import ContextVar

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

TRANSACTION_HEADER = "x-transaction-id"

_transaction_id: ContextVar[str | None] = ContextVar("transaction_id", default=None)
_principal_id: ContextVar[int | None] = ContextVar("principal_id", default=None)


def generate_transaction_id() -> str:
    """Generate a short transaction ID for request tracking."""
    return uuid.uuid4().hex[:12]


def get_transaction_id() -> str:
    """Get the current transaction ID, creating one outside of requests."""
    txn_id = _transaction_id.get()
    if txn_id is None:
        txn_id = generate_transaction_id()
        _transaction_id.set(txn_id)
    return txn_id


def set_transaction_id(txn_id: str) -> None:
    _transaction_id.set(txn_id)


def get_principal_id() -> int | None:
    return _principal_id.get()


def set_principal_id(principal_id: int | None) -> None:
    """Bind the authenticated principal to the current context."""
    _principal_id.set(principal_id)


class RequestContextFilter(logging.Filter):
    """Logging filter that stamps transaction and principal ids on records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.transaction_id = get_transaction_id()
        record.principal_id = get_principal_id()
        return True


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Assigns a transaction id per request and logs the request outcome."""

    def __init__(self, app, logger: logging.Logger | None = None):
        super().__init__(app)
        self.logger = logger or logging.getLogger("tenanttrack_backend.requests")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        txn_id = request.headers.get(TRANSACTION_HEADER) or generate_transaction_id()
        set_transaction_id(txn_id)
        set_principal_id(None)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)

        self.logger.info(
            "Request completed",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        response.headers[TRANSACTION_HEADER] = txn_id
        return response
