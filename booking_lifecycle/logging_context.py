"""Per-operation log context for booking requests.

Every lifecycle operation (accept, decline, expire, rebook, sweep...) runs
inside ``request_scope``, which binds the booking request id and the
operation name for its duration and restores the previous values on exit.
Records emitted outside any scope read ``-`` for both fields, so ledger or
sweep-summary lines never inherit a request id from earlier work.

Usage:
    with request_scope(request.id, "decline"):
        logger.info("Declined")
    # 2025-03-15 10:00:00 [...] INFO [BR-4f2a9c01de decline]: Declined
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

NO_CONTEXT = "-"

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s [%(request_id)s %(operation)s]: %(message)s"

_request_id: ContextVar[str] = ContextVar("booking_request_id", default=NO_CONTEXT)
_operation: ContextVar[str] = ContextVar("booking_operation", default=NO_CONTEXT)


@contextmanager
def request_scope(request_id: str, operation: Optional[str] = None) -> Iterator[None]:
    """Bind request_id (and optionally the operation) until the block exits.

    Nested scopes shadow the outer one and hand it back afterwards. When
    ``operation`` is omitted the enclosing operation is kept.
    """
    id_token = _request_id.set(request_id)
    op_token = _operation.set(operation) if operation is not None else None
    try:
        yield
    finally:
        if op_token is not None:
            _operation.reset(op_token)
        _request_id.reset(id_token)


def get_request_id() -> str:
    """The booking request id bound to the current scope, or ``-``."""
    return _request_id.get()


def get_operation() -> str:
    return _operation.get()


class RequestIdFilter(logging.Filter):
    """Stamps ``request_id`` and ``operation`` on records that lack them."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = _request_id.get()  # type: ignore[attr-defined]
        if not hasattr(record, "operation"):
            record.operation = _operation.get()  # type: ignore[attr-defined]
        return True


def install_request_filter(handlers: list[logging.Handler]) -> None:
    """Attach the filter to handlers so LOG_FORMAT works for every logger."""
    for handler in handlers:
        if not any(isinstance(f, RequestIdFilter) for f in handler.filters):
            handler.addFilter(RequestIdFilter())


def get_lifecycle_logger(name: str) -> logging.Logger:
    """Return a logger whose records carry the scope even under foreign handlers."""
    logger = logging.getLogger(name)
    if not any(isinstance(f, RequestIdFilter) for f in logger.filters):
        logger.addFilter(RequestIdFilter())
    return logger
