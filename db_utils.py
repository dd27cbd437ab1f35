"""Database start-up helpers."""

from __future__ import annotations

import time
from typing import Callable, TypeVar

from sqlalchemy.exc import OperationalError

from app_logging import get_logger

T = TypeVar("T")

_logger = get_logger("app.db")


def retry_with_backoff(
    func: Callable[[], T],
    attempts: int = 3,
    base_delay: float = 0.1,
    max_total_delay: float = 2.0,
) -> T:
    """Call ``func`` again after an ``OperationalError``, doubling the pause each time.

    Only connection-level failures are retried; the total sleep never exceeds
    ``max_total_delay`` so start-up stays fast when the database is down.
    """

    total_delay = 0.0
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except OperationalError as exc:
            _logger.warning(
                "database not reachable", extra={"attempt": attempt, "error": str(exc)}
            )
            delay = min(base_delay * (2 ** (attempt - 1)), max_total_delay - total_delay)
            if attempt >= attempts or delay <= 0:
                raise
            time.sleep(delay)
            total_delay += delay
    raise ValueError("attempts must be at least 1")


def ensure_schema(db) -> bool:
    """Create missing tables. Returns False when the database stayed unreachable."""

    try:
        retry_with_backoff(db.create_all)
    except OperationalError:
        _logger.error("schema creation skipped, database unavailable")
        return False
    return True


__all__ = ["ensure_schema", "retry_with_backoff"]
