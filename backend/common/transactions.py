from __future__ import annotations

import logging
import time
from typing import Callable, Optional, TypeVar

from django.conf import settings
from django.db import DatabaseError, connection, transaction

from common.exceptions import InternalError

logger = logging.getLogger(__name__)

T = TypeVar("T")

ISOLATION_LEVELS = {"READ COMMITTED", "REPEATABLE READ", "SERIALIZABLE"}
RETRY_BASE_DELAY_MS = 100

# postgres SQLSTATEs / driver messages that mean "run it again"
_RETRYABLE_SQLSTATES = {"40001", "40P01"}
_RETRYABLE_MARKERS = ("deadlock", "could not serialize", "serialization failure", "database is locked")


def is_retryable(exc: Optional[BaseException]) -> bool:
    if exc is None:
        return False
    cause = getattr(exc, "__cause__", None)
    pgcode = getattr(cause, "pgcode", None) or getattr(getattr(cause, "diag", None), "sqlstate", None)
    if pgcode in _RETRYABLE_SQLSTATES:
        return True
    text = str(exc).lower()
    return any(marker in text for marker in _RETRYABLE_MARKERS)


def run_atomic(fn: Callable[[], T], *, isolation_level: Optional[str] = None) -> T:
    """
    Run `fn` inside one database transaction.

    Database failures surface as InternalError and nothing is committed; the
    driver error is kept as `__cause__`. Application errors raised by `fn`
    roll back and propagate unchanged.
    """
    started = time.perf_counter()
    try:
        with transaction.atomic():
            if isolation_level and connection.vendor == "postgresql":
                level = isolation_level.upper()
                if level not in ISOLATION_LEVELS:
                    raise ValueError(f"Unsupported isolation level: {isolation_level}")
                with connection.cursor() as cur:
                    cur.execute(f"SET TRANSACTION ISOLATION LEVEL {level}")
            return fn()
    except DatabaseError as exc:
        logger.error("Transaction failed: %s", exc)
        raise InternalError("Transaction failed - no changes were committed") from exc
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        if elapsed_ms > getattr(settings, "SLOW_TRANSACTION_MS", 2000):
            logger.warning("Slow transaction: %.0fms in %s", elapsed_ms, getattr(fn, "__name__", fn))


def run_retryable(fn: Callable[[], T], *, max_retries: int = 3,
                  isolation_level: Optional[str] = None, sleep=time.sleep) -> T:
    """run_atomic with bounded retries on deadlock / serialization failures (100ms, 200ms, 400ms)."""
    attempt = 0
    while True:
        try:
            return run_atomic(fn, isolation_level=isolation_level)
        except InternalError as exc:
            if not is_retryable(exc.__cause__) or attempt >= max_retries:
                raise
            delay_ms = RETRY_BASE_DELAY_MS * (2 ** attempt)
            attempt += 1
            logger.warning("Retrying transaction (attempt %d/%d) after %dms: %s",
                           attempt, max_retries, delay_ms, exc.__cause__)
            sleep(delay_ms / 1000.0)
