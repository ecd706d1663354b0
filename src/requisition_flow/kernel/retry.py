"""
Retry with exponential backoff for SQLite lock contention.

Only the persistence layer retries: SQLite lock contention, and a
requisition number taken by another writer between reading the highest
number and claiming the next one. Domain errors (TransitionDenied,
ValidationFailed, ...) are never retried.
"""

import sqlite3
from collections.abc import Callable
from typing import TypeVar

from tenacity import (
    retry,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from requisition_flow.kernel.errors import StreamKeyConflict
from requisition_flow.kernel.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def is_lock_error(exc: BaseException) -> bool:
    """True for SQLite 'database is locked' / 'busy' errors."""
    if not isinstance(exc, sqlite3.OperationalError):
        return False
    message = str(exc).lower()
    return "locked" in message or "busy" in message


def retry_on_sqlite_lock(
    max_attempts: int = 3,
    min_wait_ms: int = 100,
    max_wait_ms: int = 1000,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry decorator for SQLite lock contention.

    SQLite uses file-based locking and can report "database is locked"
    while another process holds the write lock. The failed transaction
    was rolled back, so running it again is safe.

    Args:
        max_attempts: Maximum number of attempts (default: 3)
        min_wait_ms: Minimum wait time in milliseconds (default: 100)
        max_wait_ms: Maximum wait time in milliseconds (default: 1000)

    Example:
        @retry_on_sqlite_lock()
        def append(...):
            conn.execute(...)
    """
    return retry(
        retry=retry_if_exception(is_lock_error),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(
            multiplier=1,
            min=min_wait_ms / 1000.0,
            max=max_wait_ms / 1000.0,
        ),
        before_sleep=lambda retry_state: logger.warning(
            "SQLite lock detected, retrying",
            attempt=retry_state.attempt_number,
            exception=str(retry_state.outcome.exception()) if retry_state.outcome else None,
        ),
        reraise=True,
    )


def retry_on_key_conflict(
    max_attempts: int = 5,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry decorator for a unique key claimed concurrently

    The decorated callable must pick a fresh key on every call; the
    losing attempt wrote nothing.
    """
    return retry(
        retry=retry_if_exception_type(StreamKeyConflict),
        stop=stop_after_attempt(max_attempts),
        before_sleep=lambda retry_state: logger.warning(
            "Unique key already taken, retrying",
            attempt=retry_state.attempt_number,
            exception=str(retry_state.outcome.exception()) if retry_state.outcome else None,
        ),
        reraise=True,
    )
