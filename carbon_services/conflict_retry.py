"""
carbon_services.conflict_retry -- run a unit of work, restarting it on conflict.

Responsibility:
    Opens a fresh session per attempt, runs the caller's function inside
    ``session_scope`` (commit on success, rollback on error) and restarts
    the whole attempt when the database reports a concurrency conflict.

Architecture position:
    Services -- request-level orchestration.  Kernel services never retry;
    they surface conflicts as typed errors and this module decides.

Invariants enforced:
    - Only conflicts are retried: OptimisticLockError, PostgreSQL
      serialization failures (40001) and deadlocks (40P01), and SQLite
      "database is locked".  Domain errors propagate on the first attempt.
    - Each attempt starts from a new session, so no state from a failed
      attempt leaks into the next.

Failure modes:
    - ConflictRetriesExhaustedError once ``max_attempts`` attempts have all
      conflicted.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker

from carbon_kernel.db.engine import session_scope
from carbon_kernel.exceptions import ConflictRetriesExhaustedError, OptimisticLockError
from carbon_kernel.logging_config import get_logger

logger = get_logger("services.conflict_retry")

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3

_RETRYABLE_SQLSTATES = frozenset({"40001", "40P01"})
_RETRYABLE_MESSAGES = ("deadlock detected", "could not serialize access", "database is locked")


def is_retryable_conflict(exc: BaseException) -> bool:
    """True for errors that mean "another writer got there first"."""
    if isinstance(exc, OptimisticLockError):
        return True
    if isinstance(exc, DBAPIError):
        sqlstate = getattr(exc.orig, "pgcode", None) or getattr(exc.orig, "sqlstate", None)
        if sqlstate in _RETRYABLE_SQLSTATES:
            return True
        message = str(exc.orig).lower()
        return any(fragment in message for fragment in _RETRYABLE_MESSAGES)
    return False


def run_with_conflict_retry(
    session_factory: sessionmaker[Session],
    fn: Callable[[Session], T],
    *,
    operation: str,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> T:
    """
    Run ``fn(session)`` in its own transaction, retrying on conflict.

    ``fn`` must be safe to re-run from scratch: it receives a new session
    on every attempt and must re-read everything it needs.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(1, max_attempts + 1):
        try:
            with session_scope(session_factory) as session:
                return fn(session)
        except Exception as exc:
            if not is_retryable_conflict(exc):
                raise
            logger.warning(
                "conflict_retry",
                extra={
                    "operation": operation,
                    "attempt": attempt,
                    "max_attempts": max_attempts,
                    "error": type(exc).__name__,
                },
            )

    logger.error(
        "conflict_retries_exhausted",
        extra={"operation": operation, "attempts": max_attempts},
    )
    raise ConflictRetriesExhaustedError(operation, max_attempts)
