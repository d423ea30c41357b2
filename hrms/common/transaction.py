"""Unit of work: one atomic transaction per domain operation.

``UnitOfWork.run(fn)`` opens a fresh session, runs ``fn(session)`` inside a
single transaction and commits when it returns. Any exception rolls the
whole unit back. Optimistic-lock collisions, serialization failures and
deadlocks are retried; other infrastructure failures surface as
``TransientDatabaseError`` so callers can tell them apart from domain
errors, which propagate unchanged.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from hrms.common.exceptions import TransientDatabaseError
from hrms.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

# PostgreSQL SQLSTATEs
_RETRYABLE_SQLSTATES = frozenset({
    "40001",  # serialization_failure
    "40P01",  # deadlock_detected
})
_TRANSIENT_SQLSTATES = frozenset({
    "55P03",  # lock_not_available (lock_timeout)
    "57014",  # query_canceled (statement_timeout)
    "08000",
    "08003",
    "08006",
})


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = exc.orig
    state = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if state is None:
        # asyncpg keeps the code on the wrapped driver exception
        state = getattr(getattr(orig, "__cause__", None), "sqlstate", None)
    return state


def is_retryable(exc: BaseException) -> bool:
    """Conflicts where re-running the whole unit can succeed."""
    if isinstance(exc, StaleDataError):
        return True
    return isinstance(exc, DBAPIError) and _sqlstate(exc) in _RETRYABLE_SQLSTATES


def is_transient(exc: BaseException) -> bool:
    """Infrastructure failures that are not the caller's fault."""
    if not isinstance(exc, DBAPIError):
        return False
    if exc.connection_invalidated:
        return True
    if isinstance(exc, (OperationalError, InterfaceError)):
        return True
    return _sqlstate(exc) in _TRANSIENT_SQLSTATES


class UnitOfWork:
    """Run a coroutine function inside one transaction, with bounded retries."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        max_retries: Optional[int] = None,
        lock_timeout_ms: Optional[int] = None,
        statement_timeout_ms: Optional[int] = None,
    ) -> None:
        self.session_factory = session_factory
        self.max_retries = (
            settings.TX_MAX_RETRIES if max_retries is None else max_retries
        )
        self.lock_timeout_ms = (
            settings.TX_LOCK_TIMEOUT_MS if lock_timeout_ms is None else lock_timeout_ms
        )
        self.statement_timeout_ms = (
            settings.TX_STATEMENT_TIMEOUT_MS
            if statement_timeout_ms is None else statement_timeout_ms
        )

    async def run(self, fn: Callable[[AsyncSession], Awaitable[T]]) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        await self._apply_timeouts(session)
                        return await fn(session)
            except (StaleDataError, DBAPIError) as exc:
                if is_retryable(exc):
                    if attempt <= self.max_retries:
                        logger.warning(
                            "Transaction conflict (attempt %d/%d), retrying: %s",
                            attempt, self.max_retries + 1, exc,
                        )
                        continue
                    logger.error(
                        "Transaction conflict persisted after %d attempts", attempt,
                    )
                    raise TransientDatabaseError(
                        "Concurrent updates kept conflicting. Retry the operation.",
                    ) from exc
                if is_transient(exc):
                    logger.error("Transient database failure: %s", exc)
                    raise TransientDatabaseError() from exc
                raise

    async def _apply_timeouts(self, session: AsyncSession) -> None:
        if session.get_bind().dialect.name != "postgresql":
            return
        await session.execute(
            text(f"SET LOCAL lock_timeout = '{int(self.lock_timeout_ms)}ms'")
        )
        await session.execute(
            text(f"SET LOCAL statement_timeout = '{int(self.statement_timeout_ms)}ms'")
        )
