"""
Write transactions for the stock ledger.

``run_write`` opens one session, runs the caller's work inside a single
transaction and commits it. Storage failures are translated into the engine's
error kinds:

- lock / serialization failures -> ConcurrencyConflictError (nothing applied)
- failure while committing, or the caller's timeout expiring ->
  OutcomeUnknownError (the write may or may not have been applied)
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.exceptions import ConcurrencyConflictError, OutcomeUnknownError
from core.logging_config import get_logger

logger = get_logger("unit_of_work")

T = TypeVar("T")

# serialization_failure, deadlock_detected, lock_not_available
_CONFLICT_SQLSTATES = frozenset({"40001", "40P01", "55P03"})


def is_conflict(exc: DBAPIError) -> bool:
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _CONFLICT_SQLSTATES:
        return True
    msg = str(orig or exc).lower()
    return "database is locked" in msg or "database table is locked" in msg


async def run_write(
    session_maker: async_sessionmaker[AsyncSession],
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    timeout: Optional[float] = None,
    operation: str = "write",
) -> T:
    async def _attempt() -> T:
        async with session_maker() as session:
            try:
                result = await work(session)
            except DBAPIError as e:
                await session.rollback()
                if is_conflict(e):
                    logger.warning("write_conflict", extra={"operation": operation})
                    raise ConcurrencyConflictError() from e
                raise
            except Exception:
                await session.rollback()
                raise

            try:
                await session.commit()
            except DBAPIError as e:
                if is_conflict(e):
                    logger.warning("commit_conflict", extra={"operation": operation})
                    raise ConcurrencyConflictError() from e
                logger.error("commit_failed", extra={"operation": operation}, exc_info=True)
                raise OutcomeUnknownError() from e
            return result

    if timeout is None:
        return await _attempt()
    try:
        return await asyncio.wait_for(_attempt(), timeout)
    except asyncio.TimeoutError as e:
        logger.error("write_timed_out", extra={"operation": operation, "timeout": timeout})
        raise OutcomeUnknownError(
            f"{operation} did not complete within {timeout}s; re-query state before retrying"
        ) from e
