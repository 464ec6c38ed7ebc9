"""
Unit of work.

One UnitOfWork owns one AsyncSession for the lifetime of one business
operation. Domain services receive the UnitOfWork, do every write through
`uow.session` and only ever flush; the UnitOfWork commits on a clean exit and
rolls back on any exception, so a failed operation leaves no partial
aggregate, event or status change behind.

Lock order for all operations: parcel, then unit(s), then event insert, then order.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cargo_backend.app.core.config import settings
from cargo_backend.app.core.exceptions import TransactionTimeoutError
from cargo_backend.app.core.reliability import run_with_retry
from cargo_backend.app.db.session import AsyncSessionLocal

logger = logging.getLogger("cargo_backend.db")


class UnitOfWork:
    """Transaction handle passed by reference through every domain call."""

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self._session_factory = session_factory or AsyncSessionLocal
        self.session: Optional[AsyncSession] = None
        self._after_commit: Dict[str, Callable[[], Awaitable[Any]]] = {}

    async def __aenter__(self) -> "UnitOfWork":
        self.session = self._session_factory()
        self._after_commit = {}
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        committed = False
        try:
            if exc_type is None:
                await self.session.commit()
                committed = True
            else:
                await self.session.rollback()
                logger.warning(
                    "Transaction rolled back",
                    extra={"error": exc_type.__name__, "error_message": str(exc)}
                )
        finally:
            await self.session.close()

        if committed:
            await self._run_after_commit()
        return False

    def after_commit(self, key: str, callback: Callable[[], Awaitable[Any]]) -> None:
        """Register a side effect to run once the transaction has committed. Same key runs once."""
        self._after_commit[key] = callback

    async def _run_after_commit(self) -> None:
        callbacks = list(self._after_commit.values())
        self._after_commit = {}
        for callback in callbacks:
            await callback()


async def run_in_transaction(
    operation: Callable[..., Awaitable[Any]],
    *args,
    session_factory: Optional[async_sessionmaker] = None,
    timeout: Optional[float] = None,
    retries: int = 0,
    **kwargs
) -> Any:
    """
    Run `operation(uow, *args, **kwargs)` as one bounded, atomic transaction.

    Args:
        operation: Domain coroutine taking a UnitOfWork first
        session_factory: Session factory (defaults to the application factory)
        timeout: Seconds before the transaction is abandoned and rolled back
        retries: Whole-transaction retries on timeout/operational errors

    Raises:
        TransactionTimeoutError: The operation exceeded its bound and was rolled back
    """
    timeout = timeout or settings.transaction_timeout_seconds
    name = getattr(operation, "__qualname__", repr(operation))

    async def _attempt():
        async def _run():
            async with UnitOfWork(session_factory) as uow:
                return await operation(uow, *args, **kwargs)

        try:
            return await asyncio.wait_for(_run(), timeout=timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("Transaction timed out", extra={"operation": name, "timeout_seconds": timeout})
            raise TransactionTimeoutError(timeout, name) from exc

    if retries:
        return await run_with_retry(_attempt, max_retries=retries)
    return await _attempt()
