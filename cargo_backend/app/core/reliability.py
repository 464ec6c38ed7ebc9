"""
Reliability utilities.

Exponential backoff retry for whole transactions. An operation that failed is
always re-run from the beginning in a new transaction, never resumed.
"""

import asyncio
import logging
from typing import Callable, Any, Tuple, Type

from sqlalchemy.exc import OperationalError

from cargo_backend.app.core.config import settings
from cargo_backend.app.core.exceptions import TransactionTimeoutError

logger = logging.getLogger("cargo_backend.reliability")

RETRYABLE_ERRORS: Tuple[Type[BaseException], ...] = (TransactionTimeoutError, OperationalError)


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number `attempt` (0-based): base * 2^attempt, capped."""
    return min(base_delay * (2 ** attempt), max_delay)


async def run_with_retry(
    func: Callable,
    *args,
    max_retries: int = None,
    base_delay: float = None,
    max_delay: float = None,
    retry_on: Tuple[Type[BaseException], ...] = RETRYABLE_ERRORS,
    **kwargs
) -> Any:
    """
    Await `func(*args, **kwargs)`, retrying on transient failures.

    Args:
        func: Coroutine function running one complete transaction
        max_retries: Retries after the first attempt
        base_delay: First backoff delay in seconds
        max_delay: Backoff cap in seconds
        retry_on: Exception types considered transient

    Returns:
        Whatever `func` returns

    Raises:
        The last transient error once retries are exhausted; any other error immediately.
    """
    if max_retries is None:
        max_retries = settings.transaction_max_retries
    if base_delay is None:
        base_delay = settings.transaction_retry_base_delay
    if max_delay is None:
        max_delay = settings.transaction_retry_max_delay

    attempt = 0
    while True:
        try:
            return await func(*args, **kwargs)
        except retry_on as exc:
            if attempt >= max_retries:
                logger.error(
                    "Transaction failed after retries",
                    extra={"operation": getattr(func, "__name__", str(func)), "attempts": attempt + 1}
                )
                raise
            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.warning(
                "Transient transaction failure, retrying",
                extra={
                    "operation": getattr(func, "__name__", str(func)),
                    "attempt": attempt + 1,
                    "delay_seconds": delay,
                    "error": type(exc).__name__,
                }
            )
            await asyncio.sleep(delay)
            attempt += 1
