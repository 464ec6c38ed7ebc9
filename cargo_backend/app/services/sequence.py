"""
Sequence generator for tracking codes and unit numbers.

Codes are issued in contiguous blocks from a keyed counter row, one row per
(scope, owner, day). The increment and the read-back happen in a single
upsert statement, so concurrent callers for the same key serialize on the
row lock and never see overlapping ranges, while callers for different keys
never touch the same row.
"""

import asyncio
import logging
from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cargo_backend.app.core.config import settings
from cargo_backend.app.core.exceptions import SequenceExhaustedError, ValidationFailureError
from cargo_backend.app.core.reliability import backoff_delay
from cargo_backend.app.db.unit_of_work import UnitOfWork
from cargo_backend.app.models.counter import Counter
from cargo_backend.app.models.enums import CounterScope
from cargo_backend.app.models.parcel import Parcel

logger = logging.getLogger("cargo_backend.sequence")

UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def today() -> date:
    return datetime.now(timezone.utc).date()


async def increment_counter(
    db: AsyncSession,
    scope: CounterScope,
    owner_id: int,
    day: date,
    amount: int = 1,
) -> int:
    """
    Atomically add `amount` to the (scope, owner, day) counter and return the new value.

    The row is created at `amount` on first use.
    """
    dialect = db.get_bind().dialect.name
    insert = UPSERT_DIALECTS.get(dialect)
    if insert is not None:
        stmt = (
            insert(Counter)
            .values(scope=scope, owner_id=owner_id, day=day, value=amount)
            .on_conflict_do_update(
                index_elements=[Counter.scope, Counter.owner_id, Counter.day],
                set_={"value": Counter.value + amount},
            )
            .returning(Counter.value)
        )
        result = await db.execute(stmt)
        return result.scalar_one()

    # Stores without upsert: lock the row, create it if missing.
    result = await db.execute(
        select(Counter)
        .where(Counter.scope == scope, Counter.owner_id == owner_id, Counter.day == day)
        .with_for_update()
    )
    counter = result.scalar_one_or_none()
    if counter is None:
        counter = Counter(scope=scope, owner_id=owner_id, day=day, value=0)
        db.add(counter)
    counter.value += amount
    await db.flush()
    return counter.value


def format_tracking_code(prefix: str, day: date, service_id: int, owner_id: int, sequence: int) -> str:
    """PREFIX + YYMMDD + service + owner (2 digits) + sequence (4 digits)."""
    return f"{prefix}{day:%y%m%d}{service_id}{owner_id:02d}{sequence:04d}"


async def issue_tracking_codes(
    db: AsyncSession,
    owner_id: int,
    service_id: int,
    quantity: int,
    prefix: Optional[str] = None,
    day: Optional[date] = None,
) -> List[str]:
    """
    Issue `quantity` consecutive tracking codes for an agency.

    Runs inside the caller's transaction: if it rolls back, the block was
    never issued. The date is fixed once at call start.

    Raises:
        ValidationFailureError: quantity below 1
    """
    if quantity < 1:
        raise ValidationFailureError(
            "Quantity must be at least 1", details={"quantity": quantity, "owner_id": owner_id}
        )

    prefix = prefix if prefix is not None else settings.tracking_code_prefix
    day = day or today()

    last = await increment_counter(db, CounterScope.TRACKING, owner_id, day, quantity)
    first = last - quantity + 1

    logger.debug(
        "Tracking codes issued",
        extra={"owner_id": owner_id, "day": day.isoformat(), "first": first, "last": last}
    )
    return [
        format_tracking_code(prefix, day, service_id, owner_id, sequence)
        for sequence in range(first, last + 1)
    ]


async def next_unit_number(db: AsyncSession, scope: CounterScope, owner_id: int, day: Optional[date] = None) -> int:
    """Next per-owner, per-day sequence value for pallet, dispatch and route numbers."""
    return await increment_counter(db, scope, owner_id, day or today(), 1)


async def issue_verified(
    session_factory: async_sessionmaker,
    owner_id: int,
    service_id: int,
    quantity: int,
    max_attempts: Optional[int] = None,
    base_delay: float = None,
    max_delay: float = None,
) -> List[str]:
    """
    Defensive variant: issue a block, then confirm no parcel already uses any of its codes.

    Each attempt runs in its own transaction, so a colliding block stays
    consumed and the next attempt moves past it. Only needed if codes may have
    been written without going through the counter.

    Raises:
        SequenceExhaustedError: every attempt collided
    """
    max_attempts = max_attempts or settings.sequence_max_attempts
    base_delay = settings.transaction_retry_base_delay if base_delay is None else base_delay
    max_delay = settings.transaction_retry_max_delay if max_delay is None else max_delay

    for attempt in range(max_attempts):
        async with UnitOfWork(session_factory) as uow:
            codes = await issue_tracking_codes(uow.session, owner_id, service_id, quantity)
            existing = await uow.session.execute(
                select(Parcel.tracking_code).where(Parcel.tracking_code.in_(codes))
            )
            duplicates = existing.scalars().all()

        if not duplicates:
            return codes

        delay = backoff_delay(attempt, base_delay, max_delay)
        logger.warning(
            "Issued tracking codes collide with existing parcels",
            extra={"owner_id": owner_id, "duplicates": len(duplicates), "attempt": attempt + 1, "delay_seconds": delay}
        )
        if attempt + 1 < max_attempts:
            await asyncio.sleep(delay)

    raise SequenceExhaustedError(max_attempts, details={"owner_id": owner_id, "quantity": quantity})
