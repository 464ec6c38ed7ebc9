"""
Transaction boundary tests: atomicity, time bound, retries and after-commit hooks.
"""

import asyncio
import logging
import pytest
from sqlalchemy import select, func
from sqlalchemy.exc import OperationalError

from cargo_backend.app.core.config import settings
from cargo_backend.app.core.exceptions import TransactionTimeoutError, InvalidStateError
from cargo_backend.app.core.observability import ContextFormatter
from cargo_backend.app.core.reliability import backoff_delay, run_with_retry
from cargo_backend.app.db.unit_of_work import UnitOfWork, run_in_transaction
from cargo_backend.app.domain.containment.pallets import PalletService
from cargo_backend.app.models.pallet import Pallet


async def _pallet_count(session_factory) -> int:
    async with session_factory() as session:
        result = await session.execute(select(func.count(Pallet.id)))
        return result.scalar_one()


@pytest.mark.asyncio
async def test_failed_operation_leaves_nothing_behind(session_factory):
    async def create_then_fail(uow):
        await PalletService.create(uow, 1)
        raise InvalidStateError("late failure")

    with pytest.raises(InvalidStateError):
        await run_in_transaction(create_then_fail, session_factory=session_factory)

    assert await _pallet_count(session_factory) == 0


@pytest.mark.asyncio
async def test_rollback_is_logged_with_the_failure(session_factory, caplog):
    async def create_then_fail(uow):
        await PalletService.create(uow, 1)
        raise InvalidStateError("Pallet P-01 is sealed")

    db_logger = logging.getLogger("cargo_backend.db")
    caplog.set_level(logging.WARNING, logger="cargo_backend.db")
    db_logger.addHandler(caplog.handler)
    try:
        with pytest.raises(InvalidStateError):
            await run_in_transaction(create_then_fail, session_factory=session_factory)
    finally:
        db_logger.removeHandler(caplog.handler)

    record = next(r for r in caplog.records if r.getMessage() == "Transaction rolled back")
    assert record.error == "InvalidStateError"
    assert record.error_message == "Pallet P-01 is sealed"
    line = ContextFormatter("%(levelname)s %(message)s").format(record)
    assert line.startswith("WARNING Transaction rolled back")
    assert "error=InvalidStateError" in line
    assert await _pallet_count(session_factory) == 0


@pytest.mark.asyncio
async def test_timeout_rolls_back(session_factory):
    async def slow(uow):
        await PalletService.create(uow, 1)
        await asyncio.sleep(5)

    with pytest.raises(TransactionTimeoutError) as exc_info:
        await run_in_transaction(slow, session_factory=session_factory, timeout=0.05)

    assert exc_info.value.details["timeout_seconds"] == 0.05
    assert await _pallet_count(session_factory) == 0


@pytest.mark.asyncio
async def test_after_commit_hooks(session_factory):
    calls = []

    async def record(name):
        calls.append(name)

    async with UnitOfWork(session_factory) as uow:
        uow.after_commit("a", lambda: record("first"))
        uow.after_commit("a", lambda: record("second"))
        uow.after_commit("b", lambda: record("other"))
    assert calls == ["second", "other"]

    calls.clear()
    with pytest.raises(RuntimeError):
        async with UnitOfWork(session_factory) as uow:
            uow.after_commit("a", lambda: record("never"))
            raise RuntimeError("abort")
    assert calls == []


def test_backoff_delay_is_capped():
    assert [backoff_delay(n, 1.0, 5.0) for n in range(5)] == [1.0, 2.0, 4.0, 5.0, 5.0]


@pytest.mark.asyncio
async def test_retry_recovers_from_transient_failure(mocker):
    operation = mocker.AsyncMock(side_effect=[OperationalError("UPDATE counters", {}, Exception("locked")), "done"])

    result = await run_with_retry(operation, max_retries=2, base_delay=0, max_delay=0)

    assert result == "done"
    assert operation.await_count == 2


@pytest.mark.asyncio
async def test_retry_gives_up(mocker):
    operation = mocker.AsyncMock(side_effect=TransactionTimeoutError(1.0))

    with pytest.raises(TransactionTimeoutError):
        await run_with_retry(operation, max_retries=2, base_delay=0, max_delay=0)

    assert operation.await_count == 3


@pytest.mark.asyncio
async def test_domain_errors_are_not_retried(mocker):
    operation = mocker.AsyncMock(side_effect=InvalidStateError("no"))

    with pytest.raises(InvalidStateError):
        await run_with_retry(operation, max_retries=3, base_delay=0, max_delay=0)

    assert operation.await_count == 1


@pytest.mark.asyncio
async def test_run_in_transaction_retries_whole_operation(session_factory, mocker):
    attempts = []

    async def flaky(uow):
        attempts.append(len(attempts) + 1)
        pallet = await PalletService.create(uow, 1)
        if len(attempts) == 1:
            raise OperationalError("INSERT INTO pallets", {}, Exception("database is locked"))
        return pallet

    mocker.patch.object(settings, "transaction_retry_base_delay", 0.0)
    pallet = await run_in_transaction(flaky, session_factory=session_factory, retries=1)

    assert attempts == [1, 2]
    assert pallet.pallet_number.endswith("-0001")
    assert await _pallet_count(session_factory) == 1
