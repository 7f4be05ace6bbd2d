from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from corre_wallet.domain.wallet import PointCause
from corre_wallet.jobs.wallet import run_wallet_expiry_sweep
from corre_wallet.services.wallet import WalletService
from corre_wallet.workers import WalletExpirySweepWorker

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


async def _seed(session_factory) -> tuple:
    first_owner, second_owner = uuid4(), uuid4()
    async with session_factory() as session:
        service = WalletService(session)
        async with service.owner_transaction(first_owner):
            await service.grant_points(first_owner, 8, PointCause.ROUTINE, now=NOW - timedelta(days=40))
            spent = await service.grant_points(first_owner, 4, PointCause.ROUTINE, now=NOW - timedelta(days=35))
            spent.remaining = 0
            await service.grant_points(first_owner, 5, PointCause.RACE, now=NOW)
        async with service.owner_transaction(second_owner):
            await service.grant_points(second_owner, 6, PointCause.SPECIAL, now=NOW - timedelta(days=61))
    return first_owner, second_owner


@pytest.mark.asyncio
async def test_expiry_sweep_reports_forfeited_points(session_factory, wallet_store) -> None:
    await _seed(session_factory)

    summary = await run_wallet_expiry_sweep(session_factory=session_factory, reference_time=NOW)

    assert summary == {"grants_expired": 2, "points_forfeited": 14, "owners_affected": 2}
    assert wallet_store.snapshot().expiry["points_forfeited"] == 14

    again = await run_wallet_expiry_sweep(session_factory=session_factory, reference_time=NOW)
    assert again["grants_expired"] == 0
    assert again["points_forfeited"] == 0


@pytest.mark.asyncio
async def test_expiry_sweep_respects_batch_size(session_factory) -> None:
    await _seed(session_factory)

    first = await run_wallet_expiry_sweep(session_factory=session_factory, reference_time=NOW, batch_size=1)
    second = await run_wallet_expiry_sweep(session_factory=session_factory, reference_time=NOW, batch_size=1)

    assert (first["grants_expired"], second["grants_expired"]) == (1, 1)


@pytest.mark.asyncio
async def test_expiry_sweep_never_touches_remaining(session_factory) -> None:
    first_owner, _ = await _seed(session_factory)

    await run_wallet_expiry_sweep(session_factory=session_factory, reference_time=NOW)

    async with session_factory() as session:
        history = await WalletService(session).history(first_owner)
    by_amount = {grant.amount: grant for grant in history}
    assert by_amount[8].remaining == 8
    assert by_amount[8].expired_at is not None
    assert by_amount[4].expired_at is None
    assert by_amount[5].expired_at is None


@pytest.mark.asyncio
async def test_worker_run_once_records_summary(session_factory) -> None:
    await _seed(session_factory)
    worker = WalletExpirySweepWorker(session_factory, interval_seconds=1, batch_size=10)

    summary = await worker.run_once(reference_time=NOW)

    assert summary["grants_expired"] == 2
    assert worker.last_summary == summary
    assert worker.last_error is None


@pytest.mark.asyncio
async def test_worker_start_and_stop(session_factory) -> None:
    worker = WalletExpirySweepWorker(session_factory, interval_seconds=60)

    worker.start()
    assert worker.is_running
    await worker.stop()

    assert not worker.is_running
