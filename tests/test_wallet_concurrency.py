import asyncio
from datetime import datetime, timezone
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from corre_wallet.domain.wallet import CouponUnavailable, InsufficientPoints, PointCause
from corre_wallet.models.wallet import CouponRedemption, PartnerCoupon, WalletConsumption
from corre_wallet.services.wallet import WalletService

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


async def _seed_points(session_factory, owner_id, amount: int) -> None:
    async with session_factory() as session:
        service = WalletService(session)
        async with service.owner_transaction(owner_id):
            await service.grant_points(owner_id, amount, PointCause.SPECIAL, now=NOW)


async def _outcome(awaitable) -> str:
    try:
        await awaitable
    except (CouponUnavailable, InsufficientPoints) as exc:
        return type(exc).__name__
    return "ok"


@pytest.mark.asyncio
async def test_concurrent_debits_for_one_owner_are_serialized(file_session_factory, wallet_store) -> None:
    owner_id = uuid4()
    await _seed_points(file_session_factory, owner_id, 10)

    async def debit() -> None:
        async with file_session_factory() as session:
            service = WalletService(session)
            async with service.owner_transaction(owner_id):
                await service.consume_points(owner_id, 7, now=NOW)

    outcomes = await asyncio.gather(*(_outcome(debit()) for _ in range(3)))

    assert sorted(outcomes) == ["InsufficientPoints", "InsufficientPoints", "ok"]
    async with file_session_factory() as session:
        snapshot = await WalletService(session).snapshot(owner_id, now=NOW)
        consumed = await session.scalar(select(func.sum(WalletConsumption.points)))
    assert snapshot.total_available == 3
    assert consumed == 7
    assert wallet_store.snapshot().rejections["insufficient_points"] == 2


@pytest.mark.asyncio
async def test_last_coupon_in_stock_goes_to_one_owner(file_session_factory, wallet_store) -> None:
    first_owner, second_owner = uuid4(), uuid4()
    async with file_session_factory() as session:
        coupon = PartnerCoupon(
            code="LASTPAIR",
            title="Last pair of racing flats",
            partner="RunShop",
            points_required=30,
            stock_limit=1,
        )
        session.add(coupon)
        await session.commit()
        coupon_id = coupon.id
    await _seed_points(file_session_factory, first_owner, 50)
    await _seed_points(file_session_factory, second_owner, 50)

    async def redeem(owner_id) -> None:
        async with file_session_factory() as session:
            service = WalletService(session)
            async with service.owner_transaction(owner_id):
                loaded = await service.get_coupon(coupon_id, lock_row=True)
                await service.redeem_coupon(owner_id, loaded, now=NOW)

    outcomes = await asyncio.gather(_outcome(redeem(first_owner)), _outcome(redeem(second_owner)))

    assert sorted(outcomes) == ["CouponUnavailable", "ok"]
    async with file_session_factory() as session:
        stored = await session.get(PartnerCoupon, coupon_id)
        redemptions = (await session.execute(select(CouponRedemption))).scalars().all()
        service = WalletService(session)
        balances = sorted(
            [
                (await service.snapshot(first_owner, now=NOW)).total_available,
                (await service.snapshot(second_owner, now=NOW)).total_available,
            ]
        )
    assert stored.redeemed_count == 1
    assert len(redemptions) == 1
    assert balances == [20, 50]
    assert wallet_store.snapshot().coupons["redeemed"] == 1
