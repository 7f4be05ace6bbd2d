"""Persisted wallet workflows: grants, FIFO debits, XP, checkout and partner coupons."""

from __future__ import annotations

import asyncio
import weakref
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Iterable
from uuid import UUID

from loguru import logger
from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from corre_wallet.core.settings import Settings, settings
from corre_wallet.domain.wallet import (
    CouponUnavailable,
    InsufficientPoints,
    InvalidAmount,
    MembershipTier,
    PointCause,
    PointGrant,
    RedemptionPolicy,
    WalletSnapshot,
    XPProgress,
    accumulate_xp,
    apply_consumption,
    ensure_utc,
    expires_at_for,
    plan_consumption,
    points_for_event,
    progress,
    summarize_grants,
    ttl_table_from_settings,
)
from corre_wallet.models.wallet import (
    ConsumptionReason,
    CouponRedemption,
    PartnerCoupon,
    WalletConsumption,
    WalletGrant,
    WalletXPAccount,
)
from corre_wallet.observability.wallet import get_wallet_store

MAX_HISTORY_LIMIT = 100
MAX_LOG_LIMIT = 200

_OWNER_LOCKS: "weakref.WeakValueDictionary[UUID, asyncio.Lock]" = weakref.WeakValueDictionary()


def _owner_lock(owner_id: UUID) -> asyncio.Lock:
    lock = _OWNER_LOCKS.get(owner_id)
    if lock is None:
        lock = asyncio.Lock()
        _OWNER_LOCKS[owner_id] = lock
    return lock


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ActivityAward:
    """Result of a combined XP + points award."""

    grant: WalletGrant
    xp: XPProgress


@dataclass
class CheckoutQuote:
    """Split of a cart between points and cash (1 point = 1 minor unit)."""

    cart_total: int
    max_points: int
    points_used: int
    cash_amount: int


class WalletService:
    """Coordinates wallet persistence on top of the pure wallet domain rules.

    Mutating methods only flush. Callers wrap them in ``owner_transaction`` so the
    whole unit of work for one owner commits or rolls back together while no other
    task mutates the same wallet.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        config: Settings | None = None,
        policy: RedemptionPolicy | None = None,
    ) -> None:
        self._db = db_session
        self._config = config or settings
        self._policy = policy or RedemptionPolicy.from_settings(self._config)
        self._ttl_days = ttl_table_from_settings(self._config)
        self._expiring_window = timedelta(days=self._config.expiring_soon_window_days)
        self._store = get_wallet_store()

    @asynccontextmanager
    async def owner_transaction(self, owner_id: UUID) -> AsyncIterator["WalletService"]:
        """Serialize work on one owner's wallet and commit it as a single unit."""

        async with _owner_lock(owner_id):
            with logger.contextualize(owner_id=str(owner_id)):
                try:
                    yield self
                    await self._db.commit()
                except Exception:
                    await self._db.rollback()
                    raise

    async def grant_points(
        self,
        owner_id: UUID,
        amount: int,
        cause: PointCause | str,
        *,
        now: datetime | None = None,
        source_id: str | None = None,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> WalletGrant:
        if amount <= 0:
            raise InvalidAmount("Grant amount must be positive")

        resolved = PointCause(cause)
        granted_at = ensure_utc(now or _utcnow())
        grant = WalletGrant(
            owner_id=owner_id,
            amount=amount,
            remaining=amount,
            cause=resolved,
            source_id=source_id,
            description=description,
            metadata_json=metadata or {},
            granted_at=granted_at,
            expires_at=expires_at_for(resolved, granted_at, self._ttl_days),
        )
        self._db.add(grant)
        await self._db.flush()

        self._store.record_grant(resolved.value, amount)
        logger.info(
            "Granted wallet points",
            grant_id=str(grant.id),
            owner_id=str(owner_id),
            amount=amount,
            cause=resolved.value,
            expires_at=grant.expires_at.isoformat(),
        )
        return grant

    async def import_grants(self, grants: Iterable[PointGrant]) -> int:
        """Persist grants decoded from backend rows, skipping ids already stored."""

        imported = 0
        for record in grants:
            if not 0 <= record.remaining <= record.amount:
                raise InvalidAmount(f"Grant {record.id} has remaining outside [0, amount]")
            if await self._db.get(WalletGrant, record.id) is not None:
                continue
            self._db.add(
                WalletGrant(
                    id=record.id,
                    owner_id=record.owner_id,
                    amount=record.amount,
                    remaining=record.remaining,
                    cause=record.cause,
                    source_id=record.source_id,
                    description=record.description,
                    granted_at=ensure_utc(record.granted_at),
                    expires_at=ensure_utc(record.expires_at),
                )
            )
            imported += 1
        await self._db.flush()
        if imported:
            logger.info("Imported wallet grants", imported=imported)
        return imported

    async def _active_grants(self, owner_id: UUID, *, lock_rows: bool = False) -> list[WalletGrant]:
        # expiry is checked by the domain layer against the caller's clock
        stmt = (
            select(WalletGrant)
            .where(WalletGrant.owner_id == owner_id, WalletGrant.remaining > 0)
            .order_by(WalletGrant.expires_at.asc(), WalletGrant.granted_at.asc(), WalletGrant.id.asc())
        )
        if lock_rows:
            stmt = stmt.with_for_update()
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def snapshot(self, owner_id: UUID, *, now: datetime | None = None) -> WalletSnapshot:
        grants = await self._active_grants(owner_id)
        return summarize_grants(grants, now or _utcnow(), expiring_window=self._expiring_window)

    async def history(self, owner_id: UUID, *, limit: int = 50) -> list[WalletGrant]:
        bounded = max(0, min(limit, MAX_HISTORY_LIMIT))
        if bounded == 0:
            return []
        stmt = (
            select(WalletGrant)
            .where(WalletGrant.owner_id == owner_id)
            .order_by(WalletGrant.granted_at.desc(), WalletGrant.id.desc())
            .limit(bounded)
        )
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def list_consumptions(self, owner_id: UUID, *, limit: int = 50) -> list[WalletConsumption]:
        """Debit log for one owner, newest first."""

        bounded = max(0, min(limit, MAX_LOG_LIMIT))
        if bounded == 0:
            return []
        stmt = (
            select(WalletConsumption)
            .where(WalletConsumption.owner_id == owner_id)
            .order_by(WalletConsumption.consumed_at.desc(), WalletConsumption.id.desc())
            .limit(bounded)
        )
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def consume_points(
        self,
        owner_id: UUID,
        points: int,
        *,
        now: datetime | None = None,
        reason: ConsumptionReason = ConsumptionReason.MANUAL,
        reference: str | None = None,
    ) -> bool:
        """Debit ``points`` from the soonest-expiring grants; all or nothing."""

        reference_time = ensure_utc(now or _utcnow())
        grants = await self._active_grants(owner_id, lock_rows=True)
        try:
            steps = plan_consumption(grants, points, reference_time)
        except InsufficientPoints as exc:
            self._store.record_rejection("insufficient_points")
            logger.warning(
                "Rejected wallet debit",
                owner_id=str(owner_id),
                requested=exc.requested,
                available=exc.available,
                reason=reason.value,
            )
            raise
        if not steps:
            return True

        apply_consumption(grants, steps)
        for step in steps:
            self._db.add(
                WalletConsumption(
                    owner_id=owner_id,
                    grant_id=step.grant_id,
                    points=step.points,
                    reason=reason,
                    reference=reference,
                    consumed_at=reference_time,
                )
            )
        await self._db.flush()

        self._store.record_consumption(reason.value, points)
        logger.info(
            "Consumed wallet points",
            owner_id=str(owner_id),
            points=points,
            grants_touched=len(steps),
            reason=reason.value,
            reference=reference,
        )
        return True

    async def get_xp(self, owner_id: UUID) -> int:
        account = await self._db.get(WalletXPAccount, owner_id)
        return int(account.current_xp) if account else 0

    async def xp_progress(self, owner_id: UUID) -> XPProgress:
        return progress(await self.get_xp(owner_id))

    async def add_xp(self, owner_id: UUID, delta: int) -> XPProgress:
        if delta < 0:
            raise InvalidAmount("XP delta cannot be negative")
        if delta == 0:
            return await self.xp_progress(owner_id)

        account = await self._db.get(WalletXPAccount, owner_id, with_for_update=True)
        if account is None:
            account = WalletXPAccount(owner_id=owner_id, current_xp=0)
            self._db.add(account)
        account.current_xp = accumulate_xp(int(account.current_xp or 0), delta)
        await self._db.flush()

        result = progress(int(account.current_xp))
        logger.info(
            "Added wallet XP",
            owner_id=str(owner_id),
            delta=delta,
            current_xp=result.current_xp,
            level=result.level.value,
        )
        return result

    async def award_activity(
        self,
        owner_id: UUID,
        cause: PointCause | str,
        *,
        xp: int,
        points: int | None = None,
        now: datetime | None = None,
        source_id: str | None = None,
        description: str | None = None,
    ) -> ActivityAward:
        """Add XP and a point grant for one activity."""

        resolved = PointCause(cause)
        amount = points if points is not None else points_for_event(resolved)
        if xp < 0:
            raise InvalidAmount("XP delta cannot be negative")
        grant = await self.grant_points(
            owner_id,
            amount,
            resolved,
            now=now,
            source_id=source_id,
            description=description,
            metadata={"kind": "activity", "xp": xp},
        )
        xp_state = await self.add_xp(owner_id, xp)
        return ActivityAward(grant=grant, xp=xp_state)

    def max_points_discount(
        self,
        cart_total_minor_units: int,
        owner_tier: MembershipTier | str,
        available_points: int,
    ) -> int:
        return self._policy.max_points_discount(cart_total_minor_units, owner_tier, available_points)

    async def checkout(
        self,
        owner_id: UUID,
        *,
        cart_total: int,
        owner_tier: MembershipTier | str,
        points_requested: int,
        now: datetime | None = None,
        reference: str | None = None,
    ) -> CheckoutQuote:
        """Apply up to the tier cap of points to a cart and return the cash remainder."""

        if points_requested < 0:
            raise InvalidAmount("Requested points cannot be negative")

        reference_time = ensure_utc(now or _utcnow())
        grants = await self._active_grants(owner_id, lock_rows=True)
        available = summarize_grants(grants, reference_time, expiring_window=self._expiring_window).total_available
        cap = self.max_points_discount(cart_total, owner_tier, available)
        used = min(points_requested, cap)
        if used:
            await self.consume_points(
                owner_id,
                used,
                now=reference_time,
                reason=ConsumptionReason.CHECKOUT,
                reference=reference,
            )

        quote = CheckoutQuote(
            cart_total=cart_total,
            max_points=cap,
            points_used=used,
            cash_amount=cart_total - used,
        )
        logger.info(
            "Applied wallet points to checkout",
            owner_id=str(owner_id),
            tier=MembershipTier(owner_tier).value,
            cart_total=cart_total,
            points_used=used,
            reference=reference,
        )
        return quote

    async def list_coupons(self, *, now: datetime | None = None) -> list[PartnerCoupon]:
        reference_time = ensure_utc(now or _utcnow())
        stmt = (
            select(PartnerCoupon)
            .where(
                PartnerCoupon.is_active.is_(True),
                or_(PartnerCoupon.expires_at.is_(None), PartnerCoupon.expires_at > reference_time),
                or_(
                    PartnerCoupon.stock_limit.is_(None),
                    PartnerCoupon.redeemed_count < PartnerCoupon.stock_limit,
                ),
            )
            .order_by(PartnerCoupon.points_required.asc(), PartnerCoupon.title.asc())
        )
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def get_coupon(self, coupon_id: UUID, *, lock_row: bool = False) -> PartnerCoupon | None:
        return await self._db.get(PartnerCoupon, coupon_id, with_for_update=True if lock_row else None)

    async def redeem_coupon(
        self,
        owner_id: UUID,
        coupon: PartnerCoupon,
        *,
        now: datetime | None = None,
    ) -> CouponRedemption:
        """Spend the coupon's flat points cost and record the redemption."""

        reference_time = ensure_utc(now or _utcnow())
        if not coupon.is_active:
            raise CouponUnavailable(f"Coupon {coupon.code} is not active")
        if coupon.expires_at is not None and ensure_utc(coupon.expires_at) <= reference_time:
            raise CouponUnavailable(f"Coupon {coupon.code} has expired")
        if coupon.stock_limit is not None and int(coupon.redeemed_count or 0) >= coupon.stock_limit:
            raise CouponUnavailable(f"Coupon {coupon.code} is out of stock")

        # claim one unit of stock in the database before debiting; a competing
        # redemption that committed first makes the guarded update match no row
        claim = (
            update(PartnerCoupon)
            .where(
                PartnerCoupon.id == coupon.id,
                PartnerCoupon.is_active.is_(True),
                or_(
                    PartnerCoupon.stock_limit.is_(None),
                    PartnerCoupon.redeemed_count < PartnerCoupon.stock_limit,
                ),
            )
            .values(redeemed_count=PartnerCoupon.redeemed_count + 1)
            .returning(PartnerCoupon.redeemed_count)
            .execution_options(synchronize_session=False)
        )
        redeemed_count = (await self._db.execute(claim)).scalar_one_or_none()
        if redeemed_count is None:
            self._store.record_rejection("coupon_out_of_stock")
            raise CouponUnavailable(f"Coupon {coupon.code} is out of stock")
        set_committed_value(coupon, "redeemed_count", redeemed_count)

        points = int(coupon.points_required)
        await self.consume_points(
            owner_id,
            points,
            now=reference_time,
            reason=ConsumptionReason.COUPON,
            reference=coupon.code,
        )
        redemption = CouponRedemption(
            coupon_id=coupon.id,
            owner_id=owner_id,
            points_spent=points,
            code=coupon.code,
            redeemed_at=reference_time,
        )
        self._db.add(redemption)
        await self._db.flush()

        self._store.record_coupon_redemption(coupon.partner, points)
        logger.info(
            "Redeemed partner coupon",
            owner_id=str(owner_id),
            coupon_id=str(coupon.id),
            partner=coupon.partner,
            points=points,
        )
        return redemption

    async def list_redemptions(self, owner_id: UUID, *, limit: int = 50) -> list[CouponRedemption]:
        """Coupons the owner has redeemed, newest first."""

        bounded = max(0, min(limit, MAX_LOG_LIMIT))
        if bounded == 0:
            return []
        stmt = (
            select(CouponRedemption)
            .where(CouponRedemption.owner_id == owner_id)
            .order_by(CouponRedemption.redeemed_at.desc(), CouponRedemption.id.desc())
            .limit(bounded)
        )
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def expire_lapsed_grants(
        self,
        *,
        reference_time: datetime | None = None,
        limit: int | None = None,
    ) -> list[WalletGrant]:
        """Stamp ``expired_at`` on lapsed grants that still hold points.

        ``remaining`` is left as is: the forfeited amount stays visible in history and
        the grant is already excluded from balances by its expiry.
        """

        horizon = ensure_utc(reference_time or _utcnow())
        stmt = (
            select(WalletGrant)
            .where(
                and_(
                    WalletGrant.expired_at.is_(None),
                    WalletGrant.remaining > 0,
                    WalletGrant.expires_at <= horizon,
                )
            )
            .order_by(WalletGrant.expires_at.asc(), WalletGrant.id.asc())
        )
        if limit:
            stmt = stmt.limit(limit)
        result = await self._db.execute(stmt)
        expired: list[WalletGrant] = []
        for grant in result.scalars().all():
            grant.expired_at = horizon
            expired.append(grant)
        await self._db.flush()
        return expired


__all__ = ["ActivityAward", "CheckoutQuote", "MAX_HISTORY_LIMIT", "MAX_LOG_LIMIT", "WalletService"]
