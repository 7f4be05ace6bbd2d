"""API endpoints for member point wallets, XP progress, checkout and partner coupons."""

from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from corre_wallet.api.dependencies.security import require_wallet_api_key
from corre_wallet.core.settings import settings
from corre_wallet.db.session import get_session
from corre_wallet.domain.wallet import (
    CouponUnavailable,
    InsufficientPoints,
    InvalidAmount,
    MalformedResponse,
    RedemptionPolicy,
    WalletError,
    WalletSnapshot,
    XPProgress,
    ensure_utc,
    points_for_run,
)
from corre_wallet.models.wallet import (
    ConsumptionReason,
    CouponRedemption,
    PartnerCoupon,
    WalletConsumption,
    WalletGrant,
)
from corre_wallet.schemas.wallet import (
    ActivityAwardRequest,
    ActivityAwardResponse,
    CheckoutRequest,
    CheckoutResponse,
    ConsumeRequest,
    ConsumeResponse,
    ConsumptionHistoryResponse,
    ConsumptionRecordResponse,
    CouponRedemptionHistoryResponse,
    CouponRedemptionRecord,
    CouponRedemptionResponse,
    GrantCreateRequest,
    PartnerCouponResponse,
    PointGrantResponse,
    RedemptionCapRequest,
    RedemptionCapResponse,
    RunPointsResponse,
    WalletBalanceResponse,
    WalletHistoryResponse,
    WalletSummaryResponse,
    XPIncrementRequest,
    XPProgressResponse,
)
from corre_wallet.services.wallet import WalletService


router = APIRouter(prefix="/wallet", tags=["wallet"])


def _http_error(exc: WalletError) -> HTTPException:
    if isinstance(exc, InvalidAmount):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, InsufficientPoints):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": str(exc),
                "requested": exc.requested,
                "available": exc.available,
            },
        )
    if isinstance(exc, CouponUnavailable):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, MalformedResponse):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _serialize_balance(snapshot: WalletSnapshot) -> WalletBalanceResponse:
    payload = snapshot.as_dict()
    return WalletBalanceResponse(
        totalAvailable=payload["total_available"],
        expiringSoon=payload["expiring_soon"],
        breakdown=payload["breakdown"],
    )


def _serialize_xp(progress: XPProgress) -> XPProgressResponse:
    return XPProgressResponse(
        currentXp=progress.current_xp,
        level=progress.level.value,
        nextLevel=progress.next_level.value if progress.next_level else None,
        xpToNextLevel=progress.xp_to_next_level,
        renewalDiscount=progress.renewal_discount,
    )


def _serialize_grant(grant: WalletGrant) -> PointGrantResponse:
    return PointGrantResponse(
        id=grant.id,
        amount=grant.amount,
        remaining=grant.remaining,
        cause=grant.cause.value,
        sourceId=grant.source_id,
        description=grant.description,
        grantedAt=ensure_utc(grant.granted_at),
        expiresAt=ensure_utc(grant.expires_at),
        expiredAt=ensure_utc(grant.expired_at) if grant.expired_at else None,
    )


def _serialize_coupon(coupon: PartnerCoupon) -> PartnerCouponResponse:
    stock_remaining = None
    if coupon.stock_limit is not None:
        stock_remaining = max(coupon.stock_limit - int(coupon.redeemed_count or 0), 0)
    return PartnerCouponResponse(
        id=coupon.id,
        code=coupon.code,
        title=coupon.title,
        partner=coupon.partner,
        description=coupon.description,
        category=coupon.category,
        pointsRequired=coupon.points_required,
        stockRemaining=stock_remaining,
        expiresAt=ensure_utc(coupon.expires_at) if coupon.expires_at else None,
    )


def _serialize_redemption(redemption: CouponRedemption, balance: WalletSnapshot) -> CouponRedemptionResponse:
    return CouponRedemptionResponse(
        id=redemption.id,
        couponId=redemption.coupon_id,
        code=redemption.code,
        pointsSpent=redemption.points_spent,
        redeemedAt=ensure_utc(redemption.redeemed_at),
        balance=_serialize_balance(balance),
    )


def _serialize_redemption_record(redemption: CouponRedemption) -> CouponRedemptionRecord:
    return CouponRedemptionRecord(
        id=redemption.id,
        couponId=redemption.coupon_id,
        code=redemption.code,
        pointsSpent=redemption.points_spent,
        redeemedAt=ensure_utc(redemption.redeemed_at),
    )


def _serialize_consumption(consumption: WalletConsumption) -> ConsumptionRecordResponse:
    return ConsumptionRecordResponse(
        id=consumption.id,
        grantId=consumption.grant_id,
        points=consumption.points,
        reason=consumption.reason.value,
        reference=consumption.reference,
        consumedAt=ensure_utc(consumption.consumed_at),
    )


@router.get("/members/{owner_id}", response_model=WalletSummaryResponse)
async def get_wallet(owner_id: UUID, db: AsyncSession = Depends(get_session)) -> WalletSummaryResponse:
    """Return the member's active balance and XP level."""

    service = WalletService(db)
    snapshot = await service.snapshot(owner_id)
    progress = await service.xp_progress(owner_id)
    return WalletSummaryResponse(
        ownerId=owner_id,
        balance=_serialize_balance(snapshot),
        xp=_serialize_xp(progress),
    )


@router.get("/members/{owner_id}/history", response_model=WalletHistoryResponse)
async def get_wallet_history(
    owner_id: UUID,
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
) -> WalletHistoryResponse:
    """Every grant for the member, newest first, including expired and spent ones."""

    service = WalletService(db)
    grants = await service.history(owner_id, limit=limit)
    return WalletHistoryResponse(ownerId=owner_id, grants=[_serialize_grant(grant) for grant in grants])


@router.get("/members/{owner_id}/consumptions", response_model=ConsumptionHistoryResponse)
async def get_consumption_log(
    owner_id: UUID,
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_session),
) -> ConsumptionHistoryResponse:
    """Per-grant debits for the member, newest first."""

    service = WalletService(db)
    consumptions = await service.list_consumptions(owner_id, limit=limit)
    return ConsumptionHistoryResponse(
        ownerId=owner_id,
        consumptions=[_serialize_consumption(consumption) for consumption in consumptions],
    )


@router.post(
    "/members/{owner_id}/grants",
    response_model=PointGrantResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_wallet_api_key)],
)
async def create_grant(
    owner_id: UUID,
    request: GrantCreateRequest,
    db: AsyncSession = Depends(get_session),
) -> PointGrantResponse:
    service = WalletService(db)
    try:
        async with service.owner_transaction(owner_id):
            grant = await service.grant_points(
                owner_id,
                request.amount,
                request.cause,
                source_id=request.source_id,
                description=request.description,
            )
    except WalletError as exc:
        raise _http_error(exc) from exc
    return _serialize_grant(grant)


@router.post(
    "/members/{owner_id}/consume",
    response_model=ConsumeResponse,
    dependencies=[Depends(require_wallet_api_key)],
)
async def consume_points(
    owner_id: UUID,
    request: ConsumeRequest,
    db: AsyncSession = Depends(get_session),
) -> ConsumeResponse:
    """Debit points from the member's soonest-expiring grants."""

    service = WalletService(db)
    try:
        async with service.owner_transaction(owner_id):
            consumed = await service.consume_points(
                owner_id,
                request.points,
                reason=ConsumptionReason.MANUAL,
                reference=request.reference,
            )
    except WalletError as exc:
        raise _http_error(exc) from exc
    snapshot = await service.snapshot(owner_id)
    return ConsumeResponse(consumed=consumed, points=request.points, balance=_serialize_balance(snapshot))


@router.post(
    "/members/{owner_id}/activities",
    response_model=ActivityAwardResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_wallet_api_key)],
)
async def award_activity(
    owner_id: UUID,
    request: ActivityAwardRequest,
    db: AsyncSession = Depends(get_session),
) -> ActivityAwardResponse:
    """Credit XP and points for a check-in, run or race in one step."""

    service = WalletService(db)
    try:
        async with service.owner_transaction(owner_id):
            award = await service.award_activity(
                owner_id,
                request.cause,
                xp=request.xp,
                points=request.points,
                source_id=request.source_id,
                description=request.description,
            )
    except WalletError as exc:
        raise _http_error(exc) from exc
    return ActivityAwardResponse(grant=_serialize_grant(award.grant), xp=_serialize_xp(award.xp))


@router.get("/members/{owner_id}/xp", response_model=XPProgressResponse)
async def get_xp(owner_id: UUID, db: AsyncSession = Depends(get_session)) -> XPProgressResponse:
    service = WalletService(db)
    return _serialize_xp(await service.xp_progress(owner_id))


@router.post(
    "/members/{owner_id}/xp",
    response_model=XPProgressResponse,
    dependencies=[Depends(require_wallet_api_key)],
)
async def add_xp(
    owner_id: UUID,
    request: XPIncrementRequest,
    db: AsyncSession = Depends(get_session),
) -> XPProgressResponse:
    service = WalletService(db)
    try:
        async with service.owner_transaction(owner_id):
            progress = await service.add_xp(owner_id, request.delta)
    except WalletError as exc:
        raise _http_error(exc) from exc
    return _serialize_xp(progress)


@router.post(
    "/members/{owner_id}/checkout",
    response_model=CheckoutResponse,
    dependencies=[Depends(require_wallet_api_key)],
)
async def checkout_with_points(
    owner_id: UUID,
    request: CheckoutRequest,
    db: AsyncSession = Depends(get_session),
) -> CheckoutResponse:
    """Apply points to a cart up to the member tier's redemption cap."""

    service = WalletService(db)
    try:
        async with service.owner_transaction(owner_id):
            quote = await service.checkout(
                owner_id,
                cart_total=request.cart_total,
                owner_tier=request.owner_tier,
                points_requested=request.points_requested,
                reference=request.reference,
            )
    except WalletError as exc:
        raise _http_error(exc) from exc
    snapshot = await service.snapshot(owner_id)
    return CheckoutResponse(
        cartTotal=quote.cart_total,
        maxPoints=quote.max_points,
        pointsUsed=quote.points_used,
        cashAmount=quote.cash_amount,
        balance=_serialize_balance(snapshot),
    )


@router.post("/redemption-cap", response_model=RedemptionCapResponse)
async def compute_redemption_cap(request: RedemptionCapRequest) -> RedemptionCapResponse:
    """Points usable on a cart for a tier, without touching any wallet."""

    policy = RedemptionPolicy.from_settings(settings)
    try:
        max_points = policy.max_points_discount(request.cart_total, request.owner_tier, request.available_points)
    except WalletError as exc:
        raise _http_error(exc) from exc
    return RedemptionCapResponse(maxPoints=max_points)


@router.get("/coupons", response_model=List[PartnerCouponResponse])
async def list_partner_coupons(db: AsyncSession = Depends(get_session)) -> List[PartnerCouponResponse]:
    """Active partner coupons, cheapest first."""

    service = WalletService(db)
    coupons = await service.list_coupons()
    return [_serialize_coupon(coupon) for coupon in coupons]


@router.get("/members/{owner_id}/coupons/redemptions", response_model=CouponRedemptionHistoryResponse)
async def list_redeemed_coupons(
    owner_id: UUID,
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_session),
) -> CouponRedemptionHistoryResponse:
    """Coupons the member has redeemed, newest first."""

    service = WalletService(db)
    redemptions = await service.list_redemptions(owner_id, limit=limit)
    return CouponRedemptionHistoryResponse(
        ownerId=owner_id,
        redemptions=[_serialize_redemption_record(redemption) for redemption in redemptions],
    )


@router.post(
    "/members/{owner_id}/coupons/{coupon_id}/redeem",
    response_model=CouponRedemptionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_wallet_api_key)],
)
async def redeem_partner_coupon(
    owner_id: UUID,
    coupon_id: UUID,
    db: AsyncSession = Depends(get_session),
) -> CouponRedemptionResponse:
    service = WalletService(db)
    try:
        async with service.owner_transaction(owner_id):
            coupon = await service.get_coupon(coupon_id, lock_row=True)
            if coupon is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Coupon not found")
            redemption = await service.redeem_coupon(owner_id, coupon)
    except WalletError as exc:
        raise _http_error(exc) from exc
    snapshot = await service.snapshot(owner_id)
    return _serialize_redemption(redemption, snapshot)


@router.get("/run-points", response_model=RunPointsResponse)
async def preview_run_points(distance_km: float = Query(..., description="Run distance in kilometres")) -> RunPointsResponse:
    try:
        points = points_for_run(distance_km)
    except WalletError as exc:
        raise _http_error(exc) from exc
    return RunPointsResponse(distanceKm=distance_km, points=points)
