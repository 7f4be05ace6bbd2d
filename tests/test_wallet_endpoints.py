from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from corre_wallet.core.settings import settings
from corre_wallet.domain.wallet import PointCause
from corre_wallet.models.wallet import PartnerCoupon
from corre_wallet.services.wallet import WalletService


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def _seed_grant(session_factory, owner_id, amount, cause, *, age_days: int = 0) -> None:
    async with session_factory() as session:
        service = WalletService(session)
        async with service.owner_transaction(owner_id):
            await service.grant_points(
                owner_id,
                amount,
                cause,
                now=datetime.now(timezone.utc) - timedelta(days=age_days),
            )


@pytest.mark.asyncio
async def test_unknown_member_has_empty_wallet(app_with_db) -> None:
    app, _ = app_with_db
    owner_id = uuid4()

    async with _client(app) as client:
        response = await client.get(f"/api/v1/wallet/members/{owner_id}")

    assert response.status_code == 200
    payload = response.json()
    assert payload["ownerId"] == str(owner_id)
    assert payload["balance"] == {
        "totalAvailable": 0,
        "expiringSoon": 0,
        "breakdown": {"routine": 0, "special": 0, "race": 0, "purchase_refund": 0},
    }
    assert payload["xp"]["level"] == "starter"
    assert payload["xp"]["xpToNextLevel"] == 10_000


@pytest.mark.asyncio
async def test_grant_then_consume_flow(app_with_db) -> None:
    app, _ = app_with_db
    owner_id = uuid4()

    async with _client(app) as client:
        created = await client.post(
            f"/api/v1/wallet/members/{owner_id}/grants",
            json={"amount": 10, "cause": "routine", "sourceId": "checkin-1"},
        )
        assert created.status_code == 201
        grant = created.json()
        assert grant["remaining"] == 10
        assert grant["sourceId"] == "checkin-1"

        consumed = await client.post(f"/api/v1/wallet/members/{owner_id}/consume", json={"points": 7})
        assert consumed.status_code == 200
        assert consumed.json()["balance"]["totalAvailable"] == 3

        rejected = await client.post(f"/api/v1/wallet/members/{owner_id}/consume", json={"points": 4})
        assert rejected.status_code == 409
        assert rejected.json()["detail"]["available"] == 3

        negative = await client.post(f"/api/v1/wallet/members/{owner_id}/consume", json={"points": -1})
        assert negative.status_code == 400

        wallet = await client.get(f"/api/v1/wallet/members/{owner_id}")
        assert wallet.json()["balance"]["totalAvailable"] == 3
        assert wallet.json()["balance"]["expiringSoon"] == 0


@pytest.mark.asyncio
async def test_grant_validation(app_with_db) -> None:
    app, _ = app_with_db
    owner_id = uuid4()

    async with _client(app) as client:
        zero = await client.post(
            f"/api/v1/wallet/members/{owner_id}/grants",
            json={"amount": 0, "cause": "routine"},
        )
        unknown_cause = await client.post(
            f"/api/v1/wallet/members/{owner_id}/grants",
            json={"amount": 5, "cause": "bonus"},
        )

    assert zero.status_code == 400
    assert unknown_cause.status_code == 422


@pytest.mark.asyncio
async def test_history_endpoint(app_with_db) -> None:
    app, session_factory = app_with_db
    owner_id = uuid4()
    await _seed_grant(session_factory, owner_id, 4, PointCause.ROUTINE, age_days=45)
    await _seed_grant(session_factory, owner_id, 9, PointCause.RACE)

    async with _client(app) as client:
        full = await client.get(f"/api/v1/wallet/members/{owner_id}/history")
        limited = await client.get(f"/api/v1/wallet/members/{owner_id}/history", params={"limit": 1})
        invalid = await client.get(f"/api/v1/wallet/members/{owner_id}/history", params={"limit": 0})

    assert [grant["amount"] for grant in full.json()["grants"]] == [9, 4]
    assert [grant["amount"] for grant in limited.json()["grants"]] == [9]
    assert invalid.status_code == 422


@pytest.mark.asyncio
async def test_activity_and_xp_endpoints(app_with_db) -> None:
    app, _ = app_with_db
    owner_id = uuid4()

    async with _client(app) as client:
        award = await client.post(
            f"/api/v1/wallet/members/{owner_id}/activities",
            json={"cause": "race", "xp": 9_990, "sourceId": "race-spring"},
        )
        assert award.status_code == 201
        assert award.json()["grant"]["amount"] == 10
        assert award.json()["xp"]["currentXp"] == 9_990

        bumped = await client.post(f"/api/v1/wallet/members/{owner_id}/xp", json={"delta": 10})
        assert bumped.status_code == 200
        assert bumped.json()["level"] == "pacer"
        assert bumped.json()["xpToNextLevel"] == 5_000
        assert bumped.json()["renewalDiscount"] == 5

        negative = await client.post(f"/api/v1/wallet/members/{owner_id}/xp", json={"delta": -5})
        assert negative.status_code == 400

        current = await client.get(f"/api/v1/wallet/members/{owner_id}/xp")
        assert current.json()["currentXp"] == 10_000


@pytest.mark.asyncio
async def test_checkout_endpoint_applies_tier_cap(app_with_db) -> None:
    app, session_factory = app_with_db
    owner_id = uuid4()
    await _seed_grant(session_factory, owner_id, 5_000, PointCause.RACE)

    async with _client(app) as client:
        response = await client.post(
            f"/api/v1/wallet/members/{owner_id}/checkout",
            json={"cartTotal": 10_000, "ownerTier": "pro", "pointsRequested": 5_000},
        )
        free = await client.post(
            f"/api/v1/wallet/members/{owner_id}/checkout",
            json={"cartTotal": 10_000, "ownerTier": "free", "pointsRequested": 5_000},
        )

    assert response.status_code == 200
    payload = response.json()
    assert payload["maxPoints"] == 2_000
    assert payload["pointsUsed"] == 2_000
    assert payload["cashAmount"] == 8_000
    assert payload["balance"]["totalAvailable"] == 3_000
    assert free.json()["pointsUsed"] == 0
    assert free.json()["cashAmount"] == 10_000


@pytest.mark.asyncio
async def test_redemption_cap_endpoint(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        free = await client.post(
            "/api/v1/wallet/redemption-cap",
            json={"cartTotal": 10_000, "ownerTier": "free", "availablePoints": 5_000},
        )
        pro = await client.post(
            "/api/v1/wallet/redemption-cap",
            json={"cartTotal": 10_000, "ownerTier": "pro", "availablePoints": 1_000},
        )
        negative = await client.post(
            "/api/v1/wallet/redemption-cap",
            json={"cartTotal": -1, "ownerTier": "club", "availablePoints": 1_000},
        )

    assert free.json() == {"maxPoints": 0}
    assert pro.json() == {"maxPoints": 1_000}
    assert negative.status_code == 400


@pytest.mark.asyncio
async def test_coupon_endpoints(app_with_db) -> None:
    app, session_factory = app_with_db
    owner_id = uuid4()
    other_owner = uuid4()
    async with session_factory() as session:
        coupon = PartnerCoupon(
            code="RUNSHOP10",
            title="10% off shoes",
            partner="RunShop",
            points_required=30,
            stock_limit=1,
        )
        session.add(coupon)
        await session.commit()
        coupon_id = coupon.id
    await _seed_grant(session_factory, owner_id, 50, PointCause.SPECIAL)
    await _seed_grant(session_factory, other_owner, 50, PointCause.SPECIAL)

    async with _client(app) as client:
        listing = await client.get("/api/v1/wallet/coupons")
        assert [item["code"] for item in listing.json()] == ["RUNSHOP10"]
        assert listing.json()[0]["stockRemaining"] == 1

        redeemed = await client.post(f"/api/v1/wallet/members/{owner_id}/coupons/{coupon_id}/redeem")
        assert redeemed.status_code == 201
        assert redeemed.json()["pointsSpent"] == 30
        assert redeemed.json()["balance"]["totalAvailable"] == 20

        sold_out = await client.post(f"/api/v1/wallet/members/{other_owner}/coupons/{coupon_id}/redeem")
        assert sold_out.status_code == 409

        missing = await client.post(f"/api/v1/wallet/members/{owner_id}/coupons/{uuid4()}/redeem")
        assert missing.status_code == 404

        listing_after = await client.get("/api/v1/wallet/coupons")
        assert listing_after.json() == []


@pytest.mark.asyncio
async def test_run_points_preview(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        ten_k = await client.get("/api/v1/wallet/run-points", params={"distance_km": 10})
        negative = await client.get("/api/v1/wallet/run-points", params={"distance_km": -1})
        not_a_number = await client.get("/api/v1/wallet/run-points", params={"distance_km": "nan"})

    assert ten_k.json() == {"distanceKm": 10.0, "points": 10}
    assert negative.status_code == 400
    assert not_a_number.status_code == 400


@pytest.mark.asyncio
async def test_mutations_require_api_key_when_configured(app_with_db) -> None:
    app, _ = app_with_db
    owner_id = uuid4()
    previous_key = settings.wallet_api_key
    settings.wallet_api_key = "wallet-secret"
    try:
        async with _client(app) as client:
            denied = await client.post(
                f"/api/v1/wallet/members/{owner_id}/grants",
                json={"amount": 5, "cause": "routine"},
            )
            allowed = await client.post(
                f"/api/v1/wallet/members/{owner_id}/grants",
                json={"amount": 5, "cause": "routine"},
                headers={"X-API-Key": "wallet-secret"},
            )
            read = await client.get(f"/api/v1/wallet/members/{owner_id}")
    finally:
        settings.wallet_api_key = previous_key

    assert denied.status_code == 401
    assert allowed.status_code == 201
    assert read.status_code == 200


@pytest.mark.asyncio
async def test_redeemed_coupons_and_consumption_log(app_with_db) -> None:
    app, session_factory = app_with_db
    owner_id = uuid4()
    async with session_factory() as session:
        coupon = PartnerCoupon(code="GEL5", title="Energy gel pack", partner="FuelCo", points_required=15)
        session.add(coupon)
        await session.commit()
        coupon_id = coupon.id
    await _seed_grant(session_factory, owner_id, 10, PointCause.ROUTINE, age_days=2)
    await _seed_grant(session_factory, owner_id, 20, PointCause.RACE)

    async with _client(app) as client:
        empty = await client.get(f"/api/v1/wallet/members/{owner_id}/coupons/redemptions")
        assert empty.json() == {"ownerId": str(owner_id), "redemptions": []}

        await client.post(f"/api/v1/wallet/members/{owner_id}/coupons/{coupon_id}/redeem")
        redemptions = await client.get(f"/api/v1/wallet/members/{owner_id}/coupons/redemptions")
        consumptions = await client.get(f"/api/v1/wallet/members/{owner_id}/consumptions")
        invalid = await client.get(f"/api/v1/wallet/members/{owner_id}/consumptions", params={"limit": 0})

    assert redemptions.status_code == 200
    [record] = redemptions.json()["redemptions"]
    assert record["couponId"] == str(coupon_id)
    assert record["code"] == "GEL5"
    assert record["pointsSpent"] == 15
    assert "balance" not in record

    log = consumptions.json()["consumptions"]
    assert sorted(entry["points"] for entry in log) == [5, 10]
    assert {entry["reason"] for entry in log} == {"coupon"}
    assert {entry["reference"] for entry in log} == {"GEL5"}
    assert invalid.status_code == 422
