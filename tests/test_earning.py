from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest

from corre_wallet.domain.wallet import (
    DEFAULT_TTL_DAYS,
    InvalidAmount,
    PointCause,
    WalletLedger,
    expires_at_for,
    points_for_event,
    points_for_run,
    ttl_table_from_settings,
)

NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    ("distance_km", "points"),
    [
        (0, 1),
        (1.99, 1),
        (2, 3),
        (4.99, 3),
        (5, 5),
        (9.9, 5),
        (10, 10),
        (21, 15),
        (42.195, 15),
    ],
)
def test_points_for_run_bands(distance_km: float, points: int) -> None:
    assert points_for_run(distance_km) == points


def test_points_for_run_rejects_negative_distance() -> None:
    with pytest.raises(InvalidAmount):
        points_for_run(-0.5)


@pytest.mark.parametrize("distance_km", [float("nan"), float("inf"), float("-inf")])
def test_points_for_run_rejects_non_finite_distance(distance_km: float) -> None:
    with pytest.raises(InvalidAmount):
        points_for_run(distance_km)


def test_event_points_table() -> None:
    assert points_for_event(PointCause.ROUTINE) == 3
    assert points_for_event("special") == 5
    assert points_for_event(PointCause.RACE) == 10
    with pytest.raises(InvalidAmount):
        points_for_event(PointCause.PURCHASE_REFUND)


def test_default_ttls() -> None:
    assert expires_at_for(PointCause.ROUTINE, NOW) == NOW + timedelta(days=30)
    assert expires_at_for(PointCause.SPECIAL, NOW) == NOW + timedelta(days=60)
    assert expires_at_for(PointCause.RACE, NOW) == NOW + timedelta(days=365)
    assert set(DEFAULT_TTL_DAYS) == set(PointCause)


def test_ttl_table_from_settings_overrides_defaults() -> None:
    table = ttl_table_from_settings(SimpleNamespace(routine_points_ttl_days=14))

    assert table[PointCause.ROUTINE] == 14
    assert table[PointCause.RACE] == DEFAULT_TTL_DAYS[PointCause.RACE]


def test_ledger_uses_configured_ttls() -> None:
    ledger = WalletLedger(ttl_days=ttl_table_from_settings(SimpleNamespace(routine_points_ttl_days=14)))

    grant = ledger.grant(uuid4(), 3, PointCause.ROUTINE, NOW)

    assert grant.expires_at == NOW + timedelta(days=14)
