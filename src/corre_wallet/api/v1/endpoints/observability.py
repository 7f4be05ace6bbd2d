"""Observability endpoints for wallet telemetry."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from corre_wallet.api.dependencies.security import require_wallet_api_key
from corre_wallet.observability.wallet import get_wallet_store


router = APIRouter(prefix="/observability", tags=["Observability"])


@router.get(
    "/wallet",
    dependencies=[Depends(require_wallet_api_key)],
    summary="Wallet telemetry snapshot",
)
async def get_wallet_snapshot() -> dict[str, object]:
    """Aggregated grant, debit and coupon counters since process start."""
    return get_wallet_store().snapshot().as_dict()


def _format_metric(name: str, description: str, value: int | float, labels: dict[str, str] | None = None) -> list[str]:
    label_fragment = ""
    if labels:
        formatted = ",".join(f'{key}="{val}"' for key, val in sorted(labels.items()))
        label_fragment = f"{{{formatted}}}"
    return [
        f"# HELP {name} {description}",
        f"# TYPE {name} counter",
        f"{name}{label_fragment} {value}",
    ]


@router.get(
    "/prometheus",
    dependencies=[Depends(require_wallet_api_key)],
    summary="Prometheus-formatted wallet metrics",
    response_class=PlainTextResponse,
)
async def get_prometheus_metrics() -> PlainTextResponse:
    snapshot = get_wallet_store().snapshot()
    lines: list[str] = []
    lines += _format_metric("wallet_grants_total", "Point grants issued", snapshot.grants.get("total", 0))
    for key, value in sorted(snapshot.grants.items()):
        if key.startswith("cause:"):
            lines += _format_metric(
                "wallet_grants_by_cause_total",
                "Point grants issued per cause",
                value,
                {"cause": key.split(":", 1)[1]},
            )
    lines += _format_metric("wallet_points_granted_total", "Points granted", snapshot.points.get("granted", 0))
    lines += _format_metric("wallet_points_consumed_total", "Points consumed", snapshot.points.get("consumed", 0))
    lines += _format_metric(
        "wallet_insufficient_points_total",
        "Debits rejected for insufficient balance",
        snapshot.rejections.get("insufficient_points", 0),
    )
    lines += _format_metric(
        "wallet_coupon_redemptions_total",
        "Partner coupons redeemed",
        snapshot.coupons.get("redeemed", 0),
    )
    lines += _format_metric(
        "wallet_points_forfeited_total",
        "Points forfeited by expiry sweeps",
        snapshot.expiry.get("points_forfeited", 0),
    )
    return PlainTextResponse("\n".join(lines) + "\n")
