from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class WalletMetricsSnapshot:
    grants: Dict[str, int]
    points: Dict[str, int]
    rejections: Dict[str, int]
    coupons: Dict[str, int]
    expiry: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "grants": dict(self.grants),
            "points": dict(self.points),
            "rejections": dict(self.rejections),
            "coupons": dict(self.coupons),
            "expiry": dict(self.expiry),
        }


class WalletObservabilityStore:
    """Collect wallet telemetry (grants, debits, rejections) for dashboards."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._grants: Dict[str, int] = defaultdict(int)
        self._points: Dict[str, int] = defaultdict(int)
        self._rejections: Dict[str, int] = defaultdict(int)
        self._coupons: Dict[str, int] = defaultdict(int)
        self._expiry: Dict[str, int] = defaultdict(int)

    def record_grant(self, cause: str, amount: int) -> None:
        with self._lock:
            self._grants["total"] += 1
            self._grants[f"cause:{cause}"] += 1
            self._points["granted"] += amount

    def record_consumption(self, reason: str, points: int) -> None:
        with self._lock:
            self._points["consumed"] += points
            self._points[f"consumed:{reason}"] += points

    def record_rejection(self, kind: str) -> None:
        with self._lock:
            self._rejections[kind] += 1

    def record_coupon_redemption(self, partner: str, points: int) -> None:
        with self._lock:
            self._coupons["redeemed"] += 1
            self._coupons[f"partner:{partner or 'unknown'}"] += 1
            self._coupons["points_spent"] += points

    def record_expiry_sweep(self, grants_expired: int, points_forfeited: int) -> None:
        with self._lock:
            self._expiry["sweeps"] += 1
            self._expiry["grants_expired"] += grants_expired
            self._expiry["points_forfeited"] += points_forfeited

    def snapshot(self) -> WalletMetricsSnapshot:
        with self._lock:
            return WalletMetricsSnapshot(
                grants=dict(self._grants),
                points=dict(self._points),
                rejections=dict(self._rejections),
                coupons=dict(self._coupons),
                expiry=dict(self._expiry),
            )

    def reset(self) -> None:
        with self._lock:
            self._grants.clear()
            self._points.clear()
            self._rejections.clear()
            self._coupons.clear()
            self._expiry.clear()


_STORE = WalletObservabilityStore()


def get_wallet_store() -> WalletObservabilityStore:
    return _STORE


__all__ = ["get_wallet_store", "WalletObservabilityStore", "WalletMetricsSnapshot"]
