"""Point grant records and the read-only wallet aggregation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Hashable, Iterable, Optional, Protocol
from uuid import UUID

from .earning import PointCause

EXPIRING_SOON_WINDOW = timedelta(days=7)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by SQLite) as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class GrantLike(Protocol):
    """Attributes the aggregation and consumption code read from a grant.

    Both the in-memory ``PointGrant`` and the persisted ``WalletGrant`` row satisfy it.
    """

    id: Any
    remaining: int
    cause: Any
    granted_at: datetime
    expires_at: datetime


@dataclass
class PointGrant:
    """A discrete award of points with its own expiry clock."""

    id: UUID
    owner_id: Hashable
    amount: int
    remaining: int
    cause: PointCause
    granted_at: datetime
    expires_at: datetime
    source_id: Optional[str] = None
    description: Optional[str] = None

    def is_active(self, now: datetime) -> bool:
        return is_active(self, now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "owner_id": str(self.owner_id),
            "amount": self.amount,
            "remaining": self.remaining,
            "cause": self.cause.value,
            "granted_at": self.granted_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "source_id": self.source_id,
            "description": self.description,
        }


@dataclass(frozen=True)
class WalletSnapshot:
    """Derived balance view over active grants."""

    total_available: int
    expiring_soon: int
    breakdown_by_cause: Dict[PointCause, int] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "total_available": self.total_available,
            "expiring_soon": self.expiring_soon,
            "breakdown": {cause.value: points for cause, points in self.breakdown_by_cause.items()},
        }


def is_active(grant: GrantLike, now: datetime) -> bool:
    """A grant counts toward the balance while it has points left and has not expired."""

    return int(grant.remaining) > 0 and ensure_utc(grant.expires_at) > ensure_utc(now)


def summarize_grants(
    grants: Iterable[GrantLike],
    now: datetime,
    *,
    expiring_window: timedelta = EXPIRING_SOON_WINDOW,
) -> WalletSnapshot:
    """Aggregate the active subset of ``grants`` into a ``WalletSnapshot``."""

    reference = ensure_utc(now)
    horizon = reference + expiring_window
    breakdown: Dict[PointCause, int] = {cause: 0 for cause in PointCause}
    total = 0
    expiring = 0

    for grant in grants:
        if not is_active(grant, reference):
            continue
        remaining = int(grant.remaining)
        total += remaining
        breakdown[PointCause(grant.cause)] += remaining
        if ensure_utc(grant.expires_at) <= horizon:
            expiring += remaining

    return WalletSnapshot(
        total_available=total,
        expiring_soon=expiring,
        breakdown_by_cause=breakdown,
    )


__all__ = [
    "EXPIRING_SOON_WINDOW",
    "GrantLike",
    "PointGrant",
    "WalletSnapshot",
    "ensure_utc",
    "is_active",
    "summarize_grants",
]
