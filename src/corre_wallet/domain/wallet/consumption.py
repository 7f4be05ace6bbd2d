"""FIFO-by-expiry consumption planning.

Points closest to forfeiture are spent first. The planner is pure: it returns the
per-grant debits and leaves applying them to the caller, so the same rule drives
the in-memory ledger and the persisted service.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Sequence

from .errors import InsufficientPoints, InvalidAmount
from .grants import GrantLike, ensure_utc, is_active


@dataclass(frozen=True)
class ConsumptionStep:
    """Points debited from a single grant."""

    grant_id: Any
    points: int


def fifo_key(grant: GrantLike) -> tuple:
    return (ensure_utc(grant.expires_at), ensure_utc(grant.granted_at), str(grant.id))


def order_for_consumption(grants: Iterable[GrantLike], now: datetime) -> list[GrantLike]:
    """Active grants sorted soonest-expiring first, ties by grant time then id."""

    return sorted((grant for grant in grants if is_active(grant, now)), key=fifo_key)


def plan_consumption(
    grants: Iterable[GrantLike],
    points: int,
    now: datetime,
) -> list[ConsumptionStep]:
    """Return the debits that satisfy ``points`` or raise without side effects."""

    if points < 0:
        raise InvalidAmount("Cannot consume a negative number of points")
    if points == 0:
        return []

    ordered = order_for_consumption(grants, now)
    available = sum(int(grant.remaining) for grant in ordered)
    if available < points:
        raise InsufficientPoints(requested=points, available=available)

    steps: list[ConsumptionStep] = []
    needed = points
    for grant in ordered:
        if needed <= 0:
            break
        debit = min(needed, int(grant.remaining))
        steps.append(ConsumptionStep(grant_id=grant.id, points=debit))
        needed -= debit
    return steps


def apply_consumption(grants: Sequence[GrantLike], steps: Sequence[ConsumptionStep]) -> None:
    """Decrement ``remaining`` on the grants named by ``steps``."""

    by_id = {grant.id: grant for grant in grants}
    for step in steps:
        grant = by_id[step.grant_id]
        if step.points > int(grant.remaining):
            raise InvalidAmount(f"Debit of {step.points} exceeds remaining balance on grant {grant.id}")
    for step in steps:
        grant = by_id[step.grant_id]
        grant.remaining = int(grant.remaining) - step.points


__all__ = [
    "ConsumptionStep",
    "apply_consumption",
    "fifo_key",
    "order_for_consumption",
    "plan_consumption",
]
