"""Redemption cap policy for the points/cash hybrid checkout."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_FLOOR, Decimal
from enum import Enum
from typing import Mapping

from .errors import InvalidAmount


class MembershipTier(str, Enum):
    """Paid membership tier; distinct from the XP level."""

    FREE = "free"
    PRO = "pro"
    CLUB = "club"


DEFAULT_CAP_PERCENT: Mapping[MembershipTier, Decimal] = {
    MembershipTier.PRO: Decimal("0.20"),
    MembershipTier.CLUB: Decimal("0.20"),
}


@dataclass(frozen=True)
class RedemptionPolicy:
    caps: Mapping[MembershipTier, Decimal] = field(default_factory=lambda: dict(DEFAULT_CAP_PERCENT))

    @classmethod
    def from_settings(cls, config: object) -> "RedemptionPolicy":
        caps = dict(DEFAULT_CAP_PERCENT)
        for tier in (MembershipTier.PRO, MembershipTier.CLUB):
            value = getattr(config, f"redemption_cap_{tier.value}", None)
            if value is not None:
                caps[tier] = Decimal(str(value))
        return cls(caps=caps)

    def cap_for(self, tier: MembershipTier | str) -> Decimal:
        resolved = MembershipTier(tier)
        if resolved is MembershipTier.FREE:
            return Decimal("0")
        return Decimal(self.caps.get(resolved, Decimal("0")))

    def max_points_discount(
        self,
        cart_total_minor_units: int,
        owner_tier: MembershipTier | str,
        available_points: int,
    ) -> int:
        if cart_total_minor_units < 0:
            raise InvalidAmount("Cart total cannot be negative")
        cap = self.cap_for(owner_tier)
        if cap <= 0:
            return 0
        by_cart = int((Decimal(cart_total_minor_units) * cap).to_integral_value(rounding=ROUND_FLOOR))
        return max(0, min(by_cart, int(available_points)))


def max_points_discount(
    cart_total_minor_units: int,
    owner_tier: MembershipTier | str,
    available_points: int,
    *,
    policy: RedemptionPolicy | None = None,
) -> int:
    """Maximum points usable as a discount on a cart (1 point = 1 minor unit)."""

    return (policy or RedemptionPolicy()).max_points_discount(
        cart_total_minor_units, owner_tier, available_points
    )


__all__ = ["DEFAULT_CAP_PERCENT", "MembershipTier", "RedemptionPolicy", "max_points_discount"]
