"""SQLAlchemy models package."""

from .wallet import (  # noqa: F401
    ConsumptionReason,
    CouponRedemption,
    PartnerCoupon,
    WalletConsumption,
    WalletGrant,
    WalletXPAccount,
)
