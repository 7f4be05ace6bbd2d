"""Wallet persistence models: point grants, consumptions, XP and partner coupons."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    true,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from corre_wallet.db.base import Base
from corre_wallet.domain.wallet import PointCause


class WalletGrant(Base):
    """A time-limited point grant; only ``remaining`` ever changes after insert."""

    __tablename__ = "point_grants"
    __table_args__ = (
        CheckConstraint("amount > 0", name="amount_positive"),
        CheckConstraint("remaining >= 0 AND remaining <= amount", name="remaining_bounds"),
        Index("ix_point_grants_owner_expiry", "owner_id", "expires_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    owner_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    remaining = Column(Integer, nullable=False)
    cause = Column(SqlEnum(PointCause, name="point_cause"), nullable=False)
    source_id = Column(String, nullable=True)
    description = Column(String, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    granted_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    expired_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    consumptions = relationship("WalletConsumption", back_populates="grant", cascade="all, delete-orphan")


class ConsumptionReason(str, Enum):
    """Why points left the wallet."""

    CHECKOUT = "checkout"
    COUPON = "coupon"
    MANUAL = "manual"


class WalletConsumption(Base):
    """Per-grant debit written by every successful consumption."""

    __tablename__ = "point_consumptions"
    __table_args__ = (CheckConstraint("points > 0", name="points_positive"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    owner_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    grant_id = Column(
        UUID(as_uuid=True), ForeignKey("point_grants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    points = Column(Integer, nullable=False)
    reason = Column(SqlEnum(ConsumptionReason, name="point_consumption_reason"), nullable=False)
    reference = Column(String, nullable=True)
    consumed_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    grant = relationship("WalletGrant", back_populates="consumptions")


class WalletXPAccount(Base):
    """Lifetime XP counter; the level is derived, never stored."""

    __tablename__ = "wallet_xp_accounts"
    __table_args__ = (CheckConstraint("current_xp >= 0", name="xp_non_negative"),)

    owner_id = Column(UUID(as_uuid=True), primary_key=True)
    current_xp = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class PartnerCoupon(Base):
    """Partner coupon purchasable with a flat points cost."""

    __tablename__ = "partner_coupons"
    __table_args__ = (
        CheckConstraint("points_required > 0", name="points_required_positive"),
        CheckConstraint("redeemed_count >= 0", name="redeemed_count_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    code = Column(String, nullable=False, unique=True, index=True)
    title = Column(String, nullable=False)
    partner = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(32), nullable=False, default="other", server_default="other")
    points_required = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    stock_limit = Column(Integer, nullable=True)
    redeemed_count = Column(Integer, nullable=False, default=0, server_default="0")
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    redemptions = relationship("CouponRedemption", back_populates="coupon")


class CouponRedemption(Base):
    """A member's redemption of a partner coupon."""

    __tablename__ = "coupon_redemptions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    coupon_id = Column(
        UUID(as_uuid=True), ForeignKey("partner_coupons.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    owner_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    points_spent = Column(Integer, nullable=False)
    code = Column(String, nullable=False)
    redeemed_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    coupon = relationship("PartnerCoupon", back_populates="redemptions")
