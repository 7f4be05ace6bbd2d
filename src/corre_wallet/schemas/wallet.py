from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Literal, Mapping
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from corre_wallet.domain.wallet import MalformedResponse, PointCause, PointGrant, ensure_utc

TierName = Literal["free", "pro", "club"]


def _to_camel(value: str) -> str:
    parts = value.split("_")
    return parts[0] + "".join(word.capitalize() for word in parts[1:])


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel)


class PointTransactionRow(BaseModel):
    """One row of the backend ``point_transactions`` table.

    Every field is required and typed; a row that does not fit is rejected rather
    than patched with defaults.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: UUID
    user_id: UUID
    points_amount: int = Field(..., gt=0)
    points_remaining: int = Field(..., ge=0)
    source_type: PointCause
    source_id: str | None = None
    description: str | None = None
    earned_at: datetime
    expires_at: datetime

    @model_validator(mode="after")
    def _check_remaining(self) -> "PointTransactionRow":
        if self.points_remaining > self.points_amount:
            raise ValueError("points_remaining cannot exceed points_amount")
        return self

    def to_grant(self) -> PointGrant:
        return PointGrant(
            id=self.id,
            owner_id=self.user_id,
            amount=self.points_amount,
            remaining=self.points_remaining,
            cause=self.source_type,
            granted_at=ensure_utc(self.earned_at),
            expires_at=ensure_utc(self.expires_at),
            source_id=self.source_id,
            description=self.description,
        )


def decode_point_transactions(rows: Iterable[Mapping[str, Any]]) -> list[PointGrant]:
    """Decode backend rows into grants, failing the whole batch on the first bad row."""

    grants: list[PointGrant] = []
    for index, row in enumerate(rows):
        try:
            grants.append(PointTransactionRow.model_validate(row).to_grant())
        except ValidationError as exc:
            raise MalformedResponse(f"Invalid point transaction at index {index}: {exc}") from exc
    return grants


class WalletBalanceResponse(_CamelModel):
    total_available: int
    expiring_soon: int
    breakdown: dict[str, int]


class XPProgressResponse(_CamelModel):
    current_xp: int
    level: str
    next_level: str | None
    xp_to_next_level: int
    renewal_discount: int


class WalletSummaryResponse(_CamelModel):
    owner_id: UUID
    balance: WalletBalanceResponse
    xp: XPProgressResponse


class PointGrantResponse(_CamelModel):
    id: UUID
    amount: int
    remaining: int
    cause: str
    source_id: str | None
    description: str | None
    granted_at: datetime
    expires_at: datetime
    expired_at: datetime | None = None


class WalletHistoryResponse(_CamelModel):
    owner_id: UUID
    grants: list[PointGrantResponse]


class GrantCreateRequest(_CamelModel):
    amount: int = Field(..., description="Points to grant; must be positive")
    cause: PointCause
    source_id: str | None = Field(default=None, max_length=255)
    description: str | None = Field(default=None, max_length=255)


class ConsumeRequest(_CamelModel):
    points: int = Field(..., description="Points to debit, soonest-expiring first")
    reference: str | None = Field(default=None, max_length=255)


class ConsumeResponse(_CamelModel):
    consumed: bool
    points: int
    balance: WalletBalanceResponse


class ActivityAwardRequest(_CamelModel):
    cause: PointCause
    xp: int = Field(0, description="XP earned by the activity")
    points: int | None = Field(default=None, description="Override the event points table")
    source_id: str | None = Field(default=None, max_length=255)
    description: str | None = Field(default=None, max_length=255)


class ActivityAwardResponse(_CamelModel):
    grant: PointGrantResponse
    xp: XPProgressResponse


class XPIncrementRequest(_CamelModel):
    delta: int


class CheckoutRequest(_CamelModel):
    cart_total: int = Field(..., description="Cart total in minor currency units")
    owner_tier: TierName
    points_requested: int = Field(0, description="Points the member wants to apply")
    reference: str | None = Field(default=None, max_length=255)


class CheckoutResponse(_CamelModel):
    cart_total: int
    max_points: int
    points_used: int
    cash_amount: int
    balance: WalletBalanceResponse


class RedemptionCapRequest(_CamelModel):
    cart_total: int
    owner_tier: TierName
    available_points: int = Field(..., ge=0)


class RedemptionCapResponse(_CamelModel):
    max_points: int


class PartnerCouponResponse(_CamelModel):
    id: UUID
    code: str
    title: str
    partner: str
    description: str | None
    category: str
    points_required: int
    stock_remaining: int | None
    expires_at: datetime | None


class CouponRedemptionRecord(_CamelModel):
    id: UUID
    coupon_id: UUID
    code: str
    points_spent: int
    redeemed_at: datetime


class CouponRedemptionResponse(CouponRedemptionRecord):
    balance: WalletBalanceResponse


class CouponRedemptionHistoryResponse(_CamelModel):
    owner_id: UUID
    redemptions: list[CouponRedemptionRecord]


class ConsumptionRecordResponse(_CamelModel):
    id: UUID
    grant_id: UUID
    points: int
    reason: str
    reference: str | None
    consumed_at: datetime


class ConsumptionHistoryResponse(_CamelModel):
    owner_id: UUID
    consumptions: list[ConsumptionRecordResponse]


class RunPointsResponse(_CamelModel):
    distance_km: float
    points: int


__all__ = [
    "ActivityAwardRequest",
    "ActivityAwardResponse",
    "CheckoutRequest",
    "CheckoutResponse",
    "ConsumeRequest",
    "ConsumeResponse",
    "ConsumptionHistoryResponse",
    "ConsumptionRecordResponse",
    "CouponRedemptionHistoryResponse",
    "CouponRedemptionRecord",
    "CouponRedemptionResponse",
    "GrantCreateRequest",
    "PartnerCouponResponse",
    "PointGrantResponse",
    "PointTransactionRow",
    "RedemptionCapRequest",
    "RedemptionCapResponse",
    "RunPointsResponse",
    "WalletBalanceResponse",
    "WalletHistoryResponse",
    "WalletSummaryResponse",
    "XPIncrementRequest",
    "XPProgressResponse",
    "decode_point_transactions",
]
