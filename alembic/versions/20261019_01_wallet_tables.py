"""Wallet grants, consumptions, XP accounts and partner coupons.

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


POINT_CAUSES = ("ROUTINE", "SPECIAL", "RACE", "PURCHASE_REFUND")
CONSUMPTION_REASONS = ("CHECKOUT", "COUPON", "MANUAL")


def upgrade() -> None:
    point_cause = sa.Enum(*POINT_CAUSES, name="point_cause")
    consumption_reason = sa.Enum(*CONSUMPTION_REASONS, name="point_consumption_reason")

    op.create_table(
        "point_grants",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("remaining", sa.Integer(), nullable=False),
        sa.Column("cause", point_cause, nullable=False),
        sa.Column("source_id", sa.String(), nullable=True),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("granted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expired_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_point_grants_amount_positive"),
        sa.CheckConstraint(
            "remaining >= 0 AND remaining <= amount",
            name="ck_point_grants_remaining_bounds",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_point_grants"),
    )
    op.create_index("ix_point_grants_owner_id", "point_grants", ["owner_id"])
    op.create_index("ix_point_grants_owner_expiry", "point_grants", ["owner_id", "expires_at"])

    op.create_table(
        "point_consumptions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("grant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("reason", consumption_reason, nullable=False),
        sa.Column("reference", sa.String(), nullable=True),
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("points > 0", name="ck_point_consumptions_points_positive"),
        sa.ForeignKeyConstraint(
            ["grant_id"],
            ["point_grants.id"],
            name="fk_point_consumptions_grant_id_point_grants",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_point_consumptions"),
    )
    op.create_index("ix_point_consumptions_owner_id", "point_consumptions", ["owner_id"])
    op.create_index("ix_point_consumptions_grant_id", "point_consumptions", ["grant_id"])

    op.create_table(
        "wallet_xp_accounts",
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("current_xp", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("current_xp >= 0", name="ck_wallet_xp_accounts_xp_non_negative"),
        sa.PrimaryKeyConstraint("owner_id", name="pk_wallet_xp_accounts"),
    )

    op.create_table(
        "partner_coupons",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("code", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("partner", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=32), nullable=False, server_default="other"),
        sa.Column("points_required", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("stock_limit", sa.Integer(), nullable=True),
        sa.Column("redeemed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("points_required > 0", name="ck_partner_coupons_points_required_positive"),
        sa.CheckConstraint("redeemed_count >= 0", name="ck_partner_coupons_redeemed_count_non_negative"),
        sa.PrimaryKeyConstraint("id", name="pk_partner_coupons"),
    )
    op.create_index("ix_partner_coupons_code", "partner_coupons", ["code"], unique=True)

    op.create_table(
        "coupon_redemptions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("coupon_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("points_spent", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(), nullable=False),
        sa.Column("redeemed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(
            ["coupon_id"],
            ["partner_coupons.id"],
            name="fk_coupon_redemptions_coupon_id_partner_coupons",
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_coupon_redemptions"),
    )
    op.create_index("ix_coupon_redemptions_coupon_id", "coupon_redemptions", ["coupon_id"])
    op.create_index("ix_coupon_redemptions_owner_id", "coupon_redemptions", ["owner_id"])


def downgrade() -> None:
    op.drop_index("ix_coupon_redemptions_owner_id", table_name="coupon_redemptions")
    op.drop_index("ix_coupon_redemptions_coupon_id", table_name="coupon_redemptions")
    op.drop_table("coupon_redemptions")
    op.drop_index("ix_partner_coupons_code", table_name="partner_coupons")
    op.drop_table("partner_coupons")
    op.drop_table("wallet_xp_accounts")
    op.drop_index("ix_point_consumptions_grant_id", table_name="point_consumptions")
    op.drop_index("ix_point_consumptions_owner_id", table_name="point_consumptions")
    op.drop_table("point_consumptions")
    op.drop_index("ix_point_grants_owner_expiry", table_name="point_grants")
    op.drop_index("ix_point_grants_owner_id", table_name="point_grants")
    op.drop_table("point_grants")
    sa.Enum(name="point_consumption_reason").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="point_cause").drop(op.get_bind(), checkfirst=True)
