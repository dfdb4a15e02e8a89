"""create coupons table

Revision ID: a7c1e9d3f250
Revises:
Create Date: 2026-10-01 00:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "a7c1e9d3f250"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "coupons",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("code", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("coupon_type", sa.String(length=30), nullable=False, server_default="public"),
        sa.Column("discount_type", sa.String(length=20), nullable=False),
        sa.Column("discount_value", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("max_discount_amount", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("minimum_order_value", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("maximum_order_value", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("usage_limit", sa.Integer(), nullable=True),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("user_usage_limit", sa.Integer(), nullable=True),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="1"),
        sa.Column("is_publicly_visible", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("auto_apply", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("stackable", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("allowed_users", sa.JSON(), nullable=False),
        sa.Column("is_global", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("global_asset_types", sa.JSON(), nullable=False),
        sa.Column("applicable_assets", sa.JSON(), nullable=False),
        sa.Column("partner_id", sa.String(length=255), nullable=True),
        sa.Column("organization_id", sa.String(length=255), nullable=True),
        sa.Column("created_by", sa.String(length=255), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_by", sa.String(length=255), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_coupons_code", "coupons", ["code"], unique=True)
    op.create_index("ix_coupons_coupon_type", "coupons", ["coupon_type"])
    op.create_index("ix_coupons_partner_id", "coupons", ["partner_id"])
    op.create_index("ix_coupons_organization_id", "coupons", ["organization_id"])
    op.create_index("ix_coupons_public_active", "coupons", ["is_publicly_visible", "is_active"])


def downgrade() -> None:
    op.drop_index("ix_coupons_public_active", table_name="coupons")
    op.drop_index("ix_coupons_organization_id", table_name="coupons")
    op.drop_index("ix_coupons_partner_id", table_name="coupons")
    op.drop_index("ix_coupons_coupon_type", table_name="coupons")
    op.drop_index("ix_coupons_code", table_name="coupons")
    op.drop_table("coupons")
