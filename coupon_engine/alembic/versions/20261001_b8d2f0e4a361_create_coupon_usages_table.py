"""create coupon_usages table

Revision ID: b8d2f0e4a361
Revises: a7c1e9d3f250
Create Date: 2026-10-01 00:00:01.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "b8d2f0e4a361"
down_revision = "a7c1e9d3f250"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "coupon_usages",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("coupon_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="applied"),
        sa.Column("original_amount", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("discount_amount", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("final_amount", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("asset_type", sa.String(length=30), nullable=True),
        sa.Column("asset_id", sa.String(length=255), nullable=True),
        sa.Column("booking_type", sa.String(length=30), nullable=True),
        sa.Column("booking_id", sa.String(length=255), nullable=True),
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("applied_by", sa.String(length=255), nullable=True),
        sa.Column("status_reason", sa.Text(), nullable=True),
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
        sa.ForeignKeyConstraint(["coupon_id"], ["coupons.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_coupon_usages_coupon_id", "coupon_usages", ["coupon_id"])
    op.create_index("ix_coupon_usages_user_id", "coupon_usages", ["user_id"])
    op.create_index("ix_coupon_usages_coupon_user", "coupon_usages", ["coupon_id", "user_id"])
    op.create_index("ix_coupon_usages_coupon_status", "coupon_usages", ["coupon_id", "status"])
    op.create_index("ix_coupon_usages_booking", "coupon_usages", ["booking_type", "booking_id"])


def downgrade() -> None:
    op.drop_index("ix_coupon_usages_booking", table_name="coupon_usages")
    op.drop_index("ix_coupon_usages_coupon_status", table_name="coupon_usages")
    op.drop_index("ix_coupon_usages_coupon_user", table_name="coupon_usages")
    op.drop_index("ix_coupon_usages_user_id", table_name="coupon_usages")
    op.drop_index("ix_coupon_usages_coupon_id", table_name="coupon_usages")
    op.drop_table("coupon_usages")
