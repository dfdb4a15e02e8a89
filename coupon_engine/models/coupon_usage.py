"""CouponUsage model: one Usage Ledger row per committed redemption."""

from enum import Enum

from sqlalchemy import Column, ForeignKey, Index, String, Text, func

from coupon_engine.core.database import Base
from coupon_engine.models.shared import MONEY, UTCDateTime, UUIDType, generate_uuid


class CouponUsageStatus(str, Enum):
    APPLIED = "applied"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class CouponUsage(Base):
    """Usage Ledger entry.

    Rows are inserted in ``applied`` together with the coupon counter increment
    and may later move to ``refunded`` or ``cancelled``. They are never deleted.
    """

    __tablename__ = "coupon_usages"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    coupon_id = Column(
        UUIDType, ForeignKey("coupons.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    user_id = Column(String(255), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=CouponUsageStatus.APPLIED.value)

    original_amount = Column(MONEY, nullable=False)
    discount_amount = Column(MONEY, nullable=False)
    final_amount = Column(MONEY, nullable=False)

    asset_type = Column(String(30), nullable=True)
    asset_id = Column(String(255), nullable=True)
    booking_type = Column(String(30), nullable=True)
    booking_id = Column(String(255), nullable=True)

    applied_at = Column(UTCDateTime, nullable=False)
    applied_by = Column(String(255), nullable=True)
    status_reason = Column(Text, nullable=True)

    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_coupon_usages_coupon_user", "coupon_id", "user_id"),
        Index("ix_coupon_usages_coupon_status", "coupon_id", "status"),
        Index("ix_coupon_usages_booking", "booking_type", "booking_id"),
    )
