"""CouponUsage repository for Usage Ledger access.

Write methods only flush; the redemption service owns the surrounding
transaction and commits ledger rows together with the counter change.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func as sa_func
from sqlalchemy.orm import Session

from coupon_engine.models.coupon_usage import CouponUsage, CouponUsageStatus


class CouponUsageRepository:
    """Repository for CouponUsage model."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, usage_id: UUID) -> CouponUsage | None:
        return self.db.query(CouponUsage).filter(CouponUsage.id == usage_id).first()

    def get_by_coupon_id(
        self, coupon_id: UUID, skip: int = 0, limit: int = 20
    ) -> list[CouponUsage]:
        """Usage history of a coupon, most recent first."""
        return (
            self.db.query(CouponUsage)
            .filter(CouponUsage.coupon_id == coupon_id)
            .order_by(CouponUsage.applied_at.desc(), CouponUsage.id)
            .offset(skip)
            .limit(limit)
            .all()
        )

    def count_by_coupon_id(self, coupon_id: UUID) -> int:
        return (
            self.db.query(sa_func.count(CouponUsage.id))
            .filter(CouponUsage.coupon_id == coupon_id)
            .scalar()
            or 0
        )

    def count_by_coupon_and_status(
        self, coupon_id: UUID, statuses: list[CouponUsageStatus]
    ) -> int:
        return (
            self.db.query(sa_func.count(CouponUsage.id))
            .filter(
                CouponUsage.coupon_id == coupon_id,
                CouponUsage.status.in_([status.value for status in statuses]),
            )
            .scalar()
            or 0
        )

    def count_active_by_coupon_and_user(self, coupon_id: UUID, user_id: str) -> int:
        """Non-cancelled entries of one user on one coupon."""
        return (
            self.db.query(sa_func.count(CouponUsage.id))
            .filter(
                CouponUsage.coupon_id == coupon_id,
                CouponUsage.user_id == user_id,
                CouponUsage.status != CouponUsageStatus.CANCELLED.value,
            )
            .scalar()
            or 0
        )

    def count_active_by_user(self, user_id: str) -> int:
        """Non-cancelled entries of one user across every coupon."""
        return (
            self.db.query(sa_func.count(CouponUsage.id))
            .filter(
                CouponUsage.user_id == user_id,
                CouponUsage.status != CouponUsageStatus.CANCELLED.value,
            )
            .scalar()
            or 0
        )

    def get_active_by_booking(self, booking_type: str, booking_id: str) -> CouponUsage | None:
        return (
            self.db.query(CouponUsage)
            .filter(
                CouponUsage.booking_type == booking_type,
                CouponUsage.booking_id == booking_id,
                CouponUsage.status != CouponUsageStatus.CANCELLED.value,
            )
            .first()
        )

    def add(
        self,
        *,
        coupon_id: UUID,
        user_id: str,
        original_amount: Decimal,
        discount_amount: Decimal,
        applied_at: datetime,
        asset_type: str | None = None,
        asset_id: str | None = None,
        booking_type: str | None = None,
        booking_id: str | None = None,
        applied_by: str | None = None,
    ) -> CouponUsage:
        """Stage a new ``applied`` entry in the current transaction."""
        usage = CouponUsage(
            coupon_id=coupon_id,
            user_id=user_id,
            status=CouponUsageStatus.APPLIED.value,
            original_amount=original_amount,
            discount_amount=discount_amount,
            final_amount=original_amount - discount_amount,
            asset_type=asset_type,
            asset_id=asset_id,
            booking_type=booking_type,
            booking_id=booking_id,
            applied_at=applied_at,
            applied_by=applied_by,
        )
        self.db.add(usage)
        self.db.flush()
        return usage

    def set_status(
        self, usage: CouponUsage, status: CouponUsageStatus, reason: str | None = None
    ) -> CouponUsage:
        usage.status = status.value  # type: ignore[assignment]
        usage.status_reason = reason  # type: ignore[assignment]
        self.db.flush()
        return usage
