"""Aggregation queries over the Usage Ledger for coupon analytics."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func as sa_func
from sqlalchemy.orm import Query, Session

from coupon_engine.models.coupon import Coupon
from coupon_engine.models.coupon_usage import CouponUsage, CouponUsageStatus


@dataclass
class UsageTotals:
    applied: int = 0
    refunded: int = 0
    cancelled: int = 0
    discount_given: Decimal = Decimal("0")
    order_value: Decimal = Decimal("0")


@dataclass
class CouponUsageRank:
    coupon_id: UUID
    code: str
    name: str
    usage_count: int


def _to_decimal(value: object) -> Decimal:
    return Decimal(str(value or 0))


class CouponAnalyticsRepository:
    def __init__(self, db: Session):
        self.db = db

    def _filtered(
        self,
        query: Query,  # type: ignore[type-arg]
        coupon_ids: list[UUID],
        start: datetime | None,
        end: datetime | None,
    ) -> Query:  # type: ignore[type-arg]
        query = query.filter(CouponUsage.coupon_id.in_(coupon_ids))
        if start is not None:
            query = query.filter(CouponUsage.applied_at >= start)
        if end is not None:
            query = query.filter(CouponUsage.applied_at <= end)
        return query

    def usage_totals(
        self,
        coupon_ids: list[UUID],
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> UsageTotals:
        """Per-status counts plus discount/order sums over ``applied`` entries."""
        totals = UsageTotals()
        if not coupon_ids:
            return totals

        rows = self._filtered(
            self.db.query(
                CouponUsage.status,
                sa_func.count(CouponUsage.id).label("count"),
                sa_func.coalesce(sa_func.sum(CouponUsage.discount_amount), 0).label("discount"),
                sa_func.coalesce(sa_func.sum(CouponUsage.original_amount), 0).label("original"),
            ),
            coupon_ids,
            start,
            end,
        ).group_by(CouponUsage.status).all()

        for row in rows:
            if row.status == CouponUsageStatus.APPLIED.value:
                totals.applied = int(row.count)
                totals.discount_given = _to_decimal(row.discount)
                totals.order_value = _to_decimal(row.original)
            elif row.status == CouponUsageStatus.REFUNDED.value:
                totals.refunded = int(row.count)
            elif row.status == CouponUsageStatus.CANCELLED.value:
                totals.cancelled = int(row.count)
        return totals

    def count_applied_since(
        self,
        coupon_ids: list[UUID],
        since: datetime,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> int:
        if not coupon_ids:
            return 0
        return (
            self._filtered(self.db.query(sa_func.count(CouponUsage.id)), coupon_ids, start, end)
            .filter(
                CouponUsage.status == CouponUsageStatus.APPLIED.value,
                CouponUsage.applied_at >= since,
            )
            .scalar()
            or 0
        )

    def top_coupons(
        self,
        coupon_ids: list[UUID],
        limit: int,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[CouponUsageRank]:
        """Coupons ranked by applied count; equal counts ordered by code, then id."""
        if not coupon_ids:
            return []
        usage_count = sa_func.count(CouponUsage.id)
        rows = (
            self._filtered(
                self.db.query(Coupon.id, Coupon.code, Coupon.name, usage_count.label("usage_count"))
                .join(CouponUsage, CouponUsage.coupon_id == Coupon.id),
                coupon_ids,
                start,
                end,
            )
            .filter(CouponUsage.status == CouponUsageStatus.APPLIED.value)
            .group_by(Coupon.id, Coupon.code, Coupon.name)
            .order_by(usage_count.desc(), Coupon.code.asc(), Coupon.id.asc())
            .limit(limit)
            .all()
        )
        return [
            CouponUsageRank(
                coupon_id=row.id,
                code=str(row.code),
                name=str(row.name),
                usage_count=int(row.usage_count),
            )
            for row in rows
        ]

    def capacity_entry_counts(self) -> dict[UUID, dict[str, int]]:
        """Ledger entry counts per coupon and status, for counter verification."""
        rows = (
            self.db.query(
                CouponUsage.coupon_id,
                CouponUsage.status,
                sa_func.count(CouponUsage.id).label("count"),
            )
            .group_by(CouponUsage.coupon_id, CouponUsage.status)
            .all()
        )
        counts: dict[UUID, dict[str, int]] = {}
        for row in rows:
            counts.setdefault(row.coupon_id, {})[row.status] = int(row.count)
        return counts
