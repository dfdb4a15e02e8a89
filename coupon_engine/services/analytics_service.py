"""Coupon usage analytics derived from the Usage Ledger."""

from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from coupon_engine.core.auth import SYSTEM_ACTOR, Actor, ensure_can_create, ensure_can_manage
from coupon_engine.core.config import settings
from coupon_engine.core.exceptions import CouponNotFoundError
from coupon_engine.repositories.coupon_analytics_repository import (
    CouponAnalyticsRepository,
    UsageTotals,
)
from coupon_engine.repositories.coupon_repository import CouponRepository
from coupon_engine.schemas.analytics import (
    CouponAnalyticsResponse,
    CouponStatsResponse,
    TopCouponItem,
)
from coupon_engine.services.discounts import CENTS


def _average(total: Decimal, count: int) -> Decimal:
    if count == 0:
        return Decimal("0.00")
    return (total / count).quantize(CENTS, rounding=ROUND_HALF_UP)


def _rate(numerator: int, denominator: int | None) -> float:
    if not denominator:
        return 0.0
    return numerator / denominator


class CouponAnalyticsService:
    """Read-only reporting over coupons and their ledger entries."""

    def __init__(self, db: Session):
        self.coupon_repo = CouponRepository(db)
        self.repo = CouponAnalyticsRepository(db)

    def _recent_since(self, now: datetime) -> datetime:
        return now - timedelta(days=settings.COUPON_RECENT_USAGE_DAYS)

    def get_coupon_stats(
        self,
        coupon_id: UUID,
        now: datetime,
        start: datetime | None = None,
        end: datetime | None = None,
        actor: Actor = SYSTEM_ACTOR,
    ) -> CouponStatsResponse:
        coupon = self.coupon_repo.get_by_id(coupon_id)
        if coupon is None:
            raise CouponNotFoundError(coupon_id)
        ensure_can_manage(actor, coupon)

        ids: list[UUID] = [coupon.id]  # type: ignore[list-item]
        totals = self.repo.usage_totals(ids, start, end)
        remaining = None
        if coupon.usage_limit is not None:
            remaining = max(int(coupon.usage_limit) - int(coupon.usage_count), 0)

        return CouponStatsResponse(
            coupon_id=coupon.id,  # type: ignore[arg-type]
            code=str(coupon.code),
            recent_usages=self.repo.count_applied_since(ids, self._recent_since(now), start, end),
            usage_rate=_rate(totals.applied, coupon.usage_limit),  # type: ignore[arg-type]
            remaining_uses=remaining,
            **self._totals_fields(totals),
        )

    def get_tenant_analytics(
        self,
        now: datetime,
        partner_id: str | None = None,
        organization_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        actor: Actor = SYSTEM_ACTOR,
    ) -> CouponAnalyticsResponse:
        """Aggregate over every non-deleted coupon of a partner and/or organization.

        Partners and employees are always confined to their own partner.
        """
        ensure_can_create(actor)
        if actor.partner_scope is not None:
            partner_id = actor.partner_scope

        coupons = self.coupon_repo.get_in_scope(partner_id, organization_id)
        ids: list[UUID] = [coupon.id for coupon in coupons]  # type: ignore[misc]
        totals = self.repo.usage_totals(ids, start, end)
        top = self.repo.top_coupons(ids, settings.COUPON_TOP_COUPONS_LIMIT, start, end)

        return CouponAnalyticsResponse(
            total_coupons=len(coupons),
            active_coupons=sum(1 for coupon in coupons if coupon.is_active),
            recent_usages=self.repo.count_applied_since(ids, self._recent_since(now), start, end),
            usage_rate=_rate(totals.applied, len(coupons)),
            top_coupons=[
                TopCouponItem(
                    coupon_id=rank.coupon_id,
                    code=rank.code,
                    name=rank.name,
                    usage_count=rank.usage_count,
                )
                for rank in top
            ],
            **self._totals_fields(totals),
        )

    @staticmethod
    def _totals_fields(totals: UsageTotals) -> dict[str, object]:
        return {
            "total_usages": totals.applied,
            "total_refunds": totals.refunded,
            "total_cancellations": totals.cancelled,
            "total_discount_given": totals.discount_given,
            "total_order_value": totals.order_value,
            "average_order_value": _average(totals.order_value, totals.applied),
            "average_discount_amount": _average(totals.discount_given, totals.applied),
        }
