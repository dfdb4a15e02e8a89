from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from coupon_engine.core.auth import Actor, get_current_actor
from coupon_engine.core.database import get_db
from coupon_engine.core.exceptions import ENGINE_ERRORS, to_http_exception
from coupon_engine.models.shared import utc_now
from coupon_engine.schemas.analytics import CouponAnalyticsResponse, CouponStatsResponse
from coupon_engine.services.analytics_service import CouponAnalyticsService

router = APIRouter()


@router.get(
    "/coupons",
    response_model=CouponAnalyticsResponse,
    summary="Get coupon analytics for a partner or organization",
    responses={403: {"description": "Not allowed to read coupon analytics"}},
)
async def get_tenant_analytics(
    partner_id: str | None = Query(None, description="Restrict to one partner's coupons"),
    organization_id: str | None = Query(None, description="Restrict to one organization"),
    start_date: datetime | None = Query(None, description="Earliest applied_at (inclusive)"),
    end_date: datetime | None = Query(None, description="Latest applied_at (inclusive)"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> CouponAnalyticsResponse:
    """Usage totals, averages and the most used coupons in scope."""
    try:
        return CouponAnalyticsService(db).get_tenant_analytics(
            utc_now(),
            partner_id=partner_id,
            organization_id=organization_id,
            start=start_date,
            end=end_date,
            actor=actor,
        )
    except ENGINE_ERRORS as e:
        raise to_http_exception(e) from None


@router.get(
    "/coupons/{coupon_id}",
    response_model=CouponStatsResponse,
    summary="Get coupon usage statistics",
    responses={
        403: {"description": "Not allowed to manage this coupon"},
        404: {"description": "Coupon not found"},
    },
)
async def get_coupon_stats(
    coupon_id: UUID,
    start_date: datetime | None = Query(None, description="Earliest applied_at (inclusive)"),
    end_date: datetime | None = Query(None, description="Latest applied_at (inclusive)"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> CouponStatsResponse:
    try:
        return CouponAnalyticsService(db).get_coupon_stats(
            coupon_id, utc_now(), start=start_date, end=end_date, actor=actor
        )
    except ENGINE_ERRORS as e:
        raise to_http_exception(e) from None
