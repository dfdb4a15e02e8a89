"""Redemption endpoints: consume coupon capacity and move ledger entries."""

from uuid import UUID

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from coupon_engine.core.auth import Actor, ActorRole, get_current_actor
from coupon_engine.core.database import get_db
from coupon_engine.core.exceptions import (
    ENGINE_ERRORS,
    CouponAccessDeniedError,
    to_http_exception,
)
from coupon_engine.models.coupon_usage import CouponUsage
from coupon_engine.models.shared import utc_now
from coupon_engine.repositories.coupon_repository import CouponRepository
from coupon_engine.routers.eligibility import eligibility_response
from coupon_engine.schemas.redemption import (
    CouponUsageResponse,
    EligibilityResponse,
    RedeemRequest,
    UsageTransitionRequest,
)
from coupon_engine.services.eligibility import EligibilityContext
from coupon_engine.services.redemption_service import RedemptionService

router = APIRouter()


@router.post(
    "/",
    response_model=CouponUsageResponse,
    status_code=201,
    summary="Redeem coupon",
    responses={
        403: {"description": "Travelers can only redeem for themselves"},
        422: {"model": EligibilityResponse, "description": "Coupon not usable"},
        503: {"description": "Temporarily unavailable; retry after Retry-After seconds"},
    },
)
async def redeem_coupon(
    data: RedeemRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> CouponUsage | JSONResponse:
    """Atomically re-validate the coupon and record one usage.

    Replaying the same booking for the same user and coupon returns the
    existing entry without consuming more capacity.
    """
    try:
        if actor.role == ActorRole.TRAVELER and actor.user_id != data.user_id:
            raise CouponAccessDeniedError("Sem permissão para usar cupom em nome de outro usuário")

        context = EligibilityContext(
            user_id=data.user_id,
            asset_type=data.asset_type,
            asset_id=data.asset_id,
            order_value=data.order_value if data.order_value is not None else data.original_amount,
        )
        result = RedemptionService(db).redeem(
            data.coupon_id,
            context,
            discount_amount=data.discount_amount,
            original_amount=data.original_amount,
            now=utc_now(),
            booking_type=data.booking_type,
            booking_id=data.booking_id,
            applied_by=actor.user_id,
        )
    except ENGINE_ERRORS as e:
        raise to_http_exception(e) from None

    if isinstance(result, CouponUsage):
        return result
    coupon = CouponRepository(db).get_by_id(data.coupon_id)
    body = eligibility_response(coupon, result)
    return JSONResponse(status_code=422, content=body.model_dump(mode="json"))


@router.get(
    "/{usage_id}",
    response_model=CouponUsageResponse,
    summary="Get coupon usage",
    responses={403: {"description": "Forbidden"}, 404: {"description": "Usage not found"}},
)
async def get_usage(
    usage_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> CouponUsage:
    try:
        return RedemptionService(db).get_usage(usage_id, actor)
    except ENGINE_ERRORS as e:
        raise to_http_exception(e) from None


@router.post(
    "/{usage_id}/refund",
    response_model=CouponUsageResponse,
    summary="Mark coupon usage refunded",
    responses={
        400: {"description": "Usage is not applied"},
        403: {"description": "Forbidden"},
        404: {"description": "Usage not found"},
        503: {"description": "Temporarily unavailable"},
    },
)
async def refund_usage(
    usage_id: UUID,
    data: UsageTransitionRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> CouponUsage:
    try:
        return RedemptionService(db).refund_usage(usage_id, data.reason, actor)
    except ENGINE_ERRORS as e:
        raise to_http_exception(e) from None


@router.post(
    "/{usage_id}/cancel",
    response_model=CouponUsageResponse,
    summary="Cancel coupon usage",
    responses={
        400: {"description": "Usage is not applied"},
        403: {"description": "Forbidden"},
        404: {"description": "Usage not found"},
        503: {"description": "Temporarily unavailable"},
    },
)
async def cancel_usage(
    usage_id: UUID,
    data: UsageTransitionRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> CouponUsage:
    """Cancel an applied usage and give its unit of capacity back to the coupon."""
    try:
        return RedemptionService(db).cancel_usage(usage_id, data.reason, actor)
    except ENGINE_ERRORS as e:
        raise to_http_exception(e) from None
