"""Eligibility evaluation endpoints. Read-only: nothing here consumes capacity."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from coupon_engine.core.database import get_db
from coupon_engine.models.coupon import Coupon
from coupon_engine.models.shared import utc_now
from coupon_engine.schemas.redemption import (
    AutomaticCouponRequest,
    AutomaticCouponResponse,
    CouponCheckResponse,
    CouponConflictResponse,
    DiscountPreview,
    EligibilityResponse,
    EvaluateRequest,
    MultipleCouponsRequest,
    MultipleCouponsResponse,
)
from coupon_engine.services.coupon_service import CouponService
from coupon_engine.services.discounts import DiscountCalculation, calculate_coupon_discount
from coupon_engine.services.eligibility import (
    EligibilityContext,
    EligibilityDecision,
    EligibilityService,
)

router = APIRouter()


def discount_preview(calculation: DiscountCalculation) -> DiscountPreview:
    return DiscountPreview(
        original_amount=calculation.original_amount,
        discount_amount=calculation.discount_amount,
        final_amount=calculation.final_amount,
        discount_percentage=calculation.discount_percentage,
        max_discount_reached=calculation.max_discount_reached,
    )


def eligibility_response(
    coupon: Coupon | None,
    decision: EligibilityDecision,
    discount: DiscountPreview | None = None,
) -> EligibilityResponse:
    found = coupon is not None and not decision.is_not_found
    return EligibilityResponse(
        coupon_id=coupon.id if found else None,  # type: ignore[union-attr]
        code=str(coupon.code) if found else None,  # type: ignore[union-attr]
        is_eligible=decision.is_eligible,
        is_not_found=decision.is_not_found,
        reasons=list(decision.reasons),
        codes=[code.value for code in decision.codes],
        discount=discount,
    )


@router.post(
    "/evaluate",
    response_model=EligibilityResponse,
    summary="Evaluate coupon eligibility",
)
async def evaluate_coupon(
    data: EvaluateRequest,
    db: Session = Depends(get_db),
) -> EligibilityResponse:
    """Report every rule the coupon fails for this context.

    When eligible and an order value is given, a discount preview is included.
    """
    context = EligibilityContext(
        user_id=data.user_id,
        asset_type=data.asset_type,
        asset_id=data.asset_id,
        order_value=data.order_value,
    )
    coupon, decision = EligibilityService(db).evaluate(
        context, utc_now(), coupon_id=data.coupon_id, code=data.code
    )
    discount = None
    if coupon is not None and decision.is_eligible and data.order_value is not None:
        discount = discount_preview(calculate_coupon_discount(coupon, data.order_value))
    return eligibility_response(coupon, decision, discount)


@router.post(
    "/multiple",
    response_model=MultipleCouponsResponse,
    summary="Validate several coupons for one order",
)
async def validate_multiple_coupons(
    data: MultipleCouponsRequest,
    db: Session = Depends(get_db),
) -> MultipleCouponsResponse:
    """Evaluate each code, then report whether the eligible ones can be combined.

    Totals cover eligible coupons only; ``final_amount`` never drops below zero.
    """
    context = EligibilityContext(
        user_id=data.user_id,
        asset_type=data.asset_type,
        asset_id=data.asset_id,
        order_value=data.order_value,
    )
    validation = EligibilityService(db).validate_coupons(data.codes, context, utc_now())
    results = []
    for check in validation.checks:
        discount = discount_preview(check.discount) if check.discount is not None else None
        response = eligibility_response(check.coupon, check.decision, discount)
        results.append(CouponCheckResponse(requested_code=check.code, **response.model_dump()))
    return MultipleCouponsResponse(
        results=results,
        valid_coupon_ids=[coupon.id for coupon in validation.valid_coupons],  # type: ignore[misc]
        conflicts=[
            CouponConflictResponse(code=conflict.code.value, message=conflict.message)
            for conflict in validation.conflicts
        ],
        has_conflicts=validation.has_conflicts,
        total_discount=validation.total_discount,
        final_amount=validation.final_amount,
        order_value=validation.order_value,
    )


@router.post(
    "/automatic",
    response_model=AutomaticCouponResponse | None,
    summary="Find the best automatic coupon",
)
async def find_automatic_coupon(
    data: AutomaticCouponRequest,
    db: Session = Depends(get_db),
) -> AutomaticCouponResponse | None:
    """The eligible auto-apply coupon with the largest discount for an item, or null."""
    context = EligibilityContext(
        user_id=data.user_id,
        asset_type=data.asset_type,
        asset_id=data.asset_id,
        order_value=data.order_value,
    )
    best = CouponService(db).find_best_automatic_coupon(context, utc_now())
    if best is None:
        return None
    coupon, calculation = best
    return AutomaticCouponResponse(
        coupon_id=coupon.id,  # type: ignore[arg-type]
        code=str(coupon.code),
        name=str(coupon.name),
        discount=discount_preview(calculation),
    )
