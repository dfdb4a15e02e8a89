"""Error classes raised by the coupon engine.

Business ineligibility is not an error and never appears here: it is returned
as an ``EligibilityDecision``. These classes cover the remaining failure
families so routers can map each one to its own HTTP status.
"""

from uuid import UUID

from fastapi import HTTPException

from coupon_engine.core.config import settings


class CouponNotFoundError(ValueError):
    """An administrative operation referenced an unknown or deleted coupon."""

    def __init__(self, coupon_ref: UUID | str):
        super().__init__(f"Coupon {coupon_ref} not found")
        self.coupon_ref = coupon_ref


class CouponUsageNotFoundError(ValueError):
    def __init__(self, usage_id: UUID):
        super().__init__(f"Coupon usage {usage_id} not found")
        self.usage_id = usage_id


class CouponValidationError(ValueError):
    """Administrative input that breaks a catalog rule."""


class CouponConflictError(CouponValidationError):
    """Input conflicts with existing state (duplicate code, usages in flight)."""


class CouponAccessDeniedError(Exception):
    """The caller may not view or manage the coupon."""


class RedemptionUnavailableError(Exception):
    """Redemption could not complete; nothing was written and it may be retried."""


class RedemptionConflictError(RedemptionUnavailableError):
    """Another redemption changed the coupon counter between read and write."""


class UsageInvariantViolationError(Exception):
    """The usage counter is inconsistent with its limit or the ledger."""

    def __init__(self, coupon_id: UUID, usage_count: int, usage_limit: int | None):
        super().__init__(
            f"Coupon {coupon_id} usage_count={usage_count} exceeds usage_limit={usage_limit}"
        )
        self.coupon_id = coupon_id
        self.usage_count = usage_count
        self.usage_limit = usage_limit


def to_http_exception(exc: Exception) -> HTTPException:
    """Map an engine error onto the HTTP status the API reports for it."""
    if isinstance(exc, CouponNotFoundError | CouponUsageNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, CouponAccessDeniedError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, CouponConflictError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, RedemptionUnavailableError):
        return HTTPException(
            status_code=503,
            detail=str(exc),
            headers={"Retry-After": str(settings.REDEMPTION_RETRY_AFTER_SECONDS)},
        )
    if isinstance(exc, UsageInvariantViolationError):
        return HTTPException(status_code=500, detail="Coupon usage data is inconsistent")
    return HTTPException(status_code=400, detail=str(exc))


ENGINE_ERRORS = (
    ValueError,
    CouponAccessDeniedError,
    RedemptionUnavailableError,
    UsageInvariantViolationError,
)
