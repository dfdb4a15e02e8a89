from coupon_engine.schemas.analytics import (
    CouponAnalyticsResponse,
    CouponStatsResponse,
    TopCouponItem,
)
from coupon_engine.schemas.audit_log import AuditLogResponse
from coupon_engine.schemas.coupon import (
    ApplicableAssetSchema,
    CouponAssetsUpdate,
    CouponCreate,
    CouponResponse,
    CouponUpdate,
    CouponUsersRequest,
    DuplicateCouponRequest,
    GlobalApplicationSchema,
)
from coupon_engine.schemas.redemption import (
    AutomaticCouponRequest,
    AutomaticCouponResponse,
    CouponUsageResponse,
    DiscountPreview,
    EligibilityResponse,
    EvaluateRequest,
    RedeemRequest,
    UsageTransitionRequest,
)

__all__ = [
    "ApplicableAssetSchema",
    "AuditLogResponse",
    "AutomaticCouponRequest",
    "AutomaticCouponResponse",
    "CouponAnalyticsResponse",
    "CouponAssetsUpdate",
    "CouponCreate",
    "CouponResponse",
    "CouponStatsResponse",
    "CouponUpdate",
    "CouponUsageResponse",
    "CouponUsersRequest",
    "DiscountPreview",
    "DuplicateCouponRequest",
    "EligibilityResponse",
    "EvaluateRequest",
    "GlobalApplicationSchema",
    "RedeemRequest",
    "TopCouponItem",
    "UsageTransitionRequest",
]
