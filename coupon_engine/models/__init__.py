from coupon_engine.models.asset import ApplicableAsset, AssetKind, AssetRef
from coupon_engine.models.audit_log import AuditLog
from coupon_engine.models.coupon import Coupon, CouponType, DiscountType, normalize_code
from coupon_engine.models.coupon_usage import CouponUsage, CouponUsageStatus

__all__ = [
    "ApplicableAsset",
    "AssetKind",
    "AssetRef",
    "AuditLog",
    "Coupon",
    "CouponType",
    "CouponUsage",
    "CouponUsageStatus",
    "DiscountType",
    "normalize_code",
]
