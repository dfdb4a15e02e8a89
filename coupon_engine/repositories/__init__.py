from coupon_engine.repositories.audit_log_repository import AuditLogRepository
from coupon_engine.repositories.coupon_analytics_repository import CouponAnalyticsRepository
from coupon_engine.repositories.coupon_repository import CouponRepository
from coupon_engine.repositories.coupon_usage_repository import CouponUsageRepository

__all__ = [
    "AuditLogRepository",
    "CouponAnalyticsRepository",
    "CouponRepository",
    "CouponUsageRepository",
]
