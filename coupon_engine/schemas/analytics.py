from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel


class CouponStatsResponse(BaseModel):
    """Usage analytics for a single coupon."""

    coupon_id: UUID
    code: str
    total_usages: int
    total_refunds: int
    total_cancellations: int
    total_discount_given: Decimal
    total_order_value: Decimal
    average_order_value: Decimal
    average_discount_amount: Decimal
    recent_usages: int
    usage_rate: float
    remaining_uses: int | None = None


class TopCouponItem(BaseModel):
    coupon_id: UUID
    code: str
    name: str
    usage_count: int


class CouponAnalyticsResponse(BaseModel):
    """Usage analytics over every coupon of a partner or organization."""

    total_coupons: int
    active_coupons: int
    total_usages: int
    total_refunds: int
    total_cancellations: int
    total_discount_given: Decimal
    total_order_value: Decimal
    average_order_value: Decimal
    average_discount_amount: Decimal
    recent_usages: int
    usage_rate: float
    top_coupons: list[TopCouponItem]
