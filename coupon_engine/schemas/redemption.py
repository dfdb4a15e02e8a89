"""Eligibility and redemption schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Self
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class EligibilityContextSchema(BaseModel):
    user_id: str | None = None
    asset_type: str | None = None
    asset_id: str | None = None
    order_value: Decimal | None = Field(default=None, ge=0)


class EvaluateRequest(EligibilityContextSchema):
    coupon_id: UUID | None = None
    code: str | None = None

    @model_validator(mode="after")
    def _require_identity(self) -> Self:
        if self.coupon_id is None and not self.code:
            raise ValueError("coupon_id or code is required")
        return self


class DiscountPreview(BaseModel):
    original_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    discount_percentage: Decimal
    max_discount_reached: bool


class EligibilityResponse(BaseModel):
    coupon_id: UUID | None = None
    code: str | None = None
    is_eligible: bool
    is_not_found: bool
    reasons: list[str]
    codes: list[str]
    discount: DiscountPreview | None = None


class MultipleCouponsRequest(EligibilityContextSchema):
    codes: list[str] = Field(min_length=1, max_length=20)


class CouponCheckResponse(EligibilityResponse):
    requested_code: str


class CouponConflictResponse(BaseModel):
    code: str
    message: str


class MultipleCouponsResponse(BaseModel):
    results: list[CouponCheckResponse]
    valid_coupon_ids: list[UUID]
    conflicts: list[CouponConflictResponse]
    has_conflicts: bool
    total_discount: Decimal
    final_amount: Decimal | None = None
    order_value: Decimal | None = None


class AutomaticCouponRequest(BaseModel):
    user_id: str | None = None
    asset_type: str
    asset_id: str
    order_value: Decimal = Field(ge=0)


class AutomaticCouponResponse(BaseModel):
    coupon_id: UUID
    code: str
    name: str
    discount: DiscountPreview


class RedeemRequest(EligibilityContextSchema):
    coupon_id: UUID
    user_id: str = Field(min_length=1)
    discount_amount: Decimal = Field(ge=0)
    original_amount: Decimal = Field(ge=0)
    booking_type: str | None = None
    booking_id: str | None = None

    @model_validator(mode="after")
    def _check_amounts(self) -> Self:
        if self.discount_amount > self.original_amount:
            raise ValueError("discount_amount cannot exceed original_amount")
        return self


class UsageTransitionRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=1000)


class CouponUsageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    coupon_id: UUID
    user_id: str
    status: str
    original_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    asset_type: str | None = None
    asset_id: str | None = None
    booking_type: str | None = None
    booking_id: str | None = None
    applied_at: datetime
    applied_by: str | None = None
    status_reason: str | None = None
    created_at: datetime
    updated_at: datetime
