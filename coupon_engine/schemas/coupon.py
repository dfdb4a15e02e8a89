"""Coupon catalog schemas."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Self
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from coupon_engine.models.asset import AssetKind
from coupon_engine.models.coupon import CouponType, DiscountType, normalize_code
from coupon_engine.models.shared import as_utc


class ApplicableAssetSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    asset_type: AssetKind
    asset_id: str = Field(min_length=1, max_length=255)
    is_active: bool = True


class GlobalApplicationSchema(BaseModel):
    is_global: bool = False
    asset_types: list[AssetKind] = Field(default_factory=list)


class CouponCreate(BaseModel):
    code: str = Field(min_length=1, max_length=255)
    name: str = Field(max_length=255)
    description: str | None = None
    coupon_type: CouponType = CouponType.PUBLIC
    discount_type: DiscountType
    discount_value: Decimal
    max_discount_amount: Decimal | None = None
    minimum_order_value: Decimal | None = Field(default=None, ge=0)
    maximum_order_value: Decimal | None = Field(default=None, ge=0)
    usage_limit: int | None = Field(default=None, ge=1)
    user_usage_limit: int | None = Field(default=None, ge=1)
    valid_from: datetime
    valid_until: datetime
    is_active: bool = True
    is_publicly_visible: bool = False
    auto_apply: bool = False
    stackable: bool = False
    allowed_users: list[str] = Field(default_factory=list)
    global_application: GlobalApplicationSchema = Field(default_factory=GlobalApplicationSchema)
    applicable_assets: list[ApplicableAssetSchema] = Field(default_factory=list)
    partner_id: str | None = None
    organization_id: str | None = None

    @field_validator("code")
    @classmethod
    def _normalize_code(cls, value: str) -> str:
        code = normalize_code(value)
        if not code:
            raise ValueError("code must not be blank")
        return code

    @field_validator("valid_from", "valid_until")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @model_validator(mode="after")
    def _check_rules(self) -> Self:
        check_discount(self.discount_type, self.discount_value)
        check_window(self.valid_from, self.valid_until)
        check_order_bounds(self.minimum_order_value, self.maximum_order_value)
        return self


class CouponUpdate(BaseModel):
    name: str | None = Field(default=None, max_length=255)
    description: str | None = None
    discount_type: DiscountType | None = None
    discount_value: Decimal | None = None
    max_discount_amount: Decimal | None = None
    minimum_order_value: Decimal | None = Field(default=None, ge=0)
    maximum_order_value: Decimal | None = Field(default=None, ge=0)
    usage_limit: int | None = Field(default=None, ge=1)
    user_usage_limit: int | None = Field(default=None, ge=1)
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    is_publicly_visible: bool | None = None
    auto_apply: bool | None = None
    stackable: bool | None = None
    organization_id: str | None = None

    @field_validator("valid_from", "valid_until")
    @classmethod
    def _to_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None


class CouponResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    name: str
    description: str | None = None
    coupon_type: str
    discount_type: str
    discount_value: Decimal
    max_discount_amount: Decimal | None = None
    minimum_order_value: Decimal | None = None
    maximum_order_value: Decimal | None = None
    usage_limit: int | None = None
    usage_count: int
    user_usage_limit: int | None = None
    valid_from: datetime
    valid_until: datetime
    is_active: bool
    is_publicly_visible: bool
    auto_apply: bool
    stackable: bool
    allowed_users: list[str]
    is_global: bool
    global_asset_types: list[str]
    applicable_assets: list[ApplicableAssetSchema]
    partner_id: str | None = None
    organization_id: str | None = None
    created_by: str | None = None
    deleted_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class CouponUsersRequest(BaseModel):
    user_ids: list[str] = Field(min_length=1)


class CouponAssetsUpdate(BaseModel):
    applicable_assets: list[ApplicableAssetSchema] = Field(default_factory=list)
    global_application: GlobalApplicationSchema = Field(default_factory=GlobalApplicationSchema)


class DuplicateCouponRequest(BaseModel):
    new_code: str = Field(min_length=1, max_length=255)

    @field_validator("new_code")
    @classmethod
    def _normalize_code(cls, value: str) -> str:
        return normalize_code(value)


class BulkCouponAction(str, Enum):
    ACTIVATE = "activate"
    DEACTIVATE = "deactivate"
    DELETE = "delete"


class BulkCouponRequest(BaseModel):
    coupon_ids: list[UUID] = Field(min_length=1, max_length=100)
    action: BulkCouponAction


class BulkCouponResult(BaseModel):
    coupon_id: UUID
    success: bool
    error: str | None = None


def check_discount(discount_type: DiscountType, discount_value: Decimal) -> None:
    if discount_type == DiscountType.PERCENTAGE and not (0 < discount_value <= 100):
        raise ValueError("percentage discount must be between 0 and 100")
    if discount_type == DiscountType.FIXED_AMOUNT and discount_value <= 0:
        raise ValueError("fixed discount must be greater than zero")


def check_window(valid_from: datetime, valid_until: datetime) -> None:
    if valid_from >= valid_until:
        raise ValueError("valid_from must be before valid_until")


def check_order_bounds(minimum: Decimal | None, maximum: Decimal | None) -> None:
    if minimum is not None and maximum is not None and minimum > maximum:
        raise ValueError("minimum_order_value cannot exceed maximum_order_value")
