"""Coupon model for marketplace promotional codes."""

from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Index,
    Integer,
    String,
    Text,
    func,
)

from coupon_engine.core.database import Base
from coupon_engine.models.asset import ApplicableAsset, AssetKind, AssetRef
from coupon_engine.models.shared import MONEY, UTCDateTime, UUIDType, generate_uuid


class CouponType(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    FIRST_PURCHASE = "first_purchase"
    RETURNING_CUSTOMER = "returning_customer"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"


def normalize_code(code: str) -> str:
    """Codes are unique and compared case-insensitively."""
    return code.strip().upper()


class Coupon(Base):
    """Coupon model for promotional discounts."""

    __tablename__ = "coupons"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    code = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    coupon_type = Column(String(30), nullable=False, default=CouponType.PUBLIC.value, index=True)
    discount_type = Column(String(20), nullable=False)
    discount_value = Column(MONEY, nullable=False)
    max_discount_amount = Column(MONEY, nullable=True)

    minimum_order_value = Column(MONEY, nullable=True)
    maximum_order_value = Column(MONEY, nullable=True)

    usage_limit = Column(Integer, nullable=True)
    # Only RedemptionService writes this column
    usage_count = Column(Integer, nullable=False, default=0)
    user_usage_limit = Column(Integer, nullable=True)

    valid_from = Column(UTCDateTime, nullable=False)
    valid_until = Column(UTCDateTime, nullable=False)

    is_active = Column(Boolean, nullable=False, default=True)
    is_publicly_visible = Column(Boolean, nullable=False, default=False)
    auto_apply = Column(Boolean, nullable=False, default=False)
    stackable = Column(Boolean, nullable=False, default=False)

    allowed_users = Column(JSON, nullable=False, default=list)
    is_global = Column(Boolean, nullable=False, default=False)
    global_asset_types = Column(JSON, nullable=False, default=list)
    applicable_assets = Column(JSON, nullable=False, default=list)

    partner_id = Column(String(255), nullable=True, index=True)
    organization_id = Column(String(255), nullable=True, index=True)
    created_by = Column(String(255), nullable=True)

    deleted_at = Column(UTCDateTime, nullable=True)
    deleted_by = Column(String(255), nullable=True)

    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (Index("ix_coupons_public_active", "is_publicly_visible", "is_active"),)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def global_kinds(self) -> set[AssetKind]:
        kinds = (AssetKind.parse(value) for value in (self.global_asset_types or []))
        return {kind for kind in kinds if kind is not None}

    def explicit_assets(self) -> list[ApplicableAsset]:
        entries = (ApplicableAsset.from_row(row) for row in (self.applicable_assets or []))
        return [entry for entry in entries if entry is not None]

    def applies_to(self, ref: AssetRef) -> bool:
        """Global type membership or an active explicit entry for the same item."""
        if self.is_global and ref.kind in self.global_kinds():
            return True
        return any(entry.is_active and entry.ref == ref for entry in self.explicit_assets())
