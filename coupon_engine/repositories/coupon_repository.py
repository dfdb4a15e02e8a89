"""Coupon repository for catalog data access."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.orm import Query, Session

from coupon_engine.core.sorting import apply_order_by
from coupon_engine.models.asset import AssetRef
from coupon_engine.models.coupon import Coupon, CouponType, normalize_code
from coupon_engine.schemas.coupon import CouponCreate

SORTABLE_FIELDS = frozenset({"created_at", "code", "name", "valid_until", "usage_count"})


class CouponRepository:
    """Repository for Coupon model.

    Reads exclude soft-deleted coupons unless ``include_deleted`` is passed.
    """

    def __init__(self, db: Session):
        self.db = db

    def _scoped(
        self,
        partner_id: str | None = None,
        organization_id: str | None = None,
        is_active: bool | None = None,
        coupon_type: CouponType | None = None,
    ) -> Query:  # type: ignore[type-arg]
        query = self.db.query(Coupon).filter(Coupon.deleted_at.is_(None))
        if partner_id is not None:
            query = query.filter(Coupon.partner_id == partner_id)
        if organization_id is not None:
            query = query.filter(Coupon.organization_id == organization_id)
        if is_active is not None:
            query = query.filter(Coupon.is_active == is_active)
        if coupon_type is not None:
            query = query.filter(Coupon.coupon_type == coupon_type.value)
        return query

    def get_all(
        self,
        skip: int = 0,
        limit: int = 50,
        partner_id: str | None = None,
        organization_id: str | None = None,
        is_active: bool | None = None,
        coupon_type: CouponType | None = None,
        order_by: str | None = None,
    ) -> list[Coupon]:
        """Get coupons with optional filters, newest first by default."""
        query = self._scoped(partner_id, organization_id, is_active, coupon_type)
        query = apply_order_by(query, Coupon, order_by, SORTABLE_FIELDS)
        return query.offset(skip).limit(limit).all()

    def count(
        self,
        partner_id: str | None = None,
        organization_id: str | None = None,
        is_active: bool | None = None,
        coupon_type: CouponType | None = None,
    ) -> int:
        return self._scoped(partner_id, organization_id, is_active, coupon_type).count()

    def get_in_scope(
        self, partner_id: str | None = None, organization_id: str | None = None
    ) -> list[Coupon]:
        return self._scoped(partner_id, organization_id).all()

    def get_by_id(self, coupon_id: UUID, include_deleted: bool = False) -> Coupon | None:
        """Get a coupon by ID."""
        query = self.db.query(Coupon).filter(Coupon.id == coupon_id)
        if not include_deleted:
            query = query.filter(Coupon.deleted_at.is_(None))
        return query.first()

    def get_by_code(self, code: str, include_deleted: bool = False) -> Coupon | None:
        """Get a coupon by code, case-insensitively."""
        query = self.db.query(Coupon).filter(Coupon.code == normalize_code(code))
        if not include_deleted:
            query = query.filter(Coupon.deleted_at.is_(None))
        return query.first()

    def get_for_update(self, coupon_id: UUID) -> Coupon | None:
        """Load a coupon row under a write lock, refreshing any cached instance.

        The lock lasts until the caller commits or rolls back.
        """
        return (
            self.db.query(Coupon)
            .filter(Coupon.id == coupon_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def get_public(self, now: datetime) -> list[Coupon]:
        """Active, publicly visible public coupons whose window contains ``now``."""
        return (
            self.db.query(Coupon)
            .filter(
                Coupon.deleted_at.is_(None),
                Coupon.is_publicly_visible.is_(True),
                Coupon.is_active.is_(True),
                Coupon.coupon_type == CouponType.PUBLIC.value,
                Coupon.valid_from <= now,
                Coupon.valid_until >= now,
            )
            .order_by(Coupon.created_at.desc(), Coupon.id)
            .all()
        )

    def get_by_asset(self, ref: AssetRef, is_active: bool | None = None) -> list[Coupon]:
        """Coupons applicable to an item, newest first.

        JSON scoping columns are matched in Python so the query stays portable.
        """
        coupons = self._scoped(is_active=is_active).order_by(Coupon.created_at.desc()).all()
        return [coupon for coupon in coupons if coupon.applies_to(ref)]

    def get_expired_active(self, now: datetime) -> list[Coupon]:
        return (
            self.db.query(Coupon)
            .filter(
                Coupon.deleted_at.is_(None),
                Coupon.is_active.is_(True),
                Coupon.valid_until < now,
            )
            .all()
        )

    def create(
        self,
        data: CouponCreate,
        partner_id: str | None = None,
        created_by: str | None = None,
    ) -> Coupon:
        """Create a new coupon with a zero usage counter."""
        coupon = Coupon(
            code=data.code,
            name=data.name,
            description=data.description,
            coupon_type=data.coupon_type.value,
            discount_type=data.discount_type.value,
            discount_value=data.discount_value,
            max_discount_amount=data.max_discount_amount,
            minimum_order_value=data.minimum_order_value,
            maximum_order_value=data.maximum_order_value,
            usage_limit=data.usage_limit,
            usage_count=0,
            user_usage_limit=data.user_usage_limit,
            valid_from=data.valid_from,
            valid_until=data.valid_until,
            is_active=data.is_active,
            is_publicly_visible=data.is_publicly_visible,
            auto_apply=data.auto_apply,
            stackable=data.stackable,
            allowed_users=list(dict.fromkeys(data.allowed_users)),
            is_global=data.global_application.is_global,
            global_asset_types=[kind.value for kind in data.global_application.asset_types],
            applicable_assets=[
                asset.model_dump(mode="json") for asset in data.applicable_assets
            ],
            partner_id=partner_id if partner_id is not None else data.partner_id,
            organization_id=data.organization_id,
            created_by=created_by,
        )
        self.db.add(coupon)
        self.db.commit()
        self.db.refresh(coupon)
        return coupon

    def clone(self, source: Coupon, new_code: str, created_by: str | None = None) -> Coupon:
        """Copy a coupon's rules under a new code; the copy starts inactive and unused."""
        copy = Coupon(
            code=normalize_code(new_code),
            name=f"{source.name} (Cópia)",
            description=source.description,
            coupon_type=source.coupon_type,
            discount_type=source.discount_type,
            discount_value=source.discount_value,
            max_discount_amount=source.max_discount_amount,
            minimum_order_value=source.minimum_order_value,
            maximum_order_value=source.maximum_order_value,
            usage_limit=source.usage_limit,
            usage_count=0,
            user_usage_limit=source.user_usage_limit,
            valid_from=source.valid_from,
            valid_until=source.valid_until,
            is_active=False,
            is_publicly_visible=source.is_publicly_visible,
            auto_apply=source.auto_apply,
            stackable=source.stackable,
            allowed_users=list(source.allowed_users or []),
            is_global=source.is_global,
            global_asset_types=list(source.global_asset_types or []),
            applicable_assets=[dict(row) for row in (source.applicable_assets or [])],
            partner_id=source.partner_id,
            organization_id=source.organization_id,
            created_by=created_by,
        )
        self.db.add(copy)
        self.db.commit()
        self.db.refresh(copy)
        return copy

    def update_fields(self, coupon: Coupon, values: dict[str, Any]) -> Coupon:
        """Write catalog fields. ``usage_count`` is not writable through here."""
        values.pop("usage_count", None)
        for key, value in values.items():
            setattr(coupon, key, value)
        self.db.commit()
        self.db.refresh(coupon)
        return coupon

    def soft_delete(self, coupon: Coupon, deleted_at: datetime, deleted_by: str | None) -> Coupon:
        coupon.deleted_at = deleted_at  # type: ignore[assignment]
        coupon.deleted_by = deleted_by  # type: ignore[assignment]
        coupon.is_active = False  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(coupon)
        return coupon

    def increment_usage_count(self, coupon_id: UUID, expected_count: int) -> bool:
        """Compare-and-swap ``usage_count`` from ``expected_count`` to ``expected_count + 1``.

        The WHERE clause also re-checks the global limit, so the counter cannot
        pass ``usage_limit`` even if the caller's read was stale. Returns False
        when no row matched. Does not commit.
        """
        updated = (
            self.db.query(Coupon)
            .filter(
                Coupon.id == coupon_id,
                Coupon.usage_count == expected_count,
                or_(Coupon.usage_limit.is_(None), Coupon.usage_count < Coupon.usage_limit),
            )
            .update(
                {Coupon.usage_count: Coupon.usage_count + 1, Coupon.updated_at: func.now()},
                synchronize_session=False,
            )
        )
        return updated == 1

    def decrement_usage_count(self, coupon_id: UUID, expected_count: int) -> bool:
        """Compare-and-swap release of one unit of capacity. Does not commit."""
        updated = (
            self.db.query(Coupon)
            .filter(
                Coupon.id == coupon_id,
                Coupon.usage_count == expected_count,
                Coupon.usage_count > 0,
            )
            .update(
                {Coupon.usage_count: Coupon.usage_count - 1, Coupon.updated_at: func.now()},
                synchronize_session=False,
            )
        )
        return updated == 1

    def set_usage_limit(self, coupon_id: UUID, usage_limit: int | None) -> bool:
        """Write ``usage_limit`` only while it still covers the current counter.

        A redemption committed after the caller read the coupon makes the
        guard fail instead of leaving ``usage_count`` above the new limit.
        Returns False when no row matched. Does not commit.
        """
        query = self.db.query(Coupon).filter(Coupon.id == coupon_id)
        if usage_limit is not None:
            query = query.filter(Coupon.usage_count <= usage_limit)
        updated = query.update(
            {Coupon.usage_limit: usage_limit, Coupon.updated_at: func.now()},
            synchronize_session=False,
        )
        return updated == 1
