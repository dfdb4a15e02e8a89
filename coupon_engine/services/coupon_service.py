"""Coupon catalog administration.

Creation, edits, activation, soft deletion, duplication and scoping changes.
Every change is authorized against the acting partner and written to the
audit trail. The usage counter is never touched here.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from coupon_engine.core.auth import SYSTEM_ACTOR, Actor, ensure_can_create, ensure_can_manage
from coupon_engine.core.exceptions import (
    CouponAccessDeniedError,
    CouponConflictError,
    CouponNotFoundError,
    CouponValidationError,
)
from coupon_engine.models.asset import AssetRef
from coupon_engine.models.audit_log import AuditLog
from coupon_engine.models.coupon import Coupon, CouponType, DiscountType, normalize_code
from coupon_engine.models.coupon_usage import CouponUsage, CouponUsageStatus
from coupon_engine.models.shared import as_utc
from coupon_engine.repositories.coupon_repository import CouponRepository
from coupon_engine.repositories.coupon_usage_repository import CouponUsageRepository
from coupon_engine.schemas.coupon import (
    BulkCouponAction,
    BulkCouponResult,
    CouponAssetsUpdate,
    CouponCreate,
    CouponUpdate,
    check_discount,
    check_order_bounds,
    check_window,
)
from coupon_engine.services.audit_service import AuditService
from coupon_engine.services.discounts import DiscountCalculation, calculate_coupon_discount
from coupon_engine.services.eligibility import CouponEligibilityEvaluator, EligibilityContext

logger = logging.getLogger(__name__)

AUDITED_FIELDS = (
    "name",
    "description",
    "discount_type",
    "discount_value",
    "max_discount_amount",
    "minimum_order_value",
    "maximum_order_value",
    "usage_limit",
    "user_usage_limit",
    "valid_from",
    "valid_until",
    "is_active",
    "is_publicly_visible",
    "auto_apply",
    "stackable",
    "organization_id",
)

REQUIRED_FIELDS = (
    "name",
    "discount_type",
    "discount_value",
    "valid_from",
    "valid_until",
    "is_publicly_visible",
    "auto_apply",
    "stackable",
)

NOT_FOUND_ERROR = "Cupom não encontrado"
DENIED_ERROR = "Sem permissão"


def _json_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    return value


def coupon_snapshot(coupon: Coupon) -> dict[str, Any]:
    """JSON-safe view of the editable coupon fields, for audit diffs."""
    return {name: _json_value(getattr(coupon, name)) for name in AUDITED_FIELDS}


def _reason_data(reason: str | None) -> dict[str, Any] | None:
    return {"reason": reason} if reason else None


class CouponService:
    """Service for coupon catalog business logic."""

    def __init__(self, db: Session):
        self.db = db
        self.coupon_repo = CouponRepository(db)
        self.usage_repo = CouponUsageRepository(db)
        self.audit = AuditService(db)

    def get_coupon(self, coupon_id: UUID, actor: Actor = SYSTEM_ACTOR) -> Coupon:
        coupon = self.coupon_repo.get_by_id(coupon_id)
        if coupon is None:
            raise CouponNotFoundError(coupon_id)
        ensure_can_manage(actor, coupon)
        return coupon

    def get_coupon_by_code(self, code: str) -> Coupon:
        coupon = self.coupon_repo.get_by_code(code)
        if coupon is None:
            raise CouponNotFoundError(normalize_code(code))
        return coupon

    def list_coupons(
        self,
        actor: Actor,
        skip: int = 0,
        limit: int = 50,
        partner_id: str | None = None,
        organization_id: str | None = None,
        is_active: bool | None = None,
        coupon_type: CouponType | None = None,
        order_by: str | None = None,
    ) -> tuple[list[Coupon], int]:
        """List coupons visible to the actor. Partners and employees only see their own."""
        ensure_can_create(actor)
        scope = actor.partner_scope if not actor.is_master else partner_id
        filters = {
            "partner_id": scope,
            "organization_id": organization_id,
            "is_active": is_active,
            "coupon_type": coupon_type,
        }
        coupons = self.coupon_repo.get_all(skip=skip, limit=limit, order_by=order_by, **filters)
        return coupons, self.coupon_repo.count(**filters)

    def create_coupon(self, data: CouponCreate, actor: Actor = SYSTEM_ACTOR) -> Coupon:
        ensure_can_create(actor)
        if self.coupon_repo.get_by_code(data.code, include_deleted=True):
            raise CouponConflictError(f"Coupon code '{data.code}' already exists")

        partner_id = actor.partner_scope if not actor.is_master else data.partner_id
        coupon = self.coupon_repo.create(data, partner_id=partner_id, created_by=actor.user_id)
        self.audit.log_action(
            coupon.id,  # type: ignore[arg-type]
            "created",
            actor_type=actor.actor_type,
            actor_id=actor.user_id,
            data={"code": coupon.code, **coupon_snapshot(coupon)},
        )
        logger.info("Coupon %s created (%s)", coupon.code, coupon.id)
        return coupon

    def update_coupon(
        self, coupon_id: UUID, data: CouponUpdate, actor: Actor = SYSTEM_ACTOR
    ) -> Coupon:
        coupon = self.get_coupon(coupon_id, actor)
        values = data.model_dump(exclude_unset=True)
        if "discount_type" in values and values["discount_type"] is not None:
            values["discount_type"] = values["discount_type"].value

        missing = [key for key in REQUIRED_FIELDS if key in values and values[key] is None]
        if missing:
            raise CouponValidationError(f"Fields cannot be null: {', '.join(missing)}")

        try:
            discount_type = DiscountType(values.get("discount_type", coupon.discount_type))
            discount_value = Decimal(values.get("discount_value", coupon.discount_value))
            check_discount(discount_type, discount_value)
            check_window(
                as_utc(values.get("valid_from") or coupon.valid_from),
                as_utc(values.get("valid_until") or coupon.valid_until),
            )
            check_order_bounds(
                values.get("minimum_order_value", coupon.minimum_order_value),
                values.get("maximum_order_value", coupon.maximum_order_value),
            )
        except ValueError as exc:
            raise CouponValidationError(str(exc)) from exc

        usage_limit = values.get("usage_limit", coupon.usage_limit)
        if usage_limit is not None and int(usage_limit) < int(coupon.usage_count):
            raise CouponValidationError("usage_limit cannot be lower than the current usage count")

        before = coupon_snapshot(coupon)
        if "usage_limit" in values:
            # Guarded against redemptions committed since the read above.
            new_limit = values.pop("usage_limit")
            if not self.coupon_repo.set_usage_limit(coupon.id, new_limit):  # type: ignore[arg-type]
                self.db.rollback()
                raise CouponValidationError(
                    "usage_limit cannot be lower than the current usage count"
                )
        coupon = self.coupon_repo.update_fields(coupon, values)
        self.audit.log_update(
            coupon.id,  # type: ignore[arg-type]
            actor_type=actor.actor_type,
            actor_id=actor.user_id,
            old_data=before,
            new_data=coupon_snapshot(coupon),
        )
        return coupon

    def set_active(
        self,
        coupon_id: UUID,
        is_active: bool,
        actor: Actor = SYSTEM_ACTOR,
        reason: str | None = None,
    ) -> Coupon:
        coupon = self.get_coupon(coupon_id, actor)
        if bool(coupon.is_active) == is_active:
            return coupon
        coupon = self.coupon_repo.update_fields(coupon, {"is_active": is_active})
        self.audit.log_action(
            coupon.id,  # type: ignore[arg-type]
            "activated" if is_active else "deactivated",
            actor_type=actor.actor_type,
            actor_id=actor.user_id,
            data=_reason_data(reason),
        )
        return coupon

    def delete_coupon(
        self,
        coupon_id: UUID,
        now: datetime,
        actor: Actor = SYSTEM_ACTOR,
        reason: str | None = None,
    ) -> Coupon:
        """Soft delete. Refused while the coupon still has applied usages."""
        coupon = self.get_coupon(coupon_id, actor)
        applied = self.usage_repo.count_by_coupon_and_status(
            coupon.id, [CouponUsageStatus.APPLIED]  # type: ignore[arg-type]
        )
        if applied > 0:
            raise CouponConflictError("Cannot delete a coupon with applied usages")

        coupon = self.coupon_repo.soft_delete(coupon, deleted_at=now, deleted_by=actor.user_id)
        self.audit.log_action(
            coupon.id,  # type: ignore[arg-type]
            "deleted",
            actor_type=actor.actor_type,
            actor_id=actor.user_id,
            data=_reason_data(reason),
        )
        logger.info("Coupon %s deleted", coupon.code)
        return coupon

    def bulk_update(
        self,
        coupon_ids: list[UUID],
        action: BulkCouponAction,
        now: datetime,
        actor: Actor = SYSTEM_ACTOR,
    ) -> list[BulkCouponResult]:
        """Apply one lifecycle action to many coupons, reporting each outcome.

        A coupon that cannot be changed fails alone with the reason in its
        result. The others are still changed and audited.
        """
        ensure_can_create(actor)
        reason = f"Operação em lote: {action.value}"
        results: list[BulkCouponResult] = []
        for coupon_id in dict.fromkeys(coupon_ids):
            error: str | None = None
            try:
                if action == BulkCouponAction.DELETE:
                    self.delete_coupon(coupon_id, now, actor, reason=reason)
                else:
                    self.set_active(
                        coupon_id, action == BulkCouponAction.ACTIVATE, actor, reason=reason
                    )
            except CouponNotFoundError:
                error = NOT_FOUND_ERROR
            except CouponAccessDeniedError:
                error = DENIED_ERROR
            except CouponConflictError as exc:
                error = str(exc)
            results.append(
                BulkCouponResult(coupon_id=coupon_id, success=error is None, error=error)
            )

        failed = sum(1 for result in results if not result.success)
        logger.info("Bulk %s on %d coupons (%d failed)", action.value, len(results), failed)
        return results

    def duplicate_coupon(
        self, coupon_id: UUID, new_code: str, actor: Actor = SYSTEM_ACTOR
    ) -> Coupon:
        source = self.get_coupon(coupon_id, actor)
        if self.coupon_repo.get_by_code(new_code, include_deleted=True):
            raise CouponConflictError(f"Coupon code '{normalize_code(new_code)}' already exists")

        copy = self.coupon_repo.clone(source, new_code, created_by=actor.user_id)
        self.audit.log_action(
            copy.id,  # type: ignore[arg-type]
            "created",
            actor_type=actor.actor_type,
            actor_id=actor.user_id,
            data={"duplicated_from": str(source.id), "code": copy.code},
        )
        return copy

    def assign_users(
        self, coupon_id: UUID, user_ids: list[str], actor: Actor = SYSTEM_ACTOR
    ) -> Coupon:
        coupon = self.get_coupon(coupon_id, actor)
        current = list(coupon.allowed_users or [])
        added = [user_id for user_id in dict.fromkeys(user_ids) if user_id not in current]
        if not added:
            return coupon
        coupon = self.coupon_repo.update_fields(coupon, {"allowed_users": current + added})
        self.audit.log_action(
            coupon.id,  # type: ignore[arg-type]
            "users_assigned",
            actor_type=actor.actor_type,
            actor_id=actor.user_id,
            data={"user_ids": added},
        )
        return coupon

    def remove_users(
        self, coupon_id: UUID, user_ids: list[str], actor: Actor = SYSTEM_ACTOR
    ) -> Coupon:
        coupon = self.get_coupon(coupon_id, actor)
        current = list(coupon.allowed_users or [])
        removed = [user_id for user_id in current if user_id in set(user_ids)]
        if not removed:
            return coupon
        remaining = [user_id for user_id in current if user_id not in set(user_ids)]
        coupon = self.coupon_repo.update_fields(coupon, {"allowed_users": remaining})
        self.audit.log_action(
            coupon.id,  # type: ignore[arg-type]
            "users_removed",
            actor_type=actor.actor_type,
            actor_id=actor.user_id,
            data={"user_ids": removed},
        )
        return coupon

    def update_assets(
        self, coupon_id: UUID, data: CouponAssetsUpdate, actor: Actor = SYSTEM_ACTOR
    ) -> Coupon:
        coupon = self.get_coupon(coupon_id, actor)
        values = {
            "applicable_assets": [asset.model_dump(mode="json") for asset in data.applicable_assets],
            "is_global": data.global_application.is_global,
            "global_asset_types": [kind.value for kind in data.global_application.asset_types],
        }
        before = {key: getattr(coupon, key) for key in values}
        coupon = self.coupon_repo.update_fields(coupon, values)
        self.audit.log_action(
            coupon.id,  # type: ignore[arg-type]
            "assets_updated",
            actor_type=actor.actor_type,
            actor_id=actor.user_id,
            data={"old": before, "new": values},
        )
        return coupon

    def get_public_coupons(
        self,
        now: datetime,
        asset_type: str | None = None,
        asset_id: str | None = None,
    ) -> list[Coupon]:
        coupons = self.coupon_repo.get_public(now)
        if asset_type and asset_id:
            ref = AssetRef.parse(asset_type, asset_id)
            if ref is None:
                return []
            coupons = [coupon for coupon in coupons if coupon.applies_to(ref)]
        return coupons

    def get_coupons_by_asset(
        self,
        asset_type: str,
        asset_id: str,
        actor: Actor,
        is_active: bool | None = None,
    ) -> list[Coupon]:
        ensure_can_create(actor)
        ref = AssetRef.parse(asset_type, asset_id)
        if ref is None:
            return []
        coupons = self.coupon_repo.get_by_asset(ref, is_active=is_active)
        if actor.partner_scope is not None:
            coupons = [coupon for coupon in coupons if coupon.partner_id == actor.partner_scope]
        return coupons

    def find_best_automatic_coupon(
        self, context: EligibilityContext, now: datetime
    ) -> tuple[Coupon, DiscountCalculation] | None:
        """The eligible auto-apply coupon granting the largest discount, if any."""
        if context.order_value is None:
            return None
        evaluator = CouponEligibilityEvaluator(self.db)
        candidates = [
            coupon
            for coupon in self.get_public_coupons(now, context.asset_type, context.asset_id)
            if coupon.auto_apply
        ]

        best: tuple[Coupon, DiscountCalculation] | None = None
        for coupon in candidates:
            if not evaluator.evaluate(coupon, context, now).is_eligible:
                continue
            discount = calculate_coupon_discount(coupon, context.order_value)
            if best is None or discount.discount_amount > best[1].discount_amount:
                best = (coupon, discount)
        return best

    def process_expired_coupons(self, now: datetime) -> list[Coupon]:
        """Deactivate active coupons whose validity window has ended."""
        expired = self.coupon_repo.get_expired_active(now)
        for coupon in expired:
            self.coupon_repo.update_fields(coupon, {"is_active": False})
            self.audit.log_action(
                coupon.id,  # type: ignore[arg-type]
                "expired",
                data={"reason": "Cupom expirado automaticamente"},
            )
            logger.info("Coupon %s expired and was deactivated", coupon.code)
        return expired

    def list_usage_history(
        self,
        coupon_id: UUID,
        actor: Actor = SYSTEM_ACTOR,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[list[CouponUsage], int]:
        coupon = self.get_coupon(coupon_id, actor)
        usages = self.usage_repo.get_by_coupon_id(coupon.id, skip=skip, limit=limit)  # type: ignore[arg-type]
        return usages, self.usage_repo.count_by_coupon_id(coupon.id)  # type: ignore[arg-type]

    def list_audit_logs(
        self,
        coupon_id: UUID,
        actor: Actor = SYSTEM_ACTOR,
        skip: int = 0,
        limit: int = 100,
        action: str | None = None,
    ) -> list[AuditLog]:
        coupon = self.get_coupon(coupon_id, actor)
        return self.audit.repo.get_by_coupon(
            coupon.id, skip=skip, limit=limit, action=action  # type: ignore[arg-type]
        )
