"""Redemption accounting: the only writer of coupon usage counters.

Each redemption re-validates the coupon under a row lock and then moves the
counter with a compare-and-swap UPDATE, inserting the Usage Ledger row in the
same transaction. Either everything commits or nothing does.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from coupon_engine.core.auth import SYSTEM_ACTOR, Actor, ActorRole, ensure_can_manage
from coupon_engine.core.config import settings
from coupon_engine.core.exceptions import (
    CouponUsageNotFoundError,
    CouponValidationError,
    RedemptionConflictError,
    RedemptionUnavailableError,
    UsageInvariantViolationError,
)
from coupon_engine.models.coupon import Coupon
from coupon_engine.models.coupon_usage import CouponUsage, CouponUsageStatus
from coupon_engine.repositories.coupon_analytics_repository import CouponAnalyticsRepository
from coupon_engine.repositories.coupon_repository import CouponRepository
from coupon_engine.repositories.coupon_usage_repository import CouponUsageRepository
from coupon_engine.services.audit_service import USAGE_RESOURCE, AuditService
from coupon_engine.services.eligibility import (
    CouponEligibilityEvaluator,
    EligibilityCode,
    EligibilityContext,
    EligibilityDecision,
)

logger = logging.getLogger(__name__)


@dataclass
class UsageCounterMismatch:
    """A coupon whose counter disagrees with its limit or with the ledger."""

    coupon_id: UUID
    code: str
    usage_count: int
    ledger_count: int
    usage_limit: int | None


def capacity_statuses() -> list[CouponUsageStatus]:
    """Ledger statuses that still hold a unit of global capacity."""
    if settings.COUPON_REFUND_RELEASES_CAPACITY:
        return [CouponUsageStatus.APPLIED]
    return [CouponUsageStatus.APPLIED, CouponUsageStatus.REFUNDED]


class RedemptionService:
    """Atomic redeem plus the refund/cancel ledger transitions."""

    def __init__(self, db: Session):
        self.db = db
        self.coupon_repo = CouponRepository(db)
        self.usage_repo = CouponUsageRepository(db)
        self.evaluator = CouponEligibilityEvaluator(db)
        self.audit = AuditService(db)

    def redeem(
        self,
        coupon_id: UUID,
        context: EligibilityContext,
        discount_amount: Decimal,
        original_amount: Decimal,
        now: datetime,
        booking_type: str | None = None,
        booking_id: str | None = None,
        applied_by: str | None = None,
    ) -> CouponUsage | EligibilityDecision:
        """Consume one unit of coupon capacity for an order.

        Returns the new (or replayed) ledger entry, or the decision explaining
        why the coupon cannot be used. Raises ``RedemptionUnavailableError``
        when the transaction could not complete; nothing is written then.
        """
        if not context.user_id:
            raise CouponValidationError("user_id is required to redeem a coupon")
        if discount_amount < 0 or discount_amount > original_amount:
            raise CouponValidationError("discount_amount must be between 0 and original_amount")

        try:
            coupon = self.coupon_repo.get_for_update(coupon_id)
            if coupon is not None and not coupon.is_deleted:
                self._check_counter(coupon)
                replay = self._booking_replay(coupon, context, booking_type, booking_id)
                if replay is not None:
                    self.db.rollback()
                    return replay

            decision = self.evaluator.evaluate(coupon, context, now)
            if coupon is None or not decision.is_eligible:
                self.db.rollback()
                return decision

            if not self.coupon_repo.increment_usage_count(coupon.id, coupon.usage_count):
                raise RedemptionConflictError(f"Coupon {coupon.id} changed during redemption")

            usage = self.usage_repo.add(
                coupon_id=coupon.id,
                user_id=context.user_id,
                original_amount=original_amount,
                discount_amount=discount_amount,
                applied_at=now,
                asset_type=context.asset_type,
                asset_id=context.asset_id,
                booking_type=booking_type,
                booking_id=booking_id,
                applied_by=applied_by,
            )
            self.audit.log_action(
                coupon.id,
                "applied",
                actor_type="user",
                actor_id=applied_by or context.user_id,
                data={
                    "usage_id": str(usage.id),
                    "user_id": context.user_id,
                    "booking_id": booking_id,
                    "original_amount": str(original_amount),
                    "discount_amount": str(discount_amount),
                },
                resource_type=USAGE_RESOURCE,
                resource_id=usage.id,
                commit=False,
            )
            self.db.commit()
        except (RedemptionConflictError, UsageInvariantViolationError):
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning("Redemption of coupon %s failed: %s", coupon_id, exc)
            raise RedemptionUnavailableError("Coupon redemption is temporarily unavailable") from exc

        self.db.refresh(usage)
        logger.info(
            "Coupon %s redeemed by user %s (usage %s)", coupon_id, context.user_id, usage.id
        )
        return usage

    def get_usage(self, usage_id: UUID, actor: Actor = SYSTEM_ACTOR) -> CouponUsage:
        """Travelers may read their own entries; staff need access to the coupon."""
        usage = self.usage_repo.get_by_id(usage_id)
        if usage is None:
            raise CouponUsageNotFoundError(usage_id)
        if actor.role == ActorRole.TRAVELER and usage.user_id == actor.user_id:
            return usage
        coupon = self.coupon_repo.get_by_id(usage.coupon_id, include_deleted=True)  # type: ignore[arg-type]
        if coupon is not None:
            ensure_can_manage(actor, coupon)
        return usage

    def refund_usage(
        self,
        usage_id: UUID,
        reason: str,
        actor: Actor = SYSTEM_ACTOR,
    ) -> CouponUsage:
        """Mark an applied entry refunded.

        Global capacity is released only when COUPON_REFUND_RELEASES_CAPACITY is on.
        """
        return self._transition(
            usage_id,
            CouponUsageStatus.REFUNDED,
            reason,
            actor,
            release_capacity=settings.COUPON_REFUND_RELEASES_CAPACITY,
        )

    def cancel_usage(
        self,
        usage_id: UUID,
        reason: str,
        actor: Actor = SYSTEM_ACTOR,
    ) -> CouponUsage:
        """Mark an applied entry cancelled; the order never materialized, so capacity returns."""
        return self._transition(
            usage_id, CouponUsageStatus.CANCELLED, reason, actor, release_capacity=True
        )

    def _transition(
        self,
        usage_id: UUID,
        new_status: CouponUsageStatus,
        reason: str,
        actor: Actor,
        release_capacity: bool,
    ) -> CouponUsage:
        usage = self.usage_repo.get_by_id(usage_id)
        if usage is None:
            raise CouponUsageNotFoundError(usage_id)
        owner = self.coupon_repo.get_by_id(usage.coupon_id, include_deleted=True)  # type: ignore[arg-type]
        if owner is not None:
            ensure_can_manage(actor, owner)

        try:
            coupon = self.coupon_repo.get_for_update(usage.coupon_id)  # type: ignore[arg-type]
            self.db.refresh(usage)
            if usage.status != CouponUsageStatus.APPLIED.value:
                self.db.rollback()
                raise CouponValidationError(
                    f"Coupon usage {usage_id} is {usage.status} and cannot become {new_status.value}"
                )

            if release_capacity and coupon is not None:
                if not self.coupon_repo.decrement_usage_count(coupon.id, coupon.usage_count):
                    raise RedemptionConflictError(f"Coupon {coupon.id} changed during {new_status.value}")

            old_status = str(usage.status)
            self.usage_repo.set_status(usage, new_status, reason)
            self.audit.log_usage_status_change(
                usage.coupon_id,  # type: ignore[arg-type]
                usage.id,  # type: ignore[arg-type]
                old_status,
                new_status.value,
                actor_type=actor.actor_type,
                actor_id=actor.user_id,
                reason=reason,
                commit=False,
            )
            self.db.commit()
        except RedemptionConflictError:
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning("Could not mark usage %s %s: %s", usage_id, new_status.value, exc)
            raise RedemptionUnavailableError("Coupon usage update is temporarily unavailable") from exc

        self.db.refresh(usage)
        logger.info("Coupon usage %s marked %s", usage_id, new_status.value)
        return usage

    def _booking_replay(
        self,
        coupon: Coupon,
        context: EligibilityContext,
        booking_type: str | None,
        booking_id: str | None,
    ) -> CouponUsage | EligibilityDecision | None:
        """Existing applied entry for the same booking, so retried checkouts stay idempotent.

        A refunded booking keeps its entry but is never replayed as a success.
        """
        if not (booking_type and booking_id):
            return None
        existing = self.usage_repo.get_active_by_booking(booking_type, booking_id)
        if existing is None:
            return None
        if (
            existing.status == CouponUsageStatus.APPLIED.value
            and existing.coupon_id == coupon.id
            and existing.user_id == context.user_id
        ):
            return existing
        duplicate = EligibilityDecision()
        duplicate.fail(EligibilityCode.ALREADY_APPLIED_TO_BOOKING)
        return duplicate

    def _check_counter(self, coupon: Coupon) -> None:
        if coupon.usage_limit is not None and coupon.usage_count > coupon.usage_limit:
            logger.critical(
                "Coupon %s usage_count=%d exceeds usage_limit=%d; refusing to redeem",
                coupon.id,
                coupon.usage_count,
                coupon.usage_limit,
            )
            raise UsageInvariantViolationError(
                coupon.id,  # type: ignore[arg-type]
                coupon.usage_count,  # type: ignore[arg-type]
                coupon.usage_limit,  # type: ignore[arg-type]
            )

    def verify_usage_counters(self) -> list[UsageCounterMismatch]:
        """Compare every coupon counter with its limit and the ledger. Never repairs."""
        counts = CouponAnalyticsRepository(self.db).capacity_entry_counts()
        statuses = [status.value for status in capacity_statuses()]
        mismatches: list[UsageCounterMismatch] = []

        for coupon in self.db.query(Coupon).all():
            per_status = counts.get(coupon.id, {})  # type: ignore[call-overload]
            ledger_count = sum(per_status.get(status, 0) for status in statuses)
            over_limit = coupon.usage_limit is not None and coupon.usage_count > coupon.usage_limit
            if coupon.usage_count != ledger_count or over_limit:
                logger.critical(
                    "Usage counter mismatch on coupon %s (%s): usage_count=%d ledger=%d limit=%s",
                    coupon.id,
                    coupon.code,
                    coupon.usage_count,
                    ledger_count,
                    coupon.usage_limit,
                )
                mismatches.append(
                    UsageCounterMismatch(
                        coupon_id=coupon.id,  # type: ignore[arg-type]
                        code=str(coupon.code),
                        usage_count=int(coupon.usage_count),
                        ledger_count=ledger_count,
                        usage_limit=coupon.usage_limit,  # type: ignore[arg-type]
                    )
                )
        return mismatches
