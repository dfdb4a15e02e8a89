"""Coupon eligibility evaluation.

The evaluator runs every rule against a coupon and a request context and
reports *all* violated rules at once, in a fixed order, so a checkout UI can
show every blocking condition together. It only reads: the coupon row and the
Usage Ledger counts needed by the per-user and customer-segment rules.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy.orm import Session

from coupon_engine.models.asset import AssetRef
from coupon_engine.models.coupon import Coupon, CouponType, normalize_code
from coupon_engine.models.shared import as_utc
from coupon_engine.repositories.coupon_repository import CouponRepository
from coupon_engine.repositories.coupon_usage_repository import CouponUsageRepository
from coupon_engine.services.discounts import CENTS, DiscountCalculation, calculate_coupon_discount

logger = logging.getLogger(__name__)


class EligibilityCode(str, Enum):
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    NOT_YET_VALID = "not_yet_valid"
    EXPIRED = "expired"
    USAGE_LIMIT_REACHED = "usage_limit_reached"
    BELOW_MINIMUM_ORDER = "below_minimum_order"
    ABOVE_MAXIMUM_ORDER = "above_maximum_order"
    NOT_APPLICABLE = "not_applicable"
    USER_LIMIT_REACHED = "user_limit_reached"
    USER_NOT_ALLOWED = "user_not_allowed"
    FIRST_PURCHASE_ONLY = "first_purchase_only"
    RETURNING_CUSTOMER_ONLY = "returning_customer_only"
    ALREADY_APPLIED_TO_BOOKING = "already_applied_to_booking"


MESSAGES: dict[EligibilityCode, str] = {
    EligibilityCode.NOT_FOUND: "Cupom não encontrado",
    EligibilityCode.INACTIVE: "Cupom inativo",
    EligibilityCode.NOT_YET_VALID: "Cupom ainda não está válido",
    EligibilityCode.EXPIRED: "Cupom expirado",
    EligibilityCode.USAGE_LIMIT_REACHED: "Limite de uso atingido",
    EligibilityCode.BELOW_MINIMUM_ORDER: "Valor mínimo do pedido: R$ {amount:.2f}",
    EligibilityCode.ABOVE_MAXIMUM_ORDER: "Valor máximo do pedido: R$ {amount:.2f}",
    EligibilityCode.NOT_APPLICABLE: "Cupom não aplicável a este item",
    EligibilityCode.USER_LIMIT_REACHED: "Limite de uso por usuário atingido",
    EligibilityCode.USER_NOT_ALLOWED: "Usuário não autorizado para este cupom",
    EligibilityCode.FIRST_PURCHASE_ONLY: "Cupom válido apenas para primeira compra",
    EligibilityCode.RETURNING_CUSTOMER_ONLY: "Cupom válido apenas para clientes recorrentes",
    EligibilityCode.ALREADY_APPLIED_TO_BOOKING: "Cupom já aplicado a esta reserva",
}


class ConflictCode(str, Enum):
    MULTIPLE_NON_STACKABLE = "multiple_non_stackable"
    NON_STACKABLE_COMBINED = "non_stackable_combined"
    DUPLICATE_SEGMENT = "duplicate_segment"


CONFLICT_MESSAGES: dict[ConflictCode, str] = {
    ConflictCode.MULTIPLE_NON_STACKABLE: "Múltiplos cupons não empilháveis selecionados",
    ConflictCode.NON_STACKABLE_COMBINED: "Cupom selecionado não pode ser usado com outros cupons",
    ConflictCode.DUPLICATE_SEGMENT: 'Múltiplos cupons do tipo "{coupon_type}" não são permitidos',
}

# Customer-segment types; at most one coupon of each may be combined.
SEGMENT_TYPES = (CouponType.FIRST_PURCHASE.value, CouponType.RETURNING_CUSTOMER.value)


@dataclass(frozen=True)
class EligibilityContext:
    """Who is buying what. Every field is optional; absent fields skip their rule."""

    user_id: str | None = None
    asset_type: str | None = None
    asset_id: str | None = None
    order_value: Decimal | None = None


@dataclass
class EligibilityDecision:
    """Outcome of an evaluation. Eligible iff no reason was recorded."""

    reasons: list[str] = field(default_factory=list)
    codes: list[EligibilityCode] = field(default_factory=list)

    @property
    def is_eligible(self) -> bool:
        return not self.reasons

    @property
    def is_not_found(self) -> bool:
        return EligibilityCode.NOT_FOUND in self.codes

    def fail(self, code: EligibilityCode, **params: Decimal) -> None:
        self.codes.append(code)
        self.reasons.append(MESSAGES[code].format(**params))

    @classmethod
    def not_found(cls) -> "EligibilityDecision":
        decision = cls()
        decision.fail(EligibilityCode.NOT_FOUND)
        return decision


class CouponEligibilityEvaluator:
    """Rule pipeline over a coupon, a context and the current Usage Ledger."""

    def __init__(self, db: Session):
        self.usage_repo = CouponUsageRepository(db)

    def evaluate(
        self,
        coupon: Coupon | None,
        context: EligibilityContext,
        now: datetime,
    ) -> EligibilityDecision:
        if coupon is None or coupon.is_deleted:
            return EligibilityDecision.not_found()

        now = as_utc(now)
        decision = EligibilityDecision()

        if not coupon.is_active:
            decision.fail(EligibilityCode.INACTIVE)

        if now < as_utc(coupon.valid_from):
            decision.fail(EligibilityCode.NOT_YET_VALID)
        if now > as_utc(coupon.valid_until):
            decision.fail(EligibilityCode.EXPIRED)

        if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
            if coupon.usage_count > coupon.usage_limit:
                logger.critical(
                    "Coupon %s usage_count=%d exceeds usage_limit=%d",
                    coupon.id,
                    coupon.usage_count,
                    coupon.usage_limit,
                )
            decision.fail(EligibilityCode.USAGE_LIMIT_REACHED)

        if context.order_value is not None:
            self._check_order_bounds(coupon, context.order_value, decision)

        if context.asset_type is not None and context.asset_id is not None:
            ref = AssetRef.parse(context.asset_type, context.asset_id)
            if ref is None or not coupon.applies_to(ref):
                decision.fail(EligibilityCode.NOT_APPLICABLE)

        if context.user_id is not None:
            self._check_user_rules(coupon, context.user_id, decision)

        return decision

    def _check_order_bounds(
        self, coupon: Coupon, order_value: Decimal, decision: EligibilityDecision
    ) -> None:
        minimum = coupon.minimum_order_value
        maximum = coupon.maximum_order_value
        if minimum is not None and order_value < minimum:
            decision.fail(EligibilityCode.BELOW_MINIMUM_ORDER, amount=Decimal(minimum))
        if maximum is not None and order_value > maximum:
            decision.fail(EligibilityCode.ABOVE_MAXIMUM_ORDER, amount=Decimal(maximum))

    def _check_user_rules(
        self, coupon: Coupon, user_id: str, decision: EligibilityDecision
    ) -> None:
        coupon_id: UUID = coupon.id  # type: ignore[assignment]

        if coupon.user_usage_limit is not None:
            used = self.usage_repo.count_active_by_coupon_and_user(coupon_id, user_id)
            if used >= coupon.user_usage_limit:
                decision.fail(EligibilityCode.USER_LIMIT_REACHED)

        if coupon.coupon_type == CouponType.PRIVATE.value:
            if user_id not in (coupon.allowed_users or []):
                decision.fail(EligibilityCode.USER_NOT_ALLOWED)

        if coupon.coupon_type in (
            CouponType.FIRST_PURCHASE.value,
            CouponType.RETURNING_CUSTOMER.value,
        ):
            history = self.usage_repo.count_active_by_user(user_id)
            if coupon.coupon_type == CouponType.FIRST_PURCHASE.value and history > 0:
                decision.fail(EligibilityCode.FIRST_PURCHASE_ONLY)
            if coupon.coupon_type == CouponType.RETURNING_CUSTOMER.value and history == 0:
                decision.fail(EligibilityCode.RETURNING_CUSTOMER_ONLY)


@dataclass(frozen=True)
class CouponConflict:
    code: ConflictCode
    message: str


@dataclass
class CouponCheck:
    """One requested code of a multi-coupon validation."""

    code: str
    coupon: Coupon | None
    decision: EligibilityDecision
    discount: DiscountCalculation | None = None


@dataclass
class MultiCouponValidation:
    checks: list[CouponCheck]
    valid_coupons: list[Coupon]
    conflicts: list[CouponConflict]
    total_discount: Decimal
    final_amount: Decimal | None
    order_value: Decimal | None

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)


def find_stacking_conflicts(coupons: list[Coupon]) -> list[CouponConflict]:
    """Combination rules for coupons used together on one order."""
    conflicts: list[CouponConflict] = []
    non_stackable = [coupon for coupon in coupons if not coupon.stackable]
    if len(non_stackable) > 1:
        conflicts.append(_conflict(ConflictCode.MULTIPLE_NON_STACKABLE))
    if non_stackable and len(coupons) > 1:
        conflicts.append(_conflict(ConflictCode.NON_STACKABLE_COMBINED))

    for coupon_type in SEGMENT_TYPES:
        if sum(1 for coupon in coupons if coupon.coupon_type == coupon_type) > 1:
            conflicts.append(_conflict(ConflictCode.DUPLICATE_SEGMENT, coupon_type=coupon_type))
    return conflicts


def _conflict(code: ConflictCode, **params: str) -> CouponConflict:
    return CouponConflict(code=code, message=CONFLICT_MESSAGES[code].format(**params))


class EligibilityService:
    """Resolves a coupon by id or code, then evaluates it."""

    def __init__(self, db: Session):
        self.coupon_repo = CouponRepository(db)
        self.evaluator = CouponEligibilityEvaluator(db)

    def resolve(self, coupon_id: UUID | None = None, code: str | None = None) -> Coupon | None:
        if coupon_id is not None:
            return self.coupon_repo.get_by_id(coupon_id)
        if code:
            return self.coupon_repo.get_by_code(code)
        return None

    def evaluate(
        self,
        context: EligibilityContext,
        now: datetime,
        coupon_id: UUID | None = None,
        code: str | None = None,
    ) -> tuple[Coupon | None, EligibilityDecision]:
        coupon = self.resolve(coupon_id=coupon_id, code=code)
        return coupon, self.evaluator.evaluate(coupon, context, now)

    def validate_coupons(
        self, codes: list[str], context: EligibilityContext, now: datetime
    ) -> MultiCouponValidation:
        """Evaluate several codes for one order and check they can be combined.

        Repeated codes are evaluated once. Totals only count eligible coupons
        and are only computed when the context carries an order value.
        """
        checks: list[CouponCheck] = []
        valid: list[Coupon] = []
        total = Decimal("0")
        for code in dict.fromkeys(normalize_code(code) for code in codes):
            coupon, decision = self.evaluate(context, now, code=code)
            check = CouponCheck(code=code, coupon=coupon, decision=decision)
            if coupon is not None and decision.is_eligible:
                valid.append(coupon)
                if context.order_value is not None:
                    check.discount = calculate_coupon_discount(coupon, context.order_value)
                    total += check.discount.discount_amount
            checks.append(check)

        final_amount = None
        if context.order_value is not None:
            final_amount = max(context.order_value - total, Decimal("0")).quantize(CENTS)

        return MultiCouponValidation(
            checks=checks,
            valid_coupons=valid,
            conflicts=find_stacking_conflicts(valid),
            total_discount=total.quantize(CENTS),
            final_amount=final_amount,
            order_value=context.order_value,
        )
