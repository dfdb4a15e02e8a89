"""Tests for RedemptionService: atomic redeem, ledger transitions, counter checks."""

import logging
import threading
from decimal import Decimal
from unittest.mock import patch
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from coupon_engine.core.auth import Actor, ActorRole
from coupon_engine.core.config import settings
from coupon_engine.core.database import Base
from coupon_engine.core.exceptions import (
    CouponAccessDeniedError,
    CouponUsageNotFoundError,
    CouponValidationError,
    RedemptionConflictError,
    RedemptionUnavailableError,
    UsageInvariantViolationError,
)
from coupon_engine.models.audit_log import AuditLog
from coupon_engine.models.coupon_usage import CouponUsage, CouponUsageStatus
from coupon_engine.repositories.coupon_repository import CouponRepository
from coupon_engine.repositories.coupon_usage_repository import CouponUsageRepository
from coupon_engine.schemas.coupon import CouponCreate
from coupon_engine.services.eligibility import (
    EligibilityCode,
    EligibilityContext,
    EligibilityDecision,
)
from coupon_engine.services.redemption_service import RedemptionService
from tests.conftest import NOW, coupon_payload


@pytest.fixture
def service(db_session):
    return RedemptionService(db_session)


def redeem(service, coupon, user_id="u1", **kwargs):
    context = EligibilityContext(
        user_id=user_id,
        order_value=kwargs.pop("order_value", Decimal("200")),
        asset_type=kwargs.pop("asset_type", None),
        asset_id=kwargs.pop("asset_id", None),
    )
    return service.redeem(
        coupon.id,
        context,
        discount_amount=kwargs.pop("discount_amount", Decimal("20")),
        original_amount=kwargs.pop("original_amount", Decimal("200")),
        now=kwargs.pop("now", NOW),
        **kwargs,
    )


def applied_count(db_session, coupon):
    return CouponUsageRepository(db_session).count_by_coupon_and_status(
        coupon.id, [CouponUsageStatus.APPLIED]
    )


class TestRedeem:
    def test_successful_redemption_records_usage(self, service, make_coupon, db_session):
        coupon = make_coupon(usage_limit=10)
        usage = redeem(service, coupon, booking_type="activity", booking_id="B1")

        assert isinstance(usage, CouponUsage)
        assert usage.status == CouponUsageStatus.APPLIED.value
        assert usage.user_id == "u1"
        assert usage.original_amount == Decimal("200")
        assert usage.discount_amount == Decimal("20")
        assert usage.final_amount == Decimal("180")
        assert usage.booking_id == "B1"

        db_session.refresh(coupon)
        assert coupon.usage_count == 1
        assert applied_count(db_session, coupon) == 1

    def test_redemption_is_audited(self, service, make_coupon, db_session):
        coupon = make_coupon()
        usage = redeem(service, coupon)
        log = db_session.query(AuditLog).filter(AuditLog.action == "applied").one()
        assert log.coupon_id == coupon.id
        assert log.resource_type == "coupon_usage"
        assert log.resource_id == usage.id
        assert log.changes["discount_amount"] == "20"

    def test_ineligible_coupon_returns_decision_and_writes_nothing(
        self, service, make_coupon, db_session
    ):
        coupon = make_coupon(usage_limit=1, usage_count=1)
        result = redeem(service, coupon)

        assert isinstance(result, EligibilityDecision)
        assert "Limite de uso atingido" in result.reasons
        db_session.refresh(coupon)
        assert coupon.usage_count == 1
        assert CouponUsageRepository(db_session).count_by_coupon_id(coupon.id) == 0

    def test_rules_are_revalidated_at_redemption(self, service, make_coupon):
        coupon = make_coupon(minimum_order_value=Decimal("500"))
        result = redeem(service, coupon, order_value=Decimal("200"))
        assert isinstance(result, EligibilityDecision)
        assert result.codes == [EligibilityCode.BELOW_MINIMUM_ORDER]

    def test_unknown_coupon_is_not_found(self, service, make_coupon, db_session):
        coupon = make_coupon()
        CouponRepository(db_session).soft_delete(coupon, deleted_at=NOW, deleted_by=None)
        result = redeem(service, coupon)
        assert isinstance(result, EligibilityDecision)
        assert result.is_not_found

    def test_limit_is_never_exceeded(self, service, make_coupon, db_session):
        coupon = make_coupon(usage_limit=3)
        results = [redeem(service, coupon, user_id=f"user-{i}") for i in range(6)]

        usages = [r for r in results if isinstance(r, CouponUsage)]
        refusals = [r for r in results if isinstance(r, EligibilityDecision)]
        assert len(usages) == 3
        assert len(refusals) == 3
        assert all(r.codes == [EligibilityCode.USAGE_LIMIT_REACHED] for r in refusals)
        db_session.refresh(coupon)
        assert coupon.usage_count == 3

    def test_per_user_limit_enforced_on_redeem(self, service, make_coupon):
        coupon = make_coupon(user_usage_limit=2)
        assert isinstance(redeem(service, coupon), CouponUsage)
        assert isinstance(redeem(service, coupon), CouponUsage)
        third = redeem(service, coupon)
        assert isinstance(third, EligibilityDecision)
        assert third.codes == [EligibilityCode.USER_LIMIT_REACHED]

    def test_user_id_is_required(self, service, make_coupon):
        coupon = make_coupon()
        with pytest.raises(CouponValidationError, match="user_id"):
            redeem(service, coupon, user_id=None)

    def test_discount_cannot_exceed_original(self, service, make_coupon):
        coupon = make_coupon()
        with pytest.raises(CouponValidationError):
            redeem(service, coupon, discount_amount=Decimal("300"))

    def test_lost_counter_race_raises_conflict(self, service, make_coupon, db_session):
        coupon = make_coupon(usage_limit=5)
        with (
            patch.object(service.coupon_repo, "increment_usage_count", return_value=False),
            pytest.raises(RedemptionConflictError),
        ):
            redeem(service, coupon)

        db_session.refresh(coupon)
        assert coupon.usage_count == 0
        assert CouponUsageRepository(db_session).count_by_coupon_id(coupon.id) == 0

    def test_conflict_is_retryable(self):
        assert issubclass(RedemptionConflictError, RedemptionUnavailableError)

    def test_storage_failure_rolls_back_counter(self, service, make_coupon, db_session):
        coupon = make_coupon(usage_limit=5)
        failure = OperationalError("INSERT INTO coupon_usages", {}, Exception("disk I/O error"))
        with (
            patch.object(service.usage_repo, "add", side_effect=failure),
            pytest.raises(RedemptionUnavailableError),
        ):
            redeem(service, coupon)

        db_session.refresh(coupon)
        assert coupon.usage_count == 0
        assert db_session.query(AuditLog).filter(AuditLog.action == "applied").count() == 0

    def test_counter_over_limit_is_fatal(self, service, make_coupon, db_session, caplog):
        coupon = make_coupon(usage_limit=2, usage_count=3)
        with (
            caplog.at_level(logging.CRITICAL),
            pytest.raises(UsageInvariantViolationError) as exc_info,
        ):
            redeem(service, coupon)

        assert exc_info.value.usage_count == 3
        assert exc_info.value.usage_limit == 2
        db_session.refresh(coupon)
        assert coupon.usage_count == 3
        assert any(record.levelno == logging.CRITICAL for record in caplog.records)


class TestConcurrentRedeem:
    """Redemptions racing from separate threads, each with its own session."""

    WORKERS = 8
    LIMIT = 3

    @pytest.fixture
    def file_sessions(self, tmp_path):
        engine = create_engine(
            f"sqlite:///{tmp_path / 'coupons.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        Base.metadata.create_all(bind=engine)
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
        engine.dispose()

    def test_parallel_redeems_never_exceed_limit(self, file_sessions):
        with file_sessions() as db:
            coupon = CouponRepository(db).create(
                CouponCreate(**coupon_payload(usage_limit=self.LIMIT))
            )
            coupon_id = coupon.id

        barrier = threading.Barrier(self.WORKERS)
        outcomes = []
        outcomes_lock = threading.Lock()

        def attempt(user_id):
            with file_sessions() as db:
                barrier.wait()
                try:
                    result = RedemptionService(db).redeem(
                        coupon_id,
                        EligibilityContext(user_id=user_id),
                        discount_amount=Decimal("10"),
                        original_amount=Decimal("100"),
                        now=NOW,
                    )
                except Exception as exc:
                    result = exc
            with outcomes_lock:
                outcomes.append(result)

        threads = [
            threading.Thread(target=attempt, args=(f"user-{i}",)) for i in range(self.WORKERS)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        assert len(outcomes) == self.WORKERS
        applied = [result for result in outcomes if isinstance(result, CouponUsage)]
        errors = [result for result in outcomes if isinstance(result, Exception)]
        refused = [result for result in outcomes if isinstance(result, EligibilityDecision)]

        assert 1 <= len(applied) <= self.LIMIT
        assert all(isinstance(error, RedemptionUnavailableError) for error in errors), errors
        assert all(not decision.is_eligible for decision in refused)
        assert len(applied) + len(errors) + len(refused) == self.WORKERS

        with file_sessions() as db:
            stored = CouponRepository(db).get_by_id(coupon_id)
            assert stored.usage_count == len(applied)
            assert stored.usage_count <= stored.usage_limit
            ledger = CouponUsageRepository(db).count_by_coupon_and_status(
                coupon_id, [CouponUsageStatus.APPLIED]
            )
            assert ledger == len(applied)


class TestCompareAndSwap:
    def test_increment_with_stale_count_fails(self, make_coupon, db_session):
        coupon = make_coupon(usage_limit=5, usage_count=2)
        repo = CouponRepository(db_session)
        assert repo.increment_usage_count(coupon.id, expected_count=1) is False
        db_session.commit()
        db_session.refresh(coupon)
        assert coupon.usage_count == 2

    def test_increment_refused_at_limit(self, make_coupon, db_session):
        coupon = make_coupon(usage_limit=2, usage_count=2)
        repo = CouponRepository(db_session)
        assert repo.increment_usage_count(coupon.id, expected_count=2) is False

    def test_increment_without_limit(self, make_coupon, db_session):
        coupon = make_coupon(usage_count=7)
        repo = CouponRepository(db_session)
        assert repo.increment_usage_count(coupon.id, expected_count=7) is True
        db_session.commit()
        db_session.refresh(coupon)
        assert coupon.usage_count == 8

    def test_decrement_never_goes_below_zero(self, make_coupon, db_session):
        coupon = make_coupon()
        assert CouponRepository(db_session).decrement_usage_count(coupon.id, 0) is False


class TestBookingReplay:
    def test_same_booking_replays_existing_usage(self, service, make_coupon, db_session):
        coupon = make_coupon(usage_limit=10)
        first = redeem(service, coupon, booking_type="event", booking_id="BK-1")
        second = redeem(service, coupon, booking_type="event", booking_id="BK-1")

        assert isinstance(second, CouponUsage)
        assert second.id == first.id
        db_session.refresh(coupon)
        assert coupon.usage_count == 1

    def test_replay_still_works_once_coupon_is_exhausted(self, service, make_coupon):
        coupon = make_coupon(usage_limit=1)
        first = redeem(service, coupon, booking_type="event", booking_id="BK-1")
        again = redeem(service, coupon, booking_type="event", booking_id="BK-1")
        assert isinstance(again, CouponUsage)
        assert again.id == first.id

    def test_booking_used_by_another_user_is_refused(self, service, make_coupon):
        coupon = make_coupon()
        redeem(service, coupon, booking_type="event", booking_id="BK-1")
        result = redeem(service, coupon, user_id="u2", booking_type="event", booking_id="BK-1")
        assert isinstance(result, EligibilityDecision)
        assert result.codes == [EligibilityCode.ALREADY_APPLIED_TO_BOOKING]

    def test_refunded_booking_is_not_replayed(self, service, make_coupon, db_session):
        coupon = make_coupon(usage_limit=10)
        first = redeem(service, coupon, booking_type="event", booking_id="BK-1")
        service.refund_usage(first.id, "customer refund")

        result = redeem(service, coupon, booking_type="event", booking_id="BK-1")
        assert isinstance(result, EligibilityDecision)
        assert result.codes == [EligibilityCode.ALREADY_APPLIED_TO_BOOKING]
        db_session.refresh(coupon)
        assert coupon.usage_count == 1
        assert applied_count(db_session, coupon) == 0

    def test_cancelled_booking_can_be_redeemed_again(self, service, make_coupon, db_session):
        coupon = make_coupon()
        first = redeem(service, coupon, booking_type="event", booking_id="BK-1")
        service.cancel_usage(first.id, "checkout abandoned")
        second = redeem(service, coupon, booking_type="event", booking_id="BK-1")
        assert isinstance(second, CouponUsage)
        assert second.id != first.id


class TestTransitions:
    def test_refund_keeps_capacity_consumed_by_default(self, service, make_coupon, db_session):
        coupon = make_coupon(usage_limit=1)
        usage = redeem(service, coupon)
        refunded = service.refund_usage(usage.id, "customer requested")

        assert refunded.status == CouponUsageStatus.REFUNDED.value
        assert refunded.status_reason == "customer requested"
        db_session.refresh(coupon)
        assert coupon.usage_count == 1
        assert isinstance(redeem(service, coupon, user_id="u2"), EligibilityDecision)

    def test_refund_can_release_capacity(self, service, make_coupon, db_session, monkeypatch):
        monkeypatch.setattr(settings, "COUPON_REFUND_RELEASES_CAPACITY", True)
        coupon = make_coupon(usage_limit=1)
        usage = redeem(service, coupon)
        service.refund_usage(usage.id, "customer requested")

        db_session.refresh(coupon)
        assert coupon.usage_count == 0
        assert service.verify_usage_counters() == []

    def test_cancel_releases_capacity(self, service, make_coupon, db_session):
        coupon = make_coupon(usage_limit=1, user_usage_limit=1)
        usage = redeem(service, coupon)
        cancelled = service.cancel_usage(usage.id, "booking failed")

        assert cancelled.status == CouponUsageStatus.CANCELLED.value
        db_session.refresh(coupon)
        assert coupon.usage_count == 0
        assert isinstance(redeem(service, coupon), CouponUsage)

    def test_transitions_are_audited(self, service, make_coupon, db_session):
        coupon = make_coupon()
        usage = redeem(service, coupon)
        service.refund_usage(usage.id, "chargeback")
        log = db_session.query(AuditLog).filter(AuditLog.action == "refunded").one()
        assert log.resource_id == usage.id
        assert log.changes["status"] == {"old": "applied", "new": "refunded"}
        assert log.changes["reason"] == "chargeback"

    def test_only_applied_entries_can_transition(self, service, make_coupon):
        coupon = make_coupon()
        usage = redeem(service, coupon)
        service.cancel_usage(usage.id, "first")
        with pytest.raises(CouponValidationError):
            service.refund_usage(usage.id, "second")
        with pytest.raises(CouponValidationError):
            service.cancel_usage(usage.id, "third")

    def test_unknown_usage(self, service):
        with pytest.raises(CouponUsageNotFoundError):
            service.refund_usage(uuid4(), "nope")

    def test_other_partner_cannot_refund(self, service, make_coupon):
        coupon = make_coupon(partner_id="partner-a")
        usage = redeem(service, coupon)
        intruder = Actor(role=ActorRole.PARTNER, user_id="p-b", partner_id="partner-b")
        with pytest.raises(CouponAccessDeniedError):
            service.refund_usage(usage.id, "not mine", actor=intruder)

    def test_traveler_reads_own_usage_only(self, service, make_coupon):
        coupon = make_coupon()
        usage = redeem(service, coupon, user_id="u1")
        owner = Actor(role=ActorRole.TRAVELER, user_id="u1")
        stranger = Actor(role=ActorRole.TRAVELER, user_id="u2")
        assert service.get_usage(usage.id, owner).id == usage.id
        with pytest.raises(CouponAccessDeniedError):
            service.get_usage(usage.id, stranger)


class TestCounterVerification:
    def test_counter_matches_ledger_after_mixed_activity(self, service, make_coupon, db_session):
        coupon = make_coupon(usage_limit=10)
        usages = [redeem(service, coupon, user_id=f"user-{i}") for i in range(4)]
        service.cancel_usage(usages[0].id, "abandoned")
        service.refund_usage(usages[1].id, "refund")

        db_session.refresh(coupon)
        assert coupon.usage_count == 3
        assert service.verify_usage_counters() == []

    def test_drift_is_reported_not_repaired(self, service, make_coupon, db_session, caplog):
        coupon = make_coupon(usage_limit=10)
        redeem(service, coupon)
        db_session.refresh(coupon)
        coupon.usage_count = 5
        db_session.commit()

        with caplog.at_level(logging.CRITICAL):
            mismatches = service.verify_usage_counters()

        assert len(mismatches) == 1
        assert mismatches[0].coupon_id == coupon.id
        assert mismatches[0].usage_count == 5
        assert mismatches[0].ledger_count == 1
        db_session.refresh(coupon)
        assert coupon.usage_count == 5
        assert "Usage counter mismatch" in caplog.text
