import logging
from typing import Any

from arq import cron

from coupon_engine.core.database import SessionLocal
from coupon_engine.models.shared import utc_now
from coupon_engine.services.coupon_service import CouponService
from coupon_engine.services.redemption_service import RedemptionService
from coupon_engine.tasks import redis_settings

logger = logging.getLogger(__name__)


async def process_expired_coupons_task(ctx: dict[str, Any]) -> int:
    """Background task: deactivate active coupons whose validity window has ended.

    Runs hourly. Each deactivation is audited as ``expired``.
    """
    db = SessionLocal()
    try:
        expired = CouponService(db).process_expired_coupons(utc_now())
        if expired:
            logger.info("Deactivated %d expired coupons", len(expired))
        return len(expired)
    finally:
        db.close()


async def verify_usage_counters_task(ctx: dict[str, Any]) -> int:
    """Background task: compare every coupon's usage counter with the ledger.

    Runs hourly. Mismatches are logged as critical and left untouched.
    """
    db = SessionLocal()
    try:
        mismatches = RedemptionService(db).verify_usage_counters()
        if mismatches:
            logger.critical("Found %d coupons with inconsistent usage counters", len(mismatches))
        return len(mismatches)
    finally:
        db.close()


class WorkerSettings:
    functions = [
        process_expired_coupons_task,
        verify_usage_counters_task,
    ]
    cron_jobs = [
        cron(process_expired_coupons_task, minute={0}),  # hourly
        cron(verify_usage_counters_task, minute={30}),  # hourly, offset from expiry sweep
    ]
    redis_settings = redis_settings
