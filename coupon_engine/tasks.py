"""Enqueue helpers for the coupon worker (see ``coupon_engine.worker``)."""

from typing import Any

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from arq.jobs import Job

from coupon_engine.core.config import settings

redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)


async def get_redis_pool() -> ArqRedis:
    return await create_pool(redis_settings)


async def enqueue_task(task_name: str, *args: Any, **kwargs: Any) -> Job | None:
    """Enqueue ``task_name`` on the worker queue.

    Returns None when arq refuses a job whose ``_job_id`` is already queued.
    The pool is closed whether or not enqueueing succeeds.
    """
    pool = await get_redis_pool()
    try:
        return await pool.enqueue_job(task_name, *args, **kwargs)
    finally:
        await pool.close()


async def enqueue_process_expired_coupons() -> Job | None:
    """Run the expiry sweep now instead of waiting for the hourly cron.

    A fixed job id keeps repeated requests from queueing overlapping sweeps.
    """
    return await enqueue_task("process_expired_coupons_task", _job_id="process_expired_coupons")


async def enqueue_verify_usage_counters() -> Job | None:
    return await enqueue_task("verify_usage_counters_task", _job_id="verify_usage_counters")
