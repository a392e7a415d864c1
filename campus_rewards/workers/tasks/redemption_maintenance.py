from __future__ import annotations

from datetime import datetime, timezone

import structlog

from campus_rewards.services.wiring import get_components
from campus_rewards.workers.asyncio_runner import run_async_job
from campus_rewards.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)
LEDGER_DRIFT_SCAN_LIMIT = 500


async def run_redemption_expiry_async() -> dict[str, int]:
    now_utc = datetime.now(timezone.utc)
    expired_count = await get_components().redemptions.expire_overdue(now_utc=now_utc)

    result = {"expired_redemptions": expired_count}
    logger.info("redemption_expiry_finished", **result)
    return result


async def run_ledger_reconciliation_async() -> dict[str, int]:
    async with get_components().storage.transaction() as tx:
        drifts = await tx.list_ledger_drift(limit=LEDGER_DRIFT_SCAN_LIMIT)

    for drift in drifts:
        logger.warning(
            "point_ledger_drift_detected",
            user_id=drift.user_id,
            points_balance=drift.points_balance,
            ledger_sum=drift.ledger_sum,
        )

    result = {"users_with_drift": len(drifts)}
    if drifts:
        logger.error("point_ledger_reconciliation_failed", **result)
    else:
        logger.info("point_ledger_reconciliation_finished", **result)
    return result


@celery_app.task(name="campus_rewards.workers.tasks.redemption_maintenance.run_redemption_expiry")
def run_redemption_expiry() -> dict[str, int]:
    return run_async_job(run_redemption_expiry_async())


@celery_app.task(name="campus_rewards.workers.tasks.redemption_maintenance.run_ledger_reconciliation")
def run_ledger_reconciliation() -> dict[str, int]:
    return run_async_job(run_ledger_reconciliation_async())


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        "redemption-expiry-every-minute": {
            "task": "campus_rewards.workers.tasks.redemption_maintenance.run_redemption_expiry",
            "schedule": 60.0,
            "options": {"queue": "q_normal"},
        },
        "ledger-reconciliation-hourly": {
            "task": "campus_rewards.workers.tasks.redemption_maintenance.run_ledger_reconciliation",
            "schedule": 3600.0,
            "options": {"queue": "q_normal"},
        },
    }
)
