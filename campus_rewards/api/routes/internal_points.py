from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, HTTPException, Request

from campus_rewards.db.storage import StorageError
from campus_rewards.economy.ledger.errors import LedgerError, LedgerUserNotFoundError
from campus_rewards.economy.ledger.service import PointLedger
from campus_rewards.economy.streak.service import StreakService
from campus_rewards.services.wiring import get_components

from .internal_rewards_helpers import _assert_internal_access
from .internal_rewards_models import (
    DailyAwardRequest,
    DailyAwardResponse,
    LedgerReconciliationResponse,
)

router = APIRouter(tags=["internal", "points"])
logger = structlog.get_logger(__name__)


@router.post("/internal/points/daily-award", response_model=DailyAwardResponse)
async def award_daily_points(payload: DailyAwardRequest, request: Request) -> DailyAwardResponse:
    _assert_internal_access(request)
    components = get_components()
    try:
        result = await StreakService.award_daily_points(
            components.storage,
            user_id=payload.user_id,
            now_utc=datetime.now(timezone.utc),
            timezone_name=components.settings.campus_timezone,
        )
    except LedgerUserNotFoundError as exc:
        raise HTTPException(status_code=404, detail={"code": "E_NOT_FOUND"}) from exc
    except LedgerError as exc:
        logger.warning("daily_award_ledger_rejected", user_id=payload.user_id, error_type=type(exc).__name__)
        raise HTTPException(status_code=409, detail={"code": "E_LEDGER_CONFLICT"}) from exc
    except StorageError as exc:
        raise HTTPException(status_code=503, detail={"code": "E_UNAVAILABLE"}) from exc

    return DailyAwardResponse(
        user_id=result.user_id,
        local_date=result.local_date,
        eligible=result.eligible,
        points_awarded=result.points_awarded,
        current_streak=result.current_streak,
        longest_streak=result.longest_streak,
        points_balance=result.points_balance,
        idempotent_replay=result.idempotent_replay,
    )


@router.get(
    "/internal/points/{user_id}/reconciliation",
    response_model=LedgerReconciliationResponse,
)
async def reconcile_user_points(user_id: int, request: Request) -> LedgerReconciliationResponse:
    _assert_internal_access(request)
    try:
        async with get_components().storage.transaction() as tx:
            reconciliation = await PointLedger.reconcile(tx, user_id=user_id)
    except LedgerUserNotFoundError as exc:
        raise HTTPException(status_code=404, detail={"code": "E_NOT_FOUND"}) from exc
    except StorageError as exc:
        raise HTTPException(status_code=503, detail={"code": "E_UNAVAILABLE"}) from exc

    if not reconciliation.is_consistent:
        logger.warning(
            "point_ledger_drift_detected",
            user_id=user_id,
            points_balance=reconciliation.points_balance,
            ledger_sum=reconciliation.ledger_sum,
        )
    return LedgerReconciliationResponse(
        user_id=reconciliation.user_id,
        points_balance=reconciliation.points_balance,
        ledger_sum=reconciliation.ledger_sum,
        drift=reconciliation.drift,
        is_consistent=reconciliation.is_consistent,
    )
