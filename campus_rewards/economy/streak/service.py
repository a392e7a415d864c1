from __future__ import annotations

from datetime import datetime

import structlog

from campus_rewards.db.models.streak_state import StreakState
from campus_rewards.db.storage import RewardsStorage, RewardsTransaction, StorageConflictError
from campus_rewards.economy.ledger.errors import LedgerUserNotFoundError
from campus_rewards.economy.ledger.service import PointLedger
from campus_rewards.economy.ledger.types import TransactionType
from campus_rewards.economy.streak.constants import DEFAULT_CAMPUS_TIMEZONE, EARNING_ROLES
from campus_rewards.economy.streak.rules import advance_streak, points_for_streak
from campus_rewards.economy.streak.time import campus_local_date
from campus_rewards.economy.streak.types import DailyAwardResult, StreakSnapshot

logger = structlog.get_logger(__name__)


def streak_reference(user_id: int, local_date_iso: str) -> str:
    return f"streak:{user_id}:{local_date_iso}"


class StreakService:
    @staticmethod
    async def award_daily_points(
        storage: RewardsStorage,
        *,
        user_id: int,
        now_utc: datetime,
        timezone_name: str = DEFAULT_CAMPUS_TIMEZONE,
    ) -> DailyAwardResult:
        try:
            async with storage.transaction() as tx:
                return await StreakService.award_daily_points_in_tx(
                    tx,
                    user_id=user_id,
                    now_utc=now_utc,
                    timezone_name=timezone_name,
                )
        except StorageConflictError:
            # Another request for the same day won the insert; the retry replays it.
            async with storage.transaction() as tx:
                return await StreakService.award_daily_points_in_tx(
                    tx,
                    user_id=user_id,
                    now_utc=now_utc,
                    timezone_name=timezone_name,
                )

    @staticmethod
    async def award_daily_points_in_tx(
        tx: RewardsTransaction,
        *,
        user_id: int,
        now_utc: datetime,
        timezone_name: str = DEFAULT_CAMPUS_TIMEZONE,
    ) -> DailyAwardResult:
        local_date = campus_local_date(now_utc, timezone_name)
        user = await tx.get_user(user_id)
        if user is None:
            raise LedgerUserNotFoundError

        state = await tx.get_streak_state(user_id)
        snapshot = StreakSnapshot(
            current_streak=state.current_streak if state is not None else 0,
            longest_streak=state.longest_streak if state is not None else 0,
            last_activity_local_date=state.last_activity_local_date if state is not None else None,
        )

        if user.is_banned or user.role not in EARNING_ROLES:
            return DailyAwardResult(
                user_id=user_id,
                local_date=local_date,
                eligible=False,
                points_awarded=0,
                current_streak=snapshot.current_streak,
                longest_streak=snapshot.longest_streak,
                points_balance=user.points_balance,
                idempotent_replay=False,
            )

        reference = streak_reference(user_id, local_date.isoformat())
        existing = await tx.get_point_transaction(reference)
        if existing is not None or snapshot.last_activity_local_date == local_date:
            return DailyAwardResult(
                user_id=user_id,
                local_date=local_date,
                eligible=True,
                points_awarded=existing.amount if existing is not None else 0,
                current_streak=snapshot.current_streak,
                longest_streak=snapshot.longest_streak,
                points_balance=user.points_balance,
                idempotent_replay=True,
            )

        advanced = advance_streak(snapshot, local_date=local_date)
        points = points_for_streak(advanced.current_streak)
        posting = await PointLedger.credit(
            tx,
            user_id=user_id,
            amount=points,
            reference=reference,
            now_utc=now_utc,
            transaction_type=TransactionType.PLEDGE_REWARD,
            description=f"Daily pledge - Day {advanced.current_streak} streak (+{points} pts)",
        )

        if state is None:
            state = StreakState(user_id=user_id, version=0)
        state.current_streak = advanced.current_streak
        state.longest_streak = advanced.longest_streak
        state.last_activity_local_date = local_date
        state.version = (state.version or 0) + 1
        state.updated_at = now_utc
        await tx.save_streak_state(state)

        logger.info(
            "streak_points_awarded",
            user_id=user_id,
            local_date=local_date.isoformat(),
            current_streak=advanced.current_streak,
            points_awarded=points,
        )
        return DailyAwardResult(
            user_id=user_id,
            local_date=local_date,
            eligible=True,
            points_awarded=points,
            current_streak=advanced.current_streak,
            longest_streak=advanced.longest_streak,
            points_balance=posting.balance_after,
            idempotent_replay=False,
        )
