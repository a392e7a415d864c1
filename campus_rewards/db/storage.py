from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol
from uuid import UUID

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from campus_rewards.db.models.audit_events import AuditEvent
from campus_rewards.db.models.point_transactions import PointTransaction
from campus_rewards.db.models.redemptions import Redemption
from campus_rewards.db.models.rewards import Reward
from campus_rewards.db.models.streak_state import StreakState
from campus_rewards.db.models.users import User
from campus_rewards.db.repo.audit_events_repo import AuditEventsRepo
from campus_rewards.db.repo.point_transactions_repo import PointTransactionsRepo
from campus_rewards.db.repo.redemptions_repo import RedemptionsRepo
from campus_rewards.db.repo.rewards_repo import RewardsRepo
from campus_rewards.db.repo.streak_repo import StreakRepo
from campus_rewards.db.repo.users_repo import UsersRepo

logger = structlog.get_logger(__name__)


class StorageError(Exception):
    """The backing store failed; the unit of work was rolled back."""


class StorageConflictError(StorageError):
    """A uniqueness constraint rejected the unit of work."""


@dataclass(frozen=True, slots=True)
class LedgerDrift:
    user_id: int
    points_balance: int
    ledger_sum: int


@dataclass(frozen=True, slots=True)
class RedemptionListRow:
    redemption: Redemption
    user_display_name: str | None
    reward_name: str
    reward_category: str


class RewardsTransaction(Protocol):
    async def get_user(self, user_id: int) -> User | None: ...

    async def apply_points_delta(
        self, *, user_id: int, delta: int, now_utc: datetime
    ) -> int | None: ...

    async def get_point_transaction(self, reference: str) -> PointTransaction | None: ...

    async def add_point_transaction(self, entry: PointTransaction) -> PointTransaction: ...

    async def sum_point_transactions(self, user_id: int) -> int: ...

    async def get_reward(self, reward_id: int) -> Reward | None: ...

    async def take_reward_stock(self, *, reward_id: int, now_utc: datetime) -> bool: ...

    async def return_reward_stock(self, *, reward_id: int, now_utc: datetime) -> bool: ...

    async def get_redemption(self, redemption_id: UUID) -> Redemption | None: ...

    async def get_redemption_by_code(self, redemption_code: str) -> Redemption | None: ...

    async def get_redemption_by_idempotency_key(self, idempotency_key: str) -> Redemption | None: ...

    async def add_redemption(self, redemption: Redemption) -> Redemption: ...

    async def transition_redemption(
        self,
        *,
        redemption_id: UUID,
        from_status: str,
        to_status: str,
        now_utc: datetime,
        require_unexpired: bool,
        verified_by: str | None = None,
    ) -> bool: ...

    async def expire_overdue_redemptions(self, *, now_utc: datetime, limit: int) -> list[UUID]: ...

    async def list_redemptions(
        self,
        *,
        status: str | None,
        user_id: int | None,
        limit: int,
        offset: int,
    ) -> tuple[list[RedemptionListRow], int]: ...

    async def get_streak_state(self, user_id: int) -> StreakState | None: ...

    async def save_streak_state(self, state: StreakState) -> StreakState: ...

    async def add_audit_event(self, event: AuditEvent) -> AuditEvent: ...

    async def list_ledger_drift(self, *, limit: int) -> list[LedgerDrift]: ...


class RewardsStorage(Protocol):
    def transaction(self) -> AbstractAsyncContextManager[RewardsTransaction]:
        """Opens a unit of work that commits on clean exit and rolls back on error."""
        ...


class SqlRewardsTransaction:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_user(self, user_id: int) -> User | None:
        return await UsersRepo.get_by_id(self._session, user_id)

    async def apply_points_delta(self, *, user_id: int, delta: int, now_utc: datetime) -> int | None:
        return await UsersRepo.apply_points_delta(
            self._session,
            user_id=user_id,
            delta=delta,
            now_utc=now_utc,
        )

    async def get_point_transaction(self, reference: str) -> PointTransaction | None:
        return await PointTransactionsRepo.get_by_reference(self._session, reference)

    async def add_point_transaction(self, entry: PointTransaction) -> PointTransaction:
        return await PointTransactionsRepo.create(self._session, entry=entry)

    async def sum_point_transactions(self, user_id: int) -> int:
        return await PointTransactionsRepo.sum_for_user(self._session, user_id=user_id)

    async def get_reward(self, reward_id: int) -> Reward | None:
        return await RewardsRepo.get_by_id(self._session, reward_id)

    async def take_reward_stock(self, *, reward_id: int, now_utc: datetime) -> bool:
        return await RewardsRepo.take_stock(self._session, reward_id=reward_id, now_utc=now_utc)

    async def return_reward_stock(self, *, reward_id: int, now_utc: datetime) -> bool:
        return await RewardsRepo.return_stock(self._session, reward_id=reward_id, now_utc=now_utc)

    async def get_redemption(self, redemption_id: UUID) -> Redemption | None:
        return await RedemptionsRepo.get_by_id(self._session, redemption_id)

    async def get_redemption_by_code(self, redemption_code: str) -> Redemption | None:
        return await RedemptionsRepo.get_by_code(self._session, redemption_code)

    async def get_redemption_by_idempotency_key(self, idempotency_key: str) -> Redemption | None:
        return await RedemptionsRepo.get_by_idempotency_key(self._session, idempotency_key)

    async def add_redemption(self, redemption: Redemption) -> Redemption:
        return await RedemptionsRepo.create(self._session, redemption=redemption)

    async def transition_redemption(
        self,
        *,
        redemption_id: UUID,
        from_status: str,
        to_status: str,
        now_utc: datetime,
        require_unexpired: bool,
        verified_by: str | None = None,
    ) -> bool:
        return await RedemptionsRepo.transition_status(
            self._session,
            redemption_id=redemption_id,
            from_status=from_status,
            to_status=to_status,
            now_utc=now_utc,
            require_unexpired=require_unexpired,
            verified_by=verified_by,
        )

    async def expire_overdue_redemptions(self, *, now_utc: datetime, limit: int) -> list[UUID]:
        return await RedemptionsRepo.expire_overdue(self._session, now_utc=now_utc, limit=limit)

    async def list_redemptions(
        self,
        *,
        status: str | None,
        user_id: int | None,
        limit: int,
        offset: int,
    ) -> tuple[list[RedemptionListRow], int]:
        rows = await RedemptionsRepo.list_page(
            self._session,
            status=status,
            user_id=user_id,
            limit=limit,
            offset=offset,
        )
        total = await RedemptionsRepo.count_matching(self._session, status=status, user_id=user_id)
        return [
            RedemptionListRow(
                redemption=redemption,
                user_display_name=display_name,
                reward_name=reward_name,
                reward_category=reward_category,
            )
            for redemption, display_name, reward_name, reward_category in rows
        ], total

    async def get_streak_state(self, user_id: int) -> StreakState | None:
        return await StreakRepo.get_by_user_id_for_update(self._session, user_id)

    async def save_streak_state(self, state: StreakState) -> StreakState:
        return await StreakRepo.save(self._session, state=state)

    async def add_audit_event(self, event: AuditEvent) -> AuditEvent:
        return await AuditEventsRepo.create(self._session, event=event)

    async def list_ledger_drift(self, *, limit: int) -> list[LedgerDrift]:
        rows = await UsersRepo.list_ledger_drift(self._session, limit=limit)
        return [
            LedgerDrift(user_id=user_id, points_balance=balance, ledger_sum=ledger_sum)
            for user_id, balance, ledger_sum in rows
        ]


class SqlRewardsStorage:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SqlRewardsTransaction]:
        try:
            async with self._session_factory.begin() as session:
                yield SqlRewardsTransaction(session)
        except IntegrityError as exc:
            logger.info("storage_conflict", error_type=type(exc.orig).__name__)
            raise StorageConflictError("unique constraint violated") from exc
        except (SQLAlchemyError, OSError) as exc:
            logger.error("storage_unavailable", error_type=type(exc).__name__)
            raise StorageError("storage unavailable") from exc
