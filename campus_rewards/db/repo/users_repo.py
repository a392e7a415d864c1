from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from campus_rewards.db.models.point_transactions import PointTransaction
from campus_rewards.db.models.users import User


class UsersRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, user_id: int) -> User | None:
        stmt = select(User).where(User.id == user_id).execution_options(populate_existing=True)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(session: AsyncSession, *, user: User) -> User:
        session.add(user)
        await session.flush()
        return user

    @staticmethod
    async def apply_points_delta(
        session: AsyncSession,
        *,
        user_id: int,
        delta: int,
        now_utc: datetime,
    ) -> int | None:
        """Returns the new balance, or None when the user is missing or would go negative."""
        stmt = (
            update(User)
            .where(
                User.id == user_id,
                User.points_balance + delta >= 0,
            )
            .values(
                points_balance=User.points_balance + delta,
                updated_at=now_utc,
            )
            .returning(User.points_balance)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_ledger_drift(
        session: AsyncSession,
        *,
        limit: int = 100,
    ) -> list[tuple[int, int, int]]:
        ledger_totals = (
            select(
                PointTransaction.user_id.label("user_id"),
                func.sum(PointTransaction.amount).label("ledger_sum"),
            )
            .group_by(PointTransaction.user_id)
            .subquery()
        )
        ledger_sum = func.coalesce(ledger_totals.c.ledger_sum, 0)
        stmt = (
            select(User.id, User.points_balance, ledger_sum)
            .select_from(User)
            .outerjoin(ledger_totals, ledger_totals.c.user_id == User.id)
            .where(User.points_balance != ledger_sum)
            .order_by(User.id.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return [(int(user_id), int(balance), int(total)) for user_id, balance, total in result.all()]
