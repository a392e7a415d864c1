from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_rewards.db.models.point_transactions import PointTransaction


class PointTransactionsRepo:
    @staticmethod
    async def get_by_reference(session: AsyncSession, reference: str) -> PointTransaction | None:
        stmt = select(PointTransaction).where(PointTransaction.reference == reference)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(session: AsyncSession, *, entry: PointTransaction) -> PointTransaction:
        session.add(entry)
        await session.flush()
        return entry

    @staticmethod
    async def sum_for_user(session: AsyncSession, *, user_id: int) -> int:
        stmt = select(func.coalesce(func.sum(PointTransaction.amount), 0)).where(
            PointTransaction.user_id == user_id
        )
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def list_for_redemption(
        session: AsyncSession,
        *,
        redemption_id: UUID,
    ) -> list[PointTransaction]:
        stmt = (
            select(PointTransaction)
            .where(PointTransaction.redemption_id == redemption_id)
            .order_by(PointTransaction.id.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
