from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_rewards.db.models.streak_state import StreakState


class StreakRepo:
    @staticmethod
    async def get_by_user_id_for_update(session: AsyncSession, user_id: int) -> StreakState | None:
        stmt = select(StreakState).where(StreakState.user_id == user_id).with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def save(session: AsyncSession, *, state: StreakState) -> StreakState:
        session.add(state)
        await session.flush()
        return state
