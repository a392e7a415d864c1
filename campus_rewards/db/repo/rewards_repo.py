from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from campus_rewards.db.models.rewards import Reward


class RewardsRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, reward_id: int) -> Reward | None:
        stmt = select(Reward).where(Reward.id == reward_id).execution_options(populate_existing=True)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(session: AsyncSession, *, reward: Reward) -> Reward:
        session.add(reward)
        await session.flush()
        return reward

    @staticmethod
    async def take_stock(session: AsyncSession, *, reward_id: int, now_utc: datetime) -> bool:
        # NULL remaining_quantity means unlimited; NULL - 1 stays NULL.
        stmt = (
            update(Reward)
            .where(
                Reward.id == reward_id,
                (Reward.remaining_quantity.is_(None)) | (Reward.remaining_quantity > 0),
            )
            .values(
                remaining_quantity=Reward.remaining_quantity - 1,
                updated_at=now_utc,
            )
            .returning(Reward.id)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def return_stock(session: AsyncSession, *, reward_id: int, now_utc: datetime) -> bool:
        stmt = (
            update(Reward)
            .where(
                Reward.id == reward_id,
                Reward.remaining_quantity.is_not(None),
            )
            .values(
                remaining_quantity=Reward.remaining_quantity + 1,
                updated_at=now_utc,
            )
            .returning(Reward.id)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None
