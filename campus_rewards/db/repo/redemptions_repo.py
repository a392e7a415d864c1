from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import ColumnElement, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from campus_rewards.db.models.redemptions import Redemption
from campus_rewards.db.models.rewards import Reward
from campus_rewards.db.models.users import User


def _list_filters(*, status: str | None, user_id: int | None) -> list[ColumnElement[bool]]:
    conditions: list[ColumnElement[bool]] = []
    if status is not None:
        conditions.append(Redemption.status == status)
    if user_id is not None:
        conditions.append(Redemption.user_id == user_id)
    return conditions


class RedemptionsRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, redemption_id: UUID) -> Redemption | None:
        stmt = (
            select(Redemption)
            .where(Redemption.id == redemption_id)
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_code(session: AsyncSession, redemption_code: str) -> Redemption | None:
        stmt = (
            select(Redemption)
            .where(Redemption.redemption_code == redemption_code)
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_idempotency_key(
        session: AsyncSession,
        idempotency_key: str,
    ) -> Redemption | None:
        stmt = select(Redemption).where(Redemption.idempotency_key == idempotency_key)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(session: AsyncSession, *, redemption: Redemption) -> Redemption:
        session.add(redemption)
        await session.flush()
        return redemption

    @staticmethod
    async def transition_status(
        session: AsyncSession,
        *,
        redemption_id: UUID,
        from_status: str,
        to_status: str,
        now_utc: datetime,
        require_unexpired: bool,
        verified_by: str | None = None,
    ) -> bool:
        """Compare-and-set on status. Only one concurrent caller sees True."""
        conditions = [
            Redemption.id == redemption_id,
            Redemption.status == from_status,
        ]
        if require_unexpired:
            conditions.append(
                (Redemption.expires_at.is_(None)) | (Redemption.expires_at > now_utc)
            )

        values: dict[str, object] = {"status": to_status, "updated_at": now_utc}
        if to_status == "verified":
            values["verified_at"] = now_utc
            values["verified_by"] = verified_by
        elif to_status == "cancelled":
            values["cancelled_at"] = now_utc

        stmt = (
            update(Redemption)
            .where(*conditions)
            .values(**values)
            .returning(Redemption.id)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def expire_overdue(
        session: AsyncSession,
        *,
        now_utc: datetime,
        limit: int,
    ) -> list[UUID]:
        overdue_ids = (
            select(Redemption.id)
            .where(
                Redemption.status == "pending",
                Redemption.expires_at.is_not(None),
                Redemption.expires_at <= now_utc,
            )
            .order_by(Redemption.expires_at.asc(), Redemption.id.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        stmt = (
            update(Redemption)
            .where(
                Redemption.id.in_(overdue_ids),
                Redemption.status == "pending",
            )
            .values(status="expired", updated_at=now_utc)
            .returning(Redemption.id)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_page(
        session: AsyncSession,
        *,
        status: str | None,
        user_id: int | None,
        limit: int,
        offset: int,
    ) -> list[tuple[Redemption, str | None, str, str]]:
        stmt = (
            select(Redemption, User.display_name, Reward.name, Reward.category)
            .join(User, User.id == Redemption.user_id)
            .join(Reward, Reward.id == Redemption.reward_id)
            .where(*_list_filters(status=status, user_id=user_id))
            .order_by(Redemption.created_at.desc(), Redemption.id.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await session.execute(stmt)
        return [(row[0], row[1], row[2], row[3]) for row in result.all()]

    @staticmethod
    async def count_matching(
        session: AsyncSession,
        *,
        status: str | None,
        user_id: int | None,
    ) -> int:
        stmt = (
            select(func.count())
            .select_from(Redemption)
            .where(*_list_filters(status=status, user_id=user_id))
        )
        result = await session.execute(stmt)
        return int(result.scalar_one())
