from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_rewards.db.models.audit_events import AuditEvent


class AuditEventsRepo:
    @staticmethod
    async def create(session: AsyncSession, *, event: AuditEvent) -> AuditEvent:
        session.add(event)
        await session.flush()
        return event

    @staticmethod
    async def list_for_entity(
        session: AsyncSession,
        *,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        stmt = (
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == entity_id,
            )
            .order_by(AuditEvent.id.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
