from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

import structlog

from campus_rewards.db.models.audit_events import AuditEvent
from campus_rewards.db.storage import RewardsStorage, StorageError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class AuditRecord:
    action: str
    outcome: str
    entity_type: str
    occurred_at: datetime
    entity_id: str | None = None
    actor_id: str | None = None
    security_flagged: bool = False
    payload: dict[str, Any] = field(default_factory=dict)


class AuditSink(Protocol):
    async def emit(self, record: AuditRecord) -> None: ...


class StorageAuditSink:
    """Writes audit records to ``audit_events`` in their own unit of work.

    Audit writes happen after the business transaction has committed, so a
    failed write is logged and never reverses the outcome it describes.
    """

    def __init__(self, storage: RewardsStorage) -> None:
        self._storage = storage

    async def emit(self, record: AuditRecord) -> None:
        log = logger.warning if record.security_flagged else logger.info
        log(
            "audit_event",
            audit_action=record.action,
            audit_outcome=record.outcome,
            entity_type=record.entity_type,
            entity_id=record.entity_id,
            actor_id=record.actor_id,
            security_flagged=record.security_flagged,
        )
        try:
            async with self._storage.transaction() as tx:
                await tx.add_audit_event(
                    AuditEvent(
                        action=record.action,
                        outcome=record.outcome,
                        entity_type=record.entity_type,
                        entity_id=record.entity_id,
                        actor_id=record.actor_id,
                        security_flagged=record.security_flagged,
                        payload=record.payload,
                        created_at=record.occurred_at,
                    )
                )
        except StorageError:
            logger.exception(
                "audit_event_persist_failed",
                audit_action=record.action,
                entity_id=record.entity_id,
            )
