from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, event
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from campus_rewards.db.models.base import Base

TRANSACTION_TYPES = (
    "redemption_debit",
    "refund_credit",
    "pledge_reward",
    "admin_adjustment",
)


class PointTransaction(Base):
    __tablename__ = "point_transactions"
    __table_args__ = (
        CheckConstraint("amount <> 0", name="amount_non_zero"),
        CheckConstraint("balance_after >= 0", name="balance_after_non_negative"),
        CheckConstraint(
            "transaction_type IN ('redemption_debit','refund_credit','pledge_reward','admin_adjustment')",
            name="transaction_type",
        ),
        Index("idx_point_transactions_user_created", "user_id", "created_at"),
        Index("idx_point_transactions_redemption", "redemption_id"),
        Index("idx_point_transactions_type", "transaction_type"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_type: Mapped[str] = mapped_column(String(32), nullable=False)
    reference: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    redemption_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("reward_redemptions.id"),
        nullable=True,
    )
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


@event.listens_for(PointTransaction, "before_update")
def _forbid_ledger_update(mapper, connection, target) -> None:
    raise ValueError("point_transactions is append-only")


@event.listens_for(PointTransaction, "before_delete")
def _forbid_ledger_delete(mapper, connection, target) -> None:
    raise ValueError("point_transactions is append-only")
