from __future__ import annotations

from datetime import datetime
from uuid import UUID

import structlog

from campus_rewards.db.models.point_transactions import PointTransaction
from campus_rewards.db.storage import RewardsTransaction
from campus_rewards.economy.ledger.errors import (
    InsufficientBalanceError,
    LedgerReferenceConflictError,
    LedgerUserNotFoundError,
)
from campus_rewards.economy.ledger.types import (
    LedgerPosting,
    LedgerReconciliation,
    TransactionType,
)

logger = structlog.get_logger(__name__)


def _posting_from_entry(entry: PointTransaction, *, idempotent_replay: bool) -> LedgerPosting:
    return LedgerPosting(
        user_id=entry.user_id,
        amount=entry.amount,
        transaction_type=TransactionType(entry.transaction_type),
        reference=entry.reference,
        balance_after=entry.balance_after,
        idempotent_replay=idempotent_replay,
        redemption_id=entry.redemption_id,
    )


class PointLedger:
    """Single writer of user balances.

    Every call runs inside the caller's unit of work, so a debit can share a
    transaction with the redemption insert and the stock decrement. A reference
    seen before replays the stored posting instead of moving points again.
    """

    @staticmethod
    async def debit(
        tx: RewardsTransaction,
        *,
        user_id: int,
        amount: int,
        reference: str,
        now_utc: datetime,
        transaction_type: TransactionType = TransactionType.REDEMPTION_DEBIT,
        redemption_id: UUID | None = None,
        description: str | None = None,
    ) -> LedgerPosting:
        if amount <= 0:
            raise ValueError("amount must be positive")
        return await PointLedger._post(
            tx,
            user_id=user_id,
            delta=-amount,
            reference=reference,
            now_utc=now_utc,
            transaction_type=transaction_type,
            redemption_id=redemption_id,
            description=description,
        )

    @staticmethod
    async def credit(
        tx: RewardsTransaction,
        *,
        user_id: int,
        amount: int,
        reference: str,
        now_utc: datetime,
        transaction_type: TransactionType,
        redemption_id: UUID | None = None,
        description: str | None = None,
    ) -> LedgerPosting:
        if amount <= 0:
            raise ValueError("amount must be positive")
        return await PointLedger._post(
            tx,
            user_id=user_id,
            delta=amount,
            reference=reference,
            now_utc=now_utc,
            transaction_type=transaction_type,
            redemption_id=redemption_id,
            description=description,
        )

    @staticmethod
    async def _post(
        tx: RewardsTransaction,
        *,
        user_id: int,
        delta: int,
        reference: str,
        now_utc: datetime,
        transaction_type: TransactionType,
        redemption_id: UUID | None,
        description: str | None,
    ) -> LedgerPosting:
        existing = await tx.get_point_transaction(reference)
        if existing is not None:
            if existing.user_id != user_id or existing.amount != delta:
                raise LedgerReferenceConflictError(reference)
            return _posting_from_entry(existing, idempotent_replay=True)

        balance_after = await tx.apply_points_delta(user_id=user_id, delta=delta, now_utc=now_utc)
        if balance_after is None:
            user = await tx.get_user(user_id)
            if user is None:
                raise LedgerUserNotFoundError
            raise InsufficientBalanceError(required=-delta, available=user.points_balance)

        entry = await tx.add_point_transaction(
            PointTransaction(
                user_id=user_id,
                amount=delta,
                transaction_type=transaction_type.value,
                reference=reference,
                redemption_id=redemption_id,
                balance_after=balance_after,
                description=description,
                created_at=now_utc,
            )
        )
        logger.info(
            "point_ledger_posted",
            user_id=user_id,
            amount=delta,
            transaction_type=transaction_type.value,
            reference=reference,
            balance_after=balance_after,
        )
        return _posting_from_entry(entry, idempotent_replay=False)

    @staticmethod
    async def reconcile(tx: RewardsTransaction, *, user_id: int) -> LedgerReconciliation:
        user = await tx.get_user(user_id)
        if user is None:
            raise LedgerUserNotFoundError
        ledger_sum = await tx.sum_point_transactions(user_id)
        return LedgerReconciliation(
            user_id=user_id,
            points_balance=user.points_balance,
            ledger_sum=ledger_sum,
        )
