from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID


class TransactionType(str, Enum):
    REDEMPTION_DEBIT = "redemption_debit"
    REFUND_CREDIT = "refund_credit"
    PLEDGE_REWARD = "pledge_reward"
    ADMIN_ADJUSTMENT = "admin_adjustment"


@dataclass(slots=True)
class LedgerPosting:
    user_id: int
    amount: int
    transaction_type: TransactionType
    reference: str
    balance_after: int
    idempotent_replay: bool
    redemption_id: UUID | None = None


@dataclass(slots=True)
class LedgerReconciliation:
    user_id: int
    points_balance: int
    ledger_sum: int

    @property
    def drift(self) -> int:
        return self.points_balance - self.ledger_sum

    @property
    def is_consistent(self) -> bool:
        return self.drift == 0
