from campus_rewards.workers.tasks.redemption_maintenance import (
    run_ledger_reconciliation,
    run_redemption_expiry,
)

__all__ = [
    "run_ledger_reconciliation",
    "run_redemption_expiry",
]
