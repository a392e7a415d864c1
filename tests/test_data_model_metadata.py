from __future__ import annotations

from sqlalchemy import CheckConstraint, UniqueConstraint

from campus_rewards.db.models import (  # noqa: F401
    AuditEvent,
    PointTransaction,
    Redemption,
    Reward,
    StreakState,
    User,
)
from campus_rewards.db.models.base import Base


def _check_names(table_name: str) -> set[str]:
    table = Base.metadata.tables[table_name]
    return {constraint.name for constraint in table.constraints if isinstance(constraint, CheckConstraint)}


def _unique_names(table_name: str) -> set[str]:
    table = Base.metadata.tables[table_name]
    return {constraint.name for constraint in table.constraints if isinstance(constraint, UniqueConstraint)}


def test_all_reward_tables_registered() -> None:
    expected_tables = {
        "users",
        "rewards",
        "reward_redemptions",
        "point_transactions",
        "streak_state",
        "audit_events",
    }
    assert expected_tables.issubset(set(Base.metadata.tables))


def test_critical_constraints_present() -> None:
    assert "ck_users_points_balance_non_negative" in _check_names("users")
    assert "ck_users_role" in _check_names("users")

    assert "ck_rewards_point_cost_positive" in _check_names("rewards")
    assert "ck_rewards_remaining_quantity_non_negative" in _check_names("rewards")

    assert "ck_reward_redemptions_status" in _check_names("reward_redemptions")
    assert "ck_reward_redemptions_points_spent_positive" in _check_names("reward_redemptions")
    redemption_uniques = _unique_names("reward_redemptions")
    assert "uq_reward_redemptions_redemption_code" in redemption_uniques
    assert "uq_reward_redemptions_idempotency_key" in redemption_uniques
    redemption_indexes = {index.name for index in Base.metadata.tables["reward_redemptions"].indexes}
    assert "idx_redemptions_status_expires" in redemption_indexes

    assert "ck_point_transactions_amount_non_zero" in _check_names("point_transactions")
    assert "ck_point_transactions_transaction_type" in _check_names("point_transactions")
    assert "uq_point_transactions_reference" in _unique_names("point_transactions")

    audit_indexes = {index.name for index in Base.metadata.tables["audit_events"].indexes}
    assert "idx_audit_events_entity" in audit_indexes
    assert "idx_audit_events_security" in audit_indexes
