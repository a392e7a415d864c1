"""rewards_core_schema

Revision ID: 5d1e2a7c9b10
Revises:
Create Date: 2026-10-12 09:00:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "5d1e2a7c9b10"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None

APPEND_ONLY_TABLES = ("point_transactions", "audit_events")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("display_name", sa.Text(), nullable=True),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("role", sa.String(24), nullable=False),
        sa.Column("is_banned", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("points_balance", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("points_balance >= 0", name="ck_users_points_balance_non_negative"),
        sa.CheckConstraint(
            "role IN ('student','employee','guest','canteen_admin','finance_admin',"
            "'sa_admin','super_admin','admin')",
            name="ck_users_role",
        ),
    )
    op.create_index("idx_users_email", "users", ["email"])

    op.create_table(
        "rewards",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("category", sa.String(16), nullable=False, server_default=sa.text("'other'")),
        sa.Column("point_cost", sa.Integer(), nullable=False),
        sa.Column("total_quantity", sa.Integer(), nullable=True),
        sa.Column("remaining_quantity", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=True),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("point_cost > 0", name="ck_rewards_point_cost_positive"),
        sa.CheckConstraint(
            "remaining_quantity IS NULL OR remaining_quantity >= 0",
            name="ck_rewards_remaining_quantity_non_negative",
        ),
        sa.CheckConstraint(
            "category IN ('food','merchandise','event','digital','other')",
            name="ck_rewards_category",
        ),
    )
    op.create_index("idx_rewards_active", "rewards", ["is_active"])

    op.create_table(
        "reward_redemptions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("reward_id", sa.BigInteger(), nullable=False),
        sa.Column("points_spent", sa.Integer(), nullable=False),
        sa.Column("redemption_code", sa.String(16), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("idempotency_key", sa.String(96), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_by", sa.String(64), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("points_spent > 0", name="ck_reward_redemptions_points_spent_positive"),
        sa.CheckConstraint(
            "status IN ('pending','verified','cancelled','expired')",
            name="ck_reward_redemptions_status",
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["reward_id"], ["rewards.id"]),
        sa.UniqueConstraint("redemption_code", name="uq_reward_redemptions_redemption_code"),
        sa.UniqueConstraint("idempotency_key", name="uq_reward_redemptions_idempotency_key"),
    )
    op.create_index("idx_redemptions_user_created", "reward_redemptions", ["user_id", "created_at"])
    op.create_index("idx_redemptions_status_expires", "reward_redemptions", ["status", "expires_at"])
    op.create_index("idx_redemptions_reward", "reward_redemptions", ["reward_id"])

    op.create_table(
        "point_transactions",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("transaction_type", sa.String(32), nullable=False),
        sa.Column("reference", sa.String(128), nullable=False),
        sa.Column("redemption_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("amount <> 0", name="ck_point_transactions_amount_non_zero"),
        sa.CheckConstraint("balance_after >= 0", name="ck_point_transactions_balance_after_non_negative"),
        sa.CheckConstraint(
            "transaction_type IN ('redemption_debit','refund_credit','pledge_reward','admin_adjustment')",
            name="ck_point_transactions_transaction_type",
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["redemption_id"], ["reward_redemptions.id"]),
        sa.UniqueConstraint("reference", name="uq_point_transactions_reference"),
    )
    op.create_index("idx_point_transactions_user_created", "point_transactions", ["user_id", "created_at"])
    op.create_index("idx_point_transactions_redemption", "point_transactions", ["redemption_id"])
    op.create_index("idx_point_transactions_type", "point_transactions", ["transaction_type"])

    op.create_table(
        "streak_state",
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("current_streak", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("longest_streak", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_activity_local_date", sa.Date(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("current_streak >= 0", name="ck_streak_state_current_streak_non_negative"),
        sa.CheckConstraint("longest_streak >= 0", name="ck_streak_state_longest_streak_non_negative"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("user_id"),
    )
    op.create_index("idx_streak_last_activity", "streak_state", ["last_activity_local_date"])

    op.create_table(
        "audit_events",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("action", sa.String(48), nullable=False),
        sa.Column("outcome", sa.String(32), nullable=False),
        sa.Column("entity_type", sa.String(32), nullable=False),
        sa.Column("entity_id", sa.String(64), nullable=True),
        sa.Column("actor_id", sa.String(64), nullable=True),
        sa.Column("security_flagged", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "payload",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_audit_events_entity", "audit_events", ["entity_type", "entity_id"])
    op.create_index("idx_audit_events_action_created", "audit_events", ["action", "created_at"])
    op.create_index(
        "idx_audit_events_security",
        "audit_events",
        ["created_at"],
        postgresql_where=sa.text("security_flagged"),
    )

    for table_name in APPEND_ONLY_TABLES:
        op.execute(
            f"""
            CREATE OR REPLACE FUNCTION fn_{table_name}_append_only()
            RETURNS trigger
            LANGUAGE plpgsql
            AS $$
            BEGIN
                RAISE EXCEPTION '{table_name} is append-only';
            END;
            $$;
            """
        )
        op.execute(
            f"""
            CREATE TRIGGER trg_{table_name}_append_only
            BEFORE UPDATE OR DELETE ON {table_name}
            FOR EACH ROW
            EXECUTE FUNCTION fn_{table_name}_append_only();
            """
        )

    op.execute(
        """
        CREATE OR REPLACE FUNCTION fn_reward_redemptions_no_delete()
        RETURNS trigger
        LANGUAGE plpgsql
        AS $$
        BEGIN
            RAISE EXCEPTION 'reward_redemptions rows cannot be deleted';
        END;
        $$;
        """
    )
    op.execute(
        """
        CREATE TRIGGER trg_reward_redemptions_no_delete
        BEFORE DELETE ON reward_redemptions
        FOR EACH ROW
        EXECUTE FUNCTION fn_reward_redemptions_no_delete();
        """
    )


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS trg_reward_redemptions_no_delete ON reward_redemptions;")
    op.execute("DROP FUNCTION IF EXISTS fn_reward_redemptions_no_delete();")
    for table_name in APPEND_ONLY_TABLES:
        op.execute(f"DROP TRIGGER IF EXISTS trg_{table_name}_append_only ON {table_name};")
        op.execute(f"DROP FUNCTION IF EXISTS fn_{table_name}_append_only();")

    op.drop_table("audit_events")
    op.drop_table("streak_state")
    op.drop_table("point_transactions")
    op.drop_table("reward_redemptions")
    op.drop_table("rewards")
    op.drop_table("users")
