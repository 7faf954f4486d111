"""Create credit ledger tables and seed system config.

Revision ID: 001_credit_ledger
Revises:
Create Date: 2026-10-19

Creates users, credit_wallets, credit_transactions, usage_logs and
system_config. Wallet balances are guarded by CHECK constraints in
addition to the application's conditional updates.

Note: All child tables use ON DELETE CASCADE. Ledger rows are destroyed
when a user is deleted.
"""

from collections.abc import Sequence
from datetime import UTC, datetime

import sqlalchemy as sa
from alembic import op

revision: str = "001_credit_ledger"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

# Shared column types
_PG_UUID = sa.dialects.postgresql.UUID(as_uuid=True)
_UUID_DEFAULT = sa.text("gen_random_uuid()")

_SEED_SYSTEM_CONFIG = [
    ("ai_enabled", "true", "Master switch for AI estimates"),
    ("daily_limit_per_user", "50", "Completed estimates allowed per user per UTC day"),
    ("maintenance_mode", "false", "Refuse all reservations while true"),
    ("maintenance_message", "", "Message returned with maintenance 503s"),
    ("daily_global_budget_usd", "100", "Informational global AI spend cap (USD)"),
]


def _timestamp(name: str, *, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=None if nullable else sa.func.now(),
        nullable=nullable,
    )


def _user_fk() -> sa.Column:
    return sa.Column(
        "user_id",
        _PG_UUID,
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    """Create ledger tables, indexes and config seed."""
    now = datetime.now(UTC)

    # pgcrypto provides gen_random_uuid() for UUID primary keys
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    # 1. users
    op.create_table(
        "users",
        sa.Column("id", _PG_UUID, server_default=_UUID_DEFAULT, primary_key=True),
        sa.Column("device_id", sa.String(100), nullable=False, unique=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column(
            "plan_type", sa.String(20), server_default="free", nullable=False
        ),
        sa.Column("is_active", sa.Boolean, server_default=sa.true(), nullable=False),
        sa.Column("payment_customer_id", sa.String(255), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint(
            "plan_type IN ('free', 'single', 'pack10', 'pro_monthly')",
            name="ck_users_plan_type_valid",
        ),
    )
    op.create_index(
        "ix_users_payment_customer_id", "users", ["payment_customer_id"]
    )

    # 2. credit_wallets (1:1 with users)
    op.create_table(
        "credit_wallets",
        sa.Column("id", _PG_UUID, server_default=_UUID_DEFAULT, primary_key=True),
        sa.Column(
            "user_id",
            _PG_UUID,
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("credits_balance", sa.Integer, server_default="0", nullable=False),
        sa.Column("credits_reserved", sa.Integer, server_default="0", nullable=False),
        sa.Column("lifetime_credits", sa.Integer, server_default="0", nullable=False),
        _timestamp("updated_at"),
        sa.CheckConstraint("credits_balance >= 0", name="ck_wallet_balance_nonneg"),
        sa.CheckConstraint("credits_reserved >= 0", name="ck_wallet_reserved_nonneg"),
        sa.CheckConstraint("lifetime_credits >= 0", name="ck_wallet_lifetime_nonneg"),
    )

    # 3. credit_transactions (append-only ledger)
    op.create_table(
        "credit_transactions",
        sa.Column("id", _PG_UUID, server_default=_UUID_DEFAULT, primary_key=True),
        _user_fk(),
        sa.Column("amount", sa.Integer, nullable=False),
        sa.Column("transaction_type", sa.String(30), nullable=False),
        sa.Column("reference_id", sa.String(255), nullable=True),
        sa.Column("description", sa.String(255), nullable=True),
        _timestamp("created_at"),
        sa.CheckConstraint(
            "transaction_type IN "
            "('purchase', 'usage', 'refund', 'subscription_renewal')",
            name="ck_credit_txn_type_valid",
        ),
        sa.UniqueConstraint(
            "transaction_type",
            "reference_id",
            name="uq_credit_txn_type_reference",
        ),
    )
    op.create_index(
        "ix_credit_txn_user_created",
        "credit_transactions",
        ["user_id", "created_at"],
    )

    # 4. usage_logs (one row per reservation)
    op.create_table(
        "usage_logs",
        sa.Column("id", _PG_UUID, server_default=_UUID_DEFAULT, primary_key=True),
        _user_fk(),
        sa.Column("request_id", _PG_UUID, nullable=False, unique=True),
        sa.Column("status", sa.String(20), server_default="pending", nullable=False),
        sa.Column("credits_used", sa.Integer, server_default="1", nullable=False),
        sa.Column("project_type", sa.String(50), nullable=True),
        sa.Column("country_code", sa.String(10), nullable=True),
        sa.Column("latency_ms", sa.Integer, nullable=True),
        sa.Column("response_size", sa.Integer, nullable=True),
        sa.Column(
            "estimated_cost_usd", sa.Numeric(precision=10, scale=4), nullable=True
        ),
        sa.Column("error_message", sa.Text, nullable=True),
        _timestamp("created_at"),
        _timestamp("completed_at", nullable=True),
        sa.CheckConstraint(
            "status IN ('pending', 'completed', 'failed')",
            name="ck_usage_log_status_valid",
        ),
        sa.CheckConstraint("credits_used > 0", name="ck_usage_log_credits_positive"),
    )
    # Daily quota count: completed rows for one user since midnight
    op.create_index(
        "ix_usage_logs_user_status_created",
        "usage_logs",
        ["user_id", "status", "created_at"],
    )
    # Sweeper scan: oldest pending rows
    op.create_index(
        "ix_usage_logs_status_created",
        "usage_logs",
        ["status", "created_at"],
    )

    # 5. system_config (key/value switches)
    system_config = op.create_table(
        "system_config",
        sa.Column("key", sa.String(100), primary_key=True),
        sa.Column("value", sa.Text, nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )

    # 6. Seed system_config
    op.bulk_insert(
        system_config,
        [
            {
                "key": key,
                "value": value,
                "description": description,
                "created_at": now,
                "updated_at": now,
            }
            for key, value, description in _SEED_SYSTEM_CONFIG
        ],
    )


def downgrade() -> None:
    """Drop all ledger tables."""
    op.drop_table("system_config")
    op.drop_index("ix_usage_logs_status_created", table_name="usage_logs")
    op.drop_index("ix_usage_logs_user_status_created", table_name="usage_logs")
    op.drop_table("usage_logs")
    op.drop_index("ix_credit_txn_user_created", table_name="credit_transactions")
    op.drop_table("credit_transactions")
    op.drop_table("credit_wallets")
    op.drop_index("ix_users_payment_customer_id", table_name="users")
    op.drop_table("users")
