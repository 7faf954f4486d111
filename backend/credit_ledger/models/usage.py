"""Ledger ORM models - transactions and reservation usage logs.

CreditTransaction is an append-only ledger of balance changes; rows are
never updated or deleted. UsageLog records one reservation attempt each and
moves exactly once from ``pending`` to ``completed`` or ``failed``.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import StrEnum

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from credit_ledger.models.base import Base, utcnow


class TransactionType(StrEnum):
    """Kinds of ledger entries."""

    PURCHASE = "purchase"
    USAGE = "usage"
    REFUND = "refund"
    SUBSCRIPTION_RENEWAL = "subscription_renewal"


# Entry types that increase lifetime_credits.
GRANT_TRANSACTION_TYPES = (
    TransactionType.PURCHASE,
    TransactionType.SUBSCRIPTION_RENEWAL,
)


class UsageStatus(StrEnum):
    """Reservation states. Only pending holds a reserved credit."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class CreditTransaction(Base):
    """Append-only ledger of all balance changes.

    Positive amounts = grants (purchases, renewals).
    Negative amounts = usage. Refund rows are audit markers with amount 0.

    (transaction_type, reference_id) is unique: a webhook retry carrying the
    same store transaction id, or a second finalize of one reservation,
    cannot produce a second row.

    Attributes:
        id: UUID primary key.
        user_id: FK to users table.
        amount: Signed credit amount.
        transaction_type: One of purchase, usage, refund, subscription_renewal.
        reference_id: Store transaction id or reservation request id.
        description: Human-readable description.
        created_at: Transaction timestamp.
    """

    __tablename__ = "credit_transactions"
    __table_args__ = (
        CheckConstraint(
            "transaction_type IN "
            "('purchase', 'usage', 'refund', 'subscription_renewal')",
            name="ck_credit_txn_type_valid",
        ),
        UniqueConstraint(
            "transaction_type",
            "reference_id",
            name="uq_credit_txn_type_reference",
        ),
        Index("ix_credit_txn_user_created", "user_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    amount: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    transaction_type: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
    )
    reference_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    description: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )


class UsageLog(Base):
    """One row per reservation attempt.

    Attributes:
        id: UUID primary key.
        user_id: FK to users table.
        request_id: Reservation id handed to the caller (unique).
        status: pending, completed or failed.
        credits_used: Credits held by this reservation (always 1 today).
        project_type: Estimate category supplied at reserve time.
        country_code: Region supplied at reserve time.
        latency_ms: AI call latency, set on finalize.
        response_size: AI response size (characters), set on finalize.
        estimated_cost_usd: Provider cost estimate, set on finalize.
        error_message: Failure description, set on rollback.
        created_at: Reservation time.
        completed_at: Time the reservation was settled.
    """

    __tablename__ = "usage_logs"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'completed', 'failed')",
            name="ck_usage_log_status_valid",
        ),
        CheckConstraint("credits_used > 0", name="ck_usage_log_credits_positive"),
        Index("ix_usage_logs_user_status_created", "user_id", "status", "created_at"),
        Index("ix_usage_logs_status_created", "status", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        unique=True,
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=UsageStatus.PENDING.value,
        server_default=text("'pending'"),
    )
    credits_used: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        server_default=text("1"),
    )
    project_type: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )
    country_code: Mapped[str | None] = mapped_column(
        String(10),
        nullable=True,
    )
    latency_ms: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )
    response_size: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )
    estimated_cost_usd: Mapped[Decimal | None] = mapped_column(
        Numeric(10, 4),
        nullable=True,
    )
    error_message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
