"""Credit wallet model.

One wallet per user. ``credits_balance`` is spendable now;
``credits_reserved`` is held against in-flight reservations;
``lifetime_credits`` only ever grows (purchases and renewals).
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from credit_ledger.models.base import Base, utcnow


class CreditWallet(Base):
    """Per-user balance record.

    The CHECK constraints are the last line of defence for the
    non-negativity invariant; repositories never rely on them for flow
    control (conditional UPDATEs do that).

    Attributes:
        id: UUID primary key.
        user_id: FK to users table (unique, 1:1).
        credits_balance: Spendable credits.
        credits_reserved: Credits held by pending reservations.
        lifetime_credits: Total credits ever granted.
        updated_at: Last mutation timestamp.
    """

    __tablename__ = "credit_wallets"
    __table_args__ = (
        CheckConstraint("credits_balance >= 0", name="ck_wallet_balance_nonneg"),
        CheckConstraint("credits_reserved >= 0", name="ck_wallet_reserved_nonneg"),
        CheckConstraint("lifetime_credits >= 0", name="ck_wallet_lifetime_nonneg"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    credits_balance: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )
    credits_reserved: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )
    lifetime_credits: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )
