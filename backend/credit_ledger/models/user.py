"""User model - anonymous device identity.

One user per device identifier, created lazily on first contact. No email
or password is required; ``email`` is optional profile data.
"""

import uuid
from enum import StrEnum

from sqlalchemy import Boolean, CheckConstraint, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from credit_ledger.models.base import Base, TimestampMixin


class PlanType(StrEnum):
    """Entitlement tier. Influences credit grants, not access control."""

    FREE = "free"
    SINGLE = "single"
    PACK10 = "pack10"
    PRO_MONTHLY = "pro_monthly"


class User(Base, TimestampMixin):
    """Anonymous user keyed by device identifier.

    Attributes:
        id: UUID primary key.
        device_id: Unique per-installation identifier (e.g. "ios_<uuid>").
        email: Optional contact email.
        plan_type: One of free, single, pack10, pro_monthly.
        is_active: False suspends AI access without deleting the wallet.
        payment_customer_id: Payment platform (RevenueCat) subscriber id.
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "plan_type IN ('free', 'single', 'pack10', 'pro_monthly')",
            name="ck_users_plan_type_valid",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    device_id: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
    )
    email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    plan_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PlanType.FREE.value,
        server_default=text("'free'"),
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )
    payment_customer_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        index=True,
    )
