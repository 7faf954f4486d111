"""System configuration ORM model.

Global kill switches and quotas read on every reserve: ai_enabled,
maintenance_mode, maintenance_message, daily_limit_per_user,
daily_global_budget_usd.
"""

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from credit_ledger.models.base import Base, TimestampMixin


class SystemConfig(Base, TimestampMixin):
    """Key-value store for global settings.

    Uses VARCHAR key as PK (not UUID). Application layer parses values
    to typed representations.

    Attributes:
        key: Setting key (PK). Convention: snake_case.
        value: Setting value as string.
        description: Human-readable description for operators.
    """

    __tablename__ = "system_config"

    key: Mapped[str] = mapped_column(
        String(100),
        primary_key=True,
    )
    value: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    description: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
