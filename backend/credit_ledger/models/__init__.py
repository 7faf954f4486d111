"""SQLAlchemy ORM models for the credit ledger.

All models are exported from this module for convenient imports:
    from credit_ledger.models import User, CreditWallet, UsageLog, ...

Models are organized by domain:
- user.py: User (Tier 0 - device identity)
- wallet.py: CreditWallet (Tier 1 - 1:1 with user)
- usage.py: CreditTransaction, UsageLog (Tier 1 - ledger)
- system_config.py: SystemConfig (Tier 0 - global switches)
"""

from credit_ledger.models.base import Base, TimestampMixin
from credit_ledger.models.system_config import SystemConfig
from credit_ledger.models.usage import (
    GRANT_TRANSACTION_TYPES,
    CreditTransaction,
    TransactionType,
    UsageLog,
    UsageStatus,
)
from credit_ledger.models.user import PlanType, User
from credit_ledger.models.wallet import CreditWallet

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    # Tier 0
    "User",
    "SystemConfig",
    # Tier 1
    "CreditWallet",
    "CreditTransaction",
    "UsageLog",
    # Enums
    "PlanType",
    "TransactionType",
    "UsageStatus",
    "GRANT_TRANSACTION_TYPES",
]
