"""Purchase reconciliation: restore-purchases.

Reports the wallet's own truth next to the payment platform's subscriber
record. Read-only: calling it any number of times leaves the store
unchanged, so "restore" on a reinstalled device is always safe.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.core.errors import InternalError, NotFoundError
from credit_ledger.models.usage import GRANT_TRANSACTION_TYPES, CreditTransaction
from credit_ledger.repositories.credit_repository import CreditRepository
from credit_ledger.repositories.usage_repository import UsageRepository
from credit_ledger.repositories.user_repository import UserRepository
from credit_ledger.repositories.wallet_repository import WalletRepository
from credit_ledger.services.payment_platform import PaymentPlatformClient

logger = logging.getLogger(__name__)

RESTORE_TRANSACTIONS_LIMIT = 20


@dataclass(frozen=True)
class RestoreSummary:
    """Wallet state reported by restore-purchases."""

    user_id: uuid.UUID
    credits_balance: int
    lifetime_credits: int
    total_purchases: int
    total_usage: int
    transactions: list[CreditTransaction]
    subscriber: dict[str, Any] | None


async def restore_purchases(
    db: AsyncSession,
    device_id: str,
    payment_platform: PaymentPlatformClient,
) -> RestoreSummary:
    """Summarize a device's purchases and usage.

    Args:
        db: Async database session.
        device_id: Installation identifier.
        payment_platform: Client for the best-effort subscriber lookup.

    Returns:
        RestoreSummary with wallet totals and recent grants.

    Raises:
        NotFoundError: If the device has never been registered.
    """
    user = await UserRepository.get_by_device_id(db, device_id)
    if user is None:
        raise NotFoundError("User")

    wallet = await WalletRepository.get_by_user_id(db, user.id)
    if wallet is None:
        logger.error("User %s has no credit wallet", user.id)
        raise InternalError()

    subscriber = await payment_platform.fetch_subscriber(user.payment_customer_id)

    grant_types = [t.value for t in GRANT_TRANSACTION_TYPES]
    transactions = await CreditRepository.list_by_user(
        db,
        user.id,
        limit=RESTORE_TRANSACTIONS_LIMIT,
        transaction_types=grant_types,
    )
    total_purchases = await CreditRepository.count_by_types(db, user.id, grant_types)
    total_usage = await UsageRepository.count_completed(db, user.id)

    logger.info(
        "Restored purchases for user %s (%d grants, subscriber %s)",
        user.id,
        total_purchases,
        "found" if subscriber is not None else "unavailable",
    )
    return RestoreSummary(
        user_id=user.id,
        credits_balance=wallet.credits_balance,
        lifetime_credits=wallet.lifetime_credits,
        total_purchases=total_purchases,
        total_usage=total_usage,
        transactions=transactions,
        subscriber=subscriber,
    )
