"""Purchase ingestion: applies payment platform webhook events.

Grants are idempotent per store transaction id: the ledger entry is
written first under the unique (transaction_type, reference_id) pair, and
the wallet is only credited if that insert succeeded. A replayed webhook
therefore finds its entry already present and changes nothing.

Unknown users and unknown products are acknowledged without changes so
the platform does not retry them forever.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.core.errors import InternalError
from credit_ledger.models.usage import TransactionType
from credit_ledger.models.user import PlanType, User
from credit_ledger.repositories.credit_repository import CreditRepository
from credit_ledger.repositories.user_repository import UserRepository
from credit_ledger.repositories.wallet_repository import WalletRepository
from credit_ledger.schemas.webhook import RevenueCatEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Product:
    """Store product and the credits it grants."""

    credits: int
    plan_type: PlanType


PRODUCTS: dict[str, Product] = {
    "buildsight_credit_single": Product(1, PlanType.SINGLE),
    "buildsight_credit_pack10": Product(10, PlanType.PACK10),
    "buildsight_pro_monthly": Product(50, PlanType.PRO_MONTHLY),
    "buildsight_credit_single_eur": Product(1, PlanType.SINGLE),
    "buildsight_credit_pack10_eur": Product(10, PlanType.PACK10),
    "buildsight_pro_monthly_eur": Product(50, PlanType.PRO_MONTHLY),
}

# Event types
EVENT_INITIAL_PURCHASE = "INITIAL_PURCHASE"
EVENT_NON_RENEWING_PURCHASE = "NON_RENEWING_PURCHASE"
EVENT_RENEWAL = "RENEWAL"
EVENT_CANCELLATION = "CANCELLATION"
EVENT_EXPIRATION = "EXPIRATION"
EVENT_PRODUCT_CHANGE = "PRODUCT_CHANGE"
EVENT_BILLING_ISSUE = "BILLING_ISSUE"
EVENT_SUBSCRIBER_ALIAS = "SUBSCRIBER_ALIAS"


class PurchaseIngestionService:
    """Applies one webhook event inside the caller's transaction.

    Args:
        db: Async database session. The caller owns commit/rollback.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def handle_event(self, event: RevenueCatEvent) -> bool:
        """Apply a subscriber event.

        Args:
            event: Parsed webhook event.

        Returns:
            True if the store changed, False if the event was a no-op.
        """
        user = await self._resolve_user(event.app_user_id)
        if user is None:
            logger.warning(
                "Webhook %s for unknown app user %s acknowledged",
                event.type,
                event.app_user_id,
            )
            return False

        changed = False
        if user.payment_customer_id is None:
            await UserRepository.set_payment_customer_id(
                self._db, user, event.app_user_id
            )
            changed = True

        event_type = event.type
        if event_type in (EVENT_INITIAL_PURCHASE, EVENT_NON_RENEWING_PURCHASE):
            product = self._lookup_product(event.product_id)
            if product is not None and await self._grant(
                user, event, product, TransactionType.PURCHASE, "Purchase"
            ):
                await UserRepository.set_plan_type(
                    self._db, user, product.plan_type.value
                )
                changed = True
        elif event_type == EVENT_RENEWAL:
            product = self._lookup_product(event.product_id)
            if product is not None and await self._grant(
                user, event, product, TransactionType.SUBSCRIPTION_RENEWAL, "Renewal"
            ):
                changed = True
        elif event_type in (EVENT_CANCELLATION, EVENT_EXPIRATION):
            await UserRepository.set_plan_type(self._db, user, PlanType.FREE.value)
            logger.info("User %s downgraded to free plan", user.id)
            changed = True
        elif event_type == EVENT_PRODUCT_CHANGE:
            product = PRODUCTS.get(event.new_product_id or event.product_id or "")
            plan_type = product.plan_type if product else PlanType.FREE
            await UserRepository.set_plan_type(self._db, user, plan_type.value)
            logger.info("User %s changed plan to %s", user.id, plan_type.value)
            changed = True
        elif event_type == EVENT_BILLING_ISSUE:
            logger.warning("Billing issue for user %s", user.id)
        elif event_type == EVENT_SUBSCRIBER_ALIAS:
            if event.new_app_user_id:
                await UserRepository.set_payment_customer_id(
                    self._db, user, event.new_app_user_id
                )
                changed = True
        else:
            logger.info("Unhandled webhook event type %s", event_type)

        return changed

    async def _resolve_user(self, app_user_id: str) -> User | None:
        # The app registers with the device id as its RevenueCat app user id.
        user = await UserRepository.get_by_device_id(self._db, app_user_id)
        if user is None:
            user = await UserRepository.get_by_payment_customer_id(
                self._db, app_user_id
            )
        return user

    @staticmethod
    def _lookup_product(product_id: str | None) -> Product | None:
        product = PRODUCTS.get(product_id or "")
        if product is None:
            logger.warning("Webhook for unknown product %s ignored", product_id)
        return product

    async def _grant(
        self,
        user: User,
        event: RevenueCatEvent,
        product: Product,
        transaction_type: TransactionType,
        label: str,
    ) -> bool:
        """Credit the wallet once per store transaction.

        Returns:
            True if credits were granted, False on replay or missing id.
        """
        reference_id = event.transaction_id or event.id
        if not reference_id:
            logger.warning(
                "Webhook %s for user %s has no transaction id; grant skipped",
                event.type,
                user.id,
            )
            return False

        await WalletRepository.lock_for_update(self._db, user.id)
        existing = await CreditRepository.get_by_reference(
            self._db,
            transaction_type=transaction_type.value,
            reference_id=reference_id,
        )
        if existing is not None:
            logger.info(
                "Replayed %s for transaction %s ignored", event.type, reference_id
            )
            return False

        try:
            async with self._db.begin_nested():
                await CreditRepository.create(
                    self._db,
                    user_id=user.id,
                    amount=product.credits,
                    transaction_type=transaction_type.value,
                    reference_id=reference_id,
                    description=(
                        f"{label}: {event.product_id} ({product.credits} credits)"
                    ),
                )
        except IntegrityError:
            logger.info(
                "Concurrent %s for transaction %s ignored", event.type, reference_id
            )
            return False

        if not await WalletRepository.atomic_grant(
            self._db, user_id=user.id, amount=product.credits
        ):
            logger.error("User %s has no credit wallet", user.id)
            raise InternalError()

        logger.info(
            "Granted %d credits to user %s for %s (%s)",
            product.credits,
            user.id,
            event.product_id,
            transaction_type.value,
        )
        return True
