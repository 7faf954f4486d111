"""Ledger service: the reservation protocol.

Every credit-consuming AI call goes through a two-phase protocol:

    reserve  ->  (AI call)  ->  finalize   (credit spent)
                            ->  rollback   (credit returned)

A reservation moves one credit from ``credits_balance`` to
``credits_reserved`` and records a ``pending`` usage log. Finalize spends the
held credit and appends a ``usage`` ledger entry; rollback returns it to the
balance. Both settle the usage log exactly once: a settled reservation can
never be finalized or rolled back again.

Each public method does all of its reads and writes on the session it was
given; the caller (the request-scoped ``get_db`` dependency, or a worker)
commits once at the end, so every operation is atomic.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.core.config import settings
from credit_ledger.core.errors import (
    DailyLimitError,
    ForeignReservationError,
    InsufficientCreditsError,
    InternalError,
    NotFoundError,
    ReservationNotFoundError,
    ServiceUnavailableError,
)
from credit_ledger.models.usage import CreditTransaction, TransactionType, UsageLog
from credit_ledger.models.user import User
from credit_ledger.models.wallet import CreditWallet
from credit_ledger.repositories.credit_repository import CreditRepository
from credit_ledger.repositories.usage_repository import UsageRepository
from credit_ledger.repositories.user_repository import UserRepository
from credit_ledger.repositories.wallet_repository import WalletRepository
from credit_ledger.schemas.ledger import UsageMetadata
from credit_ledger.services.system_config_service import (
    LedgerConfig,
    SystemConfigService,
)

logger = logging.getLogger(__name__)

RECENT_TRANSACTIONS_LIMIT = 10
USAGE_DESCRIPTION = "AI estimate generation"
EXPIRED_RESERVATION_MESSAGE = "reservation expired"

_MAINTENANCE_DEFAULT_MESSAGE = "Service is under maintenance. Please try again later."
_AI_DISABLED_MESSAGE = "AI estimates are temporarily disabled."
_SUSPENDED_MESSAGE = "This account is suspended."
_DESCRIPTION_MAX_LENGTH = 255


def utc_day_start(now: datetime | None = None) -> datetime:
    """Return 00:00 UTC of the current (or given) day.

    Args:
        now: Reference time; defaults to the current time.

    Returns:
        Timezone-aware midnight UTC.
    """
    current = (now or datetime.now(UTC)).astimezone(UTC)
    return current.replace(hour=0, minute=0, second=0, microsecond=0)


@dataclass(frozen=True)
class StatusSnapshot:
    """A user's wallet and quota state, read in one session.

    Attributes:
        user: The resolved user.
        wallet: The user's wallet.
        daily_usage: Completed reservations since 00:00 UTC.
        config: Global switches at read time.
        is_new_user: True only when this call registered the device.
        recent_transactions: Newest ledger entries, when requested.
    """

    user: User
    wallet: CreditWallet
    daily_usage: int
    config: LedgerConfig
    is_new_user: bool = False
    recent_transactions: list[CreditTransaction] | None = None

    @property
    def daily_limit(self) -> int:
        return self.config.daily_limit_per_user

    @property
    def can_use_ai(self) -> bool:
        """Whether a reserve would pass the global and quota gates.

        Balance is not considered; the client checks it separately.
        """
        return (
            self.config.accepting_reservations
            and self.daily_usage < self.daily_limit
        )


@dataclass(frozen=True)
class ReservationResult:
    """Outcome of a successful reserve.

    Attributes:
        request_id: Reservation id to present on finalize or rollback.
        credits_balance: Spendable credits after the hold.
        credits_reserved: Credits held after the hold.
    """

    request_id: uuid.UUID
    credits_balance: int
    credits_reserved: int


class LedgerService:
    """Stateless handlers for the ledger operations.

    Args:
        db: Async database session. The caller owns commit/rollback.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db
        self._config = SystemConfigService(db)

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    async def init_user(self, device_id: str) -> StatusSnapshot:
        """Register the device on first contact and return its status.

        Idempotent: repeated calls return the same user with
        ``is_new_user`` False.

        Args:
            device_id: Installation identifier.

        Returns:
            StatusSnapshot for the (possibly new) user.
        """
        user, created = await UserRepository.get_or_create(self._db, device_id)
        if created:
            logger.info("Registered device user %s", user.id)
        return await self._snapshot(user, is_new_user=created)

    async def get_status(
        self,
        device_id: str,
        *,
        recent_limit: int = RECENT_TRANSACTIONS_LIMIT,
    ) -> StatusSnapshot:
        """Read wallet, quota and recent history for a device.

        Never creates a user.

        Args:
            device_id: Installation identifier.
            recent_limit: Number of recent transactions to include.

        Returns:
            StatusSnapshot including recent transactions.

        Raises:
            NotFoundError: If the device has never been registered.
        """
        user = await UserRepository.get_by_device_id(self._db, device_id)
        if user is None:
            raise NotFoundError("User")
        recent = await CreditRepository.list_by_user(
            self._db, user.id, limit=recent_limit
        )
        return await self._snapshot(user, recent_transactions=recent)

    async def _snapshot(
        self,
        user: User,
        *,
        is_new_user: bool = False,
        recent_transactions: list[CreditTransaction] | None = None,
    ) -> StatusSnapshot:
        wallet = await self._require_wallet(user, lock=False)
        config = await self._config.get_ledger_config()
        daily_usage = await UsageRepository.count_completed_since(
            self._db, user.id, utc_day_start()
        )
        return StatusSnapshot(
            user=user,
            wallet=wallet,
            daily_usage=daily_usage,
            config=config,
            is_new_user=is_new_user,
            recent_transactions=recent_transactions,
        )

    # -------------------------------------------------------------------------
    # Reserve
    # -------------------------------------------------------------------------

    async def reserve(
        self,
        device_id: str,
        *,
        project_type: str | None = None,
        country_code: str | None = None,
    ) -> ReservationResult:
        """Hold one credit for an upcoming AI call.

        Gates, in order: global switches, account suspension, daily quota,
        balance. A failed gate mutates nothing.

        Args:
            device_id: Installation identifier (registered lazily).
            project_type: Optional estimate category, recorded on the log.
            country_code: Optional region, recorded on the log.

        Returns:
            ReservationResult with the new request id and balances.

        Raises:
            ServiceUnavailableError: AI disabled, maintenance, or suspended.
            DailyLimitError: Daily quota exhausted.
            InsufficientCreditsError: No spendable credit.
        """
        user, _ = await UserRepository.get_or_create(self._db, device_id)

        config = await self._config.get_ledger_config()
        if config.maintenance_mode:
            logger.info("Reserve refused for user %s: maintenance mode", user.id)
            raise ServiceUnavailableError(
                config.maintenance_message or _MAINTENANCE_DEFAULT_MESSAGE
            )
        if not config.ai_enabled:
            logger.info("Reserve refused for user %s: AI disabled", user.id)
            raise ServiceUnavailableError(_AI_DISABLED_MESSAGE)
        if not user.is_active:
            logger.info("Reserve refused for user %s: account suspended", user.id)
            raise ServiceUnavailableError(_SUSPENDED_MESSAGE)

        # Lock first so the quota count and the debit see the same state.
        wallet = await self._require_wallet(user, lock=True)

        daily_usage = await UsageRepository.count_completed_since(
            self._db, user.id, utc_day_start()
        )
        if daily_usage >= config.daily_limit_per_user:
            logger.info(
                "Reserve refused for user %s: daily limit %d/%d",
                user.id,
                daily_usage,
                config.daily_limit_per_user,
            )
            raise DailyLimitError(daily_usage, config.daily_limit_per_user)

        if wallet.credits_balance < 1:
            logger.info("Reserve refused for user %s: no credits", user.id)
            raise InsufficientCreditsError(wallet.credits_balance)

        if not await WalletRepository.atomic_reserve(self._db, user_id=user.id):
            # Lost a race on a dialect without row locks.
            current = await self._require_wallet(user, lock=False)
            logger.info("Reserve refused for user %s: balance changed", user.id)
            raise InsufficientCreditsError(current.credits_balance)

        request_id = uuid.uuid4()
        await UsageRepository.create_pending(
            self._db,
            user_id=user.id,
            request_id=request_id,
            project_type=project_type,
            country_code=country_code,
        )

        wallet = await self._require_wallet(user, lock=False)
        logger.info(
            "Reserved credit for user %s (request %s, balance %d, reserved %d)",
            user.id,
            request_id,
            wallet.credits_balance,
            wallet.credits_reserved,
        )
        return ReservationResult(
            request_id=request_id,
            credits_balance=wallet.credits_balance,
            credits_reserved=wallet.credits_reserved,
        )

    # -------------------------------------------------------------------------
    # Finalize / rollback
    # -------------------------------------------------------------------------

    async def finalize(
        self,
        device_id: str,
        request_id: uuid.UUID,
        metadata: UsageMetadata,
    ) -> None:
        """Spend the held credit after a successful AI call.

        Args:
            device_id: Installation identifier of the caller.
            request_id: Reservation returned by reserve.
            metadata: Normalized usage metrics for the call.

        Raises:
            ReservationNotFoundError: Unknown or already settled.
            ForeignReservationError: Reservation belongs to another device.
        """
        log = await self._claim_pending(device_id, request_id)

        if not await WalletRepository.atomic_consume_reserved(
            self._db, user_id=log.user_id, amount=log.credits_used
        ):
            logger.error(
                "Reserved credits missing for user %s (request %s)",
                log.user_id,
                request_id,
            )
            raise InternalError()

        await CreditRepository.create(
            self._db,
            user_id=log.user_id,
            amount=-log.credits_used,
            transaction_type=TransactionType.USAGE.value,
            reference_id=str(request_id),
            description=USAGE_DESCRIPTION,
        )
        await UsageRepository.mark_completed(
            self._db,
            log,
            latency_ms=metadata.latency_ms,
            response_size=metadata.response_size,
            estimated_cost_usd=metadata.estimated_cost_usd,
        )
        logger.info(
            "Finalized reservation %s for user %s", request_id, log.user_id
        )

    async def rollback(
        self,
        device_id: str,
        request_id: uuid.UUID,
        error_message: str | None,
    ) -> None:
        """Return the held credit after a failed AI call.

        Args:
            device_id: Installation identifier of the caller.
            request_id: Reservation returned by reserve.
            error_message: Description of the failure, stored on the log.

        Raises:
            ReservationNotFoundError: Unknown or already settled.
            ForeignReservationError: Reservation belongs to another device.
        """
        log = await self._claim_pending(device_id, request_id)
        await self._release(log, error_message)
        logger.info(
            "Rolled back reservation %s for user %s", request_id, log.user_id
        )

    async def expire_reservation(self, request_id: uuid.UUID) -> bool:
        """Roll back a reservation that outlived its TTL.

        Skips the ownership check; only the sweeper calls this.

        Args:
            request_id: Reservation to expire.

        Returns:
            True if the reservation was still pending and is now failed,
            False if it was settled in the meantime.
        """
        log = await UsageRepository.get_pending_for_update(self._db, request_id)
        if log is None:
            return False
        await self._release(log, EXPIRED_RESERVATION_MESSAGE)
        logger.info(
            "Expired reservation %s for user %s", request_id, log.user_id
        )
        return True

    async def _claim_pending(
        self, device_id: str, request_id: uuid.UUID
    ) -> UsageLog:
        """Lock a pending reservation and verify the caller owns it."""
        log = await UsageRepository.get_pending_for_update(self._db, request_id)
        if log is None:
            logger.info("Settle refused: reservation %s not pending", request_id)
            raise ReservationNotFoundError(str(request_id))

        user = await UserRepository.get_by_device_id(self._db, device_id)
        if user is None or user.id != log.user_id:
            # Security: a device presenting another device's reservation.
            logger.warning(
                "Foreign reservation attempt: request %s owned by user %s, "
                "presented by device %s",
                request_id,
                log.user_id,
                device_id,
            )
            raise ForeignReservationError()
        return log

    async def _release(self, log: UsageLog, error_message: str | None) -> None:
        await WalletRepository.lock_for_update(self._db, log.user_id)
        if not await WalletRepository.atomic_release_reserved(
            self._db, user_id=log.user_id, amount=log.credits_used
        ):
            logger.error(
                "Reserved credits missing for user %s (request %s)",
                log.user_id,
                log.request_id,
            )
            raise InternalError()

        await UsageRepository.mark_failed(self._db, log, error_message=error_message)

        if settings.ledger_record_refund_transactions:
            description = f"Reservation released: {error_message or 'no reason'}"
            await CreditRepository.create(
                self._db,
                user_id=log.user_id,
                amount=0,
                transaction_type=TransactionType.REFUND.value,
                reference_id=str(log.request_id),
                description=description[:_DESCRIPTION_MAX_LENGTH],
            )

    async def _require_wallet(self, user: User, *, lock: bool) -> CreditWallet:
        if lock:
            wallet = await WalletRepository.lock_for_update(self._db, user.id)
        else:
            wallet = await WalletRepository.get_by_user_id(self._db, user.id)
        if wallet is None:
            logger.error("User %s has no credit wallet", user.id)
            raise InternalError()
        return wallet
