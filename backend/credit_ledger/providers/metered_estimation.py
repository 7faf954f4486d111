"""Metered estimation gateway.

Wraps an EstimationProvider in the reservation protocol:

1. reserve a credit and commit (the hold is durable before any AI spend),
2. call the provider with no database transaction open,
3. finalize with the measured metrics, or roll back if the provider raises
   anything at all.

Provider errors of any type are reported as UpstreamGatewayError once the
credit is back in the wallet. Cancellation also releases the hold and then
propagates unchanged.

A failed rollback leaves the reservation pending; the reservation
sweeper reclaims it after the TTL. A failed finalize after a successful
call is logged and re-raised: the sweeper later expires that reservation,
so the estimate goes uncharged.
"""

import contextlib
import logging
import time
import uuid
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from credit_ledger.core.config import settings
from credit_ledger.core.errors import InternalError, UpstreamGatewayError
from credit_ledger.providers.errors import ProviderError
from credit_ledger.providers.estimation.base import (
    EstimationProvider,
    EstimationRequest,
    EstimationResult,
)
from credit_ledger.schemas.ledger import UsageMetadata
from credit_ledger.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MeteredEstimate:
    """A finalized estimate and the balance left after paying for it."""

    request_id: uuid.UUID
    result: EstimationResult
    credits_balance: int


class MeteredEstimationProvider:
    """Proxy that charges one credit per successful estimate.

    Args:
        inner: The actual estimation provider to delegate to.
        session_factory: Async session factory; each ledger phase gets its
            own session and commit.
    """

    def __init__(
        self,
        inner: EstimationProvider,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self._inner = inner
        self._session_factory = session_factory

    @property
    def provider_name(self) -> str:
        """Return inner provider's name."""
        return self._inner.provider_name

    async def run(self, device_id: str, request: EstimationRequest) -> MeteredEstimate:
        """Reserve, generate, then finalize or roll back.

        Args:
            device_id: Installation identifier being charged.
            request: Estimate input.

        Returns:
            MeteredEstimate with the provider result.

        Raises:
            ServiceUnavailableError, DailyLimitError, InsufficientCreditsError:
                Reserve refused; the provider was not called.
            UpstreamGatewayError: Provider failed and the credit was refunded.
            InternalError: Provider failed and the refund also failed.
            asyncio.CancelledError: Cancelled mid-call; the credit was
                refunded before re-raising.
        """
        async with self._session_factory() as db:
            reservation = await LedgerService(db).reserve(
                device_id,
                project_type=request.project_type,
                country_code=request.country_code,
            )
            await db.commit()
        request_id = reservation.request_id

        started = time.monotonic()
        try:
            result = await self._inner.generate(request)
        except ProviderError as exc:
            reason = str(exc) or type(exc).__name__
            logger.warning(
                "Provider %s failed for reservation %s: %s",
                self.provider_name,
                request_id,
                type(exc).__name__,
            )
            await self._rollback(device_id, request_id, reason)
            raise UpstreamGatewayError(str(request_id), reason) from exc
        except Exception as exc:
            # Unmapped SDK errors: the message may carry upstream internals.
            reason = type(exc).__name__
            logger.exception(
                "Provider %s raised unexpected %s for reservation %s",
                self.provider_name,
                reason,
                request_id,
            )
            await self._rollback(device_id, request_id, reason)
            raise UpstreamGatewayError(str(request_id), reason) from exc
        except BaseException:
            logger.warning(
                "Estimate for reservation %s cancelled; releasing credit",
                request_id,
            )
            # A failed refund is logged by _rollback; cancellation still wins.
            with contextlib.suppress(InternalError):
                await self._rollback(device_id, request_id, "cancelled")
            raise
        elapsed_ms = int((time.monotonic() - started) * 1000)

        latency_ms = result.latency_ms if result.latency_ms is not None else elapsed_ms
        metadata = UsageMetadata(
            latency_ms=latency_ms,
            response_size=len(result.content),
            estimated_cost_usd=(
                result.cost_usd
                if result.cost_usd is not None
                else Decimal(str(settings.estimate_cost_usd))
            ),
        )
        try:
            async with self._session_factory() as db:
                await LedgerService(db).finalize(device_id, request_id, metadata)
                await db.commit()
        except Exception:
            logger.exception(
                "Finalize failed for reservation %s after a successful "
                "estimate; the sweeper will expire it uncharged",
                request_id,
            )
            raise

        return MeteredEstimate(
            request_id=request_id,
            result=result,
            credits_balance=reservation.credits_balance,
        )

    async def _rollback(
        self, device_id: str, request_id: uuid.UUID, reason: str
    ) -> None:
        try:
            async with self._session_factory() as db:
                await LedgerService(db).rollback(device_id, request_id, reason)
                await db.commit()
        except Exception as exc:
            logger.exception(
                "Rollback failed for reservation %s; left for the sweeper",
                request_id,
            )
            raise InternalError() from exc
