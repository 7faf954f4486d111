"""Credit reservation API router.

POST /reserve holds one credit before an AI call. POST /finalize and
POST /rollback settle the hold afterwards; they are called by the
estimation backend, not by end users, and require the internal key when
one is configured.
"""

from fastapi import APIRouter, Request

from credit_ledger.api.deps import CurrentDeviceId, DbSession, InternalCaller
from credit_ledger.core.config import settings
from credit_ledger.core.rate_limiting import limiter
from credit_ledger.core.responses import OkResponse
from credit_ledger.schemas.ledger import (
    FinalizeRequest,
    ReserveRequest,
    ReserveResponse,
    RollbackRequest,
)
from credit_ledger.services.ledger_service import LedgerService

router = APIRouter()


@router.post("/reserve")
@limiter.limit(settings.rate_limit_reserve)
async def reserve(
    request: Request,  # noqa: ARG001 - Required by rate limiter
    device_id: CurrentDeviceId,
    db: DbSession,
    body: ReserveRequest | None = None,
) -> ReserveResponse:
    """Reserve one credit for an AI estimate.

    Registers the device on first contact. A refused reservation changes
    nothing, including the lazy registration.

    Raises:
        ServiceUnavailableError: AI disabled, maintenance, or suspended (503).
        DailyLimitError: Daily quota exhausted (429).
        InsufficientCreditsError: No spendable credit (402).
    """
    body = body or ReserveRequest()
    result = await LedgerService(db).reserve(
        device_id,
        project_type=body.project_type,
        country_code=body.country_code,
    )
    return ReserveResponse(
        request_id=result.request_id,
        credits_balance=result.credits_balance,
        credits_reserved=result.credits_reserved,
    )


@router.post("/finalize")
async def finalize(
    body: FinalizeRequest,
    device_id: CurrentDeviceId,
    db: DbSession,
    _internal: InternalCaller,
) -> OkResponse:
    """Consume the held credit after a successful AI call.

    Raises:
        ReservationNotFoundError: Unknown or already settled (400).
        ForeignReservationError: Reservation owned by another device (400).
    """
    await LedgerService(db).finalize(
        device_id, body.request_id, body.usage_metadata()
    )
    return OkResponse()


@router.post("/rollback")
async def rollback(
    body: RollbackRequest,
    device_id: CurrentDeviceId,
    db: DbSession,
    _internal: InternalCaller,
) -> OkResponse:
    """Return the held credit after a failed AI call.

    Raises:
        ReservationNotFoundError: Unknown or already settled (400).
        ForeignReservationError: Reservation owned by another device (400).
    """
    await LedgerService(db).rollback(device_id, body.request_id, body.error_message)
    return OkResponse()
