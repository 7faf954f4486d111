"""User status API router.

POST /init-user registers a device on first launch; GET /get-status reads
wallet, quota and recent history without ever creating a user.
"""

from fastapi import APIRouter, Response, status

from credit_ledger.api.deps import CurrentDeviceId, DbSession
from credit_ledger.schemas.ledger import TransactionSummary, UserStatusResponse
from credit_ledger.services.ledger_service import LedgerService, StatusSnapshot

router = APIRouter()


def _to_response(snapshot: StatusSnapshot) -> UserStatusResponse:
    user = snapshot.user
    wallet = snapshot.wallet
    # Only the calling endpoint's extra field is set; the other stays unset
    # and is omitted from the body.
    extra: dict[str, object] = {}
    if snapshot.recent_transactions is not None:
        extra["recent_transactions"] = [
            TransactionSummary.model_validate(txn)
            for txn in snapshot.recent_transactions
        ]
    else:
        extra["is_new_user"] = snapshot.is_new_user
    return UserStatusResponse(
        user_id=user.id,
        device_id=user.device_id,
        email=user.email,
        plan_type=user.plan_type,
        is_active=user.is_active,
        payment_customer_id=user.payment_customer_id,
        credits_balance=wallet.credits_balance,
        credits_reserved=wallet.credits_reserved,
        lifetime_credits=wallet.lifetime_credits,
        daily_usage=snapshot.daily_usage,
        daily_limit=snapshot.daily_limit,
        can_use_ai=snapshot.can_use_ai,
        **extra,
    )


@router.post(
    "/init-user",
    response_model=UserStatusResponse,
    response_model_exclude_unset=True,
    responses={201: {"description": "Device registered"}},
)
async def init_user(
    device_id: CurrentDeviceId,
    db: DbSession,
    response: Response,
) -> UserStatusResponse:
    """Register the device (201) or return the existing user (200)."""
    snapshot = await LedgerService(db).init_user(device_id)
    if snapshot.is_new_user:
        response.status_code = status.HTTP_201_CREATED
    return _to_response(snapshot)


@router.get(
    "/get-status",
    response_model=UserStatusResponse,
    response_model_exclude_unset=True,
)
async def get_status(
    device_id: CurrentDeviceId,
    db: DbSession,
) -> UserStatusResponse:
    """Return wallet, quota and the 10 most recent transactions.

    Raises:
        NotFoundError: If the device has never called init-user or reserve.
    """
    snapshot = await LedgerService(db).get_status(device_id)
    return _to_response(snapshot)
