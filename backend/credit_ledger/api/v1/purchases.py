"""Purchases API router.

POST /restore-purchases reconciles a device's wallet with the payment
platform (read-only). POST /webhooks/revenuecat ingests purchase events and
grants credits; it authenticates the platform, not a device.
"""

import hashlib
import hmac
import logging
from typing import Annotated

import pydantic
from fastapi import APIRouter, Header, Request

from credit_ledger.api.deps import CurrentDeviceId, DbSession, PaymentPlatform
from credit_ledger.core.config import settings
from credit_ledger.core.errors import UnauthorizedError, ValidationError
from credit_ledger.schemas.ledger import RestoreResponse, TransactionSummary
from credit_ledger.schemas.webhook import RevenueCatWebhook, WebhookAck
from credit_ledger.services.purchase_ingestion import PurchaseIngestionService
from credit_ledger.services.purchase_reconciliation import restore_purchases

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/restore-purchases")
async def restore(
    device_id: CurrentDeviceId,
    db: DbSession,
    payment_platform: PaymentPlatform,
) -> RestoreResponse:
    """Report wallet totals and recent purchases for the device.

    Never writes; safe to call repeatedly.

    Raises:
        NotFoundError: If the device has never been registered (404).
    """
    summary = await restore_purchases(db, device_id, payment_platform)
    return RestoreResponse(
        user_id=summary.user_id,
        credits_balance=summary.credits_balance,
        lifetime_credits=summary.lifetime_credits,
        total_purchases=summary.total_purchases,
        total_usage=summary.total_usage,
        transactions=[
            TransactionSummary.model_validate(txn) for txn in summary.transactions
        ],
        revenuecat_subscriber=summary.subscriber,
    )


def verify_webhook_request(
    raw_body: bytes,
    authorization: str | None,
    signature: str | None,
    secret: str,
) -> bool:
    """Check the platform's credentials on a webhook request.

    Accepts either ``Authorization: Bearer <secret>`` or an
    ``x-revenuecat-signature`` header holding the hex HMAC-SHA256 of the raw
    body. Always True when no secret is configured.

    Args:
        raw_body: Request body exactly as received.
        authorization: Authorization header value.
        signature: x-revenuecat-signature header value.
        secret: Configured webhook secret.

    Returns:
        True if the request is authentic.
    """
    if not secret:
        return True
    # Security: constant-time comparisons only.
    if authorization and hmac.compare_digest(
        authorization.encode(), f"Bearer {secret}".encode()
    ):
        return True
    if signature:
        expected = hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()
        if hmac.compare_digest(signature.strip().lower().encode(), expected.encode()):
            return True
    return False


@router.post("/webhooks/revenuecat")
async def revenuecat_webhook(
    request: Request,
    db: DbSession,
    authorization: Annotated[str | None, Header()] = None,
    x_revenuecat_signature: Annotated[str | None, Header()] = None,
) -> WebhookAck:
    """Apply a RevenueCat subscriber event.

    Replays are acknowledged with ``applied: false``. Processing errors are
    answered with 500 so the platform retries; grants are idempotent.

    Raises:
        UnauthorizedError: Bad or missing credentials (401).
        ValidationError: Body is not a valid webhook payload (400).
    """
    raw_body = await request.body()
    if not verify_webhook_request(
        raw_body,
        authorization,
        x_revenuecat_signature,
        settings.revenuecat_webhook_secret.get_secret_value(),
    ):
        logger.warning("Rejected webhook with invalid credentials")
        raise UnauthorizedError("Invalid webhook signature")

    try:
        payload = RevenueCatWebhook.model_validate_json(raw_body)
    except pydantic.ValidationError as exc:
        raise ValidationError(
            "Invalid webhook payload",
            details=[
                {"field": ".".join(str(p) for p in err["loc"]), "error": err["msg"]}
                for err in exc.errors()
            ],
        ) from exc

    if payload.event is None:
        return WebhookAck(applied=False)

    applied = await PurchaseIngestionService(db).handle_event(payload.event)
    return WebhookAck(event_type=payload.event.type, applied=applied)
