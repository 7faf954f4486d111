"""Payment platform (RevenueCat) webhook schemas.

RevenueCat posts snake_case JSON of the form ``{"api_version": ...,
"event": {...}}``. Only the fields the ledger acts on are modelled;
everything else is ignored.
"""

from pydantic import BaseModel, ConfigDict, Field

from credit_ledger.core.responses import CamelModel


class RevenueCatEvent(BaseModel):
    """A single subscriber event.

    Attributes:
        id: Event id assigned by RevenueCat.
        type: Event type (INITIAL_PURCHASE, RENEWAL, CANCELLATION, ...).
        app_user_id: The app's user id; this app sends the device id.
        original_app_user_id: First app user id of the subscriber.
        product_id: Store product identifier.
        new_product_id: Target product of a PRODUCT_CHANGE.
        new_app_user_id: New alias of a SUBSCRIBER_ALIAS.
        transaction_id: Store transaction id (idempotency key for grants).
        purchased_at_ms: Purchase time in epoch milliseconds.
        expiration_at_ms: Entitlement expiry in epoch milliseconds.
    """

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    type: str = Field(min_length=1, max_length=50)
    app_user_id: str = Field(min_length=1, max_length=255)
    original_app_user_id: str | None = None
    product_id: str | None = None
    new_product_id: str | None = None
    new_app_user_id: str | None = None
    transaction_id: str | None = None
    purchased_at_ms: int | None = None
    expiration_at_ms: int | None = None


class RevenueCatWebhook(BaseModel):
    """Webhook envelope."""

    model_config = ConfigDict(extra="ignore")

    api_version: str | None = None
    event: RevenueCatEvent | None = None


class WebhookAck(CamelModel):
    """Acknowledgement returned to the payment platform.

    ``applied`` is False when the event was recognised but changed nothing
    (unknown user, replayed transaction, unknown product).
    """

    ok: bool = True
    event_type: str | None = None
    applied: bool = False
