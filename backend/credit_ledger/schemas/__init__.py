"""Pydantic request/response schemas for API endpoints."""

from credit_ledger.schemas.ledger import (
    FinalizeRequest,
    ReserveRequest,
    ReserveResponse,
    RestoreResponse,
    RollbackRequest,
    TransactionSummary,
    UsageMetadata,
    UserStatusResponse,
)
from credit_ledger.schemas.webhook import (
    RevenueCatEvent,
    RevenueCatWebhook,
    WebhookAck,
)

__all__ = [
    # Ledger
    "FinalizeRequest",
    "ReserveRequest",
    "ReserveResponse",
    "RestoreResponse",
    "RollbackRequest",
    "TransactionSummary",
    "UsageMetadata",
    "UserStatusResponse",
    # Webhook
    "RevenueCatEvent",
    "RevenueCatWebhook",
    "WebhookAck",
]
