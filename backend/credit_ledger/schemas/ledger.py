"""Ledger API request/response schemas.

All bodies are camelCase on the wire (see CamelModel); snake_case keys are
also accepted on input. Usage metrics are normalized here, at the boundary,
into one canonical UsageMetadata record so older client builds that send
``responseTokens`` / ``response_tokens`` keep working without the service
ever seeing those names.
"""

import uuid
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from pydantic import ConfigDict, Field, field_validator, model_validator

from credit_ledger.core.responses import CamelModel

_COST_QUANTUM = Decimal("0.0001")

# Column bounds: usage_logs.estimated_cost_usd is NUMERIC(10, 4), the metric
# columns are 32-bit INTEGER.
_MAX_COST_USD = Decimal("999999.9999")
_MAX_INT32 = 2**31 - 1

# Legacy key -> canonical key. Applied before field validation.
_LEGACY_USAGE_KEYS: dict[str, str] = {
    "responseTokens": "responseSize",
    "response_tokens": "responseSize",
    "estimatedCost": "estimatedCostUsd",
    "estimated_cost": "estimatedCostUsd",
    "latency": "latencyMs",
}


# =============================================================================
# Requests
# =============================================================================


class ReserveRequest(CamelModel):
    """Body of POST /reserve (all fields optional).

    Attributes:
        project_type: Estimate category (e.g. "kitchen").
        country_code: Region code (e.g. "DE").
    """

    project_type: str | None = Field(default=None, max_length=50)
    country_code: str | None = Field(default=None, max_length=10)


class UsageMetadata(CamelModel):
    """Canonical usage metrics recorded when a reservation is finalized.

    Attributes:
        latency_ms: Wall-clock duration of the AI call.
        response_size: Size of the AI response in characters.
        estimated_cost_usd: Provider cost estimate, 4 decimal places.
    """

    latency_ms: int | None = Field(default=None, ge=0, le=_MAX_INT32)
    response_size: int | None = Field(default=None, ge=0, le=_MAX_INT32)
    estimated_cost_usd: Decimal | None = None

    @model_validator(mode="before")
    @classmethod
    def normalize_legacy_keys(cls, data: Any) -> Any:
        """Rename legacy metric keys to their canonical names.

        A canonical key, when present, wins over its legacy spelling.
        """
        if not isinstance(data, dict):
            return data
        normalized = dict(data)
        for legacy, canonical in _LEGACY_USAGE_KEYS.items():
            if legacy not in normalized:
                continue
            value = normalized.pop(legacy)
            snake = _to_snake(canonical)
            if canonical not in normalized and snake not in normalized:
                normalized[canonical] = value
        return normalized

    @field_validator("estimated_cost_usd")
    @classmethod
    def quantize_cost(cls, value: Decimal | None) -> Decimal | None:
        """Reject negative, non-finite or oversized costs; round to 4 places."""
        if value is None:
            return None
        if not value.is_finite():
            msg = "estimatedCostUsd must be a finite number"
            raise ValueError(msg)
        if value < 0:
            msg = "estimatedCostUsd must be >= 0"
            raise ValueError(msg)
        try:
            quantized = value.quantize(_COST_QUANTUM, rounding=ROUND_HALF_UP)
        except InvalidOperation as exc:
            msg = f"estimatedCostUsd must be <= {_MAX_COST_USD}"
            raise ValueError(msg) from exc
        # Checked after rounding: 999999.99995 rounds past the column bound.
        if quantized > _MAX_COST_USD:
            msg = f"estimatedCostUsd must be <= {_MAX_COST_USD}"
            raise ValueError(msg)
        return quantized


class FinalizeRequest(UsageMetadata):
    """Body of POST /finalize."""

    request_id: uuid.UUID

    def usage_metadata(self) -> UsageMetadata:
        """Strip the request id, leaving the canonical metrics."""
        return UsageMetadata(
            latency_ms=self.latency_ms,
            response_size=self.response_size,
            estimated_cost_usd=self.estimated_cost_usd,
        )


class RollbackRequest(CamelModel):
    """Body of POST /rollback.

    Attributes:
        request_id: Reservation to release.
        error_message: Why the AI call failed (stored on the usage log).
    """

    request_id: uuid.UUID
    error_message: str | None = Field(default=None, max_length=2000)


# =============================================================================
# Responses
# =============================================================================


class TransactionSummary(CamelModel):
    """One ledger entry as shown to the client."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    amount: int
    transaction_type: str
    reference_id: str | None = None
    description: str | None = None
    created_at: datetime


class UserStatusResponse(CamelModel):
    """Wallet, quota and plan state for one device.

    ``is_new_user`` is only set by init-user; ``recent_transactions`` only
    by get-status.
    """

    user_id: uuid.UUID
    device_id: str
    email: str | None = None
    plan_type: str
    is_active: bool
    payment_customer_id: str | None = None
    credits_balance: int
    credits_reserved: int
    lifetime_credits: int
    daily_usage: int
    daily_limit: int
    can_use_ai: bool
    is_new_user: bool | None = None
    recent_transactions: list[TransactionSummary] | None = None


class ReserveResponse(CamelModel):
    """Successful reserve: the id to settle and the balances after the hold."""

    request_id: uuid.UUID
    credits_balance: int
    credits_reserved: int


class RestoreResponse(CamelModel):
    """Wallet truth after a restore-purchases reconciliation.

    Attributes:
        credits_balance: Spendable credits.
        lifetime_credits: Total credits ever granted.
        total_purchases: Count of purchase and renewal entries.
        total_usage: Count of completed reservations.
        transactions: Up to 20 most recent grant entries.
        revenuecat_subscriber: Payment platform subscriber record, when fetched.
    """

    message: str = "Purchases restored successfully"
    user_id: uuid.UUID
    credits_balance: int
    lifetime_credits: int
    total_purchases: int
    total_usage: int
    transactions: list[TransactionSummary]
    revenuecat_subscriber: dict[str, Any] | None = None


def _to_snake(camel: str) -> str:
    return "".join(f"_{c.lower()}" if c.isupper() else c for c in camel)
