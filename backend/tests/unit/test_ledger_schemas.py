"""Tests for ledger and webhook request schemas.

Covers legacy usage-key normalization, cost quantization and the input
limits enforced before a request reaches the service.
"""

import uuid
from decimal import Decimal

import pytest
from pydantic import ValidationError

from credit_ledger.schemas.ledger import (
    FinalizeRequest,
    ReserveRequest,
    RollbackRequest,
    UsageMetadata,
    UserStatusResponse,
)
from credit_ledger.schemas.webhook import RevenueCatWebhook, WebhookAck

_REQUEST_ID = uuid.UUID("6f1c2a4e-8d0b-4c55-9a57-1d2b3c4d5e6f")


class TestUsageMetadataLegacyKeys:
    @pytest.mark.parametrize(
        ("legacy", "field", "value"),
        [
            ("responseTokens", "response_size", 812),
            ("response_tokens", "response_size", 812),
            ("estimatedCost", "estimated_cost_usd", Decimal("0.0125")),
            ("estimated_cost", "estimated_cost_usd", Decimal("0.0125")),
            ("latency", "latency_ms", 950),
        ],
    )
    def test_legacy_key_maps_to_canonical_field(self, legacy, field, value):
        metadata = UsageMetadata.model_validate({legacy: str(value)})
        assert getattr(metadata, field) == value

    def test_canonical_camel_key_wins_over_legacy(self):
        metadata = UsageMetadata.model_validate(
            {"responseSize": 100, "responseTokens": 999}
        )
        assert metadata.response_size == 100

    def test_canonical_snake_key_wins_over_legacy(self):
        metadata = UsageMetadata.model_validate(
            {"response_size": 100, "response_tokens": 999}
        )
        assert metadata.response_size == 100

    def test_all_fields_optional(self):
        metadata = UsageMetadata.model_validate({})
        assert metadata.latency_ms is None
        assert metadata.response_size is None
        assert metadata.estimated_cost_usd is None

    def test_negative_latency_rejected(self):
        with pytest.raises(ValidationError):
            UsageMetadata.model_validate({"latencyMs": -1})


class TestCostQuantization:
    def test_rounds_half_up_to_four_places(self):
        metadata = UsageMetadata.model_validate({"estimatedCostUsd": "0.00125"})
        assert metadata.estimated_cost_usd == Decimal("0.0013")
        assert metadata.estimated_cost_usd.as_tuple().exponent == -4

    def test_float_input_accepted(self):
        metadata = UsageMetadata.model_validate({"estimatedCostUsd": 0.1})
        assert metadata.estimated_cost_usd == Decimal("0.1000")

    def test_negative_cost_rejected(self):
        with pytest.raises(ValidationError):
            UsageMetadata.model_validate({"estimatedCostUsd": "-0.01"})

    @pytest.mark.parametrize("value", ["NaN", "Infinity"])
    def test_non_finite_cost_rejected(self, value):
        with pytest.raises(ValidationError):
            UsageMetadata.model_validate({"estimatedCostUsd": value})

    @pytest.mark.parametrize("value", [1e30, "1E+40", "1000000", "999999.99995"])
    def test_cost_beyond_column_rejected(self, value):
        with pytest.raises(ValidationError) as exc_info:
            UsageMetadata.model_validate({"estimatedCostUsd": value})

        assert exc_info.value.errors()[0]["loc"] == ("estimatedCostUsd",)

    def test_largest_storable_cost_accepted(self):
        metadata = UsageMetadata.model_validate({"estimatedCostUsd": "999999.9999"})
        assert metadata.estimated_cost_usd == Decimal("999999.9999")


class TestMetricBounds:
    @pytest.mark.parametrize(
        "body",
        [
            {"latencyMs": 2**31},
            {"responseSize": 2**31},
            {"latency": 2**31},
            {"responseTokens": 2**31},
        ],
    )
    def test_values_beyond_int32_rejected(self, body):
        with pytest.raises(ValidationError):
            UsageMetadata.model_validate(body)

    def test_int32_max_accepted(self):
        metadata = UsageMetadata.model_validate(
            {"latencyMs": 2**31 - 1, "responseSize": 2**31 - 1}
        )
        assert metadata.latency_ms == metadata.response_size == 2**31 - 1


class TestFinalizeRequest:
    def test_accepts_legacy_keys_alongside_request_id(self):
        body = FinalizeRequest.model_validate(
            {
                "requestId": str(_REQUEST_ID),
                "responseTokens": 420,
                "estimatedCost": 0.002,
                "latencyMs": 1200,
            }
        )

        assert body.request_id == _REQUEST_ID
        assert body.usage_metadata() == UsageMetadata(
            latency_ms=1200,
            response_size=420,
            estimated_cost_usd=Decimal("0.0020"),
        )

    def test_usage_metadata_drops_request_id(self):
        body = FinalizeRequest.model_validate({"requestId": str(_REQUEST_ID)})
        metadata = body.usage_metadata()
        assert type(metadata) is UsageMetadata
        assert not hasattr(metadata, "request_id")

    def test_request_id_must_be_uuid(self):
        with pytest.raises(ValidationError):
            FinalizeRequest.model_validate({"requestId": "not-a-uuid"})

    def test_request_id_required(self):
        with pytest.raises(ValidationError):
            FinalizeRequest.model_validate({"latencyMs": 5})


class TestReserveAndRollbackRequests:
    def test_reserve_accepts_camel_and_snake(self):
        camel = ReserveRequest.model_validate(
            {"projectType": "kitchen", "countryCode": "DE"}
        )
        snake = ReserveRequest.model_validate(
            {"project_type": "kitchen", "country_code": "DE"}
        )
        assert camel == snake

    def test_reserve_project_type_length_limit(self):
        with pytest.raises(ValidationError):
            ReserveRequest.model_validate({"projectType": "x" * 51})

    def test_reserve_country_code_length_limit(self):
        with pytest.raises(ValidationError):
            ReserveRequest.model_validate({"countryCode": "x" * 11})

    def test_rollback_error_message_length_limit(self):
        with pytest.raises(ValidationError):
            RollbackRequest.model_validate(
                {"requestId": str(_REQUEST_ID), "errorMessage": "e" * 2001}
            )


class TestResponseSerialization:
    def test_status_serializes_camel_case(self):
        status = UserStatusResponse(
            user_id=_REQUEST_ID,
            device_id="ios_abc",
            plan_type="free",
            is_active=True,
            credits_balance=3,
            credits_reserved=1,
            lifetime_credits=4,
            daily_usage=0,
            daily_limit=50,
            can_use_ai=True,
        )

        data = status.model_dump(mode="json", by_alias=True, exclude_unset=True)

        assert data["creditsBalance"] == 3
        assert data["canUseAi"] is True
        assert "isNewUser" not in data
        assert "recentTransactions" not in data

    def test_webhook_ack_defaults(self):
        data = WebhookAck().model_dump(by_alias=True)
        assert data == {"ok": True, "eventType": None, "applied": False}


class TestRevenueCatWebhook:
    def test_unknown_fields_ignored(self):
        payload = RevenueCatWebhook.model_validate(
            {
                "api_version": "1.0",
                "event": {
                    "id": "evt_1",
                    "type": "INITIAL_PURCHASE",
                    "app_user_id": "ios_abc",
                    "store": "APP_STORE",
                    "price_in_purchased_currency": 4.99,
                },
                "unexpected": True,
            }
        )

        assert payload.event is not None
        assert payload.event.type == "INITIAL_PURCHASE"
        assert not hasattr(payload.event, "store")

    def test_event_optional(self):
        assert RevenueCatWebhook.model_validate({"api_version": "1.0"}).event is None

    def test_event_requires_app_user_id(self):
        with pytest.raises(ValidationError):
            RevenueCatWebhook.model_validate({"event": {"type": "RENEWAL"}})
