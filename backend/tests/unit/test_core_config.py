"""Tests for application configuration.

Settings for the database, the ledger protocol, the payment platform and
the reservation sweeper. Tests cover defaults and the startup validation.
"""

import pytest
from pydantic import SecretStr, ValidationError

from credit_ledger.core.config import _INSECURE_DEFAULT_PASSWORD, Settings

_SECURE_DB_PASSWORD = "my-secure-production-password-123!"
_PRODUCTION = "production"


class TestLedgerDefaults:
    """Defaults the ledger relies on when nothing is configured."""

    def test_daily_limit_defaults_to_fifty(self):
        assert Settings().default_daily_limit == 50

    def test_refund_audit_rows_disabled_by_default(self):
        assert Settings().ledger_record_refund_transactions is False

    def test_sweeper_enabled_with_fifteen_minute_ttl(self):
        s = Settings()
        assert s.reservation_sweep_enabled is True
        assert s.reservation_ttl_seconds == 900
        assert s.reservation_sweep_interval_seconds == 300

    def test_internal_key_empty_by_default(self):
        """Finalize/rollback are open in local development."""
        assert Settings().internal_api_key.get_secret_value() == ""

    def test_database_url_uses_asyncpg(self):
        s = Settings(database_host="db", database_name="ledger")
        assert s.database_url.startswith("postgresql+asyncpg://")
        assert "@db:5432/ledger" in s.database_url


class TestLedgerValidation:
    """Invariants checked in every environment."""

    def test_rejects_zero_ttl(self):
        with pytest.raises(ValidationError, match="RESERVATION_TTL_SECONDS"):
            Settings(reservation_ttl_seconds=0)

    def test_rejects_zero_sweep_interval(self):
        with pytest.raises(
            ValidationError, match="RESERVATION_SWEEP_INTERVAL_SECONDS"
        ):
            Settings(reservation_sweep_interval_seconds=0)

    def test_rejects_negative_daily_limit(self):
        with pytest.raises(ValidationError, match="DEFAULT_DAILY_LIMIT"):
            Settings(default_daily_limit=-1)

    def test_allows_zero_daily_limit(self):
        """Zero is a valid (if drastic) way to stop all AI usage."""
        assert Settings(default_daily_limit=0).default_daily_limit == 0

    def test_rejects_wildcard_cors(self):
        with pytest.raises(ValidationError, match="wildcard"):
            Settings(allowed_origins=["*"])


class TestProductionSecurityValidation:
    """Tests for production security requirements."""

    def test_allows_default_password_in_development(self):
        """Default password is allowed in development environment."""
        s = Settings(
            environment="development",
            database_password=_INSECURE_DEFAULT_PASSWORD,
        )
        assert s.database_password == _INSECURE_DEFAULT_PASSWORD

    def test_rejects_default_password_in_production(self):
        """Default password is rejected in production environment."""
        with pytest.raises(ValidationError) as exc_info:
            Settings(
                environment=_PRODUCTION,
                database_password=_INSECURE_DEFAULT_PASSWORD,
                revenuecat_webhook_secret=SecretStr("whsec"),
            )

        errors = exc_info.value.errors()
        assert len(errors) == 1
        assert "Cannot use default database password in production" in str(
            errors[0]["msg"]
        )

    def test_rejects_missing_webhook_secret_in_production(self):
        """Unauthenticated webhooks could grant credits to anyone."""
        with pytest.raises(ValidationError, match="REVENUECAT_WEBHOOK_SECRET"):
            Settings(
                environment=_PRODUCTION,
                database_password=_SECURE_DB_PASSWORD,
            )

    def test_allows_secure_production_config(self):
        s = Settings(
            environment=_PRODUCTION,
            database_password=_SECURE_DB_PASSWORD,
            revenuecat_webhook_secret=SecretStr("whsec"),
        )
        assert s.environment == _PRODUCTION
