"""Application configuration loaded from environment variables.

Settings for the wallet store, the ledger protocol, the payment platform
and the reservation sweeper. Uses pydantic-settings for validation and
.env file support.
"""

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "ledger_dev_password"  # nosec B105


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "credit_ledger"
    database_user: str = "ledger_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD

    # API
    # 0.0.0.0 binds to all network interfaces (required for Docker containers)
    api_host: str = "0.0.0.0"  # nosec B104
    api_port: int = 8000

    # CORS (Security)
    # Mobile clients do not send Origin; this only matters for the web build.
    allowed_origins: list[str] = ["http://localhost:8081"]

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Internal endpoints (finalize / rollback)
    # Empty = open, for local development where the gateway runs in-process.
    internal_api_key: SecretStr = SecretStr("")

    # Payment platform (RevenueCat)
    revenuecat_api_key: SecretStr = SecretStr("")
    revenuecat_api_base: str = "https://api.revenuecat.com/v1"
    revenuecat_webhook_secret: SecretStr = SecretStr("")
    revenuecat_timeout_seconds: float = 10.0

    # Ledger protocol
    default_daily_limit: int = 50
    ledger_record_refund_transactions: bool = False
    estimate_cost_usd: float = 0.10

    # Reservation expiry
    reservation_ttl_seconds: int = 15 * 60
    reservation_sweep_enabled: bool = True
    reservation_sweep_interval_seconds: int = 5 * 60

    # Rate Limiting (Security)
    # Format: "count/period" (e.g., "10/minute", "100/hour")
    rate_limit_reserve: str = "20/minute"
    rate_limit_enabled: bool = True  # Disable for testing

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def database_url_sync(self) -> str:
        """Sync database URL for Alembic."""
        return (
            f"postgresql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate ledger invariants and production security requirements.

        Checks:
        - Reservation TTL and sweep interval must be positive (all environments)
        - Default daily limit must be non-negative (all environments)
        - CORS must not use wildcard origin
        - Database password must not be the default in production
        - Webhook secret must be set in production
        """
        if self.reservation_ttl_seconds <= 0:
            msg = (
                "RESERVATION_TTL_SECONDS must be positive. "
                f"Got: {self.reservation_ttl_seconds}"
            )
            raise ValueError(msg)
        if self.reservation_sweep_interval_seconds <= 0:
            msg = (
                "RESERVATION_SWEEP_INTERVAL_SECONDS must be positive. "
                f"Got: {self.reservation_sweep_interval_seconds}"
            )
            raise ValueError(msg)
        if self.default_daily_limit < 0:
            msg = (
                "DEFAULT_DAILY_LIMIT cannot be negative. "
                f"Got: {self.default_daily_limit}"
            )
            raise ValueError(msg)

        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS must not contain '*' (wildcard). "
                "List the web client origins explicitly."
            )
            raise ValueError(msg)

        if self.environment == "production":
            if self.database_password == _INSECURE_DEFAULT_PASSWORD:
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            if not self.revenuecat_webhook_secret.get_secret_value():
                msg = (
                    "REVENUECAT_WEBHOOK_SECRET must be set in production. "
                    "Unauthenticated webhooks could grant credits to anyone."
                )
                raise ValueError(msg)

        return self


settings = Settings()
