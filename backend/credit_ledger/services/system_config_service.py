"""System configuration service: read-side lookups.

Reads the global AI switches and quotas from the system_config table and
parses them into a typed snapshot. Missing or malformed values fall back to
defaults and are logged, so a bad row never takes the reserve path down.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.core.config import settings
from credit_ledger.models.system_config import SystemConfig

logger = logging.getLogger(__name__)

# Config keys
KEY_AI_ENABLED = "ai_enabled"
KEY_DAILY_LIMIT = "daily_limit_per_user"
KEY_MAINTENANCE_MODE = "maintenance_mode"
KEY_MAINTENANCE_MESSAGE = "maintenance_message"
KEY_DAILY_GLOBAL_BUDGET = "daily_global_budget_usd"

DEFAULT_DAILY_GLOBAL_BUDGET_USD = Decimal("100")

_TRUE_VALUES = frozenset({"true", "1", "yes", "on"})
_FALSE_VALUES = frozenset({"false", "0", "no", "off"})


@dataclass(frozen=True)
class LedgerConfig:
    """Snapshot of the global switches consulted by the ledger.

    Attributes:
        ai_enabled: Master switch for AI estimates.
        maintenance_mode: When True all reservations are refused.
        maintenance_message: Operator message returned with 503s.
        daily_limit_per_user: Completed reservations allowed per UTC day.
        daily_global_budget_usd: Informational global spend cap.
    """

    ai_enabled: bool
    maintenance_mode: bool
    maintenance_message: str
    daily_limit_per_user: int
    daily_global_budget_usd: Decimal

    @property
    def accepting_reservations(self) -> bool:
        """True when neither switch blocks AI usage."""
        return self.ai_enabled and not self.maintenance_mode


class SystemConfigService:
    """Reads system_config rows.

    Args:
        db: Async database session.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def get_system_config(
        self, key: str, default: str | None = None
    ) -> str | None:
        """Get a system config value by key.

        Args:
            key: Config key (e.g. 'daily_limit_per_user').
            default: Value to return if key not found.

        Returns:
            Config value string, or default if key not found.
        """
        stmt = select(SystemConfig.value).where(SystemConfig.key == key)
        result = await self._db.execute(stmt)
        value = result.scalar_one_or_none()
        return value if value is not None else default

    async def get_system_config_int(self, key: str, default: int = 0) -> int:
        """Get a system config value as integer.

        Args:
            key: Config key.
            default: Value to return if key not found or not parseable.

        Returns:
            Parsed integer value, or default.
        """
        value = await self.get_system_config(key)
        if value is None:
            return default
        try:
            return int(value.strip())
        except ValueError:
            logger.warning(
                "System config '%s' is not a valid integer, using default %d",
                key,
                default,
            )
            return default

    async def get_system_config_bool(self, key: str, default: bool) -> bool:
        """Get a system config value as boolean.

        Accepts true/false, 1/0, yes/no, on/off (case-insensitive).
        """
        value = await self.get_system_config(key)
        if value is None:
            return default
        normalized = value.strip().lower()
        if normalized in _TRUE_VALUES:
            return True
        if normalized in _FALSE_VALUES:
            return False
        logger.warning(
            "System config '%s' is not a valid boolean, using default %s",
            key,
            default,
        )
        return default

    async def get_system_config_decimal(self, key: str, default: Decimal) -> Decimal:
        """Get a system config value as Decimal."""
        value = await self.get_system_config(key)
        if value is None:
            return default
        try:
            return Decimal(value.strip())
        except InvalidOperation:
            logger.warning(
                "System config '%s' is not a valid decimal, using default %s",
                key,
                default,
            )
            return default

    async def get_ledger_config(self) -> LedgerConfig:
        """Load every switch the ledger consults, in one snapshot.

        Returns:
            LedgerConfig with defaults applied for missing keys.
        """
        daily_limit = await self.get_system_config_int(
            KEY_DAILY_LIMIT, settings.default_daily_limit
        )
        if daily_limit < 0:
            logger.warning(
                "System config '%s' is negative (%d), using default %d",
                KEY_DAILY_LIMIT,
                daily_limit,
                settings.default_daily_limit,
            )
            daily_limit = settings.default_daily_limit

        return LedgerConfig(
            ai_enabled=await self.get_system_config_bool(KEY_AI_ENABLED, True),
            maintenance_mode=await self.get_system_config_bool(
                KEY_MAINTENANCE_MODE, False
            ),
            maintenance_message=await self.get_system_config(
                KEY_MAINTENANCE_MESSAGE, ""
            )
            or "",
            daily_limit_per_user=daily_limit,
            daily_global_budget_usd=await self.get_system_config_decimal(
                KEY_DAILY_GLOBAL_BUDGET, DEFAULT_DAILY_GLOBAL_BUDGET_USD
            ),
        )
