"""Payment platform HTTP client: RevenueCat subscriber lookups.

Used by restore-purchases to attach the subscriber record to the wallet
summary. Lookups are best-effort: a missing API key, a missing customer id,
a non-2xx response, a timeout, or a malformed body all yield None and a log
line, never an error for the caller.
"""

import logging
from typing import Any
from urllib.parse import quote

import httpx

from credit_ledger.core.config import settings

logger = logging.getLogger(__name__)


class PaymentPlatformClient:
    """Read-only client for the RevenueCat REST API.

    Args:
        api_key: Secret API key; empty disables lookups.
        base_url: API root (e.g. "https://api.revenuecat.com/v1").
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests pass a MockTransport).
    """

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        timeout: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self._api_key)

    async def fetch_subscriber(self, customer_id: str | None) -> dict[str, Any] | None:
        """Fetch the subscriber record for a customer.

        Args:
            customer_id: Payment platform subscriber id.

        Returns:
            The ``subscriber`` object, or None if unavailable for any reason.
        """
        if not self.enabled:
            logger.debug("Payment platform lookup skipped: no API key configured")
            return None
        if not customer_id:
            logger.debug("Payment platform lookup skipped: no customer id")
            return None

        url = f"{self._base_url}/subscribers/{quote(customer_id, safe='')}"
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                resp = await client.get(
                    url,
                    headers={
                        "Authorization": f"Bearer {self._api_key}",
                        "Content-Type": "application/json",
                    },
                    timeout=self._timeout,
                )
                resp.raise_for_status()
                body = resp.json()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Payment platform returned %d for subscriber lookup",
                exc.response.status_code,
            )
            return None
        except httpx.HTTPError as exc:
            logger.warning("Payment platform request failed: %s", type(exc).__name__)
            return None
        except ValueError:
            logger.warning("Payment platform returned a non-JSON body")
            return None

        subscriber = body.get("subscriber") if isinstance(body, dict) else None
        if not isinstance(subscriber, dict):
            logger.warning("Payment platform response has no subscriber object")
            return None
        return subscriber


def get_payment_platform() -> PaymentPlatformClient:
    """FastAPI dependency: client configured from settings."""
    return PaymentPlatformClient(
        api_key=settings.revenuecat_api_key.get_secret_value(),
        base_url=settings.revenuecat_api_base,
        timeout=settings.revenuecat_timeout_seconds,
    )
