"""Async HTTP client for the credit ledger API.

Used by the calling application to register the device, read its wallet,
reserve a credit before an AI estimate, and reconcile restored purchases.
Every request carries ``x-device-id`` from the injected DeviceIdentity.

Usage:
    identity = DeviceIdentity(FileDeviceIdStore(path), platform="ios")
    async with LedgerClient("https://ledger.example.com", identity) as client:
        status = await client.init_user()
        if status.credits_balance > 0:
            reservation = await client.reserve(project_type="kitchen")
"""

import logging
from typing import Any, TypeVar

import httpx
import pydantic

from credit_ledger.client.device_identity import DeviceIdentity
from credit_ledger.client.errors import InternalError, error_from_response
from credit_ledger.schemas.ledger import (
    ReserveResponse,
    RestoreResponse,
    UserStatusResponse,
)

logger = logging.getLogger(__name__)

_ModelT = TypeVar("_ModelT", bound=pydantic.BaseModel)

# The mobile client contract speaks these names.
UserStatus = UserStatusResponse
Reservation = ReserveResponse
RestoreSummary = RestoreResponse

_API_PREFIX = "/api/v1"
_DEFAULT_TIMEOUT = 10.0
_DEVICE_ID_HEADER = "x-device-id"


class LedgerClient:
    """Client for the ledger endpoints.

    Args:
        base_url: Server root, without the /api/v1 prefix.
        identity: Source of the device identifier.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests pass a MockTransport
            or an ASGITransport).
    """

    def __init__(
        self,
        base_url: str,
        identity: DeviceIdentity,
        *,
        timeout: float = _DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._identity = identity
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + _API_PREFIX,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "LedgerClient":
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying connection pool."""
        await self._http.aclose()

    @property
    def identity(self) -> DeviceIdentity:
        return self._identity

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def init_user(self) -> UserStatus:
        """Register this device (idempotent) and return its status."""
        body = await self._request("POST", "/init-user")
        return self._parse(UserStatus, body)

    async def get_status(self) -> UserStatus:
        """Return wallet, quota and recent transactions.

        Raises:
            NotFoundError: If the device was never registered.
        """
        body = await self._request("GET", "/get-status")
        return self._parse(UserStatus, body)

    async def reserve(
        self,
        project_type: str | None = None,
        country_code: str | None = None,
    ) -> Reservation:
        """Hold one credit for an upcoming estimate.

        Raises:
            InsufficientCreditsError: No spendable credit.
            DailyLimitReachedError: Daily quota used up.
            ServiceUnavailableError: AI disabled or under maintenance.
        """
        payload = {
            key: value
            for key, value in (
                ("projectType", project_type),
                ("countryCode", country_code),
            )
            if value is not None
        }
        body = await self._request("POST", "/reserve", json=payload)
        return self._parse(Reservation, body)

    async def restore(self) -> RestoreSummary:
        """Reconcile purchases after a reinstall."""
        body = await self._request("POST", "/restore-purchases")
        return self._parse(RestoreSummary, body)

    async def has_credits(self) -> bool:
        """True if at least one credit is spendable right now."""
        return await self.get_credit_balance() > 0

    async def get_credit_balance(self) -> int:
        """Current spendable balance."""
        status = await self.get_status()
        return status.credits_balance

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
    ) -> Any:
        headers = {_DEVICE_ID_HEADER: self._identity.get_device_id()}
        try:
            response = await self._http.request(
                method, path, json=json, headers=headers
            )
        except httpx.HTTPError as exc:
            logger.warning("Ledger request %s %s failed: %s", method, path, exc)
            raise InternalError(f"Ledger request failed: {type(exc).__name__}") from exc

        if response.is_error:
            error = error_from_response(response)
            logger.info(
                "Ledger %s %s returned %d (%s)",
                method,
                path,
                response.status_code,
                error.code,
            )
            raise error

        try:
            return response.json()
        except ValueError as exc:
            raise InternalError(
                "Unreadable ledger response", status_code=response.status_code
            ) from exc

    @staticmethod
    def _parse(model: type[_ModelT], body: Any) -> _ModelT:
        try:
            return model.model_validate(body)
        except pydantic.ValidationError as exc:
            raise InternalError("Unexpected ledger response shape") from exc
