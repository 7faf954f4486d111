"""Shared dependencies for API endpoints.

Every ledger endpoint identifies its caller by the ``x-device-id`` header;
there are no accounts or passwords. Finalize and rollback are additionally
guarded by a shared internal key when one is configured.
"""

import hmac
from typing import Annotated

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.core.config import settings
from credit_ledger.core.database import get_db
from credit_ledger.core.errors import UnauthorizedError, ValidationError
from credit_ledger.core.rate_limiting import MAX_DEVICE_ID_LENGTH
from credit_ledger.services.payment_platform import (
    PaymentPlatformClient,
    get_payment_platform,
)


async def get_device_id(
    x_device_id: Annotated[str | None, Header()] = None,
) -> str:
    """Read and validate the caller's device identifier.

    Args:
        x_device_id: Value of the x-device-id header (injected).

    Returns:
        The trimmed device identifier.

    Raises:
        ValidationError: If the header is missing, blank, or too long.
    """
    device_id = (x_device_id or "").strip()
    if not device_id:
        raise ValidationError("Missing x-device-id header")
    if len(device_id) > MAX_DEVICE_ID_LENGTH:
        raise ValidationError(
            f"x-device-id must be at most {MAX_DEVICE_ID_LENGTH} characters"
        )
    return device_id


async def require_internal_caller(
    x_internal_key: Annotated[str | None, Header()] = None,
) -> None:
    """Guard finalize/rollback behind the internal API key.

    No-op when INTERNAL_API_KEY is empty (local development).

    Raises:
        UnauthorizedError: If the key is configured and the header does not
            match it.
    """
    expected = settings.internal_api_key.get_secret_value()
    if not expected:
        return
    # Security: constant-time comparison.
    if not hmac.compare_digest((x_internal_key or "").encode(), expected.encode()):
        raise UnauthorizedError()


DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentDeviceId = Annotated[str, Depends(get_device_id)]
InternalCaller = Annotated[None, Depends(require_internal_caller)]
PaymentPlatform = Annotated[PaymentPlatformClient, Depends(get_payment_platform)]
