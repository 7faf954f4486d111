"""Typed errors raised by the Ledger Client.

The server's ``error.code`` is mapped through a closed table to one of six
client codes. Free-text messages are carried along for display but are
never used for classification.
"""

from enum import StrEnum
from typing import Any

import httpx


class LedgerErrorCode(StrEnum):
    """Error codes the calling application handles."""

    INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"
    DAILY_LIMIT_REACHED = "DAILY_LIMIT_REACHED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    NOT_FOUND = "NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INTERNAL = "INTERNAL"


# Server error.code -> client code. Anything not listed is INTERNAL.
_SERVER_CODES: dict[str, LedgerErrorCode] = {
    "INSUFFICIENT_CREDITS": LedgerErrorCode.INSUFFICIENT_CREDITS,
    "DAILY_LIMIT_REACHED": LedgerErrorCode.DAILY_LIMIT_REACHED,
    "SERVICE_UNAVAILABLE": LedgerErrorCode.SERVICE_UNAVAILABLE,
    "NOT_FOUND": LedgerErrorCode.NOT_FOUND,
    "VALIDATION_ERROR": LedgerErrorCode.VALIDATION_ERROR,
    "INVALID_RESERVATION": LedgerErrorCode.VALIDATION_ERROR,
    "FOREIGN_RESERVATION": LedgerErrorCode.VALIDATION_ERROR,
}


class LedgerError(Exception):
    """Base class for ledger client errors.

    Attributes:
        code: Client error code.
        message: Server message, or a description of the local failure.
        status_code: HTTP status, None for transport failures.
        server_code: The raw ``error.code`` from the body, if any.
        details: Server-provided details list, if any.
    """

    code = LedgerErrorCode.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        server_code: str | None = None,
        details: list[dict[str, Any]] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.server_code = server_code
        self.details = details


class InsufficientCreditsError(LedgerError):
    """No spendable credit; show the purchase screen."""

    code = LedgerErrorCode.INSUFFICIENT_CREDITS


class DailyLimitReachedError(LedgerError):
    """Daily quota used up; try again tomorrow (UTC)."""

    code = LedgerErrorCode.DAILY_LIMIT_REACHED


class ServiceUnavailableError(LedgerError):
    """AI disabled, maintenance, or account suspended."""

    code = LedgerErrorCode.SERVICE_UNAVAILABLE


class NotFoundError(LedgerError):
    """Device not registered yet; call init_user first."""

    code = LedgerErrorCode.NOT_FOUND


class ValidationError(LedgerError):
    """Request rejected as malformed or referring to an invalid reservation."""

    code = LedgerErrorCode.VALIDATION_ERROR


class InternalError(LedgerError):
    """Server fault, unknown code, unreadable body, or transport failure."""

    code = LedgerErrorCode.INTERNAL


_ERROR_CLASSES: dict[LedgerErrorCode, type[LedgerError]] = {
    LedgerErrorCode.INSUFFICIENT_CREDITS: InsufficientCreditsError,
    LedgerErrorCode.DAILY_LIMIT_REACHED: DailyLimitReachedError,
    LedgerErrorCode.SERVICE_UNAVAILABLE: ServiceUnavailableError,
    LedgerErrorCode.NOT_FOUND: NotFoundError,
    LedgerErrorCode.VALIDATION_ERROR: ValidationError,
    LedgerErrorCode.INTERNAL: InternalError,
}


def classify(server_code: str | None) -> LedgerErrorCode:
    """Map a server ``error.code`` to a client code."""
    if server_code is None:
        return LedgerErrorCode.INTERNAL
    return _SERVER_CODES.get(server_code, LedgerErrorCode.INTERNAL)


def error_from_response(response: httpx.Response) -> LedgerError:
    """Build the typed error for a non-2xx response.

    Args:
        response: The failed HTTP response.

    Returns:
        LedgerError subclass matching the body's ``error.code``.
    """
    try:
        body = response.json()
    except ValueError:
        return InternalError(
            f"Unreadable error response (HTTP {response.status_code})",
            status_code=response.status_code,
        )

    error = body.get("error") if isinstance(body, dict) else None
    if not isinstance(error, dict):
        return InternalError(
            f"Unexpected error response (HTTP {response.status_code})",
            status_code=response.status_code,
        )

    server_code = error.get("code")
    if not isinstance(server_code, str):
        server_code = None
    message = error.get("message")
    details = error.get("details")
    error_class = _ERROR_CLASSES[classify(server_code)]
    return error_class(
        message if isinstance(message, str) else f"HTTP {response.status_code}",
        status_code=response.status_code,
        server_code=server_code,
        details=details if isinstance(details, list) else None,
    )
