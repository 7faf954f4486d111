"""API error classes and the closed set of error codes.

Every failure the ledger reports is classified into one of these before a
response is built. The ``code`` field is the contract with clients: the
Ledger Client maps it 1:1 to its own typed errors and never reads messages.

WHY CUSTOM ERROR CLASSES:
- Consistent error response format across all endpoints
- Easy to map to HTTP status codes in exception handlers
- Type-safe error handling in services/repositories
"""

from enum import StrEnum


class ErrorCode(StrEnum):
    """Machine-readable error codes returned in ``error.code``."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"
    DAILY_LIMIT_REACHED = "DAILY_LIMIT_REACHED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    INVALID_RESERVATION = "INVALID_RESERVATION"
    FOREIGN_RESERVATION = "FOREIGN_RESERVATION"
    RATE_LIMITED = "RATE_LIMITED"
    UPSTREAM_GATEWAY_ERROR = "UPSTREAM_GATEWAY_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code.
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class ValidationError(APIError):
    """Field validation failed (400).

    Use for a missing device header, malformed bodies, etc.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            message=message,
            status_code=400,
            details=details,
        )


class UnauthorizedError(APIError):
    """Caller credentials missing or wrong (401).

    Used by internal endpoints and the payment webhook.
    """

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            code=ErrorCode.UNAUTHORIZED,
            message=message,
            status_code=401,
        )


class NotFoundError(APIError):
    """Resource not found (404).

    Read-only calls never create users, so an unknown device is a 404.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(
            code=ErrorCode.NOT_FOUND,
            message=message,
            status_code=404,
        )


class InsufficientCreditsError(APIError):
    """No spendable credit left (402).

    Expected outcome, not a fault. Details carry the balance so the client
    can show the purchase screen without another round trip.

    Args:
        credits_balance: Spendable balance at the time of the attempt.
    """

    def __init__(self, credits_balance: int) -> None:
        super().__init__(
            code=ErrorCode.INSUFFICIENT_CREDITS,
            message="Insufficient credits. Please purchase more to continue.",
            status_code=402,
            details=[{"credits_balance": credits_balance}],
        )


class DailyLimitError(APIError):
    """Per-user daily quota exhausted (429).

    Args:
        daily_usage: Completed reservations today (UTC).
        daily_limit: Configured daily limit.
    """

    def __init__(self, daily_usage: int, daily_limit: int) -> None:
        super().__init__(
            code=ErrorCode.DAILY_LIMIT_REACHED,
            message="Daily limit reached. Please try again tomorrow.",
            status_code=429,
            details=[{"daily_usage": daily_usage, "daily_limit": daily_limit}],
        )


class ServiceUnavailableError(APIError):
    """AI disabled, maintenance mode, or suspended account (503).

    Args:
        message: Reason shown to the user (e.g. the maintenance message).
    """

    def __init__(
        self, message: str = "AI service is temporarily unavailable"
    ) -> None:
        super().__init__(
            code=ErrorCode.SERVICE_UNAVAILABLE,
            message=message,
            status_code=503,
        )


class ReservationNotFoundError(APIError):
    """Unknown or already-settled request id (400).

    Args:
        request_id: The request id the caller presented.
    """

    def __init__(self, request_id: str) -> None:
        super().__init__(
            code=ErrorCode.INVALID_RESERVATION,
            message=f"Invalid or already processed reservation '{request_id}'",
            status_code=400,
        )


class ForeignReservationError(APIError):
    """Reservation owned by another device (400).

    Security: Always rejected, never a silent no-op. The message does not
    reveal which device owns the reservation.
    """

    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.FOREIGN_RESERVATION,
            message="Reservation does not belong to this device",
            status_code=400,
        )


class UpstreamGatewayError(APIError):
    """AI estimation call failed; the reservation was rolled back (502).

    Only raised after the refund succeeded, so ``credit_refunded`` is
    always true in the details.

    Args:
        request_id: The rolled-back reservation.
        reason: Short description of the upstream failure.
    """

    def __init__(self, request_id: str, reason: str) -> None:
        super().__init__(
            code=ErrorCode.UPSTREAM_GATEWAY_ERROR,
            message="AI estimation failed. Your credit was refunded.",
            status_code=502,
            details=[
                {
                    "request_id": request_id,
                    "reason": reason,
                    "credit_refunded": True,
                }
            ],
        )


class InternalError(APIError):
    """Unexpected server error (500).

    Use for unhandled exceptions. Never expose stack traces to clients.
    """

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(
            code=ErrorCode.INTERNAL_ERROR,
            message=message,
            status_code=500,
        )
