"""Rate limiting configuration using slowapi.

Security: Bounds how fast one device can open reservations. The wallet
already prevents overspending; this stops a runaway client from hammering
the store and the AI gateway.

Usage in routers:
    from credit_ledger.core.rate_limiting import limiter

    @router.post("/reserve")
    @limiter.limit(settings.rate_limit_reserve)
    async def reserve(request: Request, ...):
        ...
"""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from credit_ledger.core.config import settings
from credit_ledger.core.errors import ErrorCode

DEVICE_ID_HEADER = "x-device-id"

# Upper bound on device identifiers ("ios_" + UUID is 40 characters). The
# device header dependency rejects anything longer, and it keys by IP here.
MAX_DEVICE_ID_LENGTH = 100


def _rate_limit_key_func(request: Request) -> str:
    """Get rate limit key from request.

    Key format:
    - Device header present: "device:{device_id}"
    - Missing or oversized header: "ip:{ip}"

    Args:
        request: The incoming request.

    Returns:
        Rate limit key string.
    """
    device_id = request.headers.get(DEVICE_ID_HEADER, "").strip()
    if device_id and len(device_id) <= MAX_DEVICE_ID_LENGTH:
        return f"device:{device_id}"
    return f"ip:{get_remote_address(request)}"


# Global limiter instance
# Configured with in-memory storage (suitable for single-instance deployment)
# For multi-instance, configure Redis storage via RATELIMIT_STORAGE_URL
limiter = Limiter(
    key_func=_rate_limit_key_func,
    enabled=settings.rate_limit_enabled,
)


def rate_limit_exceeded_handler(
    _request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Handle rate limit exceeded errors.

    Security: Returns 429 Too Many Requests with standard error envelope.
    The code is RATE_LIMITED, distinct from DAILY_LIMIT_REACHED, so the
    client can tell a burst limit from the daily quota.

    Args:
        request: The incoming request.
        exc: The rate limit exception.

    Returns:
        JSONResponse with 429 status and retry-after header.
    """
    # Parse retry-after from exception detail (e.g., "10 per 1 minute")
    # Fallback to 60 seconds if parsing fails
    try:
        retry_after = str(exc.detail.split()[-1])
        int(retry_after.rstrip("s"))
    except (ValueError, AttributeError, IndexError):
        retry_after = "60"

    return JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": ErrorCode.RATE_LIMITED.value,
                "message": f"Rate limit exceeded: {exc.detail}",
            }
        },
        headers={"Retry-After": retry_after},
    )
