"""Provider error taxonomy.

Error classes for the estimation provider abstraction. Adapters map their
SDK's exceptions to these so the metered gateway can report the provider's
own message; anything else is reported by exception type only.
"""


__all__ = [
    "ProviderError",
    "TransientError",
]


class ProviderError(Exception):
    """Base class for all provider errors.

    All provider-specific exceptions should inherit from this class,
    allowing callers to catch all provider errors with a single handler.
    """

    pass


class TransientError(ProviderError):
    """Temporary failure: connection errors, timeouts, 5xx responses."""

    pass
