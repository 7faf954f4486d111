"""Provider abstraction layer.

Exports:
    Error classes for provider error handling
"""

from credit_ledger.providers.errors import ProviderError, TransientError

__all__ = [
    # Errors
    "ProviderError",
    "TransientError",
]
