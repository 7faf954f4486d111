"""Client library for the credit ledger API.

Exports:
    DeviceIdentity and its stores
    LedgerClient and its result types
    Typed client errors
"""

from credit_ledger.client.device_identity import (
    DeviceIdentity,
    DeviceIdStore,
    DeviceIdStoreError,
    FileDeviceIdStore,
    InMemoryDeviceIdStore,
)
from credit_ledger.client.errors import (
    DailyLimitReachedError,
    InsufficientCreditsError,
    InternalError,
    LedgerError,
    LedgerErrorCode,
    NotFoundError,
    ServiceUnavailableError,
    ValidationError,
)
from credit_ledger.client.ledger_client import (
    LedgerClient,
    Reservation,
    RestoreSummary,
    UserStatus,
)

__all__ = [
    # Identity
    "DeviceIdentity",
    "DeviceIdStore",
    "DeviceIdStoreError",
    "FileDeviceIdStore",
    "InMemoryDeviceIdStore",
    # Client
    "LedgerClient",
    "Reservation",
    "RestoreSummary",
    "UserStatus",
    # Errors
    "LedgerError",
    "LedgerErrorCode",
    "InsufficientCreditsError",
    "DailyLimitReachedError",
    "ServiceUnavailableError",
    "NotFoundError",
    "ValidationError",
    "InternalError",
]
