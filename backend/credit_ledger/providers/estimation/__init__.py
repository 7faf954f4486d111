"""Estimation provider interface and adapters."""

from credit_ledger.providers.estimation.base import (
    EstimationProvider,
    EstimationRequest,
    EstimationResult,
)

__all__ = [
    "EstimationProvider",
    "EstimationRequest",
    "EstimationResult",
]
