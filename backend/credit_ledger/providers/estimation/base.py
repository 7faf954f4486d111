"""Estimation provider interface.

The AI estimate itself is a black box to the ledger. Providers implement
``generate`` and raise ProviderError subclasses on failure; everything
about credits is handled by MeteredEstimationProvider around them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any


@dataclass(frozen=True)
class EstimationRequest:
    """Input for one estimate.

    Attributes:
        project_type: Estimate category (e.g. "bathroom").
        country_code: Region the estimate is priced for.
        description: Free-text job description.
        parameters: Provider-specific extras (areas, finishes, photos).
    """

    project_type: str | None = None
    country_code: str | None = None
    description: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class EstimationResult:
    """Output of one estimate.

    Attributes:
        content: Raw estimate payload (JSON text).
        model: Model identifier that produced it.
        latency_ms: Provider-reported latency, if known.
        cost_usd: Provider cost for the call, if known.
    """

    content: str
    model: str
    latency_ms: int | None = None
    cost_usd: Decimal | None = None


class EstimationProvider(ABC):
    """Abstract estimation backend."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Short provider identifier used in logs."""

    @abstractmethod
    async def generate(self, request: EstimationRequest) -> EstimationResult:
        """Produce an estimate.

        Args:
            request: Estimate input.

        Returns:
            EstimationResult.

        Raises:
            ProviderError: On any upstream failure.
        """
