"""Mock estimation provider for testing.

MockEstimationProvider enables testing the metered gateway without hitting
a real AI API.
"""

from typing import Any

from credit_ledger.providers.estimation.base import (
    EstimationProvider,
    EstimationRequest,
    EstimationResult,
)


class MockEstimationProvider(EstimationProvider):
    """Mock provider for testing.

    Attributes:
        content: Payload returned by generate().
        error: If set, generate() raises it instead of returning.
        calls: Record of all generate() invocations for test assertions.
    """

    @property
    def provider_name(self) -> str:
        """Return 'mock' for testing."""
        return "mock"

    def __init__(
        self,
        content: str = '{"total": 1000}',
        error: BaseException | None = None,
    ) -> None:
        self.content = content
        self.error = error
        self.calls: list[dict[str, Any]] = []

    def fail_with(self, error: BaseException | None) -> None:
        """Make subsequent calls raise ``error`` (None to succeed again)."""
        self.error = error

    async def generate(self, request: EstimationRequest) -> EstimationResult:
        """Record the call, then return the configured payload or raise."""
        self.calls.append({"method": "generate", "request": request})
        if self.error is not None:
            raise self.error
        return EstimationResult(
            content=self.content,
            model="mock-model",
            latency_ms=10,
        )
