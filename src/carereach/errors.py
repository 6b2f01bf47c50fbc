"""
Error taxonomy for CareReach.

Ingestion errors (`ProviderNetworkError`, `ProviderParseError`, `ValidationError`,
`EmptyResultError`) are raised inside source adapters and absorbed there; the
orchestrator only ever sees a `FetchOutcome` value. `IngestionExhausted` and
`DataUnavailable` are the two conditions that do cross module boundaries.
"""

from __future__ import annotations


class CareReachError(Exception):
    pass


class ProviderError(CareReachError):
    def __init__(self, message: str, *, provider: str | None = None) -> None:
        super().__init__(message)
        self.provider = provider


class ProviderNetworkError(ProviderError):
    # Provider unreachable, timed out, or answered with a non-2xx status.
    pass


class ProviderParseError(ProviderError):
    # Payload arrived but does not have the shape the adapter expects.
    pass


class ValidationError(CareReachError, ValueError):
    pass


class InvalidCoordinate(ValidationError):
    pass


class EmptyResultError(CareReachError):
    pass


class IngestionExhausted(CareReachError):
    def __init__(self, category: str, message: str) -> None:
        super().__init__(f"{category}: {message}")
        self.category = category


class StoreError(CareReachError):
    pass


class DataUnavailable(CareReachError):
    """Raised by query paths when the geo store cannot be read. Safe to retry."""

    retryable = True

    def __init__(self, message: str, *, category: str | None = None) -> None:
        super().__init__(message)
        self.category = category
