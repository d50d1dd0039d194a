"""Error taxonomy shared by the client, paginator, mappers and sink."""

from __future__ import annotations

from typing import Optional, Sequence

TRANSIENT_API_MARKERS = (
    "timeout",
    "timed out",
    "temporarily unavailable",
    "try again",
    "rate limit",
    "too many requests",
)


class RscError(Exception):
    """Base class for every error raised by rsc_sync."""

    retryable: bool = False


class TransportError(RscError):
    """Network, TLS or timeout failure before an HTTP response arrived."""

    retryable = True


class HTTPError(RscError):
    """Non-2xx HTTP response."""

    def __init__(self, status_code: int, message: str = "", retry_after: Optional[float] = None) -> None:
        self.status_code = status_code
        self.retry_after = retry_after
        super().__init__(f"HTTP {status_code}: {message}" if message else f"HTTP {status_code}")

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.status_code == 429 or self.status_code >= 500


class APIError(RscError):
    """GraphQL ``errors`` array in an otherwise successful response."""

    def __init__(self, messages: Sequence[str], operation_name: str = "") -> None:
        self.messages = list(messages)
        self.operation_name = operation_name
        prefix = f"{operation_name}: " if operation_name else ""
        super().__init__(prefix + "; ".join(self.messages))

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        lowered = " ".join(self.messages).lower()
        return any(marker in lowered for marker in TRANSIENT_API_MARKERS)


class MappingError(RscError):
    """A raw node did not have the shape its mapper expects."""

    def __init__(self, entity: str, natural_key: Optional[str], message: str) -> None:
        self.entity = entity
        self.natural_key = natural_key
        super().__init__(f"{entity} [{natural_key or '?'}]: {message}")


class SinkError(RscError):
    """Database failure; the current batch transaction was rolled back."""


class PaginationLimitError(RscError):
    """The server kept reporting more pages than the configured guard allows."""


class FetchCancelled(RscError):
    """A cancellation signal or deadline stopped a fetch before completion."""
