"""Error types raised by document provider backends and the client."""

from __future__ import annotations

RETRYABLE_HTTP_STATUS_CODES: frozenset[int] = frozenset({429, 500, 502, 503, 504})
RATE_LIMIT_REASONS: frozenset[str] = frozenset({"rateLimitExceeded", "userRateLimitExceeded"})
TRANSPORT_REASON = "transport"


class DocumentProviderError(Exception):
    """Base class for document provider failures."""


class ProviderNotConfiguredError(DocumentProviderError):
    """Provider credentials are missing or the client failed to initialize."""


class ProviderRequestError(DocumentProviderError):
    """One remote provider call failed."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        reason: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.reason = reason


def is_retryable_provider_error(error: BaseException) -> bool:
    """Transient-status, rate-limit and transport failures are worth another attempt."""

    if not isinstance(error, ProviderRequestError):
        return False
    if error.status_code is not None and error.status_code in RETRYABLE_HTTP_STATUS_CODES:
        return True
    return error.reason in RATE_LIMIT_REASONS or error.reason == TRANSPORT_REASON
