"""Document provider client and backends."""

from docbatch.provider.base import DocumentBackend
from docbatch.provider.client import DocumentProviderClient
from docbatch.provider.errors import (
    DocumentProviderError,
    ProviderNotConfiguredError,
    ProviderRequestError,
    is_retryable_provider_error,
)
from docbatch.provider.retry import RetryPolicy

__all__ = [
    "DocumentBackend",
    "DocumentProviderClient",
    "DocumentProviderError",
    "ProviderNotConfiguredError",
    "ProviderRequestError",
    "RetryPolicy",
    "is_retryable_provider_error",
]
