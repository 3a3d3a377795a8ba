"""Document provider client: lazy backend initialization plus retry policy."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import TypeVar

from docbatch.config import ProviderSettings
from docbatch.provider.base import DocumentBackend
from docbatch.provider.errors import (
    DocumentProviderError,
    ProviderNotConfiguredError,
    is_retryable_provider_error,
)
from docbatch.provider.google_docs import GoogleDocsBackend
from docbatch.provider.retry import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

BackendFactory = Callable[[], DocumentBackend]


class DocumentProviderClient:
    """Wraps a `DocumentBackend` with once-only initialization and retries.

    The backend is built on first use (or on `ensure_ready`). When the factory
    raises `ProviderNotConfiguredError` the error is remembered and every later
    call fails immediately with it, without any network I/O.
    """

    def __init__(self, *, backend_factory: BackendFactory, retry_policy: RetryPolicy) -> None:
        self._backend_factory = backend_factory
        self.retry_policy = retry_policy
        self._backend: DocumentBackend | None = None
        self._initialization_error: str | None = None
        self._initialized = False
        self._lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: ProviderSettings,
        *,
        sleep: Callable[[float], None] | None = None,
    ) -> DocumentProviderClient:
        def _factory() -> DocumentBackend:
            missing = settings.missing_credentials()
            if missing:
                raise ProviderNotConfiguredError(
                    f"Missing environment variables: {', '.join(missing)}",
                )
            return GoogleDocsBackend.from_service_account(
                client_email=settings.client_email or "",
                private_key=settings.private_key or "",
                timeout_seconds=settings.request_timeout_seconds,
            )

        return cls(
            backend_factory=_factory,
            retry_policy=RetryPolicy(
                max_attempts=settings.max_attempts,
                base_delay_seconds=settings.retry_base_seconds,
                max_delay_seconds=settings.retry_max_seconds,
                is_retryable=is_retryable_provider_error,
                sleep=sleep or time.sleep,
            ),
        )

    @property
    def is_ready(self) -> bool:
        self._initialize()
        return self._backend is not None

    @property
    def initialization_error(self) -> str | None:
        self._initialize()
        return self._initialization_error

    def ensure_ready(self) -> DocumentBackend:
        """Return the initialized backend or raise `ProviderNotConfiguredError`."""

        self._initialize()
        if self._backend is None:
            detail = self._initialization_error or "document provider is not initialized"
            raise ProviderNotConfiguredError(f"Document provider is not configured: {detail}")
        return self._backend

    def copy(self, template_id: str, name: str, folder_id: str | None = None) -> str:
        backend = self.ensure_ready()
        logger.info(
            "Copying template %s as %r%s",
            template_id,
            name,
            f" (folder: {folder_id})" if folder_id else "",
        )
        return self._call(
            lambda: backend.copy(template_id, name, folder_id),
            description=f"copy {template_id}",
        )

    def substitute(self, document_id: str, replacements: dict[str, str]) -> None:
        backend = self.ensure_ready()
        logger.info(
            "Replacing placeholders in document %s: %s",
            document_id,
            ", ".join(replacements),
        )
        self._call(
            lambda: backend.substitute(document_id, replacements),
            description=f"substitute {document_id}",
        )

    def export(self, document_id: str) -> bytes:
        backend = self.ensure_ready()
        content = self._call(
            lambda: backend.export(document_id),
            description=f"export {document_id}",
        )
        logger.info("Document %s exported to PDF (%d bytes)", document_id, len(content))
        return content

    def upload(self, content: bytes, name: str, folder_id: str | None = None) -> str:
        backend = self.ensure_ready()
        return self._call(
            lambda: backend.upload(content, name, folder_id),
            description=f"upload {name!r}",
        )

    def delete(self, file_id: str) -> None:
        """Best-effort delete; failures are logged and never raised."""

        try:
            backend = self.ensure_ready()
            self._call(lambda: backend.delete(file_id), description=f"delete {file_id}")
        except DocumentProviderError as error:
            logger.warning("Failed to delete file %s: %s", file_id, error)
            return
        except Exception as error:  # noqa: BLE001
            logger.warning("Failed to delete file %s, unexpected error: %r", file_id, error)
            return
        logger.info("File %s deleted", file_id)

    def _call(self, operation: Callable[[], T], *, description: str) -> T:
        return self.retry_policy.call(operation, description=description)

    def _initialize(self) -> None:
        if self._initialized:
            return
        with self._lock:
            if self._initialized:
                return
            try:
                self._backend = self._backend_factory()
                logger.info("Document provider client initialized")
            except ProviderNotConfiguredError as error:
                self._initialization_error = str(error)
                logger.error("Document provider initialization failed: %s", error)
                logger.warning(
                    "Document generation is disabled until provider credentials are configured.",
                )
            finally:
                self._initialized = True
