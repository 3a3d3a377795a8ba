"""Backend interface for document provider primitives."""

from __future__ import annotations

from typing import Protocol


class DocumentBackend(Protocol):
    """Raw provider operations, without retries.

    Implementations raise `ProviderRequestError` for remote failures.
    """

    def copy(self, template_id: str, name: str, folder_id: str | None = None) -> str:
        """Copy a template document and return the id of the copy."""

    def substitute(self, document_id: str, replacements: dict[str, str]) -> None:
        """Replace every `{{placeholder}}` token in one batched update."""

    def export(self, document_id: str) -> bytes:
        """Export a document to PDF bytes."""

    def upload(self, content: bytes, name: str, folder_id: str | None = None) -> str:
        """Upload a PDF and return the id of the stored file."""

    def delete(self, file_id: str) -> None:
        """Delete a file."""
