"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import datetime
from pathlib import Path

import pytest

from docbatch.projects.repository import ProjectDirectory
from docbatch.provider.client import DocumentProviderClient
from docbatch.provider.errors import ProviderRequestError
from docbatch.provider.retry import RetryPolicy
from docbatch.tasks.models import DocumentTaskCreate, TemplateView
from docbatch.tasks.repository import DocumentTaskRepository

OWNER_ID = "owner-1"


class FakeBackend:
    """In-memory document backend recording every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, ...]] = []
        self.names: dict[str, str] = {}
        self.replacements: dict[str, dict[str, str]] = {}
        self.uploads: list[tuple[str, str | None, bytes]] = []
        self.deleted: list[str] = []
        self.failures: dict[str, str] = {}
        self.on_upload: Callable[[str], None] | None = None
        self._counter = 0

    def copy(self, template_id: str, name: str, folder_id: str | None = None) -> str:
        self.calls.append(("copy", template_id, name, folder_id or ""))
        self._maybe_fail("copy", name)
        self._counter += 1
        document_id = f"doc-{self._counter}"
        self.names[document_id] = name
        return document_id

    def substitute(self, document_id: str, replacements: dict[str, str]) -> None:
        self.calls.append(("substitute", document_id))
        self._maybe_fail("substitute", self.names[document_id])
        self.replacements[document_id] = dict(replacements)

    def export(self, document_id: str) -> bytes:
        self.calls.append(("export", document_id))
        self._maybe_fail("export", self.names[document_id])
        return f"%PDF {self.names[document_id]}".encode()

    def upload(self, content: bytes, name: str, folder_id: str | None = None) -> str:
        self.calls.append(("upload", name, folder_id or ""))
        self._maybe_fail("upload", name)
        if self.on_upload is not None:
            self.on_upload(name)
        self.uploads.append((name, folder_id, content))
        return f"final-{len(self.uploads)}"

    def delete(self, file_id: str) -> None:
        self.calls.append(("delete", file_id))
        self.deleted.append(file_id)
        self._maybe_fail("delete", self.names.get(file_id, file_id))

    def _maybe_fail(self, operation: str, name: str) -> None:
        marker = self.failures.get(operation)
        if marker is not None and marker in name:
            raise ProviderRequestError(f"{operation} failed for {name}", status_code=400)


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "docbatch.db"


@pytest.fixture()
def repository(db_path: Path) -> Iterator[DocumentTaskRepository]:
    repository = DocumentTaskRepository(db_path)
    repository.init_schema()
    yield repository
    repository.close()


@pytest.fixture()
def directory(repository: DocumentTaskRepository, db_path: Path) -> Iterator[ProjectDirectory]:
    directory = ProjectDirectory(db_path)
    yield directory
    directory.close()


@pytest.fixture()
def project_id(directory: ProjectDirectory) -> str:
    return directory.create_project(name="Summer camp", owner_id=OWNER_ID).project_id


@pytest.fixture()
def template(repository: DocumentTaskRepository, project_id: str) -> TemplateView:
    return repository.add_template(project_id=project_id, name="Certificate", doc_id="tpl-doc")


@pytest.fixture()
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def provider(fake_backend: FakeBackend) -> DocumentProviderClient:
    return DocumentProviderClient(
        backend_factory=lambda: fake_backend,
        retry_policy=RetryPolicy(max_attempts=1),
    )


@pytest.fixture()
def make_task(
    repository: DocumentTaskRepository,
    project_id: str,
    template: TemplateView,
) -> Callable[..., str]:
    def _make_task(
        participant_ids: tuple[int, ...] = (1, 2, 3),
        *,
        now: datetime | None = None,
        **kwargs: object,
    ) -> str:
        payload = DocumentTaskCreate(
            project_id=project_id,
            template_id=template.template_id,
            participant_ids=participant_ids,
            requested_by=OWNER_ID,
            **kwargs,  # type: ignore[arg-type]
        )
        return repository.create_task(payload, now=now).task_id

    return _make_task
