"""Task service: request-side operations with project access checks."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from docbatch.provider.client import DocumentProviderClient
from docbatch.tasks.errors import (
    ProjectAccessError,
    TaskNotFoundError,
    TaskValidationError,
    TemplateNotFoundError,
)
from docbatch.tasks.models import (
    DocumentTaskCreate,
    DocumentTaskView,
    PlaceholderMapping,
    TemplateMappingView,
    TemplateView,
)
from docbatch.tasks.pipeline import ResolveParticipants
from docbatch.tasks.replacements import (
    build_replacements,
    intermediate_name,
    single_document_file_name,
)
from docbatch.tasks.repository import DocumentTaskRepository

logger = logging.getLogger(__name__)

AccessCheck = Callable[[str, str], object | None]

DEFAULT_TASK_LIST_LIMIT = 50


@dataclass(slots=True)
class GeneratedDocument:
    """Single-participant PDF produced on demand."""

    content: bytes
    file_name: str


class DocumentTaskService:
    """Creates and inspects generation tasks and manages templates."""

    def __init__(
        self,
        *,
        repository: DocumentTaskRepository,
        access_check: AccessCheck,
        resolve_participants: ResolveParticipants | None = None,
        provider: DocumentProviderClient | None = None,
        default_output_folder_id: str | None = None,
    ) -> None:
        self.repository = repository
        self.access_check = access_check
        self.resolve_participants = resolve_participants
        self.provider = provider
        self.default_output_folder_id = default_output_folder_id

    def create_task(  # noqa: PLR0913
        self,
        *,
        project_id: str,
        user_id: str,
        template_id: str,
        participant_ids: Sequence[object],
        output_folder_id: str | None = None,
    ) -> DocumentTaskView:
        self._require_access(project_id, user_id)
        ids = validate_participant_ids(participant_ids)
        self._require_template(project_id, template_id)
        task = self.repository.create_task(
            DocumentTaskCreate(
                project_id=project_id,
                template_id=template_id,
                participant_ids=ids,
                requested_by=user_id,
                output_folder_id=(output_folder_id or "").strip() or None,
            ),
        )
        logger.info(
            "Created document task %s for %d participant(s) in project %s",
            task.task_id,
            len(ids),
            project_id,
        )
        return task

    def list_tasks(
        self,
        *,
        project_id: str,
        user_id: str,
        limit: int = DEFAULT_TASK_LIST_LIMIT,
    ) -> list[DocumentTaskView]:
        self._require_access(project_id, user_id)
        return self.repository.list_tasks(project_id=project_id, limit=limit)

    def get_task(self, *, project_id: str, task_id: str, user_id: str) -> DocumentTaskView:
        self._require_access(project_id, user_id)
        task = self.repository.get_task(task_id=task_id, project_id=project_id)
        if task is None:
            raise TaskNotFoundError(f"Task {task_id} not found in project {project_id}")
        return task

    def add_template(
        self,
        *,
        project_id: str,
        user_id: str,
        name: str,
        doc_id: str,
    ) -> TemplateView:
        self._require_access(project_id, user_id)
        name = name.strip()
        doc_id = doc_id.strip()
        if not name:
            raise TaskValidationError("Template name must not be empty.")
        if not doc_id:
            raise TaskValidationError("Template document id must not be empty.")
        return self.repository.add_template(project_id=project_id, name=name, doc_id=doc_id)

    def list_templates(self, *, project_id: str, user_id: str) -> list[TemplateView]:
        self._require_access(project_id, user_id)
        return self.repository.list_templates(project_id=project_id)

    def get_template_mappings(
        self,
        *,
        project_id: str,
        template_id: str,
        user_id: str,
    ) -> list[TemplateMappingView]:
        self._require_access(project_id, user_id)
        self._require_template(project_id, template_id)
        return self.repository.list_template_mappings(template_id=template_id)

    def set_template_mappings(
        self,
        *,
        project_id: str,
        template_id: str,
        user_id: str,
        mappings: Sequence[PlaceholderMapping],
    ) -> list[TemplateMappingView]:
        """Replace all mappings of a template."""

        self._require_access(project_id, user_id)
        self._require_template(project_id, template_id)
        normalized = validate_mappings(mappings)
        return self.repository.replace_template_mappings(
            template_id=template_id,
            mappings=normalized,
        )

    def generate_participant_document(
        self,
        *,
        project_id: str,
        user_id: str,
        template_id: str,
        participant_id: int,
    ) -> GeneratedDocument:
        """Generate one participant's PDF synchronously without creating a task."""

        if self.provider is None or self.resolve_participants is None:
            raise RuntimeError("Document generation is not wired for this service")
        self._require_access(project_id, user_id)
        template = self._require_template(project_id, template_id)
        self.provider.ensure_ready()

        participant = next(
            (
                record
                for record in self.resolve_participants(project_id, user_id)
                if record.get("id") == participant_id
            ),
            None,
        )
        if participant is None:
            raise TaskValidationError(f"Participant {participant_id} not found")

        file_name = single_document_file_name(participant, participant_id=participant_id)
        mappings = self.repository.resolve_mappings(template_id)
        document_id: str | None = None
        try:
            document_id = self.provider.copy(
                template.doc_id,
                intermediate_name(file_name),
                self.default_output_folder_id,
            )
            self.provider.substitute(document_id, build_replacements(participant, mappings))
            content = self.provider.export(document_id)
        finally:
            if document_id is not None:
                self.provider.delete(document_id)
        return GeneratedDocument(content=content, file_name=file_name)

    def _require_access(self, project_id: str, user_id: str) -> None:
        if self.access_check(project_id, user_id) is None:
            raise ProjectAccessError(f"User {user_id} has no access to project {project_id}")

    def _require_template(self, project_id: str, template_id: str) -> TemplateView:
        template = self.repository.get_template(template_id=template_id, project_id=project_id)
        if template is None:
            raise TemplateNotFoundError(f"Template {template_id} not found in project {project_id}")
        return template


def validate_participant_ids(values: Sequence[object]) -> tuple[int, ...]:
    """Non-empty, distinct, positive integers in their original order."""

    if isinstance(values, str | bytes) or len(values) == 0:
        raise TaskValidationError("participantIds must be a non-empty list.")
    seen: set[int] = set()
    ids: list[int] = []
    for value in values:
        if isinstance(value, bool) or not isinstance(value, int):
            raise TaskValidationError(f"Participant id must be an integer, got {value!r}.")
        if value <= 0:
            raise TaskValidationError(f"Participant id must be positive, got {value}.")
        if value in seen:
            raise TaskValidationError(f"Duplicate participant id: {value}.")
        seen.add(value)
        ids.append(value)
    return tuple(ids)


def validate_mappings(mappings: Sequence[PlaceholderMapping]) -> list[PlaceholderMapping]:
    """Trim placeholders and keys; reject blanks and duplicate placeholders."""

    normalized: list[PlaceholderMapping] = []
    placeholders: set[str] = set()
    for mapping in mappings:
        placeholder = mapping.placeholder.strip()
        participant_key = mapping.participant_key.strip()
        if not placeholder:
            raise TaskValidationError("Placeholder must not be empty.")
        if not participant_key:
            raise TaskValidationError(f"Participant key for {placeholder!r} must not be empty.")
        if placeholder in placeholders:
            raise TaskValidationError(f"Duplicate placeholder: {placeholder!r}.")
        placeholders.add(placeholder)
        normalized.append(
            PlaceholderMapping(placeholder=placeholder, participant_key=participant_key),
        )
    return normalized
