"""Controllers for docbatch CLI commands."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from docbatch.config import Settings
from docbatch.projects.models import FieldMapping, ProjectRole
from docbatch.runtime import open_task_runtime
from docbatch.tasks.errors import TaskNotFoundError
from docbatch.tasks.models import DocumentTaskView, PlaceholderMapping


@dataclass(slots=True)
class ProjectAddCommand:
    """CLI input for project creation."""

    db_path: Path | None
    name: str
    owner_id: str
    sheet_path: str | None
    project_id: str | None


@dataclass(slots=True)
class ProjectMemberCommand:
    """CLI input for adding a member or changing its role."""

    db_path: Path | None
    project_id: str
    user_id: str
    role: str


@dataclass(slots=True)
class ProjectSheetCommand:
    """CLI input for the participant sheet location."""

    db_path: Path | None
    project_id: str
    sheet_path: str


@dataclass(slots=True)
class ProjectFieldsCommand:
    """CLI input for column mappings, each `LETTER:key[:Display name]`."""

    db_path: Path | None
    project_id: str
    fields: tuple[str, ...]


@dataclass(slots=True)
class TemplateAddCommand:
    """CLI input for template registration."""

    db_path: Path | None
    project_id: str
    user_id: str
    name: str
    doc_id: str


@dataclass(slots=True)
class TemplateListCommand:
    """CLI input for template listing."""

    db_path: Path | None
    project_id: str
    user_id: str


@dataclass(slots=True)
class TemplateMappingsCommand:
    """CLI input for showing or replacing placeholder mappings."""

    db_path: Path | None
    project_id: str
    template_id: str
    user_id: str
    mappings: tuple[str, ...] = ()


@dataclass(slots=True)
class TaskCreateCommand:
    """CLI input for bulk generation task creation."""

    db_path: Path | None
    project_id: str
    user_id: str
    template_id: str
    participant_ids: tuple[int, ...]
    output_folder_id: str | None


@dataclass(slots=True)
class TaskListCommand:
    """CLI input for task listing."""

    db_path: Path | None
    project_id: str
    user_id: str
    limit: int


@dataclass(slots=True)
class TaskInspectCommand:
    """CLI input for task inspection."""

    db_path: Path | None
    task_id: str


@dataclass(slots=True)
class TaskRunCommand:
    """CLI input for one batch run."""

    db_path: Path | None


@dataclass(slots=True)
class GenerateCommand:
    """CLI input for single-participant generation."""

    db_path: Path | None
    project_id: str
    user_id: str
    template_id: str
    participant_id: int
    output_dir: Path


class DocBatchCliController:
    """Coordinates project, template and task CLI operations."""

    def add_project(self, command: ProjectAddCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_task_runtime(settings) as runtime:
            project = runtime.directory.create_project(
                name=command.name,
                owner_id=command.owner_id,
                sheet_path=command.sheet_path,
                project_id=command.project_id,
            )
        return [
            f"Project created: project_id={project.project_id} name={project.name} "
            f"owner={project.owner_id}",
        ]

    def add_member(self, command: ProjectMemberCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        role = ProjectRole(command.role)
        with open_task_runtime(settings) as runtime:
            runtime.directory.add_member(
                project_id=command.project_id,
                user_id=command.user_id,
                role=role,
            )
        return [
            f"Member set: project_id={command.project_id} user={command.user_id} "
            f"role={role.value}",
        ]

    def set_sheet(self, command: ProjectSheetCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_task_runtime(settings) as runtime:
            updated = runtime.directory.set_sheet_path(
                project_id=command.project_id,
                sheet_path=command.sheet_path,
            )
        if not updated:
            return [f"Project not found: {command.project_id}"]
        return [f"Sheet set: project_id={command.project_id} path={command.sheet_path}"]

    def set_fields(self, command: ProjectFieldsCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        mappings = [_parse_field(raw) for raw in command.fields]
        with open_task_runtime(settings) as runtime:
            runtime.directory.set_field_mappings(project_id=command.project_id, mappings=mappings)
            stored = runtime.directory.list_field_mappings(project_id=command.project_id)

        lines = [f"Field mappings: {len(stored)}"]
        for mapping in stored:
            visibility = "" if mapping.is_visible else " (hidden)"
            lines.append(
                f"  {mapping.sheet_column_letter} -> {mapping.internal_key} "
                f"[{mapping.display_name}]{visibility}",
            )
        return lines

    def add_template(self, command: TemplateAddCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_task_runtime(settings) as runtime:
            template = runtime.service.add_template(
                project_id=command.project_id,
                user_id=command.user_id,
                name=command.name,
                doc_id=command.doc_id,
            )
        return [
            f"Template added: template_id={template.template_id} name={template.name} "
            f"doc_id={template.doc_id}",
        ]

    def list_templates(self, command: TemplateListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_task_runtime(settings) as runtime:
            templates = runtime.service.list_templates(
                project_id=command.project_id,
                user_id=command.user_id,
            )

        lines = [f"Templates: {len(templates)}"]
        for template in templates:
            lines.append(f"  {template.template_id} name={template.name} doc_id={template.doc_id}")
        return lines

    def template_mappings(self, command: TemplateMappingsCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_task_runtime(settings) as runtime:
            if command.mappings:
                mappings = runtime.service.set_template_mappings(
                    project_id=command.project_id,
                    template_id=command.template_id,
                    user_id=command.user_id,
                    mappings=[_parse_placeholder(raw) for raw in command.mappings],
                )
            else:
                mappings = runtime.service.get_template_mappings(
                    project_id=command.project_id,
                    template_id=command.template_id,
                    user_id=command.user_id,
                )

        if not mappings:
            return ["Template mappings: 0 (all participant fields are used)"]
        lines = [f"Template mappings: {len(mappings)}"]
        for mapping in mappings:
            lines.append(f"  {{{{{mapping.placeholder}}}}} -> {mapping.participant_key}")
        return lines

    def create_task(self, command: TaskCreateCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_task_runtime(settings) as runtime:
            task = runtime.service.create_task(
                project_id=command.project_id,
                user_id=command.user_id,
                template_id=command.template_id,
                participant_ids=list(command.participant_ids),
                output_folder_id=command.output_folder_id,
            )
        return [
            f"Task created: task_id={task.task_id} status={task.status.value} "
            f"participants={task.progress_total}",
        ]

    def list_tasks(self, command: TaskListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_task_runtime(settings) as runtime:
            tasks = runtime.service.list_tasks(
                project_id=command.project_id,
                user_id=command.user_id,
                limit=command.limit,
            )

        lines = [f"Tasks: {len(tasks)}"]
        for task in tasks:
            lines.append(
                f"  {task.task_id} status={task.status.value} "
                f"progress={task.progress_done}/{task.progress_total} "
                f"created_at={task.created_at.isoformat()}",
            )
        return lines

    def inspect_task(self, command: TaskInspectCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_task_runtime(settings) as runtime:
            details = runtime.repository.get_task_details(task_id=command.task_id)
        if details is None:
            raise TaskNotFoundError(f"Task not found: {command.task_id}")

        task = details.task
        lines = [
            f"Task: {task.task_id}",
            f"Project: {task.project_id}",
            f"Template: {task.template_id}",
            f"Status: {task.status.value}",
            f"Progress: {task.progress_done}/{task.progress_total}",
            f"Lock: {_format_lock(task)}",
            f"Error: {task.error or '-'}",
            f"Output files: {len(task.output_files)}",
        ]
        for entry in task.output_files:
            outcome = entry.final_id if entry.succeeded else f"ERROR {entry.error or '-'}"
            lines.append(f"  participant={entry.participant_id} name={entry.name} {outcome}")
        lines.append(f"Events: {len(details.events)}")
        for event in details.events:
            lines.append(
                f"  {event.created_at.isoformat()} {event.event_type} "
                f"{event.status_from.value if event.status_from else '-'} -> "
                f"{event.status_to.value if event.status_to else '-'}",
            )
        return lines

    def run_tasks(self, command: TaskRunCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        settings.validate_for_runner()
        with open_task_runtime(settings) as runtime:
            summary = runtime.runner.run_once()
        lines = [f"Run summary: claimed={summary.claimed} processed={summary.processed}"]
        lines.extend(f"  {task_id}" for task_id in summary.task_ids)
        return lines

    def generate(self, command: GenerateCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with open_task_runtime(settings) as runtime:
            document = runtime.service.generate_participant_document(
                project_id=command.project_id,
                user_id=command.user_id,
                template_id=command.template_id,
                participant_id=command.participant_id,
            )
        command.output_dir.mkdir(parents=True, exist_ok=True)
        output_path = command.output_dir / document.file_name
        output_path.write_bytes(document.content)
        return [f"Document written: {output_path} ({len(document.content)} bytes)"]


def _parse_field(raw: str) -> FieldMapping:
    parts = [part.strip() for part in raw.split(":", 2)]
    if len(parts) < 2 or not parts[0] or not parts[1]:  # noqa: PLR2004
        raise ValueError(f"Invalid field mapping {raw!r}, expected LETTER:key[:Display name]")
    display_name = parts[2] if len(parts) > 2 and parts[2] else parts[1]  # noqa: PLR2004
    return FieldMapping(
        sheet_column_letter=parts[0],
        internal_key=parts[1],
        display_name=display_name,
    )


def _parse_placeholder(raw: str) -> PlaceholderMapping:
    placeholder, separator, participant_key = raw.partition("=")
    if not separator:
        raise ValueError(f"Invalid mapping {raw!r}, expected placeholder=participant_key")
    return PlaceholderMapping(placeholder=placeholder, participant_key=participant_key)


def _format_lock(task: DocumentTaskView) -> str:
    if task.locked_at is None:
        return "-"
    return f"{task.locked_by} since {task.locked_at.isoformat()}"
