"""CLI entrypoint for docbatch."""

import logging
from collections.abc import Callable
from pathlib import Path

import rich_click as click
import uvicorn

from docbatch import __version__
from docbatch.api import create_app
from docbatch.config import Settings
from docbatch.controllers import (
    DocBatchCliController,
    GenerateCommand,
    ProjectAddCommand,
    ProjectFieldsCommand,
    ProjectMemberCommand,
    ProjectSheetCommand,
    TaskCreateCommand,
    TaskInspectCommand,
    TaskListCommand,
    TaskRunCommand,
    TemplateAddCommand,
    TemplateListCommand,
    TemplateMappingsCommand,
)
from docbatch.projects.models import ProjectRole
from docbatch.projects.participants import ParticipantSourceError
from docbatch.provider.errors import DocumentProviderError
from docbatch.tasks.errors import (
    ProjectAccessError,
    StoreUnavailableError,
    TaskNotFoundError,
    TemplateNotFoundError,
)

click.rich_click.USE_MARKDOWN = True
CONTROLLER = DocBatchCliController()

CLI_ERRORS = (
    DocumentProviderError,
    ParticipantSourceError,
    ProjectAccessError,
    StoreUnavailableError,
    TaskNotFoundError,
    TemplateNotFoundError,
    ValueError,
)

db_path_option = click.option(
    "--db-path",
    type=click.Path(path_type=Path),
    default=None,
    help="SQLite DB path. Defaults to DOCBATCH_DB_PATH.",
)
user_option = click.option("--user", "user_id", required=True, help="Requesting user id.")


@click.group()
@click.version_option(version=__version__, prog_name="docbatch")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging level.",
)
def docbatch(log_level: str) -> None:
    """Bulk document generation from Google Docs templates."""

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@docbatch.group()
def projects() -> None:
    """Project directory commands."""


@projects.command("add")
@db_path_option
@click.option("--name", required=True, help="Project name.")
@click.option("--owner", "owner_id", required=True, help="Owner user id.")
@click.option("--sheet", "sheet_path", default=None, help="Participant sheet CSV export path.")
@click.option("--project-id", default=None, help="Explicit project id (uuid by default).")
def projects_add(
    db_path: Path | None,
    name: str,
    owner_id: str,
    sheet_path: str | None,
    project_id: str | None,
) -> None:
    """Create a project owned by a user."""

    _emit(
        lambda: CONTROLLER.add_project(
            ProjectAddCommand(
                db_path=db_path,
                name=name,
                owner_id=owner_id,
                sheet_path=sheet_path,
                project_id=project_id,
            ),
        ),
    )


@projects.command("add-member")
@db_path_option
@click.argument("project_id")
@user_option
@click.option(
    "--role",
    type=click.Choice([role.value for role in ProjectRole], case_sensitive=False),
    default=ProjectRole.EDITOR.value,
    show_default=True,
    help="Member role.",
)
def projects_add_member(db_path: Path | None, project_id: str, user_id: str, role: str) -> None:
    """Grant a user access to a project."""

    _emit(
        lambda: CONTROLLER.add_member(
            ProjectMemberCommand(
                db_path=db_path,
                project_id=project_id,
                user_id=user_id,
                role=role.lower(),
            ),
        ),
    )


@projects.command("set-sheet")
@db_path_option
@click.argument("project_id")
@click.argument("sheet_path")
def projects_set_sheet(db_path: Path | None, project_id: str, sheet_path: str) -> None:
    """Point a project at its participant sheet (CSV export)."""

    _emit(
        lambda: CONTROLLER.set_sheet(
            ProjectSheetCommand(db_path=db_path, project_id=project_id, sheet_path=sheet_path),
        ),
    )


@projects.command("set-fields")
@db_path_option
@click.argument("project_id")
@click.option(
    "--field",
    "fields",
    multiple=True,
    required=True,
    help="Column mapping `LETTER:key[:Display name]`. Can be repeated.",
)
def projects_set_fields(db_path: Path | None, project_id: str, fields: tuple[str, ...]) -> None:
    """Replace sheet column to participant key mappings."""

    _emit(
        lambda: CONTROLLER.set_fields(
            ProjectFieldsCommand(db_path=db_path, project_id=project_id, fields=fields),
        ),
    )


@docbatch.group()
def templates() -> None:
    """Document template commands."""


@templates.command("add")
@db_path_option
@click.argument("project_id")
@user_option
@click.option("--name", required=True, help="Template display name.")
@click.option("--doc-id", required=True, help="Google Docs document id of the template.")
def templates_add(
    db_path: Path | None,
    project_id: str,
    user_id: str,
    name: str,
    doc_id: str,
) -> None:
    """Register a template document for a project."""

    _emit(
        lambda: CONTROLLER.add_template(
            TemplateAddCommand(
                db_path=db_path,
                project_id=project_id,
                user_id=user_id,
                name=name,
                doc_id=doc_id,
            ),
        ),
    )


@templates.command("list")
@db_path_option
@click.argument("project_id")
@user_option
def templates_list(db_path: Path | None, project_id: str, user_id: str) -> None:
    """List templates of a project."""

    _emit(
        lambda: CONTROLLER.list_templates(
            TemplateListCommand(db_path=db_path, project_id=project_id, user_id=user_id),
        ),
    )


@templates.command("mappings")
@db_path_option
@click.argument("project_id")
@click.argument("template_id")
@user_option
def templates_mappings(
    db_path: Path | None,
    project_id: str,
    template_id: str,
    user_id: str,
) -> None:
    """Show placeholder mappings of a template."""

    _emit(
        lambda: CONTROLLER.template_mappings(
            TemplateMappingsCommand(
                db_path=db_path,
                project_id=project_id,
                template_id=template_id,
                user_id=user_id,
            ),
        ),
    )


@templates.command("set-mappings")
@db_path_option
@click.argument("project_id")
@click.argument("template_id")
@user_option
@click.option(
    "--map",
    "mappings",
    multiple=True,
    required=True,
    help="Mapping `placeholder=participant_key`. Can be repeated; replaces all mappings.",
)
def templates_set_mappings(
    db_path: Path | None,
    project_id: str,
    template_id: str,
    user_id: str,
    mappings: tuple[str, ...],
) -> None:
    """Replace placeholder mappings of a template."""

    _emit(
        lambda: CONTROLLER.template_mappings(
            TemplateMappingsCommand(
                db_path=db_path,
                project_id=project_id,
                template_id=template_id,
                user_id=user_id,
                mappings=mappings,
            ),
        ),
    )


@docbatch.group()
def tasks() -> None:
    """Generation task queue commands."""


@tasks.command("create")
@db_path_option
@click.argument("project_id")
@user_option
@click.option("--template", "template_id", required=True, help="Template id.")
@click.option(
    "--participant",
    "participant_ids",
    type=int,
    multiple=True,
    required=True,
    help="Participant id (sheet row number). Can be repeated; order is kept.",
)
@click.option("--output-folder", "output_folder_id", default=None, help="Drive folder id.")
def tasks_create(  # noqa: PLR0913
    db_path: Path | None,
    project_id: str,
    user_id: str,
    template_id: str,
    participant_ids: tuple[int, ...],
    output_folder_id: str | None,
) -> None:
    """Queue bulk document generation."""

    _emit(
        lambda: CONTROLLER.create_task(
            TaskCreateCommand(
                db_path=db_path,
                project_id=project_id,
                user_id=user_id,
                template_id=template_id,
                participant_ids=participant_ids,
                output_folder_id=output_folder_id,
            ),
        ),
    )


@tasks.command("list")
@db_path_option
@click.argument("project_id")
@user_option
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=500),
    default=50,
    show_default=True,
    help="Max number of tasks to print, newest first.",
)
def tasks_list(db_path: Path | None, project_id: str, user_id: str, limit: int) -> None:
    """List recent tasks of a project."""

    _emit(
        lambda: CONTROLLER.list_tasks(
            TaskListCommand(db_path=db_path, project_id=project_id, user_id=user_id, limit=limit),
        ),
    )


@tasks.command("inspect")
@db_path_option
@click.argument("task_id")
def tasks_inspect(db_path: Path | None, task_id: str) -> None:
    """Show task progress, per-participant outputs and events.

    Local admin command: reads any task by id without a project access check.
    """

    _emit(lambda: CONTROLLER.inspect_task(TaskInspectCommand(db_path=db_path, task_id=task_id)))


@tasks.command("run")
@db_path_option
def tasks_run(db_path: Path | None) -> None:
    """Claim and process one batch of tasks."""

    _emit(lambda: CONTROLLER.run_tasks(TaskRunCommand(db_path=db_path)))


@docbatch.command("generate")
@db_path_option
@click.argument("project_id")
@user_option
@click.option("--template", "template_id", required=True, help="Template id.")
@click.option("--participant", "participant_id", type=int, required=True, help="Participant id.")
@click.option(
    "--output-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Directory for the generated PDF.",
)
def generate(  # noqa: PLR0913
    db_path: Path | None,
    project_id: str,
    user_id: str,
    template_id: str,
    participant_id: int,
    output_dir: Path,
) -> None:
    """Generate one participant's PDF synchronously."""

    _emit(
        lambda: CONTROLLER.generate(
            GenerateCommand(
                db_path=db_path,
                project_id=project_id,
                user_id=user_id,
                template_id=template_id,
                participant_id=participant_id,
                output_dir=output_dir,
            ),
        ),
    )


@docbatch.command("serve")
@db_path_option
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address.")
@click.option("--port", type=click.IntRange(min=1, max=65535), default=8000, show_default=True)
def serve(db_path: Path | None, host: str, port: int) -> None:
    """Serve the batch-run trigger over HTTP."""

    try:
        app = create_app(Settings.from_env(db_path=db_path))
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    uvicorn.run(app, host=host, port=port)


def _emit(action: Callable[[], list[str]]) -> None:
    try:
        lines = action()
    except CLI_ERRORS as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    docbatch()
