from __future__ import annotations

from pathlib import Path

import allure
import pytest

from docbatch.projects.models import FieldMapping
from docbatch.projects.participants import SheetParticipantResolver
from docbatch.tasks.errors import (
    ProjectAccessError,
    TaskNotFoundError,
    TaskValidationError,
    TemplateNotFoundError,
)
from docbatch.tasks.models import DocumentTaskStatus, PlaceholderMapping
from docbatch.tasks.services import DocumentTaskService

pytestmark = [
    allure.epic("Document Tasks"),
    allure.feature("Task Service"),
]

OWNER_ID = "owner-1"


@pytest.fixture()
def service(repository, directory, provider) -> DocumentTaskService:
    return DocumentTaskService(
        repository=repository,
        access_check=directory.get_role,
        resolve_participants=SheetParticipantResolver(directory),
        provider=provider,
        default_output_folder_id="default-folder",
    )


def test_create_task_keeps_participant_order(service, project_id, template) -> None:
    task = service.create_task(
        project_id=project_id,
        user_id=OWNER_ID,
        template_id=template.template_id,
        participant_ids=[5, 2, 9],
        output_folder_id="  ",
    )

    assert task.status == DocumentTaskStatus.PENDING
    assert task.participant_ids == (5, 2, 9)
    assert task.progress_total == 3
    assert task.requested_by == OWNER_ID
    assert task.output_folder_id is None


@pytest.mark.parametrize(
    ("participant_ids", "message"),
    [
        ([], "non-empty"),
        ([1, 2, 1], "Duplicate participant id"),
        ([0], "must be positive"),
        ([-3], "must be positive"),
        ([True], "must be an integer"),
        (["7"], "must be an integer"),
        ([1.5], "must be an integer"),
    ],
)
def test_create_task_rejects_invalid_participant_ids(
    service,
    project_id,
    template,
    participant_ids: list[object],
    message: str,
) -> None:
    with pytest.raises(TaskValidationError, match=message):
        service.create_task(
            project_id=project_id,
            user_id=OWNER_ID,
            template_id=template.template_id,
            participant_ids=participant_ids,
        )


def test_create_task_requires_access_and_known_template(service, project_id, template) -> None:
    with pytest.raises(ProjectAccessError):
        service.create_task(
            project_id=project_id,
            user_id="stranger",
            template_id=template.template_id,
            participant_ids=[1],
        )
    with pytest.raises(TemplateNotFoundError):
        service.create_task(
            project_id=project_id,
            user_id=OWNER_ID,
            template_id="missing",
            participant_ids=[1],
        )


def test_template_from_other_project_is_not_found(service, directory, template) -> None:
    other = directory.create_project(name="Other", owner_id=OWNER_ID)

    with pytest.raises(TemplateNotFoundError):
        service.create_task(
            project_id=other.project_id,
            user_id=OWNER_ID,
            template_id=template.template_id,
            participant_ids=[1],
        )


def test_list_and_get_tasks(service, project_id, template) -> None:
    created = service.create_task(
        project_id=project_id,
        user_id=OWNER_ID,
        template_id=template.template_id,
        participant_ids=[1],
    )

    listed = service.list_tasks(project_id=project_id, user_id=OWNER_ID)
    fetched = service.get_task(project_id=project_id, task_id=created.task_id, user_id=OWNER_ID)

    assert [task.task_id for task in listed] == [created.task_id]
    assert fetched.to_dict()["outputFiles"] == []
    with pytest.raises(TaskNotFoundError):
        service.get_task(project_id=project_id, task_id="missing", user_id=OWNER_ID)


def test_set_template_mappings_trims_and_replaces(service, project_id, template) -> None:
    stored = service.set_template_mappings(
        project_id=project_id,
        template_id=template.template_id,
        user_id=OWNER_ID,
        mappings=[PlaceholderMapping(placeholder=" IMIE ", participant_key=" first_name ")],
    )

    assert [(row.placeholder, row.participant_key) for row in stored] == [("IMIE", "first_name")]
    assert service.get_template_mappings(
        project_id=project_id,
        template_id=template.template_id,
        user_id=OWNER_ID,
    ) == stored


@pytest.mark.parametrize(
    ("mappings", "message"),
    [
        ([PlaceholderMapping(placeholder=" ", participant_key="a")], "Placeholder must not"),
        ([PlaceholderMapping(placeholder="A", participant_key="")], "must not be empty"),
        (
            [
                PlaceholderMapping(placeholder="A", participant_key="a"),
                PlaceholderMapping(placeholder=" A", participant_key="b"),
            ],
            "Duplicate placeholder",
        ),
    ],
)
def test_set_template_mappings_validation(
    service,
    project_id,
    template,
    mappings: list[PlaceholderMapping],
    message: str,
) -> None:
    with pytest.raises(TaskValidationError, match=message):
        service.set_template_mappings(
            project_id=project_id,
            template_id=template.template_id,
            user_id=OWNER_ID,
            mappings=mappings,
        )


def test_add_template_validates_input(service, project_id) -> None:
    with pytest.raises(TaskValidationError, match="name"):
        service.add_template(project_id=project_id, user_id=OWNER_ID, name=" ", doc_id="doc")

    template = service.add_template(
        project_id=project_id,
        user_id=OWNER_ID,
        name=" Diploma ",
        doc_id=" doc-7 ",
    )
    assert (template.name, template.doc_id) == ("Diploma", "doc-7")


def test_list_templates_sorted_by_name(service, project_id, template) -> None:
    service.add_template(project_id=project_id, user_id=OWNER_ID, name="Attendance", doc_id="d-1")

    names = [
        item.name for item in service.list_templates(project_id=project_id, user_id=OWNER_ID)
    ]

    assert names == ["Attendance", "Certificate"]
    with pytest.raises(ProjectAccessError):
        service.list_templates(project_id=project_id, user_id="stranger")


def test_generate_participant_document(
    service,
    directory,
    project_id,
    template,
    fake_backend,
    tmp_path: Path,
) -> None:
    sheet = tmp_path / "sheet.csv"
    sheet.write_text("Ann,Lee\nBob,Stone\n", encoding="utf-8")
    directory.set_sheet_path(project_id=project_id, sheet_path=str(sheet))
    directory.set_field_mappings(
        project_id=project_id,
        mappings=[
            FieldMapping(sheet_column_letter="A", internal_key="first_name", display_name="First"),
            FieldMapping(sheet_column_letter="B", internal_key="last_name", display_name="Last"),
        ],
    )

    document = service.generate_participant_document(
        project_id=project_id,
        user_id=OWNER_ID,
        template_id=template.template_id,
        participant_id=2,
    )

    assert document.file_name == "Bob_Stone_2.pdf"
    assert document.content == b"%PDF Temp_Bob_Stone_2"
    assert fake_backend.calls[0] == ("copy", "tpl-doc", "Temp_Bob_Stone_2", "default-folder")
    assert fake_backend.deleted == ["doc-1"]
    assert fake_backend.uploads == []

    with pytest.raises(TaskValidationError, match="Participant 7 not found"):
        service.generate_participant_document(
            project_id=project_id,
            user_id=OWNER_ID,
            template_id=template.template_id,
            participant_id=7,
        )
