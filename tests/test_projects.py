from __future__ import annotations

from pathlib import Path

import allure
import pytest

from docbatch.projects.models import (
    FieldMapping,
    ProjectRole,
    column_letter_to_index,
    index_to_column_letter,
)
from docbatch.projects.participants import ParticipantSourceError, SheetParticipantResolver
from docbatch.projects.repository import ProjectDirectory
from docbatch.tasks.errors import ProjectAccessError

pytestmark = [
    allure.epic("Projects"),
    allure.feature("Participant Sheet"),
]

OWNER_ID = "owner-1"


@pytest.mark.parametrize(
    ("letter", "index"),
    [("A", 0), ("b", 1), ("Z", 25), ("AA", 26), ("AZ", 51), ("BA", 52)],
)
def test_column_letters_round_trip(letter: str, index: int) -> None:
    assert column_letter_to_index(letter) == index
    assert index_to_column_letter(index) == letter.upper()


def test_invalid_column_letter_is_rejected() -> None:
    with pytest.raises(ValueError, match="Invalid column letter"):
        column_letter_to_index("A1")


def test_owner_is_a_member_and_roles_can_change(directory: ProjectDirectory, project_id) -> None:
    assert directory.get_role(project_id, OWNER_ID) == ProjectRole.OWNER
    assert directory.get_role(project_id, "stranger") is None

    directory.add_member(project_id=project_id, user_id="helper", role=ProjectRole.VIEWER)
    directory.add_member(project_id=project_id, user_id="helper", role=ProjectRole.EDITOR)

    assert directory.get_role(project_id, "helper") == ProjectRole.EDITOR


def test_add_member_to_unknown_project_fails(directory: ProjectDirectory) -> None:
    with pytest.raises(ValueError, match="Project not found"):
        directory.add_member(project_id="nope", user_id="helper", role=ProjectRole.EDITOR)


def test_field_mappings_reject_duplicates(directory: ProjectDirectory, project_id) -> None:
    with pytest.raises(ValueError, match="Duplicate column letter"):
        directory.set_field_mappings(
            project_id=project_id,
            mappings=[
                FieldMapping(sheet_column_letter="A", internal_key="a", display_name="A"),
                FieldMapping(sheet_column_letter="a", internal_key="b", display_name="B"),
            ],
        )
    with pytest.raises(ValueError, match="Duplicate internal key"):
        directory.set_field_mappings(
            project_id=project_id,
            mappings=[
                FieldMapping(sheet_column_letter="A", internal_key="a", display_name="A"),
                FieldMapping(sheet_column_letter="B", internal_key="a", display_name="B"),
            ],
        )


def test_resolver_reads_rows_with_stable_ids(
    directory: ProjectDirectory,
    project_id,
    tmp_path: Path,
) -> None:
    sheet = tmp_path / "participants.csv"
    sheet.write_text(
        "Ann,Lee,anna@example.com\n"
        ",,\n"
        "Bob,Stone\n"
        "Cy,Young,cy@example.com,extra\n",
        encoding="utf-8",
    )
    directory.set_sheet_path(project_id=project_id, sheet_path=str(sheet))
    directory.set_field_mappings(
        project_id=project_id,
        mappings=[
            FieldMapping(sheet_column_letter="C", internal_key="email", display_name="E-mail"),
            FieldMapping(sheet_column_letter="A", internal_key="first_name", display_name="First"),
            FieldMapping(sheet_column_letter="B", internal_key="last_name", display_name="Last"),
            FieldMapping(
                sheet_column_letter="D",
                internal_key="secret",
                display_name="Hidden",
                is_visible=False,
            ),
        ],
    )

    participants = SheetParticipantResolver(directory).resolve(project_id, OWNER_ID)

    assert participants == [
        {"id": 1, "first_name": "Ann", "last_name": "Lee", "email": "anna@example.com"},
        {"id": 3, "first_name": "Bob", "last_name": "Stone", "email": None},
        {"id": 4, "first_name": "Cy", "last_name": "Young", "email": "cy@example.com"},
    ]


def test_resolver_requires_project_access(directory: ProjectDirectory, project_id) -> None:
    with pytest.raises(ProjectAccessError):
        SheetParticipantResolver(directory).resolve(project_id, "stranger")


def test_resolver_without_mappings_returns_nothing(directory: ProjectDirectory, project_id) -> None:
    assert SheetParticipantResolver(directory).resolve(project_id, OWNER_ID) == []


def test_resolver_requires_sheet(directory: ProjectDirectory, project_id) -> None:
    directory.set_field_mappings(
        project_id=project_id,
        mappings=[FieldMapping(sheet_column_letter="A", internal_key="a", display_name="A")],
    )

    with pytest.raises(ParticipantSourceError, match="no participant sheet"):
        SheetParticipantResolver(directory).resolve(project_id, OWNER_ID)


def test_resolver_reports_unreadable_sheet(
    directory: ProjectDirectory,
    project_id,
    tmp_path: Path,
) -> None:
    directory.set_sheet_path(project_id=project_id, sheet_path="missing.csv")
    directory.set_field_mappings(
        project_id=project_id,
        mappings=[FieldMapping(sheet_column_letter="A", internal_key="a", display_name="A")],
    )

    with pytest.raises(ParticipantSourceError, match="Cannot read participant sheet"):
        SheetParticipantResolver(directory, base_dir=tmp_path).resolve(project_id, OWNER_ID)
