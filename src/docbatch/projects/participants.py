"""Participant records read from a project's spreadsheet export."""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Any

from docbatch.projects.models import column_letter_to_index
from docbatch.projects.repository import ProjectDirectory
from docbatch.tasks.errors import ProjectAccessError

logger = logging.getLogger(__name__)


class ParticipantSourceError(RuntimeError):
    """Participant sheet is not configured or cannot be read."""


class SheetParticipantResolver:
    """Resolve participants from a CSV export of the project sheet.

    Every non-empty row becomes one record keyed by the project's visible field
    mappings; the record `id` is the 1-based row number, so ids stay stable
    when blank rows are skipped.
    """

    def __init__(self, directory: ProjectDirectory, *, base_dir: Path | None = None) -> None:
        self.directory = directory
        self.base_dir = base_dir

    def __call__(self, project_id: str, requester_id: str) -> list[dict[str, Any]]:
        return self.resolve(project_id, requester_id)

    def resolve(self, project_id: str, requester_id: str) -> list[dict[str, Any]]:
        if self.directory.get_role(project_id, requester_id) is None:
            raise ProjectAccessError(f"User {requester_id} has no access to project {project_id}")

        mappings = self.directory.list_field_mappings(project_id=project_id, visible_only=True)
        if not mappings:
            return []

        project = self.directory.get_project(project_id)
        if project is None or not project.sheet_path:
            raise ParticipantSourceError(
                f"Project {project_id} has no participant sheet configured",
            )

        rows = self._read_rows(self._sheet_path(project.sheet_path))
        columns = [
            (mapping.internal_key, column_letter_to_index(mapping.sheet_column_letter))
            for mapping in mappings
        ]
        participants: list[dict[str, Any]] = []
        for row_index, row in enumerate(rows):
            if not any(cell.strip() for cell in row):
                continue
            participant: dict[str, Any] = {"id": row_index + 1}
            for key, column_index in columns:
                participant[key] = row[column_index] if column_index < len(row) else None
            participants.append(participant)

        logger.info("Resolved %d participants for project %s", len(participants), project_id)
        return participants

    def _sheet_path(self, raw: str) -> Path:
        path = Path(raw).expanduser()
        if not path.is_absolute() and self.base_dir is not None:
            path = self.base_dir / path
        return path

    @staticmethod
    def _read_rows(path: Path) -> list[list[str]]:
        try:
            with path.open(encoding="utf-8-sig", newline="") as handle:
                return list(csv.reader(handle))
        except OSError as error:
            raise ParticipantSourceError(
                f"Cannot read participant sheet {path}: {error}",
            ) from error
