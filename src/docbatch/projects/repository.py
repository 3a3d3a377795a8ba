"""SQLite-backed project directory: projects, members and field mappings."""

from __future__ import annotations

from pathlib import Path
from uuid import uuid4

from sqlalchemy import delete as sa_delete
from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from docbatch.projects.models import (
    FieldMapping,
    ProjectRole,
    ProjectView,
    column_letter_to_index,
)
from docbatch.storage.alembic_runner import upgrade_head
from docbatch.storage.common import (
    build_sqlite_engine,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from docbatch.storage.sqlmodel_models import Project, ProjectFieldMapping, ProjectMember


class ProjectDirectory:
    """Projects with role-based membership; answers access checks for the task service."""

    def __init__(self, db_path: Path, *, sqlite_busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=sqlite_busy_timeout_ms)

    def close(self) -> None:
        self.engine.dispose()

    def init_schema(self) -> None:
        upgrade_head(self.db_path)

    def create_project(
        self,
        *,
        name: str,
        owner_id: str,
        sheet_path: str | None = None,
        project_id: str | None = None,
    ) -> ProjectView:
        """Create a project and register its owner as an `owner` member."""

        now = to_db_datetime(utc_now())
        row = Project(
            project_id=project_id or str(uuid4()),
            name=name,
            owner_id=owner_id,
            sheet_path=sheet_path,
            created_at=now,
        )
        with Session(self.engine) as session:
            session.add(row)
            session.flush()
            session.add(
                ProjectMember(
                    project_id=row.project_id,
                    user_id=owner_id,
                    role=ProjectRole.OWNER.value,
                    created_at=now,
                ),
            )
            session.commit()
            session.refresh(row)
            return _to_project_view(row)

    def get_project(self, project_id: str) -> ProjectView | None:
        with Session(self.engine) as session:
            row = session.exec(
                select(Project).where(Project.project_id == project_id),
            ).one_or_none()
        return _to_project_view(row) if row is not None else None

    def add_member(self, *, project_id: str, user_id: str, role: ProjectRole) -> None:
        """Add a member or change the role of an existing one."""

        with Session(self.engine) as session:
            result = session.exec(
                sa_update(ProjectMember)
                .where(
                    col(ProjectMember.project_id) == project_id,
                    col(ProjectMember.user_id) == user_id,
                )
                .values(role=role.value),
            )
            if result.rowcount == 0:
                session.add(
                    ProjectMember(
                        project_id=project_id,
                        user_id=user_id,
                        role=role.value,
                        created_at=to_db_datetime(utc_now()),
                    ),
                )
            try:
                session.commit()
            except IntegrityError as error:
                session.rollback()
                raise ValueError(f"Project not found: {project_id}") from error

    def get_role(self, project_id: str, user_id: str) -> ProjectRole | None:
        """Member role of `user_id` in the project, `None` without access."""

        with Session(self.engine) as session:
            role = session.exec(
                select(ProjectMember.role).where(
                    ProjectMember.project_id == project_id,
                    ProjectMember.user_id == user_id,
                ),
            ).one_or_none()
        return ProjectRole(role) if role is not None else None

    def set_sheet_path(self, *, project_id: str, sheet_path: str) -> bool:
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(Project)
                .where(col(Project.project_id) == project_id)
                .values(sheet_path=sheet_path),
            )
            session.commit()
            return result.rowcount == 1

    def set_field_mappings(self, *, project_id: str, mappings: list[FieldMapping]) -> None:
        """Replace the project's column mappings in one transaction."""

        letters: set[str] = set()
        keys: set[str] = set()
        for mapping in mappings:
            letter = mapping.sheet_column_letter.strip().upper()
            column_letter_to_index(letter)
            key = mapping.internal_key.strip()
            if not key:
                raise ValueError("Field mapping key must not be empty.")
            if letter in letters:
                raise ValueError(f"Duplicate column letter: {letter}")
            if key in keys:
                raise ValueError(f"Duplicate internal key: {key}")
            letters.add(letter)
            keys.add(key)

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            session.exec(
                sa_delete(ProjectFieldMapping).where(
                    col(ProjectFieldMapping.project_id) == project_id,
                ),
            )
            for mapping in mappings:
                session.add(
                    ProjectFieldMapping(
                        project_id=project_id,
                        sheet_column_letter=mapping.sheet_column_letter.strip().upper(),
                        internal_key=mapping.internal_key.strip(),
                        display_name=mapping.display_name.strip() or mapping.internal_key.strip(),
                        is_visible=mapping.is_visible,
                        created_at=now,
                    ),
                )
            session.commit()

    def list_field_mappings(
        self,
        *,
        project_id: str,
        visible_only: bool = False,
    ) -> list[FieldMapping]:
        """Field mappings ordered by column position."""

        with Session(self.engine) as session:
            statement = select(ProjectFieldMapping).where(
                ProjectFieldMapping.project_id == project_id,
            )
            if visible_only:
                statement = statement.where(col(ProjectFieldMapping.is_visible).is_(True))
            rows = session.exec(statement).all()
        mappings = [
            FieldMapping(
                sheet_column_letter=row.sheet_column_letter,
                internal_key=row.internal_key,
                display_name=row.display_name,
                is_visible=row.is_visible,
            )
            for row in rows
        ]
        return sorted(mappings, key=lambda item: column_letter_to_index(item.sheet_column_letter))


def _to_project_view(row: Project) -> ProjectView:
    return ProjectView(
        project_id=row.project_id,
        name=row.name,
        owner_id=row.owner_id,
        sheet_path=row.sheet_path,
        created_at=to_utc_aware_datetime(row.created_at),
    )
