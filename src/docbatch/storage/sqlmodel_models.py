"""SQLModel ORM tables for projects, templates and document tasks."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


class Project(SQLModel, table=True):
    __tablename__ = "projects"  # type: ignore[bad-override]

    project_id: str = Field(primary_key=True)
    name: str = Field(index=True)
    owner_id: str = Field(index=True)
    sheet_path: str | None = None
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class ProjectMember(SQLModel, table=True):
    __tablename__ = "project_members"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_project_members_project_user"),
    )

    id: int | None = Field(default=None, primary_key=True)
    project_id: str = Field(
        sa_column=Column(
            ForeignKey("projects.project_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    user_id: str = Field(index=True)
    role: str
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class ProjectFieldMapping(SQLModel, table=True):
    __tablename__ = "project_field_mappings"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint(
            "project_id",
            "sheet_column_letter",
            name="uq_project_field_mappings_project_column",
        ),
        UniqueConstraint(
            "project_id",
            "internal_key",
            name="uq_project_field_mappings_project_key",
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    project_id: str = Field(
        sa_column=Column(
            ForeignKey("projects.project_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    sheet_column_letter: str
    internal_key: str
    display_name: str
    is_visible: bool = True
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class DocumentTemplate(SQLModel, table=True):
    __tablename__ = "document_templates"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint("project_id", "name", name="uq_document_templates_project_name"),
    )

    template_id: str = Field(primary_key=True)
    project_id: str = Field(
        sa_column=Column(
            ForeignKey("projects.project_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    name: str
    doc_id: str
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class DocumentTemplateMapping(SQLModel, table=True):
    __tablename__ = "document_template_mappings"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint(
            "template_id",
            "placeholder",
            name="uq_document_template_mappings_template_placeholder",
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    template_id: str = Field(
        sa_column=Column(
            ForeignKey("document_templates.template_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    placeholder: str
    participant_key: str
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class DocumentTask(SQLModel, table=True):
    __tablename__ = "document_tasks"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_document_tasks_queue", "status", "created_at"),)

    task_id: str = Field(primary_key=True)
    project_id: str = Field(
        sa_column=Column(
            ForeignKey("projects.project_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    template_id: str = Field(
        sa_column=Column(
            ForeignKey("document_templates.template_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    requested_by: str | None = None
    participant_ids_json: str = Field(sa_column=Column(Text, nullable=False))
    status: str = Field(index=True)
    progress_total: int = Field(default=0)
    progress_done: int = Field(default=0)
    output_folder_id: str | None = None
    output_files_json: str | None = Field(default=None, sa_column=Column(Text))
    error: str | None = Field(default=None, sa_column=Column(Text))
    locked_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    locked_by: str | None = Field(default=None, index=True)
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class DocumentTaskEvent(SQLModel, table=True):
    __tablename__ = "document_task_events"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_document_task_events_task_time", "task_id", "created_at"),)

    id: int | None = Field(default=None, primary_key=True)
    task_id: str = Field(
        sa_column=Column(
            ForeignKey("document_tasks.task_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    event_type: str = Field(index=True)
    status_from: str | None = None
    status_to: str | None = None
    details_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
