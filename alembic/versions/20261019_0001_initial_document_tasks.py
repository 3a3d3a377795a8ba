"""Initial projects, templates and document task queue schema."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "projects",
        sa.Column("project_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("sheet_path", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("project_id"),
    )
    op.create_index("ix_projects_name", "projects", ["name"])
    op.create_index("ix_projects_owner_id", "projects", ["owner_id"])

    op.create_table(
        "project_members",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("project_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["project_id"], ["projects.project_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("project_id", "user_id", name="uq_project_members_project_user"),
    )
    op.create_index("ix_project_members_project_id", "project_members", ["project_id"])
    op.create_index("ix_project_members_user_id", "project_members", ["user_id"])

    op.create_table(
        "project_field_mappings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("project_id", sa.String(), nullable=False),
        sa.Column("sheet_column_letter", sa.String(), nullable=False),
        sa.Column("internal_key", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=False),
        sa.Column("is_visible", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["project_id"], ["projects.project_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "project_id",
            "sheet_column_letter",
            name="uq_project_field_mappings_project_column",
        ),
        sa.UniqueConstraint(
            "project_id",
            "internal_key",
            name="uq_project_field_mappings_project_key",
        ),
    )
    op.create_index(
        "ix_project_field_mappings_project_id",
        "project_field_mappings",
        ["project_id"],
    )

    op.create_table(
        "document_templates",
        sa.Column("template_id", sa.String(), nullable=False),
        sa.Column("project_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("doc_id", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["project_id"], ["projects.project_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("template_id"),
        sa.UniqueConstraint("project_id", "name", name="uq_document_templates_project_name"),
    )
    op.create_index("ix_document_templates_project_id", "document_templates", ["project_id"])

    op.create_table(
        "document_template_mappings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("template_id", sa.String(), nullable=False),
        sa.Column("placeholder", sa.String(), nullable=False),
        sa.Column("participant_key", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["template_id"],
            ["document_templates.template_id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "template_id",
            "placeholder",
            name="uq_document_template_mappings_template_placeholder",
        ),
    )
    op.create_index(
        "ix_document_template_mappings_template_id",
        "document_template_mappings",
        ["template_id"],
    )

    op.create_table(
        "document_tasks",
        sa.Column("task_id", sa.String(), nullable=False),
        sa.Column("project_id", sa.String(), nullable=False),
        sa.Column("template_id", sa.String(), nullable=False),
        sa.Column("requested_by", sa.String(), nullable=True),
        sa.Column("participant_ids_json", sa.Text(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("progress_total", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("progress_done", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("output_folder_id", sa.String(), nullable=True),
        sa.Column("output_files_json", sa.Text(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("locked_by", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["project_id"], ["projects.project_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["template_id"],
            ["document_templates.template_id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("task_id"),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'done', 'failed')",
            name="ck_document_tasks_status",
        ),
        sa.CheckConstraint(
            "progress_done >= 0 AND progress_done <= progress_total",
            name="ck_document_tasks_progress",
        ),
    )
    op.create_index("idx_document_tasks_queue", "document_tasks", ["status", "created_at"])
    op.create_index("ix_document_tasks_project_id", "document_tasks", ["project_id"])
    op.create_index("ix_document_tasks_template_id", "document_tasks", ["template_id"])
    op.create_index("ix_document_tasks_status", "document_tasks", ["status"])
    op.create_index("ix_document_tasks_locked_by", "document_tasks", ["locked_by"])

    op.create_table(
        "document_task_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("task_id", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("status_from", sa.String(), nullable=True),
        sa.Column("status_to", sa.String(), nullable=True),
        sa.Column("details_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["task_id"], ["document_tasks.task_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_document_task_events_task_time",
        "document_task_events",
        ["task_id", "created_at"],
    )
    op.create_index("ix_document_task_events_task_id", "document_task_events", ["task_id"])
    op.create_index("ix_document_task_events_event_type", "document_task_events", ["event_type"])


def downgrade() -> None:
    op.drop_table("document_task_events")
    op.drop_table("document_tasks")
    op.drop_table("document_template_mappings")
    op.drop_table("document_templates")
    op.drop_table("project_field_mappings")
    op.drop_table("project_members")
    op.drop_table("projects")
