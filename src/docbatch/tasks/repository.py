"""Persistent queue repository for document generation tasks."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from uuid import uuid4

from sqlalchemy import and_, or_
from sqlalchemy import delete as sa_delete
from sqlalchemy import update as sa_update
from sqlmodel import Session, col, select

from docbatch.storage.alembic_runner import upgrade_head
from docbatch.storage.common import (
    build_sqlite_engine,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from docbatch.storage.sqlmodel_models import (
    DocumentTask,
    DocumentTaskEvent,
    DocumentTemplate,
    DocumentTemplateMapping,
)
from docbatch.tasks.models import (
    ClaimCandidate,
    ClaimedTask,
    DocumentTaskCreate,
    DocumentTaskDetails,
    DocumentTaskEventView,
    DocumentTaskStatus,
    DocumentTaskView,
    OutputFileEntry,
    PlaceholderMapping,
    TaskProgress,
    TemplateMappingView,
    TemplateView,
)


class DocumentTaskRepository:
    """Queue persistence facade backed by SQLModel + SQLite."""

    def __init__(self, db_path: Path, *, sqlite_busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=sqlite_busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    # -- templates -------------------------------------------------------

    def add_template(self, *, project_id: str, name: str, doc_id: str) -> TemplateView:
        now = utc_now()
        with Session(self.engine) as session:
            row = DocumentTemplate(
                template_id=str(uuid4()),
                project_id=project_id,
                name=name,
                doc_id=doc_id,
                created_at=to_db_datetime(now),
                updated_at=to_db_datetime(now),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_template_view(row)

    def get_template(
        self,
        *,
        template_id: str,
        project_id: str | None = None,
    ) -> TemplateView | None:
        with Session(self.engine) as session:
            statement = select(DocumentTemplate).where(
                DocumentTemplate.template_id == template_id,
            )
            if project_id is not None:
                statement = statement.where(DocumentTemplate.project_id == project_id)
            row = session.exec(statement).one_or_none()
        return _to_template_view(row) if row is not None else None

    def list_templates(self, *, project_id: str) -> list[TemplateView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(DocumentTemplate)
                .where(DocumentTemplate.project_id == project_id)
                .order_by(col(DocumentTemplate.name).asc()),
            ).all()
        return [_to_template_view(row) for row in rows]

    def list_template_mappings(self, *, template_id: str) -> list[TemplateMappingView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(DocumentTemplateMapping)
                .where(DocumentTemplateMapping.template_id == template_id)
                .order_by(
                    col(DocumentTemplateMapping.created_at).asc(),
                    col(DocumentTemplateMapping.id).asc(),
                ),
            ).all()
        return [_to_mapping_view(row) for row in rows]

    def resolve_mappings(self, template_id: str) -> list[PlaceholderMapping]:
        """Placeholder mappings for a template; empty means "use every participant field"."""

        return [
            PlaceholderMapping(placeholder=row.placeholder, participant_key=row.participant_key)
            for row in self.list_template_mappings(template_id=template_id)
        ]

    def replace_template_mappings(
        self,
        *,
        template_id: str,
        mappings: list[PlaceholderMapping],
    ) -> list[TemplateMappingView]:
        """Replace all mappings of a template in one transaction."""

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            session.exec(
                sa_delete(DocumentTemplateMapping).where(
                    col(DocumentTemplateMapping.template_id) == template_id,
                ),
            )
            for mapping in mappings:
                session.add(
                    DocumentTemplateMapping(
                        template_id=template_id,
                        placeholder=mapping.placeholder,
                        participant_key=mapping.participant_key,
                        created_at=now,
                    ),
                )
            session.commit()
        return self.list_template_mappings(template_id=template_id)

    # -- tasks -----------------------------------------------------------

    def create_task(
        self,
        payload: DocumentTaskCreate,
        *,
        now: datetime | None = None,
    ) -> DocumentTaskView:
        """Create a pending task."""

        created_at = to_db_datetime(now or utc_now())
        task_id = payload.task_id or str(uuid4())
        with Session(self.engine) as session:
            row = DocumentTask(
                task_id=task_id,
                project_id=payload.project_id,
                template_id=payload.template_id,
                requested_by=payload.requested_by,
                participant_ids_json=json.dumps(list(payload.participant_ids)),
                status=DocumentTaskStatus.PENDING.value,
                progress_total=len(payload.participant_ids),
                progress_done=0,
                output_folder_id=payload.output_folder_id,
                output_files_json=None,
                error=None,
                locked_at=None,
                locked_by=None,
                created_at=created_at,
                updated_at=created_at,
            )
            session.add(row)
            self._add_event(
                session=session,
                task_id=task_id,
                event_type="created",
                status_from=None,
                status_to=DocumentTaskStatus.PENDING,
                details={
                    "participants": len(payload.participant_ids),
                    "template_id": payload.template_id,
                },
            )
            session.commit()
            session.refresh(row)
            return _to_task_view(row)

    def get_task(self, *, task_id: str, project_id: str | None = None) -> DocumentTaskView | None:
        with Session(self.engine) as session:
            statement = select(DocumentTask).where(DocumentTask.task_id == task_id)
            if project_id is not None:
                statement = statement.where(DocumentTask.project_id == project_id)
            row = session.exec(statement).one_or_none()
        return _to_task_view(row) if row is not None else None

    def list_tasks(
        self,
        *,
        project_id: str | None = None,
        status: DocumentTaskStatus | None = None,
        limit: int = 50,
    ) -> list[DocumentTaskView]:
        """List recent tasks, newest first."""

        with Session(self.engine) as session:
            statement = select(DocumentTask)
            if project_id is not None:
                statement = statement.where(DocumentTask.project_id == project_id)
            if status is not None:
                statement = statement.where(DocumentTask.status == status.value)
            statement = statement.order_by(col(DocumentTask.created_at).desc()).limit(limit)
            rows = session.exec(statement).all()
        return [_to_task_view(row) for row in rows]

    def get_task_details(self, *, task_id: str) -> DocumentTaskDetails | None:
        """Return task details with event stream."""

        with Session(self.engine) as session:
            task = session.exec(
                select(DocumentTask).where(DocumentTask.task_id == task_id),
            ).one_or_none()
            if task is None:
                return None
            event_rows = session.exec(
                select(DocumentTaskEvent)
                .where(DocumentTaskEvent.task_id == task_id)
                .order_by(col(DocumentTaskEvent.created_at).asc(), col(DocumentTaskEvent.id).asc()),
            ).all()

        events: list[DocumentTaskEventView] = []
        for row in event_rows:
            details = {}
            if row.details_json:
                parsed = json.loads(row.details_json)
                if isinstance(parsed, dict):
                    details = parsed
            events.append(
                DocumentTaskEventView(
                    event_id=row.id or 0,
                    task_id=row.task_id,
                    event_type=row.event_type,
                    status_from=(
                        DocumentTaskStatus(row.status_from) if row.status_from is not None else None
                    ),
                    status_to=(
                        DocumentTaskStatus(row.status_to) if row.status_to is not None else None
                    ),
                    created_at=to_utc_aware_datetime(row.created_at),
                    details=details,
                ),
            )
        return DocumentTaskDetails(task=_to_task_view(task), events=events)

    # -- claiming --------------------------------------------------------

    def find_claim_candidates(self, *, stale_before: datetime, limit: int) -> list[ClaimCandidate]:
        """Pending tasks and processing tasks locked before `stale_before`, oldest first."""

        threshold = to_db_datetime(stale_before)
        with Session(self.engine) as session:
            rows = session.exec(
                select(DocumentTask)
                .where(
                    or_(
                        col(DocumentTask.status) == DocumentTaskStatus.PENDING.value,
                        and_(
                            col(DocumentTask.status) == DocumentTaskStatus.PROCESSING.value,
                            col(DocumentTask.locked_at) < threshold,
                        ),
                    ),
                )
                .order_by(col(DocumentTask.created_at).asc())
                .limit(limit),
            ).all()
        return [
            ClaimCandidate(
                task_id=row.task_id,
                status=DocumentTaskStatus(row.status),
                locked_at=to_utc_aware_datetime(row.locked_at) if row.locked_at else None,
                created_at=to_utc_aware_datetime(row.created_at),
            )
            for row in rows
        ]

    def claim_task(
        self,
        *,
        candidate: ClaimCandidate,
        worker_id: str,
        stale_before: datetime,
        now: datetime | None = None,
    ) -> ClaimedTask | None:
        """Atomically claim one candidate; `None` means another worker got there first."""

        claimed_at = to_db_datetime(now or utc_now())
        reclaimed = candidate.status == DocumentTaskStatus.PROCESSING
        if reclaimed:
            condition = and_(
                col(DocumentTask.status) == DocumentTaskStatus.PROCESSING.value,
                col(DocumentTask.locked_at) < to_db_datetime(stale_before),
            )
        elif candidate.status == DocumentTaskStatus.PENDING:
            condition = col(DocumentTask.status) == DocumentTaskStatus.PENDING.value
        else:
            return None

        with Session(self.engine) as session:
            result = session.exec(
                sa_update(DocumentTask)
                .where(col(DocumentTask.task_id) == candidate.task_id, condition)
                .values(
                    status=DocumentTaskStatus.PROCESSING.value,
                    locked_at=claimed_at,
                    locked_by=worker_id,
                    updated_at=claimed_at,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return None
            details: dict[str, object] = {"worker_id": worker_id}
            if reclaimed and candidate.locked_at is not None:
                details["previous_locked_at"] = candidate.locked_at.isoformat()
            self._add_event(
                session=session,
                task_id=candidate.task_id,
                event_type="reclaimed" if reclaimed else "claimed",
                status_from=candidate.status,
                status_to=DocumentTaskStatus.PROCESSING,
                details=details,
            )
            session.commit()
        return ClaimedTask(
            task_id=candidate.task_id,
            worker_id=worker_id,
            locked_at=to_utc_aware_datetime(claimed_at),
            reclaimed=reclaimed,
        )

    # -- progress and completion -----------------------------------------

    def save_progress(self, *, claim: ClaimedTask, progress: TaskProgress) -> bool:
        """Persist progress for an owned task; `False` when ownership was lost."""

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(DocumentTask)
                .where(*_ownership_conditions(claim))
                .values(
                    progress_done=progress.progress_done,
                    output_files_json=_dump_output_files(progress.output_files),
                    updated_at=now,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True

    def reset_progress(self, *, claim: ClaimedTask) -> bool:
        """Drop progress recorded by a previous owner before re-running every participant."""

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(DocumentTask)
                .where(*_ownership_conditions(claim))
                .values(progress_done=0, output_files_json=None, error=None, updated_at=now),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            self._add_event(
                session=session,
                task_id=claim.task_id,
                event_type="progress_reset",
                status_from=DocumentTaskStatus.PROCESSING,
                status_to=DocumentTaskStatus.PROCESSING,
                details={"worker_id": claim.worker_id},
            )
            session.commit()
            return True

    def finish_task(
        self,
        *,
        claim: ClaimedTask,
        progress: TaskProgress,
    ) -> DocumentTaskStatus | None:
        """Move an owned task to done/failed and release the lock."""

        status = DocumentTaskStatus.FAILED if progress.has_errors else DocumentTaskStatus.DONE
        error = (
            f"Document generation failed for {progress.failed_count} participant(s)"
            if progress.has_errors
            else None
        )
        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(DocumentTask)
                .where(*_ownership_conditions(claim))
                .values(
                    status=status.value,
                    progress_done=progress.progress_done,
                    output_files_json=_dump_output_files(progress.output_files),
                    error=error,
                    locked_at=None,
                    locked_by=None,
                    updated_at=now,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return None
            self._add_event(
                session=session,
                task_id=claim.task_id,
                event_type="finished",
                status_from=DocumentTaskStatus.PROCESSING,
                status_to=status,
                details={
                    "progress_done": progress.progress_done,
                    "failed": progress.failed_count,
                },
            )
            session.commit()
        return status

    def fail_task(self, *, claim: ClaimedTask, error: str) -> bool:
        """Mark an owned task failed before any participant ran."""

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(DocumentTask)
                .where(*_ownership_conditions(claim))
                .values(
                    status=DocumentTaskStatus.FAILED.value,
                    error=error,
                    locked_at=None,
                    locked_by=None,
                    updated_at=now,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            self._add_event(
                session=session,
                task_id=claim.task_id,
                event_type="setup_failed",
                status_from=DocumentTaskStatus.PROCESSING,
                status_to=DocumentTaskStatus.FAILED,
                details={"error": error},
            )
            session.commit()
            return True

    def _add_event(  # noqa: PLR0913
        self,
        *,
        session: Session,
        task_id: str,
        event_type: str,
        status_from: DocumentTaskStatus | None,
        status_to: DocumentTaskStatus | None,
        details: dict[str, object],
    ) -> None:
        session.add(
            DocumentTaskEvent(
                task_id=task_id,
                event_type=event_type,
                status_from=status_from.value if status_from is not None else None,
                status_to=status_to.value if status_to is not None else None,
                details_json=json.dumps(details, ensure_ascii=False, sort_keys=True)
                if details
                else None,
                created_at=to_db_datetime(utc_now()),
            ),
        )


def _ownership_conditions(claim: ClaimedTask) -> tuple[object, ...]:
    return (
        col(DocumentTask.task_id) == claim.task_id,
        col(DocumentTask.status) == DocumentTaskStatus.PROCESSING.value,
        col(DocumentTask.locked_by) == claim.worker_id,
        col(DocumentTask.locked_at) == to_db_datetime(claim.locked_at),
    )


def _dump_output_files(entries: tuple[OutputFileEntry, ...]) -> str:
    return json.dumps([entry.to_dict() for entry in entries], ensure_ascii=False)


def _load_output_files(raw: str | None) -> tuple[OutputFileEntry, ...]:
    if not raw:
        return ()
    parsed = json.loads(raw)
    if not isinstance(parsed, list):
        return ()
    return tuple(OutputFileEntry.from_dict(item) for item in parsed if isinstance(item, dict))


def _to_template_view(row: DocumentTemplate) -> TemplateView:
    return TemplateView(
        template_id=row.template_id,
        project_id=row.project_id,
        name=row.name,
        doc_id=row.doc_id,
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )


def _to_mapping_view(row: DocumentTemplateMapping) -> TemplateMappingView:
    return TemplateMappingView(
        mapping_id=row.id or 0,
        template_id=row.template_id,
        placeholder=row.placeholder,
        participant_key=row.participant_key,
        created_at=to_utc_aware_datetime(row.created_at),
    )


def _to_task_view(row: DocumentTask) -> DocumentTaskView:
    return DocumentTaskView(
        task_id=row.task_id,
        project_id=row.project_id,
        template_id=row.template_id,
        requested_by=row.requested_by,
        participant_ids=tuple(int(value) for value in json.loads(row.participant_ids_json)),
        status=DocumentTaskStatus(row.status),
        progress_total=row.progress_total,
        progress_done=row.progress_done,
        output_folder_id=row.output_folder_id,
        output_files=_load_output_files(row.output_files_json),
        error=row.error,
        locked_at=to_utc_aware_datetime(row.locked_at) if row.locked_at is not None else None,
        locked_by=row.locked_by,
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )
