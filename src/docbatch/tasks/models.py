"""Domain models for document generation tasks."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any


class DocumentTaskStatus(str, Enum):
    """Durable task lifecycle states."""

    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class OutputFileEntry:
    """Outcome for one participant; an empty `final_id` marks a failure."""

    participant_id: int
    final_id: str
    name: str
    intermediate_id: str | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return bool(self.final_id) and self.error is None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"participantId": self.participant_id}
        if self.intermediate_id is not None:
            payload["intermediateId"] = self.intermediate_id
        payload["finalId"] = self.final_id
        payload["name"] = self.name
        if self.error is not None:
            payload["error"] = self.error
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> OutputFileEntry:
        return cls(
            participant_id=int(payload["participantId"]),
            final_id=str(payload.get("finalId") or ""),
            name=str(payload.get("name") or ""),
            intermediate_id=payload.get("intermediateId"),
            error=payload.get("error"),
        )


@dataclass(slots=True, frozen=True)
class TaskProgress:
    """Accumulated per-participant results, advanced one participant at a time."""

    output_files: tuple[OutputFileEntry, ...] = ()

    @property
    def progress_done(self) -> int:
        return len(self.output_files)

    @property
    def failed_count(self) -> int:
        return sum(1 for entry in self.output_files if not entry.succeeded)

    @property
    def has_errors(self) -> bool:
        return self.failed_count > 0

    @property
    def processed_ids(self) -> frozenset[int]:
        return frozenset(entry.participant_id for entry in self.output_files)

    def advance(self, entry: OutputFileEntry) -> TaskProgress:
        if entry.participant_id in self.processed_ids:
            raise ValueError(f"Participant {entry.participant_id} already has an output entry")
        return replace(self, output_files=(*self.output_files, entry))


@dataclass(slots=True)
class PlaceholderMapping:
    """Template token to participant-record key."""

    placeholder: str
    participant_key: str


@dataclass(slots=True)
class TemplateMappingView:
    """Stored placeholder mapping row."""

    mapping_id: int
    template_id: str
    placeholder: str
    participant_key: str
    created_at: datetime


@dataclass(slots=True)
class TemplateView:
    """Readable document template."""

    template_id: str
    project_id: str
    name: str
    doc_id: str
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class DocumentTaskCreate:
    """Input payload for creating a generation task."""

    project_id: str
    template_id: str
    participant_ids: tuple[int, ...]
    requested_by: str | None = None
    output_folder_id: str | None = None
    task_id: str | None = None


@dataclass(slots=True)
class DocumentTaskView:
    """Full task record as exposed to readers."""

    task_id: str
    project_id: str
    template_id: str
    requested_by: str | None
    participant_ids: tuple[int, ...]
    status: DocumentTaskStatus
    progress_total: int
    progress_done: int
    output_folder_id: str | None
    output_files: tuple[OutputFileEntry, ...]
    error: str | None
    locked_at: datetime | None
    locked_by: str | None
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.task_id,
            "projectId": self.project_id,
            "templateId": self.template_id,
            "requestedBy": self.requested_by,
            "participantIds": list(self.participant_ids),
            "status": self.status.value,
            "progressTotal": self.progress_total,
            "progressDone": self.progress_done,
            "outputFolderId": self.output_folder_id,
            "outputFiles": [entry.to_dict() for entry in self.output_files],
            "error": self.error,
            "lockedAt": self.locked_at.isoformat() if self.locked_at else None,
            "lockedBy": self.locked_by,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


@dataclass(slots=True)
class DocumentTaskEventView:
    """Task event entry for audit trail."""

    event_id: int
    task_id: str
    event_type: str
    status_from: DocumentTaskStatus | None
    status_to: DocumentTaskStatus | None
    created_at: datetime
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class DocumentTaskDetails:
    """Task details with event stream."""

    task: DocumentTaskView
    events: list[DocumentTaskEventView]


@dataclass(slots=True, frozen=True)
class ClaimCandidate:
    """Task row that looked claimable at scan time."""

    task_id: str
    status: DocumentTaskStatus
    locked_at: datetime | None
    created_at: datetime


@dataclass(slots=True, frozen=True)
class ClaimedTask:
    """Ownership token returned by a successful claim."""

    task_id: str
    worker_id: str
    locked_at: datetime
    reclaimed: bool = False
