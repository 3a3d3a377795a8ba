"""Error types for document task orchestration."""

from __future__ import annotations


class StoreUnavailableError(RuntimeError):
    """Task store could not be queried or updated during scan/claim."""


class TaskSetupError(RuntimeError):
    """A claimed task could not be prepared before any participant ran."""


class LostOwnershipError(RuntimeError):
    """The claim on a task was taken over by another worker."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Lost ownership of task {task_id}")
        self.task_id = task_id


class ProjectAccessError(PermissionError):
    """Requester is not a member of the project."""


class TemplateNotFoundError(LookupError):
    """Template does not exist in the project."""


class TaskNotFoundError(LookupError):
    """Task does not exist in the project."""


class TaskValidationError(ValueError):
    """Invalid task or mapping input."""
