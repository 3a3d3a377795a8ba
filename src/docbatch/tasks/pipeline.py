"""Generation pipeline: produce one document per participant of a claimed task."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any, NoReturn

from docbatch.config import ReclaimMode
from docbatch.provider.client import DocumentProviderClient
from docbatch.tasks.errors import LostOwnershipError, TaskSetupError
from docbatch.tasks.models import (
    ClaimedTask,
    DocumentTaskStatus,
    DocumentTaskView,
    OutputFileEntry,
    PlaceholderMapping,
    TaskProgress,
    TemplateView,
)
from docbatch.tasks.replacements import (
    build_output_name,
    build_replacements,
    fallback_output_name,
    intermediate_name,
)
from docbatch.tasks.repository import DocumentTaskRepository

logger = logging.getLogger(__name__)

ResolveParticipants = Callable[[str, str], Sequence[Mapping[str, Any]]]
ResolveMappings = Callable[[str], Sequence[PlaceholderMapping]]


class GenerationPipeline:
    """Drives copy -> substitute -> export -> upload for every participant of a task.

    Participants are processed strictly in creation order. A failing participant
    only produces an error entry; progress is persisted after each participant
    under the claim guard, and losing the claim stops the task immediately.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        repository: DocumentTaskRepository,
        provider: DocumentProviderClient,
        resolve_participants: ResolveParticipants,
        resolve_mappings: ResolveMappings | None = None,
        reclaim_mode: ReclaimMode = ReclaimMode.RESTART_ALL,
        default_output_folder_id: str | None = None,
    ) -> None:
        self.repository = repository
        self.provider = provider
        self.resolve_participants = resolve_participants
        self.resolve_mappings = resolve_mappings or repository.resolve_mappings
        self.reclaim_mode = reclaim_mode
        self.default_output_folder_id = default_output_folder_id

    def process(self, claim: ClaimedTask) -> DocumentTaskStatus:
        """Run a claimed task to a terminal status.

        Raises `TaskSetupError` when the task could not start (the task is marked
        failed when it still exists) and `LostOwnershipError` when the claim was
        taken over mid-run.
        """

        task = self.repository.get_task(task_id=claim.task_id)
        if task is None:
            raise TaskSetupError(f"Task {claim.task_id} not found")

        template, participants, mappings = self._prepare(claim=claim, task=task)
        progress = self._initial_progress(claim=claim, task=task)
        folder_id = task.output_folder_id or self.default_output_folder_id
        participants_by_id = _index_participants(participants)

        logger.info(
            "Processing task %s: %d participant(s), %d already done, template %r",
            task.task_id,
            task.progress_total,
            progress.progress_done,
            template.name,
        )
        for participant_id in task.participant_ids:
            if participant_id in progress.processed_ids:
                continue
            entry = self._generate_one(
                participant_id=participant_id,
                participant=participants_by_id.get(participant_id),
                template=template,
                mappings=mappings,
                folder_id=folder_id,
            )
            progress = progress.advance(entry)
            if not self.repository.save_progress(claim=claim, progress=progress):
                logger.warning(
                    "Task %s was taken over by another worker after %d/%d participant(s)",
                    task.task_id,
                    progress.progress_done,
                    task.progress_total,
                )
                raise LostOwnershipError(task.task_id)

        status = self.repository.finish_task(claim=claim, progress=progress)
        if status is None:
            raise LostOwnershipError(task.task_id)
        logger.info(
            "Task %s finished: status=%s done=%d failed=%d",
            task.task_id,
            status.value,
            progress.progress_done,
            progress.failed_count,
        )
        return status

    def _prepare(
        self,
        *,
        claim: ClaimedTask,
        task: DocumentTaskView,
    ) -> tuple[TemplateView, Sequence[Mapping[str, Any]], Sequence[PlaceholderMapping]]:
        template = self.repository.get_template(
            template_id=task.template_id,
            project_id=task.project_id,
        )
        if template is None:
            self._fail_setup(claim, f"Template {task.template_id} not found")
        if not task.requested_by:
            self._fail_setup(claim, "Task has no requester")
        try:
            participants = self.resolve_participants(task.project_id, task.requested_by)
            mappings = self.resolve_mappings(task.template_id)
        except Exception as error:  # noqa: BLE001
            self._fail_setup(claim, f"Failed to load participants: {error}", cause=error)
        return template, participants, mappings

    def _initial_progress(self, *, claim: ClaimedTask, task: DocumentTaskView) -> TaskProgress:
        if self.reclaim_mode == ReclaimMode.RESUME:
            allowed = set(task.participant_ids)
            kept = tuple(entry for entry in task.output_files if entry.participant_id in allowed)
            if kept:
                logger.info(
                    "Resuming task %s from %d recorded participant(s)",
                    task.task_id,
                    len(kept),
                )
            return TaskProgress(output_files=kept)

        if (claim.reclaimed or task.output_files or task.progress_done) and (
            not self.repository.reset_progress(claim=claim)
        ):
            raise LostOwnershipError(task.task_id)
        return TaskProgress()

    def _generate_one(
        self,
        *,
        participant_id: int,
        participant: Mapping[str, Any] | None,
        template: TemplateView,
        mappings: Sequence[PlaceholderMapping],
        folder_id: str | None,
    ) -> OutputFileEntry:
        if participant is None:
            logger.warning("Participant %d not found in project data", participant_id)
            return OutputFileEntry(
                participant_id=participant_id,
                final_id="",
                name=fallback_output_name(
                    participant_id=participant_id,
                    template_name=template.name,
                ),
                error=f"Participant {participant_id} not found",
            )

        output_name = build_output_name(
            participant,
            participant_id=participant_id,
            template_name=template.name,
        )
        intermediate_id: str | None = None
        try:
            intermediate_id = self.provider.copy(
                template.doc_id,
                intermediate_name(output_name),
                folder_id,
            )
            self.provider.substitute(intermediate_id, build_replacements(participant, mappings))
            content = self.provider.export(intermediate_id)
            final_id = self.provider.upload(content, output_name, folder_id)
        except Exception as error:  # noqa: BLE001
            logger.warning(
                "Document generation failed for participant %d: %s",
                participant_id,
                error,
            )
            return OutputFileEntry(
                participant_id=participant_id,
                final_id="",
                name=output_name,
                intermediate_id=intermediate_id,
                error=str(error) or type(error).__name__,
            )
        finally:
            if intermediate_id is not None:
                self.provider.delete(intermediate_id)

        logger.info("Generated %r for participant %d", output_name, participant_id)
        return OutputFileEntry(
            participant_id=participant_id,
            final_id=final_id,
            name=output_name,
            intermediate_id=intermediate_id,
        )

    def _fail_setup(
        self,
        claim: ClaimedTask,
        message: str,
        *,
        cause: BaseException | None = None,
    ) -> NoReturn:
        logger.error("Task %s failed before processing participants: %s", claim.task_id, message)
        if not self.repository.fail_task(claim=claim, error=message):
            raise LostOwnershipError(claim.task_id) from cause
        raise TaskSetupError(message) from cause


def _index_participants(
    participants: Sequence[Mapping[str, Any]],
) -> dict[int, Mapping[str, Any]]:
    indexed: dict[int, Mapping[str, Any]] = {}
    for participant in participants:
        raw_id = participant.get("id")
        if raw_id is None or isinstance(raw_id, bool):
            continue
        try:
            indexed.setdefault(int(raw_id), participant)
        except (TypeError, ValueError):
            continue
    return indexed
