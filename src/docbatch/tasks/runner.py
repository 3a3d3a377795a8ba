"""One batch-run invocation: readiness check, claim, process, summarize."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from docbatch.provider.client import DocumentProviderClient
from docbatch.tasks.errors import LostOwnershipError, TaskSetupError
from docbatch.tasks.models import ClaimedTask, DocumentTaskStatus
from docbatch.tasks.pipeline import GenerationPipeline
from docbatch.tasks.scheduler import TaskClaimScheduler

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TaskRunSummary:
    """Batch-run counters returned to the trigger."""

    claimed: int = 0
    processed: int = 0
    task_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "claimed": self.claimed,
            "processed": self.processed,
            "taskIds": list(self.task_ids),
        }


class DocumentTaskRunner:
    """Runs claimed tasks through the pipeline, sequentially or on a small thread pool."""

    def __init__(
        self,
        *,
        scheduler: TaskClaimScheduler,
        pipeline: GenerationPipeline,
        provider: DocumentProviderClient,
        max_concurrent_tasks: int = 1,
    ) -> None:
        self.scheduler = scheduler
        self.pipeline = pipeline
        self.provider = provider
        self.max_concurrent_tasks = max(1, max_concurrent_tasks)

    def run_once(self) -> TaskRunSummary:
        """Claim and process one batch.

        Raises `ProviderNotConfiguredError` before claiming when the provider is
        not usable, and `StoreUnavailableError` when the scan/claim phase fails.
        """

        self.provider.ensure_ready()
        claims = self.scheduler.claim_batch()
        summary = TaskRunSummary(claimed=len(claims))
        if not claims:
            logger.info("No document tasks to process")
            return summary

        if self.max_concurrent_tasks == 1 or len(claims) == 1:
            outcomes = [self._process(claim) for claim in claims]
        else:
            workers = min(self.max_concurrent_tasks, len(claims))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="docbatch") as pool:
                outcomes = list(pool.map(self._process, claims))

        for claim, status in zip(claims, outcomes, strict=True):
            if status is not None:
                summary.processed += 1
                summary.task_ids.append(claim.task_id)
        logger.info(
            "Document task run finished: claimed=%d processed=%d",
            summary.claimed,
            summary.processed,
        )
        return summary

    def _process(self, claim: ClaimedTask) -> DocumentTaskStatus | None:
        try:
            return self.pipeline.process(claim)
        except TaskSetupError as error:
            logger.error("Task %s could not start: %s", claim.task_id, error)
        except LostOwnershipError:
            logger.warning("Task %s abandoned after losing its claim", claim.task_id)
        except Exception:  # noqa: BLE001
            logger.exception("Task %s aborted, lock left to expire", claim.task_id)
        return None
