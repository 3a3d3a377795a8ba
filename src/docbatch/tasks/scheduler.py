"""Claim scheduler: picks pending or stale-locked tasks and claims them atomically."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError

from docbatch.storage.common import utc_now
from docbatch.tasks.errors import StoreUnavailableError
from docbatch.tasks.models import ClaimedTask
from docbatch.tasks.repository import DocumentTaskRepository

logger = logging.getLogger(__name__)


class TaskClaimScheduler:
    """Claims up to `batch_size` tasks per invocation.

    Candidates are scanned with headroom (twice the batch size) so that rows
    lost to a concurrent runner do not leave the batch short. A lost race is
    skipped silently.
    """

    def __init__(
        self,
        *,
        repository: DocumentTaskRepository,
        worker_id: str,
        batch_size: int = 5,
        lock_timeout_minutes: int = 120,
    ) -> None:
        self.repository = repository
        self.worker_id = worker_id
        self.batch_size = batch_size
        self.lock_timeout = timedelta(minutes=lock_timeout_minutes)

    def stale_before(self, now: datetime) -> datetime:
        return now - self.lock_timeout

    def claim_batch(self, now: datetime | None = None) -> list[ClaimedTask]:
        claimed_at = now or utc_now()
        stale_before = self.stale_before(claimed_at)
        try:
            candidates = self.repository.find_claim_candidates(
                stale_before=stale_before,
                limit=self.batch_size * 2,
            )
            claimed: list[ClaimedTask] = []
            for candidate in candidates:
                if len(claimed) >= self.batch_size:
                    break
                claim = self.repository.claim_task(
                    candidate=candidate,
                    worker_id=self.worker_id,
                    stale_before=stale_before,
                    now=claimed_at,
                )
                if claim is None:
                    logger.debug("Task %s was claimed by another worker", candidate.task_id)
                    continue
                if claim.reclaimed:
                    logger.warning(
                        "Reclaimed stale task %s (locked at %s)",
                        claim.task_id,
                        candidate.locked_at.isoformat() if candidate.locked_at else "-",
                    )
                claimed.append(claim)
        except SQLAlchemyError as error:
            raise StoreUnavailableError(f"Task store unavailable: {error}") from error

        logger.info(
            "Claimed %d task(s) from %d candidate(s) as %s",
            len(claimed),
            len(candidates),
            self.worker_id,
        )
        return claimed
