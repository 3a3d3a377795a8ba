"""Wiring of repositories, provider client, service and runner from settings."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from docbatch.config import Settings
from docbatch.projects.participants import SheetParticipantResolver
from docbatch.projects.repository import ProjectDirectory
from docbatch.provider.client import DocumentProviderClient
from docbatch.tasks.pipeline import GenerationPipeline
from docbatch.tasks.repository import DocumentTaskRepository
from docbatch.tasks.runner import DocumentTaskRunner
from docbatch.tasks.scheduler import TaskClaimScheduler
from docbatch.tasks.services import DocumentTaskService


@dataclass(slots=True)
class TaskRuntime:
    """Components sharing one database and one provider client."""

    settings: Settings
    repository: DocumentTaskRepository
    directory: ProjectDirectory
    provider: DocumentProviderClient
    service: DocumentTaskService
    runner: DocumentTaskRunner


@contextmanager
def open_task_runtime(
    settings: Settings,
    *,
    provider: DocumentProviderClient | None = None,
    migrate: bool = True,
) -> Iterator[TaskRuntime]:
    repository = DocumentTaskRepository(
        db_path=settings.db_path,
        sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms,
    )
    directory = ProjectDirectory(
        db_path=settings.db_path,
        sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms,
    )
    try:
        if migrate:
            repository.init_schema()
        provider = provider or DocumentProviderClient.from_settings(settings.provider)
        resolver = SheetParticipantResolver(directory)
        service = DocumentTaskService(
            repository=repository,
            access_check=directory.get_role,
            resolve_participants=resolver,
            provider=provider,
            default_output_folder_id=settings.provider.default_output_folder_id,
        )
        runner = DocumentTaskRunner(
            scheduler=TaskClaimScheduler(
                repository=repository,
                worker_id=settings.scheduler.worker_id,
                batch_size=settings.scheduler.batch_size,
                lock_timeout_minutes=settings.scheduler.lock_timeout_minutes,
            ),
            pipeline=GenerationPipeline(
                repository=repository,
                provider=provider,
                resolve_participants=resolver,
                reclaim_mode=settings.scheduler.reclaim_mode,
                default_output_folder_id=settings.provider.default_output_folder_id,
            ),
            provider=provider,
            max_concurrent_tasks=settings.scheduler.max_concurrent_tasks,
        )
        yield TaskRuntime(
            settings=settings,
            repository=repository,
            directory=directory,
            provider=provider,
            service=service,
            runner=runner,
        )
    finally:
        directory.close()
        repository.close()
