"""Runtime configuration for the document task queue and provider client."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class ReclaimMode(str, Enum):
    """How a reclaimed (stale) task treats progress recorded by the previous owner."""

    RESTART_ALL = "restart_all"
    RESUME = "resume"


@dataclass(slots=True)
class SchedulerSettings:
    """Claim scheduler and pipeline settings."""

    batch_size: int = 5
    lock_timeout_minutes: int = 120
    worker_id: str = "cron-runner"
    reclaim_mode: ReclaimMode = ReclaimMode.RESTART_ALL
    max_concurrent_tasks: int = 1
    runner_secret: str | None = None


@dataclass(slots=True)
class ProviderSettings:
    """Google Drive / Docs provider settings."""

    client_email: str | None = None
    private_key: str | None = None
    default_output_folder_id: str | None = None
    max_attempts: int = 5
    retry_base_seconds: float = 1.0
    retry_max_seconds: float = 32.0
    request_timeout_seconds: float = 60.0

    @property
    def has_credentials(self) -> bool:
        return bool(self.client_email) and bool(self.private_key)

    def missing_credentials(self) -> list[str]:
        missing: list[str] = []
        if not self.client_email:
            missing.append("DOCBATCH_GOOGLE_CLIENT_EMAIL")
        if not self.private_key:
            missing.append("DOCBATCH_GOOGLE_PRIVATE_KEY")
        return missing


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".docbatch.db")
    sqlite_busy_timeout_ms: int = 5_000
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    provider: ProviderSettings = field(default_factory=ProviderSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("DOCBATCH_DB_PATH", ".docbatch.db")),
            sqlite_busy_timeout_ms=int(os.getenv("DOCBATCH_SQLITE_BUSY_TIMEOUT_MS", "5000")),
            scheduler=SchedulerSettings(
                batch_size=int(os.getenv("DOCBATCH_TASK_BATCH_SIZE", "5")),
                lock_timeout_minutes=int(os.getenv("DOCBATCH_TASK_LOCK_TIMEOUT_MINUTES", "120")),
                worker_id=os.getenv("DOCBATCH_WORKER_ID", "cron-runner").strip() or "cron-runner",
                reclaim_mode=_parse_reclaim_mode(
                    os.getenv("DOCBATCH_RECLAIM_MODE", ReclaimMode.RESTART_ALL.value),
                ),
                max_concurrent_tasks=int(os.getenv("DOCBATCH_MAX_CONCURRENT_TASKS", "1")),
                runner_secret=_env_optional("DOCBATCH_CRON_RUNNER_SECRET"),
            ),
            provider=ProviderSettings(
                client_email=_env_optional("DOCBATCH_GOOGLE_CLIENT_EMAIL"),
                private_key=_normalize_private_key(_env_optional("DOCBATCH_GOOGLE_PRIVATE_KEY")),
                default_output_folder_id=_env_optional("DOCBATCH_DEFAULT_OUTPUT_FOLDER_ID"),
                max_attempts=int(os.getenv("DOCBATCH_PROVIDER_MAX_ATTEMPTS", "5")),
                retry_base_seconds=float(
                    os.getenv("DOCBATCH_PROVIDER_RETRY_BASE_SECONDS", "1.0"),
                ),
                retry_max_seconds=float(
                    os.getenv("DOCBATCH_PROVIDER_RETRY_MAX_SECONDS", "32.0"),
                ),
                request_timeout_seconds=float(
                    os.getenv("DOCBATCH_PROVIDER_TIMEOUT_SECONDS", "60.0"),
                ),
            ),
        )

    def validate_for_runner(self) -> None:
        """Raise configuration error if queue or retry limits are unusable."""

        if self.scheduler.batch_size <= 0:
            raise ValueError("DOCBATCH_TASK_BATCH_SIZE must be a positive integer.")
        if self.scheduler.lock_timeout_minutes <= 0:
            raise ValueError("DOCBATCH_TASK_LOCK_TIMEOUT_MINUTES must be > 0.")
        if self.scheduler.max_concurrent_tasks <= 0:
            raise ValueError("DOCBATCH_MAX_CONCURRENT_TASKS must be a positive integer.")
        if self.provider.max_attempts <= 0:
            raise ValueError("DOCBATCH_PROVIDER_MAX_ATTEMPTS must be a positive integer.")
        if self.provider.retry_base_seconds < 0:
            raise ValueError("DOCBATCH_PROVIDER_RETRY_BASE_SECONDS must be >= 0.")
        if self.provider.retry_max_seconds < self.provider.retry_base_seconds:
            raise ValueError(
                "DOCBATCH_PROVIDER_RETRY_MAX_SECONDS must be >= "
                "DOCBATCH_PROVIDER_RETRY_BASE_SECONDS.",
            )


def _parse_reclaim_mode(value: str) -> ReclaimMode:
    normalized = value.strip().lower()
    try:
        return ReclaimMode(normalized)
    except ValueError as error:
        supported = ", ".join(mode.value for mode in ReclaimMode)
        raise ValueError(
            f"Invalid DOCBATCH_RECLAIM_MODE: {value!r}. Expected one of: {supported}.",
        ) from error


def _normalize_private_key(value: str | None) -> str | None:
    # keys pasted into .env files usually carry escaped newlines
    if value is None:
        return None
    return value.replace("\\n", "\n")


def _env_optional(name: str) -> str | None:
    value = os.getenv(name)
    if value is None:
        return None
    normalized = value.strip()
    return normalized or None
