from __future__ import annotations

from pathlib import Path

import allure
import pytest

from docbatch.config import ProviderSettings, ReclaimMode, SchedulerSettings, Settings

pytestmark = [
    allure.epic("Document Tasks"),
    allure.feature("Configuration"),
]


def test_from_env_uses_local_defaults(monkeypatch) -> None:
    for name in (
        "DOCBATCH_DB_PATH",
        "DOCBATCH_TASK_BATCH_SIZE",
        "DOCBATCH_TASK_LOCK_TIMEOUT_MINUTES",
        "DOCBATCH_WORKER_ID",
        "DOCBATCH_RECLAIM_MODE",
        "DOCBATCH_GOOGLE_CLIENT_EMAIL",
        "DOCBATCH_GOOGLE_PRIVATE_KEY",
        "DOCBATCH_CRON_RUNNER_SECRET",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()

    assert settings.db_path == Path(".docbatch.db")
    assert settings.scheduler.batch_size == 5
    assert settings.scheduler.lock_timeout_minutes == 120
    assert settings.scheduler.worker_id == "cron-runner"
    assert settings.scheduler.reclaim_mode == ReclaimMode.RESTART_ALL
    assert settings.scheduler.runner_secret is None
    assert settings.provider.max_attempts == 5
    assert settings.provider.has_credentials is False
    assert settings.provider.missing_credentials() == [
        "DOCBATCH_GOOGLE_CLIENT_EMAIL",
        "DOCBATCH_GOOGLE_PRIVATE_KEY",
    ]


def test_from_env_reads_overrides(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("DOCBATCH_TASK_BATCH_SIZE", "7")
    monkeypatch.setenv("DOCBATCH_TASK_LOCK_TIMEOUT_MINUTES", "15")
    monkeypatch.setenv("DOCBATCH_WORKER_ID", "  runner-b  ")
    monkeypatch.setenv("DOCBATCH_RECLAIM_MODE", "RESUME")
    monkeypatch.setenv("DOCBATCH_CRON_RUNNER_SECRET", " s3cret ")
    monkeypatch.setenv("DOCBATCH_GOOGLE_CLIENT_EMAIL", "bot@example.iam.gserviceaccount.com")
    monkeypatch.setenv("DOCBATCH_GOOGLE_PRIVATE_KEY", "-----BEGIN-----\\nabc\\n-----END-----")

    settings = Settings.from_env(db_path=tmp_path / "custom.db")

    assert settings.db_path == tmp_path / "custom.db"
    assert settings.scheduler.batch_size == 7
    assert settings.scheduler.lock_timeout_minutes == 15
    assert settings.scheduler.worker_id == "runner-b"
    assert settings.scheduler.reclaim_mode == ReclaimMode.RESUME
    assert settings.scheduler.runner_secret == "s3cret"
    assert settings.provider.private_key == "-----BEGIN-----\nabc\n-----END-----"
    assert settings.provider.has_credentials is True
    assert settings.provider.missing_credentials() == []


def test_from_env_rejects_unknown_reclaim_mode(monkeypatch) -> None:
    monkeypatch.setenv("DOCBATCH_RECLAIM_MODE", "sometimes")

    with pytest.raises(ValueError, match="DOCBATCH_RECLAIM_MODE"):
        Settings.from_env()


@pytest.mark.parametrize(
    ("settings", "env_name"),
    [
        (Settings(scheduler=SchedulerSettings(batch_size=0)), "DOCBATCH_TASK_BATCH_SIZE"),
        (
            Settings(scheduler=SchedulerSettings(lock_timeout_minutes=0)),
            "DOCBATCH_TASK_LOCK_TIMEOUT_MINUTES",
        ),
        (
            Settings(scheduler=SchedulerSettings(max_concurrent_tasks=0)),
            "DOCBATCH_MAX_CONCURRENT_TASKS",
        ),
        (Settings(provider=ProviderSettings(max_attempts=0)), "DOCBATCH_PROVIDER_MAX_ATTEMPTS"),
        (
            Settings(provider=ProviderSettings(retry_base_seconds=10, retry_max_seconds=5)),
            "DOCBATCH_PROVIDER_RETRY_MAX_SECONDS",
        ),
    ],
)
def test_validate_for_runner_names_offending_variable(settings: Settings, env_name: str) -> None:
    with pytest.raises(ValueError, match=env_name):
        settings.validate_for_runner()


def test_validate_for_runner_accepts_defaults() -> None:
    Settings().validate_for_runner()
