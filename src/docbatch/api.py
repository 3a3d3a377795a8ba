"""HTTP surface: the protected batch-run trigger and a health probe."""

from __future__ import annotations

import hmac
import logging

from fastapi import Depends, FastAPI, Header, HTTPException, Request, status
from sqlalchemy.exc import SQLAlchemyError

from docbatch import __version__
from docbatch.config import Settings
from docbatch.provider.client import DocumentProviderClient
from docbatch.provider.errors import ProviderNotConfiguredError
from docbatch.runtime import open_task_runtime
from docbatch.tasks.errors import StoreUnavailableError
from docbatch.tasks.repository import DocumentTaskRepository

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    provider: DocumentProviderClient | None = None,
) -> FastAPI:
    """Build the FastAPI app; the provider client is shared across requests."""

    settings = settings or Settings.from_env()
    settings.validate_for_runner()
    app = FastAPI(title="docbatch", version=__version__)
    app.state.settings = settings
    app.state.provider = provider or DocumentProviderClient.from_settings(settings.provider)
    migrate_store(settings)

    def require_runner_secret(
        request: Request,
        x_cron_secret: str | None = Header(None),
    ) -> None:
        expected = request.app.state.settings.scheduler.runner_secret
        if not expected:
            logger.warning("Runner trigger rejected: DOCBATCH_CRON_RUNNER_SECRET is not set")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Runner secret is not configured",
            )
        if not x_cron_secret or not hmac.compare_digest(x_cron_secret, expected):
            logger.warning("Runner trigger rejected: invalid X-CRON-SECRET header")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid cron secret",
            )

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "healthy"}

    @app.post(
        "/internal/documents/tasks/run",
        dependencies=[Depends(require_runner_secret)],
        response_model=None,
    )
    def run_document_tasks(request: Request) -> dict[str, object]:
        try:
            with open_task_runtime(
                request.app.state.settings,
                provider=request.app.state.provider,
                migrate=False,
            ) as runtime:
                summary = runtime.runner.run_once()
        except ProviderNotConfiguredError as error:
            logger.error("Document task run aborted: %s", error)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=str(error),
            ) from error
        except (StoreUnavailableError, SQLAlchemyError) as error:
            logger.error("Document task run aborted, store unavailable: %s", error)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Task store unavailable",
            ) from error
        return summary.to_dict()

    return app


def migrate_store(settings: Settings) -> None:
    """Bring the task store schema up to date once per process."""

    repository = DocumentTaskRepository(
        db_path=settings.db_path,
        sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms,
    )
    try:
        repository.init_schema()
    finally:
        repository.close()
