"""arq worker runner for queued invoice and purchase order runs.

Run with: python -m services.queue.worker
Or: arq services.queue.tasks.WorkerSettings

The API enqueues a run per accepted upload when ``APP_QUEUE_ENABLED`` is
set. The worker must share the API's records, so it refuses to start
unless ``APP_REPOSITORY_BACKEND=redis``.
"""

import logging
import sys

from arq import run_worker

from services.queue.tasks import WorkerSettings
from services.shared.config import Settings, get_settings
from services.shared.log import setup_logging

logger = logging.getLogger(__name__)


def check_deployment(settings: Settings) -> list[str]:
    """Find settings that would leave queued documents unfinished.

    Args:
        settings: Application settings

    Returns:
        Problems that prevent the worker from starting (empty if none)
    """
    problems = []
    if settings.repository_backend != "redis":
        problems.append(
            "Worker cannot see documents created by the API with in-memory repositories; "
            "set APP_REPOSITORY_BACKEND=redis"
        )
    return problems


def main() -> None:
    """Run the arq worker."""
    settings = get_settings()
    setup_logging(settings.log_level)

    problems = check_deployment(settings)
    for problem in problems:
        logger.error(problem)
    if problems:
        sys.exit(1)

    if not (settings.azure_endpoint and settings.azure_key):
        logger.warning("Azure Document Intelligence is not configured, queued runs will fail")

    logger.info(f"Starting document worker with Redis: {settings.redis_url}")
    logger.info(
        f"OCR models: invoice={settings.azure_invoice_model}, "
        f"purchase order={settings.azure_purchase_order_model}"
    )
    logger.info(f"Max jobs: {settings.queue_max_jobs}, job timeout: {settings.queue_job_timeout}s")

    WorkerSettings.redis_settings = WorkerSettings.get_redis_settings()
    WorkerSettings.max_jobs = settings.queue_max_jobs
    WorkerSettings.job_timeout = settings.queue_job_timeout

    run_worker(WorkerSettings)  # type: ignore[arg-type]


if __name__ == "__main__":
    main()
