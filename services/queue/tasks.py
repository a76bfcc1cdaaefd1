"""Async task definitions for document processing.

Uses arq (async Redis queue) to run document analysis outside the API
process. The worker reads the records the API created, so both use the
Redis repository backend on the same Redis instance as the queue.

Based on arq documentation:
https://arq-docs.helpmanual.io/
"""

import logging
from typing import Any

from services.normalization.schema import DocumentType
from services.pipeline.factory import create_pipelines
from services.pipeline.processor import DocumentPipeline, ProcessingJob
from services.repositories.factory import create_repositories
from services.shared.config import get_settings

logger = logging.getLogger(__name__)

PROCESS_DOCUMENT_JOB = "process_document"


class ArqDispatcher:
    """Dispatcher enqueueing background runs on an arq Redis pool."""

    def __init__(self, redis: Any) -> None:
        """Initialize dispatcher.

        Args:
            redis: ``arq.ArqRedis`` pool from ``create_pool``
        """
        self.redis = redis

    async def dispatch(self, pipeline: DocumentPipeline, job: ProcessingJob) -> None:
        queued = await self.redis.enqueue_job(
            PROCESS_DOCUMENT_JOB,
            document_type=pipeline.document_type.value,
            document_id=job.document_id,
            content=job.content,
            partner_id=job.partner_id,
            filename=job.filename,
            _job_id=f"{pipeline.document_type.value}:{job.document_id}",
        )
        if queued is None:
            logger.warning(f"Job for document {job.document_id} already queued")
        else:
            logger.info(f"Queued job {queued.job_id} for document {job.document_id}")


async def process_document(
    ctx: dict[str, Any],
    document_type: str,
    document_id: str,
    content: bytes,
    partner_id: str,
    filename: str,
) -> dict[str, Any]:
    """Run the processing pipeline for one accepted document.

    Args:
        ctx: arq context (holds pipelines built at startup)
        document_type: ``Invoice`` or ``PurchaseOrder``
        document_id: Accepted document ID
        content: Raw file bytes
        partner_id: Uploading partner
        filename: Original filename

    Returns:
        Document ID and the terminal status written (None if skipped)
    """
    logger.info(f"Processing {document_type} {document_id}")

    pipelines: dict[DocumentType, DocumentPipeline] = ctx["pipelines"]
    pipeline = pipelines[DocumentType(document_type)]
    job = ProcessingJob(document_id=document_id, content=content, partner_id=partner_id, filename=filename)

    status = await pipeline.process(job)

    logger.info(f"Job for {document_type} {document_id} finished with status: {status}")
    return {"document_id": document_id, "status": status.value if status else None}


async def startup(ctx: dict[str, Any]) -> None:
    """Worker startup hook - build pipelines once for all jobs.

    Repositories use the worker's own arq Redis pool (``ctx["redis"]``).

    Raises:
        ValueError: If repositories shared with the API are not configured
    """
    logger.info("Initializing worker pipelines...")
    settings = get_settings()
    repositories = create_repositories(settings, ctx.get("redis"), shared=True)
    ctx["settings"] = settings
    ctx["pipelines"] = create_pipelines(settings, repositories=repositories)
    logger.info("Worker pipelines initialized")


async def shutdown(ctx: dict[str, Any]) -> None:
    """Worker shutdown hook - release OCR clients."""
    logger.info("Worker shutting down...")
    for pipeline in ctx.get("pipelines", {}).values():
        aclose = getattr(pipeline.analyzer, "aclose", None)
        if aclose is not None:
            await aclose()


class WorkerSettings:
    """arq worker settings.

    Defines the worker configuration including:
    - Task functions to register
    - Redis connection settings
    - Job timeout
    """

    functions = [process_document]
    on_startup = startup
    on_shutdown = shutdown

    # These will be set from environment
    redis_settings = None
    max_jobs = 10
    job_timeout = 300
    # Runs always end in a terminal status, so arq never retries them
    max_tries = 1

    @classmethod
    def get_redis_settings(cls) -> Any:
        """Get Redis settings from configuration."""
        from arq.connections import RedisSettings as ArqRedisSettings

        settings = get_settings()
        # Parse redis URL
        url = settings.redis_url
        if url.startswith("redis://"):
            url = url[8:]
        host_port = url.split("/")[0]
        host, port = host_port.split(":") if ":" in host_port else (host_port, "6379")
        db = int(url.split("/")[1]) if "/" in url else 0

        return ArqRedisSettings(host=host, port=int(port), database=db)
