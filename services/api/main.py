"""FastAPI application for financial document ingestion.

Exposes:
- Upload, status, retrieval and deletion of invoices and purchase orders
- Synchronous analysis of documents hosted at a URL
- Health and readiness checks for Kubernetes
- Prometheus metrics for monitoring

Based on FastAPI best practices:
https://fastapi.tiangolo.com/
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, File, Header, HTTPException, Request, Response, UploadFile, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from services.api import metrics
from services.normalization.schema import DocumentType
from services.pipeline.factory import create_pipelines
from services.pipeline.processor import Dispatcher, DocumentPipeline
from services.repositories.factory import create_repositories
from services.shared.config import get_settings
from services.shared.errors import (
    DocumentAnalysisError,
    DocumentProcessingError,
    ForbiddenError,
    NotFoundError,
    PayloadTooLargeError,
    StorageError,
    UnsupportedFileTypeError,
    ValidationError,
)
from services.shared.log import setup_logging

settings = get_settings()
setup_logging(settings.log_level)
logger = logging.getLogger(__name__)

# Built on startup, see lifespan
pipelines: dict[DocumentType, DocumentPipeline] = {}

DOCUMENT_KINDS = {
    "invoices": DocumentType.INVOICE,
    "purchase-orders": DocumentType.PURCHASE_ORDER,
}

ERROR_STATUS_CODES: list[tuple[type[DocumentProcessingError], int]] = [
    (PayloadTooLargeError, 413),
    (UnsupportedFileTypeError, 415),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (DocumentAnalysisError, status.HTTP_502_BAD_GATEWAY),
    (StorageError, status.HTTP_502_BAD_GATEWAY),
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build pipelines for the configured backends and release clients on exit.

    A Redis pool is opened when runs are queued to arq or records live in
    Redis. Queued runs require the Redis repository backend.
    """
    redis = None
    if settings.queue_enabled or settings.repository_backend == "redis":
        from arq import create_pool

        from services.queue.tasks import WorkerSettings

        redis = await create_pool(WorkerSettings.get_redis_settings())

    dispatcher: Dispatcher | None = None
    if settings.queue_enabled:
        from services.queue.tasks import ArqDispatcher

        dispatcher = ArqDispatcher(redis)
        logger.info(f"Dispatching document runs to arq at {settings.redis_url}")

    try:
        repositories = create_repositories(settings, redis)
    except ValueError:
        if redis is not None:
            await redis.close()
        raise
    pipelines.update(create_pipelines(settings, dispatcher=dispatcher, repositories=repositories))

    yield

    for pipeline in pipelines.values():
        aclose = getattr(pipeline.analyzer, "aclose", None)
        if aclose is not None:
            await aclose()
    pipelines.clear()
    if redis is not None:
        await redis.close()


app = FastAPI(
    title="Financial Document Ingestion",
    description="OCR normalization and processing of invoices and purchase orders",
    version=settings.service_version,
    lifespan=lifespan,
)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware to collect request metrics.

    Tracks:
    - Request count by method, endpoint, and status
    - Request duration by method and endpoint
    """
    # Skip metrics for /metrics endpoint itself
    if request.url.path == "/metrics":
        return await call_next(request)

    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    metrics.http_requests_total.labels(
        method=request.method,
        endpoint=request.url.path,
        status=response.status_code,
    ).inc()

    metrics.http_request_duration_seconds.labels(
        method=request.method,
        endpoint=request.url.path,
    ).observe(duration)

    return response


@app.exception_handler(DocumentProcessingError)
async def document_error_handler(request: Request, exc: DocumentProcessingError) -> JSONResponse:
    """Translate ingestion errors into HTTP responses."""
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            break
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    service: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    ocr_configured: bool


class AcceptedResponse(BaseModel):
    """Document accepted for background processing."""

    id: str
    status: str
    message: str


class StatusResponse(BaseModel):
    """Document lifecycle status."""

    id: str
    status: str


class AnalyzeRequest(BaseModel):
    """Request to analyze a document hosted at a URL."""

    document_url: str


class AnalyzeResponse(BaseModel):
    """Result of a synchronous URL analysis."""

    id: str
    status: str
    message: str
    document: dict[str, Any]


def get_pipeline(kind: str) -> DocumentPipeline:
    """Pipeline serving a URL document kind.

    Raises:
        HTTPException: 404 for unknown kinds, 503 before startup completes
    """
    document_type = DOCUMENT_KINDS.get(kind)
    if document_type is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown document kind: {kind}")
    pipeline = pipelines.get(document_type)
    if pipeline is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service is starting")
    return pipeline


@app.get("/health", response_model=HealthResponse, tags=["Health"])
def health_check() -> HealthResponse:
    """Liveness check endpoint.

    Returns:
        Health status information
    """
    return HealthResponse(
        status="healthy", version=settings.service_version, service=settings.service_name
    )


@app.get("/ready", response_model=ReadinessResponse, tags=["Health"])
def readiness_check() -> ReadinessResponse:
    """Readiness check endpoint.

    Returns:
        Readiness status
    """
    ocr_configured = bool(pipelines) and all(
        pipeline.analyzer.is_available() for pipeline in pipelines.values()
    )
    return ReadinessResponse(ready=bool(pipelines), ocr_configured=ocr_configured)


@app.get("/metrics", tags=["Monitoring"])
def get_metrics() -> Response:
    """Prometheus metrics endpoint.

    Returns:
        Prometheus metrics in text format
    """
    metrics_data, content_type = metrics.get_metrics()
    return Response(content=metrics_data, media_type=content_type)


@app.post(
    "/api/v1/{kind}/upload",
    response_model=AcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["Documents"],
)
async def upload_document(
    kind: str,
    file: UploadFile = File(..., description="Invoice or purchase order PDF"),  # noqa: B008
    x_partner_id: str | None = Header(None),
) -> AcceptedResponse:
    """Upload a document for background analysis.

    The file is stored and a record is created with status ``Processing``.
    Poll ``/api/v1/{kind}/{id}/status`` until it becomes ``Analyzed`` or
    ``Failed``.

    ```bash
    curl -X POST "http://localhost:8000/api/v1/invoices/upload" \\
      -H "X-Partner-Id: acme" -F "file=@invoice.pdf"
    ```

    Args:
        kind: ``invoices`` or ``purchase-orders``
        file: Document to process
        x_partner_id: Uploading partner (``X-Partner-Id`` header)

    Returns:
        Accepted document ID and status
    """
    pipeline = get_pipeline(kind)
    content = await file.read()
    result = await pipeline.submit(content, x_partner_id, file.filename, file.content_type)
    return AcceptedResponse(**result)


@app.post("/api/v1/{kind}/analyze", response_model=AnalyzeResponse, tags=["Documents"])
async def analyze_document(
    kind: str,
    request: AnalyzeRequest,
    x_partner_id: str | None = Header(None),
) -> AnalyzeResponse:
    """Analyze a document hosted at a URL and store the normalized result."""
    pipeline = get_pipeline(kind)
    result = await pipeline.analyze_url(request.document_url, x_partner_id)
    return AnalyzeResponse(**result)


@app.get("/api/v1/{kind}/{document_id}/status", response_model=StatusResponse, tags=["Documents"])
async def get_document_status(kind: str, document_id: str) -> StatusResponse:
    """Current lifecycle status of a document."""
    result = await get_pipeline(kind).get_status(document_id)
    return StatusResponse(**result)


@app.get("/api/v1/{kind}/{document_id}", tags=["Documents"])
async def get_document(kind: str, document_id: str) -> dict[str, Any]:
    """Formatted document with parties and line items.

    Documents that are still processing (or failed) return a placeholder
    with an empty document list.
    """
    return await get_pipeline(kind).get_by_id(document_id)


@app.delete("/api/v1/{kind}/{document_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Documents"])
async def delete_document(
    kind: str,
    document_id: str,
    x_partner_id: str | None = Header(None),
) -> Response:
    """Delete an analyzed document owned by the calling partner."""
    await get_pipeline(kind).delete(document_id, x_partner_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
