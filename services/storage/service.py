"""S3-compatible object storage for uploaded documents and OCR results.

Production-grade implementation with:
- Lazy client initialization and bucket auto-creation
- Retry on transient connection failures
- Content-type detection
- Stable URLs for stored objects

Based on MinIO Python SDK:
https://min.io/docs/minio/linux/developers/python/API.html
"""

import io
import json
import logging
import mimetypes
import uuid
from pathlib import Path
from typing import Any, Protocol

from minio import Minio
from minio.error import S3Error
from pydantic import BaseModel
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)
from urllib3.exceptions import HTTPError as TransportError

from services.shared.config import Settings
from services.shared.errors import StorageError

logger = logging.getLogger(__name__)


class StorageResult(BaseModel):
    """Result of storage operation.

    Attributes:
        success: Whether operation succeeded
        object_name: Full object path in storage
        bucket: Bucket name
        url: URL of the stored object
        error: Error message if operation failed
        etag: Object ETag (hash) if available
        size: Object size in bytes if available
    """

    success: bool
    object_name: str | None = None
    bucket: str | None = None
    url: str | None = None
    error: str | None = None
    etag: str | None = None
    size: int | None = None


class ObjectStore(Protocol):
    """Protocol for blob stores used by the processing pipeline."""

    def put_file(self, data: bytes, filename: str, prefix: str = "") -> str:
        """Store document bytes and return their URL."""
        ...

    def put_json(self, payload: Any, document_id: str | None = None) -> str:
        """Store a JSON document and return its URL."""
        ...


def document_object_name(filename: str, prefix: str = "") -> str:
    """Unique object name for an uploaded document, keeping its extension."""
    suffix = Path(filename).suffix.lower() if filename else ""
    name = f"{uuid.uuid4()}{suffix or '.pdf'}"
    return f"{prefix.strip('/')}/{name}" if prefix else name


def analysis_object_name(document_id: str | None = None) -> str:
    """Unique object name for a raw OCR analysis result."""
    head = f"{document_id}-analysis-" if document_id else "analysis-"
    return f"analysis/{head}{uuid.uuid4()}.json"


class StorageService:
    """S3-compatible object storage service.

    Stores original uploads and raw analysis results in MinIO or any other
    S3-compatible backend.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize storage service.

        Args:
            settings: Application settings with storage configuration
        """
        self.settings = settings
        self._client: Minio | None = None
        self._bucket_exists_cache: set[str] = set()

    def _get_client(self) -> Minio:
        """Get or create MinIO client (lazy initialization).

        Returns:
            Configured Minio client instance

        Raises:
            ValueError: If storage credentials are not configured
        """
        if self._client is None:
            if not self.settings.storage_access_key:
                raise ValueError(
                    "Storage access key not configured. "
                    "Set APP_STORAGE_ACCESS_KEY environment variable."
                )
            if not self.settings.storage_secret_key:
                raise ValueError(
                    "Storage secret key not configured. "
                    "Set APP_STORAGE_SECRET_KEY environment variable."
                )

            self._client = Minio(
                endpoint=self.settings.storage_endpoint,
                access_key=self.settings.storage_access_key,
                secret_key=self.settings.storage_secret_key,
                secure=self.settings.storage_secure,
            )
            logger.info(f"MinIO client initialized for endpoint: {self.settings.storage_endpoint}")

        return self._client

    def is_available(self) -> bool:
        """Check if storage service is available and configured.

        Returns:
            True if storage is enabled and credentials are set
        """
        if not self.settings.storage_enabled:
            return False

        return bool(self.settings.storage_access_key and self.settings.storage_secret_key)

    def health_check(self) -> bool:
        """Check if storage backend is reachable.

        Returns:
            True if MinIO server responds to list_buckets
        """
        if not self.is_available():
            return False

        try:
            client = self._get_client()
            client.list_buckets()
            return True
        except Exception as e:
            logger.warning(f"Storage health check failed: {e}")
            return False

    def _ensure_bucket(self, bucket: str) -> None:
        """Ensure bucket exists, create if missing.

        Args:
            bucket: Bucket name to check/create
        """
        if bucket in self._bucket_exists_cache:
            return

        client = self._get_client()
        if not client.bucket_exists(bucket):
            client.make_bucket(bucket)
            logger.info(f"Created bucket: {bucket}")

        self._bucket_exists_cache.add(bucket)

    @staticmethod
    def _detect_content_type(filename: str) -> str:
        """Detect content type from filename.

        Args:
            filename: File name with extension

        Returns:
            MIME type string
        """
        content_type, _ = mimetypes.guess_type(filename)
        return content_type or "application/octet-stream"

    def object_url(self, object_name: str, bucket: str | None = None) -> str:
        """URL under which a stored object is addressed."""
        bucket = bucket or self.settings.storage_bucket
        base = self.settings.storage_public_url
        if not base:
            scheme = "https" if self.settings.storage_secure else "http"
            base = f"{scheme}://{self.settings.storage_endpoint}"
        return f"{base.rstrip('/')}/{bucket}/{object_name}"

    @retry(
        retry=retry_if_exception_type(TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential_jitter(initial=1, max=10),
        reraise=True,
    )
    def _put_object(self, bucket: str, object_name: str, data: bytes, content_type: str) -> Any:
        client = self._get_client()
        self._ensure_bucket(bucket)
        return client.put_object(
            bucket_name=bucket,
            object_name=object_name,
            data=io.BytesIO(data),
            length=len(data),
            content_type=content_type,
        )

    def upload_bytes(
        self,
        data: bytes,
        object_name: str,
        content_type: str | None = None,
        bucket: str | None = None,
    ) -> StorageResult:
        """Upload bytes to storage.

        Args:
            data: Bytes to upload
            object_name: Target object name in storage
            content_type: MIME type (auto-detected if not provided)
            bucket: Target bucket (defaults to settings.storage_bucket)

        Returns:
            StorageResult with upload details
        """
        bucket = bucket or self.settings.storage_bucket

        try:
            if content_type is None:
                content_type = self._detect_content_type(object_name)

            result = self._put_object(bucket, object_name, data, content_type)

            logger.info(f"Uploaded {object_name} to {bucket} ({len(data)} bytes)")

            return StorageResult(
                success=True,
                object_name=object_name,
                bucket=bucket,
                url=self.object_url(object_name, bucket),
                etag=result.etag,
                size=len(data),
            )

        except S3Error as e:
            logger.error(f"S3 error uploading {object_name}: {e}")
            return StorageResult(
                success=False,
                object_name=object_name,
                bucket=bucket,
                error=f"S3 error: {e.code} - {e.message}",
            )
        except Exception as e:
            logger.error(f"Error uploading {object_name}: {e}")
            return StorageResult(
                success=False,
                object_name=object_name,
                bucket=bucket,
                error=str(e),
            )

    def put_file(self, data: bytes, filename: str, prefix: str = "") -> str:
        """Store an uploaded document.

        Args:
            data: Document bytes
            filename: Original filename (used for extension and content type)
            prefix: Optional object name prefix

        Returns:
            URL of the stored object

        Raises:
            StorageError: If the upload fails
        """
        object_name = document_object_name(filename, prefix)
        result = self.upload_bytes(data=data, object_name=object_name)
        if not result.success or not result.url:
            raise StorageError(f"Failed to upload file to storage: {result.error}")
        return result.url

    def put_json(self, payload: Any, document_id: str | None = None) -> str:
        """Store a raw OCR analysis result as JSON.

        Args:
            payload: JSON-serializable analysis result
            document_id: Document the result belongs to

        Returns:
            URL of the stored JSON object

        Raises:
            StorageError: If serialization or upload fails
        """
        try:
            data = json.dumps(payload, indent=2, default=str).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise StorageError(f"Analysis result is not serializable: {e}") from e

        object_name = analysis_object_name(document_id)
        result = self.upload_bytes(
            data=data, object_name=object_name, content_type="application/json"
        )
        if not result.success or not result.url:
            raise StorageError(f"Failed to upload analysis result: {result.error}")
        return result.url


class InMemoryObjectStore:
    """Object store keeping blobs in process memory.

    Used when S3 storage is disabled (local development) and in tests.
    """

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}

    def put_file(self, data: bytes, filename: str, prefix: str = "") -> str:
        object_name = document_object_name(filename, prefix)
        self.objects[object_name] = data
        return f"memory://{object_name}"

    def put_json(self, payload: Any, document_id: str | None = None) -> str:
        object_name = analysis_object_name(document_id)
        self.objects[object_name] = json.dumps(payload, default=str).encode("utf-8")
        return f"memory://{object_name}"


def create_object_store(settings: Settings) -> ObjectStore:
    """Object store for the configured environment.

    Returns the MinIO-backed service when storage is enabled, otherwise an
    in-memory store.
    """
    service = StorageService(settings)
    if service.is_available():
        return service

    logger.warning("Object storage disabled or not configured, keeping uploads in memory")
    return InMemoryObjectStore()
