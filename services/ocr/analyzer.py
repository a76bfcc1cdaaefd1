"""OCR client for Azure AI Document Intelligence.

Submits a document (raw bytes or a public URL) to the REST analyze endpoint
and polls the long-running operation until the structured result is ready.

Based on the Document Intelligence REST API:
https://learn.microsoft.com/azure/ai-services/document-intelligence/
"""

import asyncio
import base64
import logging
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from services.shared.config import Settings
from services.shared.errors import DocumentAnalysisError, ValidationError

logger = logging.getLogger(__name__)

DocumentSource = bytes | str


class AzureDocumentAnalyzer:
    """Document Intelligence client for one analysis model."""

    def __init__(
        self,
        settings: Settings,
        model_id: str,
        client: httpx.AsyncClient | None = None,
        max_polls: int = 120,
    ) -> None:
        """Initialize the analyzer.

        Args:
            settings: Application settings with Azure configuration
            model_id: Document model to analyze with (e.g. prebuilt-invoice)
            client: Optional preconfigured HTTP client
            max_polls: Maximum number of status polls per analysis
        """
        self.settings = settings
        self.model_id = model_id
        self.max_polls = max_polls
        self._client = client or httpx.AsyncClient(timeout=settings.azure_timeout)

    @property
    def provider_name(self) -> str:
        return "azure"

    def is_available(self) -> bool:
        """Check that endpoint and key are configured."""
        return bool(self.settings.azure_endpoint and self.settings.azure_key)

    @property
    def _analyze_url(self) -> str:
        endpoint = self.settings.azure_endpoint.rstrip("/")
        return f"{endpoint}/documentintelligence/documentModels/{self.model_id}:analyze"

    @property
    def _headers(self) -> dict[str, str]:
        return {"Ocp-Apim-Subscription-Key": self.settings.azure_key}

    async def analyze(self, source: DocumentSource) -> dict[str, Any]:
        """Analyze a document and return the provider's structured result.

        Args:
            source: Document bytes or a URL the provider can fetch

        Returns:
            The ``analyzeResult`` object (``{"documents": [{"fields": ...}], ...}``)

        Raises:
            ValidationError: If the source is empty or of an unsupported type
            DocumentAnalysisError: If the provider rejects or fails the analysis
        """
        if not source:
            raise ValidationError("Document source is required")
        if not isinstance(source, (bytes, str)):
            raise ValidationError("Invalid document source type")

        description = source if isinstance(source, str) else f"{len(source)} bytes"
        logger.info(f"Starting {self.model_id} analysis for {description}")

        try:
            operation_url = await self._begin_analysis(source)
            result = await self._poll_result(operation_url)
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            logger.error(f"Document analysis rejected with status {status_code}: {e}")
            raise DocumentAnalysisError.from_status(status_code) from e
        except httpx.HTTPError as e:
            logger.error(f"Document analysis request failed: {e}")
            raise DocumentAnalysisError.from_status(None) from e

        logger.info(f"{self.model_id} analysis completed")
        return result

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        wait=wait_exponential_jitter(initial=1, max=10),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    async def _begin_analysis(self, source: DocumentSource) -> str:
        """Submit the document and return the operation URL to poll."""
        params = {"api-version": self.settings.azure_api_version}
        if isinstance(source, str):
            response = await self._client.post(
                self._analyze_url,
                params=params,
                headers=self._headers,
                json={"urlSource": source},
            )
        else:
            response = await self._client.post(
                self._analyze_url,
                params=params,
                headers=self._headers,
                json={"base64Source": base64.b64encode(source).decode("ascii")},
            )
        response.raise_for_status()

        operation_url = response.headers.get("Operation-Location")
        if not operation_url:
            raise DocumentAnalysisError("Failed to process the document", response.status_code)
        return operation_url

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        wait=wait_exponential_jitter(initial=1, max=10),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    async def _get_operation(self, operation_url: str) -> dict[str, Any]:
        response = await self._client.get(operation_url, headers=self._headers)
        response.raise_for_status()
        return response.json()

    async def _poll_result(self, operation_url: str) -> dict[str, Any]:
        for _ in range(self.max_polls):
            operation = await self._get_operation(operation_url)
            status = operation.get("status")

            if status == "succeeded":
                return operation.get("analyzeResult") or {}
            if status == "failed":
                error = operation.get("error") or {}
                logger.error(f"Document analysis failed: {error.get('message', error)}")
                raise DocumentAnalysisError("Failed to process the document")

            await asyncio.sleep(self.settings.azure_poll_interval)

        logger.error(f"Document analysis did not finish after {self.max_polls} polls")
        raise DocumentAnalysisError("Failed to process the document")

    async def aclose(self) -> None:
        await self._client.aclose()
