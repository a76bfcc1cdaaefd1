"""Unit tests for the Azure Document Intelligence client.

HTTP traffic is served by ``httpx.MockTransport``.
"""

import base64
import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from services.normalization.schema import DocumentType
from services.ocr.analyzer import AzureDocumentAnalyzer
from services.ocr.factory import create_document_analyzer
from services.shared.config import Settings
from services.shared.errors import DocumentAnalysisError, ValidationError

ENDPOINT = "https://docs.example.cognitiveservices.azure.com"
OPERATION_URL = f"{ENDPOINT}/documentintelligence/documentModels/prebuilt-invoice/analyzeResults/op-1"


@pytest.fixture
def azure_settings() -> Settings:
    """Create settings with Azure configured and fast polling."""
    return Settings(azure_endpoint=ENDPOINT, azure_key="secret-key", azure_poll_interval=0.001)


def make_analyzer(
    settings: Settings,
    handler: Callable[[httpx.Request], httpx.Response],
    max_polls: int = 5,
) -> AzureDocumentAnalyzer:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AzureDocumentAnalyzer(settings, model_id="prebuilt-invoice", client=client, max_polls=max_polls)


def accepted() -> httpx.Response:
    return httpx.Response(202, headers={"Operation-Location": OPERATION_URL})


class TestAnalyzerAvailability:
    """Test configuration checks."""

    def test_available_when_configured(self, azure_settings: Settings) -> None:
        """Should be available with endpoint and key."""
        analyzer = AzureDocumentAnalyzer(azure_settings, model_id="prebuilt-invoice")
        assert analyzer.is_available() is True
        assert analyzer.provider_name == "azure"

    def test_not_available_without_key(self) -> None:
        """Should be unavailable without credentials."""
        analyzer = AzureDocumentAnalyzer(Settings(azure_endpoint=ENDPOINT, azure_key=""), model_id="m")
        assert analyzer.is_available() is False


class TestAnalyze:
    """Test the analyze and poll flow."""

    @pytest.mark.asyncio
    async def test_analyze_bytes(self, azure_settings: Settings) -> None:
        """Should submit base64 content and return the analyze result."""
        requests: list[httpx.Request] = []
        polls = iter(
            [
                {"status": "running"},
                {"status": "succeeded", "analyzeResult": {"documents": [{"fields": {}}]}},
            ]
        )

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if request.method == "POST":
                return accepted()
            return httpx.Response(200, json=next(polls))

        analyzer = make_analyzer(azure_settings, handler)
        result = await analyzer.analyze(b"%PDF-1.4")

        assert result == {"documents": [{"fields": {}}]}
        submit = requests[0]
        assert submit.url.path == "/documentintelligence/documentModels/prebuilt-invoice:analyze"
        assert submit.url.params["api-version"] == "2024-11-30"
        assert submit.headers["Ocp-Apim-Subscription-Key"] == "secret-key"
        assert json.loads(submit.content) == {"base64Source": base64.b64encode(b"%PDF-1.4").decode()}
        assert len(requests) == 3

    @pytest.mark.asyncio
    async def test_analyze_url(self, azure_settings: Settings) -> None:
        """Should submit remote documents by URL."""
        bodies: list[dict[str, Any]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                bodies.append(json.loads(request.content))
                return accepted()
            return httpx.Response(200, json={"status": "succeeded", "analyzeResult": {"documents": []}})

        analyzer = make_analyzer(azure_settings, handler)
        await analyzer.analyze("https://files.example.com/invoice.pdf")

        assert bodies == [{"urlSource": "https://files.example.com/invoice.pdf"}]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status_code", "message"),
        [
            (503, "Service is temporarily unavailable. Please try again later."),
            (409, "Conflict error occurred. Please check the document and try again."),
            (400, "Failed to process the document"),
        ],
    )
    async def test_rejected_submission(self, azure_settings: Settings, status_code: int, message: str) -> None:
        """Should map provider status codes to stable messages."""
        analyzer = make_analyzer(azure_settings, lambda request: httpx.Response(status_code))

        with pytest.raises(DocumentAnalysisError) as exc_info:
            await analyzer.analyze(b"data")

        assert str(exc_info.value) == message
        assert exc_info.value.status_code == status_code

    @pytest.mark.asyncio
    async def test_failed_operation(self, azure_settings: Settings) -> None:
        """Should raise when the provider reports a failed analysis."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                return accepted()
            return httpx.Response(200, json={"status": "failed", "error": {"message": "Corrupt file"}})

        analyzer = make_analyzer(azure_settings, handler)

        with pytest.raises(DocumentAnalysisError, match="Failed to process the document"):
            await analyzer.analyze(b"data")

    @pytest.mark.asyncio
    async def test_poll_limit(self, azure_settings: Settings) -> None:
        """Should give up after the configured number of polls."""
        polls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal polls
            if request.method == "POST":
                return accepted()
            polls += 1
            return httpx.Response(200, json={"status": "running"})

        analyzer = make_analyzer(azure_settings, handler, max_polls=3)

        with pytest.raises(DocumentAnalysisError):
            await analyzer.analyze(b"data")
        assert polls == 3

    @pytest.mark.asyncio
    async def test_missing_operation_location(self, azure_settings: Settings) -> None:
        """Should fail when the provider returns no operation to poll."""
        analyzer = make_analyzer(azure_settings, lambda request: httpx.Response(202))

        with pytest.raises(DocumentAnalysisError):
            await analyzer.analyze(b"data")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("source", [b"", "", None, 42])
    async def test_invalid_source(self, azure_settings: Settings, source: Any) -> None:
        """Should reject empty or unsupported sources before any request."""
        analyzer = make_analyzer(azure_settings, lambda request: pytest.fail("no request expected"))

        with pytest.raises(ValidationError):
            await analyzer.analyze(source)


class TestAnalyzerFactory:
    """Test analyzer factory."""

    def test_model_per_document_type(self) -> None:
        """Should pick the configured model for each document type."""
        settings = Settings(azure_invoice_model="prebuilt-invoice", azure_purchase_order_model="custom-po")

        invoice = create_document_analyzer(settings, DocumentType.INVOICE)
        purchase_order = create_document_analyzer(settings, DocumentType.PURCHASE_ORDER)

        assert isinstance(invoice, AzureDocumentAnalyzer)
        assert invoice.model_id == "prebuilt-invoice"
        assert purchase_order.model_id == "custom-po"
