"""Factory for creating OCR document analyzers based on configuration.

Each document type is analyzed with its own provider model.
"""

import logging
from typing import Any, Protocol

from services.normalization.schema import DocumentType
from services.shared.config import Settings

logger = logging.getLogger(__name__)


class DocumentAnalyzer(Protocol):
    """Protocol for OCR providers returning structured field payloads."""

    async def analyze(self, source: bytes | str) -> dict[str, Any]:
        """Analyze a document (bytes or URL) into ``{"documents": [...]}``."""
        ...

    def is_available(self) -> bool:
        """Check if the provider is configured."""
        ...


def create_document_analyzer(settings: Settings, document_type: DocumentType) -> DocumentAnalyzer:
    """Factory function to create the analyzer for a document type.

    Args:
        settings: Application settings with Azure configuration
        document_type: Invoice or purchase order

    Returns:
        Configured document analyzer
    """
    from services.ocr.analyzer import AzureDocumentAnalyzer

    if DocumentType(document_type) is DocumentType.INVOICE:
        model_id = settings.azure_invoice_model
    else:
        model_id = settings.azure_purchase_order_model

    analyzer = AzureDocumentAnalyzer(settings, model_id=model_id)
    if not analyzer.is_available():
        logger.warning(
            "Azure Document Intelligence is not configured. "
            "Set APP_AZURE_ENDPOINT and APP_AZURE_KEY environment variables."
        )
    logger.info(f"Created document analyzer: azure/{model_id}")
    return analyzer
