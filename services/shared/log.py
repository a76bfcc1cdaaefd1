"""Logging setup and per-document run loggers.

Modules log through ``logging.getLogger(__name__)``. Processing runs get a
``DocumentLogger`` adapter scoped to one document so every line of a run
carries the document type and id.
"""

import logging
from collections.abc import Callable, MutableMapping
from typing import Any

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger once with the platform format.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR)
    """
    root = logging.getLogger()
    if root.handlers:
        root.setLevel(getattr(logging, level.upper(), logging.INFO))
        return

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )


class DocumentLogger(logging.LoggerAdapter):
    """Logger adapter bound to a single document processing run."""

    def __init__(self, logger: logging.Logger, document_type: str, document_id: str) -> None:
        super().__init__(logger, {"document_type": document_type, "document_id": document_id})

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        extra = self.extra or {}
        kwargs.setdefault("extra", {}).update(extra)
        return f"[{extra['document_type']} {extra['document_id']}] {msg}", kwargs

    def upload_start(self, partner_id: str, filename: str) -> None:
        self.info(f"Upload initiated by partner {partner_id} for {filename}")

    def upload_success(self, file_url: str) -> None:
        self.info(f"File stored at {file_url}")

    def processing_start(self) -> None:
        self.info("Starting processing")

    def analysis_complete(self, json_url: str | None) -> None:
        self.info(f"Analysis completed, raw result stored at {json_url}")

    def mapping_complete(self, summary: dict[str, Any]) -> None:
        self.info(f"Data mapping completed: {summary}")

    def processing_complete(self) -> None:
        self.info("Processing completed")

    def stage_error(self, stage: str, error: BaseException) -> None:
        self.error(f"Failed during {stage}: {error}", exc_info=error)


LoggerFactory = Callable[[str, str], DocumentLogger]


def document_logger(document_type: str, document_id: str) -> DocumentLogger:
    """Default logger factory for processing runs.

    Args:
        document_type: Document type label (Invoice, PurchaseOrder)
        document_id: Document identifier

    Returns:
        DocumentLogger bound to the run
    """
    return DocumentLogger(logging.getLogger("services.pipeline.run"), document_type, document_id)
