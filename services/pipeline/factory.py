"""Factory for wiring document pipelines from configuration."""

import logging

from services.normalization.mapper import create_mapper
from services.normalization.schema import DocumentType
from services.ocr.factory import DocumentAnalyzer, create_document_analyzer
from services.pipeline.intake import FileIntake
from services.pipeline.processor import Dispatcher, DocumentPipeline
from services.repositories.base import DocumentRepository, ItemRepository, PartyRepository
from services.repositories.factory import Repositories, create_repositories
from services.repositories.memory import (
    InMemoryDocumentRepository,
    InMemoryItemRepository,
    InMemoryPartyRepository,
)
from services.shared.config import Settings
from services.storage.service import ObjectStore, create_object_store

logger = logging.getLogger(__name__)


def create_pipeline(
    document_type: DocumentType,
    settings: Settings,
    *,
    store: ObjectStore | None = None,
    analyzer: DocumentAnalyzer | None = None,
    documents: DocumentRepository | None = None,
    customers: PartyRepository | None = None,
    vendors: PartyRepository | None = None,
    items: ItemRepository | None = None,
    dispatcher: Dispatcher | None = None,
) -> DocumentPipeline:
    """Build the pipeline for one document type.

    Collaborators that are not supplied are created from settings, with
    in-memory repositories.

    Args:
        document_type: Invoice or purchase order
        settings: Application settings
        store: Object store shared by intake and OCR payload uploads
        analyzer: OCR provider client
        documents: Repository for this document type
        customers: Customer repository
        vendors: Vendor repository
        items: Item catalog repository
        dispatcher: Background scheduler

    Returns:
        Configured pipeline
    """
    document_type = DocumentType(document_type)
    store = store or create_object_store(settings)

    pipeline = DocumentPipeline(
        document_type=document_type,
        mapper=create_mapper(document_type, default_payment_days=settings.default_payment_days),
        analyzer=analyzer or create_document_analyzer(settings, document_type),
        intake=FileIntake(store, max_size_bytes=settings.max_upload_size_bytes),
        store=store,
        documents=documents or InMemoryDocumentRepository(),
        customers=customers or InMemoryPartyRepository(),
        vendors=vendors or InMemoryPartyRepository(),
        items=items or InMemoryItemRepository(),
        dispatcher=dispatcher,
    )
    logger.info(f"Created {document_type.value} pipeline")
    return pipeline


def create_pipelines(
    settings: Settings,
    store: ObjectStore | None = None,
    dispatcher: Dispatcher | None = None,
    repositories: Repositories | None = None,
) -> dict[DocumentType, DocumentPipeline]:
    """Build invoice and purchase order pipelines sharing parties, items and storage.

    Args:
        settings: Application settings
        store: Object store (created from settings if omitted)
        dispatcher: Background scheduler shared by both pipelines
        repositories: Repository set (created from settings if omitted)

    Returns:
        Pipelines keyed by document type

    Raises:
        ValueError: If the configured repositories cannot serve queued runs
    """
    store = store or create_object_store(settings)
    repositories = repositories or create_repositories(settings)
    return {
        document_type: create_pipeline(
            document_type,
            settings,
            store=store,
            documents=repositories.documents[document_type],
            customers=repositories.customers,
            vendors=repositories.vendors,
            items=repositories.items,
            dispatcher=dispatcher,
        )
        for document_type in DocumentType
    }
