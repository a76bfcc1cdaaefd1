"""Processing pipeline for invoices and purchase orders.

Owns the document status state machine:

    Processing -> Analyzed | Failed

``submit`` accepts an upload synchronously and hands a ``ProcessingJob`` to a
dispatcher. ``process`` runs OCR, normalization and persistence for one job
and always finishes in exactly one terminal status.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Protocol

from services.normalization.mapper import DocumentMapper
from services.normalization.schema import DocumentStatus, DocumentType, LineItem, NormalizedDocument, PartyData
from services.ocr.factory import DocumentAnalyzer
from services.pipeline import metrics
from services.pipeline.formatter import format_document, format_placeholder
from services.pipeline.intake import FileIntake
from services.repositories.base import DocumentRepository, ItemRepository, PartyRepository, Record
from services.shared.errors import ForbiddenError, NotFoundError, ValidationError
from services.shared.log import DocumentLogger, LoggerFactory, document_logger
from services.storage.service import ObjectStore

logger = logging.getLogger(__name__)

UNNAMED_ITEM = "Unnamed item"

LABELS = {
    DocumentType.INVOICE: "Invoice",
    DocumentType.PURCHASE_ORDER: "Purchase order",
}


@dataclass(frozen=True)
class ProcessingJob:
    """Everything a background run needs, captured at submission."""

    document_id: str
    content: bytes
    partner_id: str
    filename: str

    @property
    def file_size(self) -> int:
        return len(self.content)


class Dispatcher(Protocol):
    """Schedules background runs for accepted documents."""

    async def dispatch(self, pipeline: "DocumentPipeline", job: ProcessingJob) -> None: ...


class TaskDispatcher:
    """Runs each job as a detached asyncio task in the current event loop.

    Tasks are referenced until they finish so they cannot be garbage
    collected mid-run.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    async def dispatch(self, pipeline: "DocumentPipeline", job: ProcessingJob) -> None:
        task = asyncio.create_task(pipeline.process(job))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every in-flight run to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks)


class DocumentPipeline:
    """Upload, analysis and retrieval of one document type.

    Both document types share the same flow and differ only in the mapper
    and repository they are wired with.
    """

    def __init__(
        self,
        document_type: DocumentType,
        mapper: DocumentMapper,
        analyzer: DocumentAnalyzer,
        intake: FileIntake,
        store: ObjectStore,
        documents: DocumentRepository,
        customers: PartyRepository,
        vendors: PartyRepository,
        items: ItemRepository,
        dispatcher: Dispatcher | None = None,
        logger_factory: LoggerFactory = document_logger,
    ) -> None:
        """Initialize pipeline.

        Args:
            document_type: Invoice or purchase order
            mapper: Normalizer for this document type
            analyzer: OCR provider client
            intake: Upload validation and storage
            store: Object store for raw OCR payloads
            documents: Repository for this document type
            customers: Customer repository
            vendors: Vendor repository
            items: Item catalog repository
            dispatcher: Background scheduler (asyncio tasks by default)
            logger_factory: Builds the per-run logger
        """
        self.document_type = DocumentType(document_type)
        self.mapper = mapper
        self.analyzer = analyzer
        self.intake = intake
        self.store = store
        self.documents = documents
        self.customers = customers
        self.vendors = vendors
        self.items = items
        self.dispatcher = dispatcher or TaskDispatcher()
        self.logger_factory = logger_factory
        self._active: set[str] = set()

    @property
    def label(self) -> str:
        return LABELS[self.document_type]

    def _run_logger(self, document_id: str) -> DocumentLogger:
        return self.logger_factory(self.document_type.value, document_id)

    async def submit(
        self,
        content: bytes | None,
        partner_id: str | None,
        filename: str | None,
        content_type: str | None = None,
    ) -> dict[str, Any]:
        """Accept an upload and schedule its background run.

        Args:
            content: Document bytes
            partner_id: Uploading partner
            filename: Original filename
            content_type: MIME type declared by the client, if known

        Returns:
            ``{"id", "status", "message"}`` with status ``Processing``

        Raises:
            ValidationError: If the upload is invalid or not a readable PDF
            StorageError: If the file cannot be stored (no record is created)
        """
        self.intake.validate(content, partner_id, filename, content_type)

        document_id = str(uuid.uuid4())
        run_log = self._run_logger(document_id)
        run_log.upload_start(partner_id, filename)
        metrics.document_upload_size_bytes.observe(len(content))

        file_url = await self.intake.store_file(content, filename, partner_id)
        run_log.upload_success(file_url)

        await self.documents.create_initial(
            {
                "id": document_id,
                "partner_id": partner_id,
                "status": DocumentStatus.PROCESSING.value,
                "file_url": file_url,
                "original_filename": filename,
                "file_size": len(content),
            }
        )

        job = ProcessingJob(document_id=document_id, content=content, partner_id=partner_id, filename=filename)
        try:
            await self.dispatcher.dispatch(self, job)
        except Exception as e:
            run_log.stage_error("dispatch", e)
            await self.documents.update_status(document_id, DocumentStatus.FAILED)
            raise

        metrics.documents_submitted_total.labels(document_type=self.document_type.value).inc()
        return {
            "id": document_id,
            "status": DocumentStatus.PROCESSING.value,
            "message": f"{self.label} upload initiated",
        }

    async def process(self, job: ProcessingJob) -> DocumentStatus | None:
        """Run OCR, normalization and persistence for one accepted document.

        Never raises. Any failure is logged and recorded as ``Failed``.

        Args:
            job: Job captured at submission

        Returns:
            Terminal status written, or None if the run was skipped
        """
        run_log = self._run_logger(job.document_id)
        if job.document_id in self._active:
            run_log.warning("Run already in progress, skipping")
            return None

        self._active.add(job.document_id)
        try:
            return await self._run(job, run_log)
        finally:
            self._active.discard(job.document_id)

    async def _run(self, job: ProcessingJob, run_log: DocumentLogger) -> DocumentStatus | None:
        stage = "lookup"
        try:
            record = await self.documents.find_by_id(job.document_id)
            if record is None:
                run_log.error("Document record not found for queued run")
                await self._mark_failed(job.document_id, run_log)
                return DocumentStatus.FAILED
            if record.get("status") != DocumentStatus.PROCESSING.value:
                run_log.warning("Document is not awaiting processing, skipping")
                return None

            run_log.processing_start()
            stage = "analysis"
            started = time.time()
            payload = await self.analyzer.analyze(job.content)
            metrics.ocr_processing_duration_seconds.labels(
                document_type=self.document_type.value
            ).observe(time.time() - started)

            stage = "analysis upload"
            json_url = await asyncio.to_thread(self.store.put_json, payload, job.document_id)
            run_log.analysis_complete(json_url)

            stage = "mapping"
            document = self.mapper.map(payload, job.partner_id)
            run_log.mapping_complete(document.summary())

            stage = "record update"
            await self._update_record(
                job.document_id,
                document,
                {
                    "original_filename": job.filename,
                    "file_size": job.file_size,
                    "analysis_json_url": json_url,
                },
            )

            stage = "party resolution"
            await self._link_parties(job.document_id, document)

            stage = "line items"
            await self._save_items(job.document_id, document.items)

            stage = "status update"
            await self.documents.update_status(job.document_id, DocumentStatus.ANALYZED)
        except Exception as e:
            run_log.stage_error(stage, e)
            await self._mark_failed(job.document_id, run_log)
            return DocumentStatus.FAILED

        run_log.processing_complete()
        self._record_outcome(DocumentStatus.ANALYZED)
        return DocumentStatus.ANALYZED

    async def _mark_failed(self, document_id: str, run_log: DocumentLogger) -> None:
        self._record_outcome(DocumentStatus.FAILED)
        try:
            await self.documents.update_status(document_id, DocumentStatus.FAILED)
        except Exception as e:
            run_log.stage_error("failure status update", e)

    def _record_outcome(self, status: DocumentStatus) -> None:
        metrics.document_processing_total.labels(
            document_type=self.document_type.value, status=status.value
        ).inc()

    async def _update_record(self, document_id: str, document: NormalizedDocument, extra: Record) -> None:
        fields = document.to_record()
        # Status is written last, once parties and items are stored
        fields.pop("status")
        await self.documents.update(document_id, {**fields, **extra})

    async def _resolve_party(self, party: PartyData, repository: PartyRepository) -> Record | None:
        if not party.is_present:
            return None
        existing = await repository.find_by_attributes(party.lookup_attributes())
        if existing is not None:
            return existing
        return await repository.create(party.model_dump())

    async def _link_parties(self, document_id: str, document: NormalizedDocument) -> None:
        customer = await self._resolve_party(document.customer, self.customers)
        if customer is not None:
            await self.documents.update(document_id, {"customer_id": customer["id"]})

        vendor = await self._resolve_party(document.vendor, self.vendors)
        if vendor is not None:
            await self.documents.update(document_id, {"vendor_id": vendor["id"]})

    async def _save_items(self, document_id: str, items: tuple[LineItem, ...] | list[LineItem]) -> None:
        for item in items:
            catalog_item = await self.items.find_or_create_item(item.description or UNNAMED_ITEM)
            await self.items.create_document_item(
                self.document_type,
                document_id,
                catalog_item["id"],
                {
                    "quantity": item.quantity or 0,
                    "unit": item.unit,
                    "unit_price": item.unit_price or 0,
                    "amount": item.amount or 0,
                    "product_code": item.product_code,
                },
            )

    async def _get_record(self, document_id: str) -> Record:
        record = await self.documents.find_by_id(document_id)
        if record is None:
            raise NotFoundError(f"{self.label} not found")
        return record

    async def get_status(self, document_id: str) -> dict[str, Any]:
        """Current lifecycle status of a document.

        Raises:
            NotFoundError: If the document does not exist
        """
        record = await self._get_record(document_id)
        return {"id": record["id"], "status": record.get("status")}

    async def get_by_id(self, document_id: str) -> dict[str, Any]:
        """Formatted document, or a placeholder view until it is analyzed.

        Raises:
            NotFoundError: If the document does not exist
        """
        record = await self._get_record(document_id)
        if record.get("status") != DocumentStatus.ANALYZED.value:
            return format_placeholder(record)

        items = await self.items.find_items_by_document_id(document_id, self.document_type)
        customer = await self.customers.find_by_id(record["customer_id"]) if record.get("customer_id") else None
        vendor = await self.vendors.find_by_id(record["vendor_id"]) if record.get("vendor_id") else None
        return format_document(self.document_type, record, items, customer, vendor)

    async def delete(self, document_id: str, partner_id: str | None = None) -> None:
        """Delete an analyzed document owned by the caller.

        Args:
            document_id: Document to delete
            partner_id: Caller's partner, checked against the owner when given

        Raises:
            NotFoundError: If the document does not exist
            ForbiddenError: If the caller does not own the document
            ValidationError: If the document is not yet analyzed
        """
        record = await self._get_record(document_id)
        if partner_id is not None and record.get("partner_id") != partner_id:
            raise ForbiddenError(f"Unauthorized: You do not own this {self.label.lower()}")
        if record.get("status") != DocumentStatus.ANALYZED.value:
            raise ValidationError(f"{self.label} cannot be deleted while its status is {record.get('status')}")

        await self.documents.delete(document_id)
        logger.info(f"Deleted {self.document_type.value} {document_id}")

    async def analyze_url(self, document_url: str | None, partner_id: str | None) -> dict[str, Any]:
        """Analyze a remote document synchronously and persist the result.

        Args:
            document_url: Publicly reachable document URL
            partner_id: Owning partner

        Returns:
            ``{"id", "status", "message", "document"}`` with the mapped record

        Raises:
            ValidationError: If the URL or partner is missing, or the payload is malformed
            DocumentAnalysisError: If the OCR provider rejects the document
        """
        if not document_url or not document_url.startswith(("http://", "https://")):
            raise ValidationError("A valid document URL is required")
        if not partner_id:
            raise ValidationError("Partner ID is required")

        payload = await self.analyzer.analyze(document_url)
        document = self.mapper.map(payload, partner_id)

        document_id = str(uuid.uuid4())
        run_log = self._run_logger(document_id)
        run_log.mapping_complete(document.summary())

        fields = document.to_record()
        fields.pop("status")
        await self.documents.create_initial(
            {
                **fields,
                "id": document_id,
                "status": DocumentStatus.PROCESSING.value,
                "file_url": document_url,
                "original_filename": document_url.rsplit("/", 1)[-1].split("?", 1)[0] or None,
                "file_size": None,
            }
        )
        try:
            await self._link_parties(document_id, document)
            await self._save_items(document_id, document.items)
            await self.documents.update_status(document_id, DocumentStatus.ANALYZED)
        except Exception as e:
            run_log.stage_error("persistence", e)
            await self._mark_failed(document_id, run_log)
            raise

        self._record_outcome(DocumentStatus.ANALYZED)
        run_log.processing_complete()
        return {
            "id": document_id,
            "status": DocumentStatus.ANALYZED.value,
            "message": f"{self.label} analyzed successfully",
            "document": document.model_dump(mode="json"),
        }
