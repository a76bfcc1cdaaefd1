"""In-memory repositories for local development and tests.

Mutations never await, so each call is atomic on a single event loop.
"""

import logging
import uuid
from datetime import UTC, datetime
from typing import Any

from services.normalization.schema import DocumentStatus, DocumentType
from services.repositories.base import Record

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(UTC)


class InMemoryDocumentRepository:
    """Document table with soft deletion."""

    def __init__(self) -> None:
        self.records: dict[str, Record] = {}

    async def create_initial(self, record: Record) -> Record:
        document_id = record.get("id") or str(uuid.uuid4())
        stored = {**record, "id": document_id, "created_at": _now(), "deleted_at": None}
        self.records[document_id] = stored
        return dict(stored)

    async def update(self, document_id: str, fields: Record) -> None:
        record = self.records.get(document_id)
        if record is None:
            logger.warning(f"Update ignored, document {document_id} does not exist")
            return
        record.update({k: v for k, v in fields.items() if k != "id"})
        record["updated_at"] = _now()

    async def update_status(self, document_id: str, status: DocumentStatus) -> None:
        await self.update(document_id, {"status": DocumentStatus(status).value})

    async def find_by_id(self, document_id: str) -> Record | None:
        record = self.records.get(document_id)
        if record is None or record.get("deleted_at") is not None:
            return None
        return dict(record)

    async def delete(self, document_id: str) -> None:
        record = self.records.get(document_id)
        if record is not None:
            record["deleted_at"] = _now()


class InMemoryPartyRepository:
    """Customer or vendor table."""

    def __init__(self) -> None:
        self.records: dict[str, Record] = {}

    async def find_by_attributes(self, attributes: Record) -> Record | None:
        for record in self.records.values():
            if all(record.get(key) == value for key, value in attributes.items()):
                return dict(record)
        return None

    async def create(self, data: Record) -> Record:
        party_id = str(uuid.uuid4())
        self.records[party_id] = {**data, "id": party_id}
        return dict(self.records[party_id])

    async def find_by_id(self, party_id: str) -> Record | None:
        record = self.records.get(party_id)
        return dict(record) if record is not None else None


class InMemoryItemRepository:
    """Item catalog keyed by description plus document line associations."""

    def __init__(self) -> None:
        self.items: dict[str, Record] = {}
        self.document_items: list[Record] = []

    async def find_or_create_item(self, description: str) -> Record:
        for item in self.items.values():
            if item["description"] == description:
                return dict(item)

        item_id = str(uuid.uuid4())
        self.items[item_id] = {"id": item_id, "description": description}
        return dict(self.items[item_id])

    async def create_document_item(
        self,
        document_type: DocumentType,
        document_id: str,
        item_id: str,
        line_fields: Record,
    ) -> Record:
        line: dict[str, Any] = {
            **line_fields,
            "id": str(uuid.uuid4()),
            "document_type": DocumentType(document_type).value,
            "document_id": document_id,
            "item_id": item_id,
        }
        self.document_items.append(line)
        return dict(line)

    async def find_items_by_document_id(
        self, document_id: str, document_type: DocumentType
    ) -> list[Record]:
        doc_type = DocumentType(document_type).value
        lines = []
        for line in self.document_items:
            if line["document_id"] != document_id or line["document_type"] != doc_type:
                continue
            item = self.items.get(line["item_id"], {})
            lines.append({**line, "description": item.get("description")})
        return lines
