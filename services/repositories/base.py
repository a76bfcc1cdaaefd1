"""Persistence interfaces consumed by the processing pipeline.

Records are plain dicts keyed by column name. Every record carries an
``id``. Implementations must give per-row update semantics; the pipeline
takes no locks of its own.
"""

from typing import Any, Protocol

from services.normalization.schema import DocumentStatus, DocumentType

Record = dict[str, Any]


class DocumentRepository(Protocol):
    """Invoices or purchase orders."""

    async def create_initial(self, record: Record) -> Record: ...

    async def update(self, document_id: str, fields: Record) -> None: ...

    async def update_status(self, document_id: str, status: DocumentStatus) -> None: ...

    async def find_by_id(self, document_id: str) -> Record | None: ...

    async def delete(self, document_id: str) -> None: ...


class PartyRepository(Protocol):
    """Customers or vendors."""

    async def find_by_attributes(self, attributes: Record) -> Record | None: ...

    async def create(self, data: Record) -> Record: ...

    async def find_by_id(self, party_id: str) -> Record | None: ...


class ItemRepository(Protocol):
    """Shared item catalog and per-document line associations."""

    async def find_or_create_item(self, description: str) -> Record: ...

    async def create_document_item(
        self,
        document_type: DocumentType,
        document_id: str,
        item_id: str,
        line_fields: Record,
    ) -> Record: ...

    async def find_items_by_document_id(
        self, document_id: str, document_type: DocumentType
    ) -> list[Record]: ...
