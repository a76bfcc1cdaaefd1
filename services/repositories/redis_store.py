"""Redis repositories shared by the API and the arq worker.

Both processes already hold an ``arq.ArqRedis`` pool (a ``redis.asyncio``
client), so records live next to the job queue. Each record is one JSON
string. Dates and datetimes are stored in ISO format and read back as
strings.

Updates are read-modify-write on a single key. The status machine allows
one writer per document at a time (the run that owns it), so no
transaction is needed.
"""

import json
import logging
import uuid
from datetime import UTC, date, datetime
from typing import Any

from services.normalization.schema import DocumentStatus, DocumentType
from services.repositories.base import Record

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "ingestion"


def _now() -> datetime:
    return datetime.now(UTC)


def _encode(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def dump_record(record: Record) -> str:
    """Serialize a record for storage."""
    return json.dumps(record, default=_encode)


def load_record(raw: bytes | str | None) -> Record | None:
    """Deserialize a stored record (None when the key is absent)."""
    if raw is None:
        return None
    return json.loads(raw)


class RedisDocumentRepository:
    """Invoices or purchase orders, one key per document, soft deleted."""

    def __init__(self, redis: Any, document_type: DocumentType, prefix: str = DEFAULT_KEY_PREFIX) -> None:
        """Initialize repository.

        Args:
            redis: ``redis.asyncio`` client (the arq pool)
            document_type: Document type stored in this repository
            prefix: Key namespace
        """
        self.redis = redis
        self.namespace = f"{prefix}:documents:{DocumentType(document_type).value}"

    def _key(self, document_id: str) -> str:
        return f"{self.namespace}:{document_id}"

    async def _load(self, document_id: str) -> Record | None:
        return load_record(await self.redis.get(self._key(document_id)))

    async def _save(self, record: Record) -> None:
        await self.redis.set(self._key(record["id"]), dump_record(record))

    async def create_initial(self, record: Record) -> Record:
        document_id = record.get("id") or str(uuid.uuid4())
        stored = {**record, "id": document_id, "created_at": _now(), "deleted_at": None}
        await self._save(stored)
        return dict(stored)

    async def update(self, document_id: str, fields: Record) -> None:
        record = await self._load(document_id)
        if record is None:
            logger.warning(f"Update ignored, document {document_id} does not exist")
            return
        record.update({k: v for k, v in fields.items() if k != "id"})
        record["updated_at"] = _now()
        await self._save(record)

    async def update_status(self, document_id: str, status: DocumentStatus) -> None:
        await self.update(document_id, {"status": DocumentStatus(status).value})

    async def find_by_id(self, document_id: str) -> Record | None:
        record = await self._load(document_id)
        if record is None or record.get("deleted_at") is not None:
            return None
        return record

    async def delete(self, document_id: str) -> None:
        record = await self._load(document_id)
        if record is not None:
            record["deleted_at"] = _now()
            await self._save(record)


class RedisPartyRepository:
    """Customer or vendor records plus an ID index for attribute lookups."""

    def __init__(self, redis: Any, kind: str, prefix: str = DEFAULT_KEY_PREFIX) -> None:
        """Initialize repository.

        Args:
            redis: ``redis.asyncio`` client (the arq pool)
            kind: ``customers`` or ``vendors``
            prefix: Key namespace
        """
        self.redis = redis
        self.namespace = f"{prefix}:parties:{kind}"
        self.index_key = f"{self.namespace}:ids"

    def _key(self, party_id: str) -> str:
        return f"{self.namespace}:{party_id}"

    async def find_by_attributes(self, attributes: Record) -> Record | None:
        for raw_id in await self.redis.lrange(self.index_key, 0, -1):
            party_id = raw_id.decode() if isinstance(raw_id, bytes) else raw_id
            record = await self.find_by_id(party_id)
            if record is not None and all(record.get(key) == value for key, value in attributes.items()):
                return record
        return None

    async def create(self, data: Record) -> Record:
        party_id = str(uuid.uuid4())
        record = {**data, "id": party_id}
        await self.redis.set(self._key(party_id), dump_record(record))
        await self.redis.rpush(self.index_key, party_id)
        return record

    async def find_by_id(self, party_id: str) -> Record | None:
        return load_record(await self.redis.get(self._key(party_id)))


class RedisItemRepository:
    """Item catalog keyed by description plus per-document line lists."""

    def __init__(self, redis: Any, prefix: str = DEFAULT_KEY_PREFIX) -> None:
        """Initialize repository.

        Args:
            redis: ``redis.asyncio`` client (the arq pool)
            prefix: Key namespace
        """
        self.redis = redis
        self.namespace = f"{prefix}:items"

    def _catalog_key(self, description: str) -> str:
        return f"{self.namespace}:catalog:{description}"

    def _item_key(self, item_id: str) -> str:
        return f"{self.namespace}:id:{item_id}"

    def _lines_key(self, document_type: DocumentType, document_id: str) -> str:
        return f"{self.namespace}:lines:{DocumentType(document_type).value}:{document_id}"

    async def find_or_create_item(self, description: str) -> Record:
        existing = load_record(await self.redis.get(self._catalog_key(description)))
        if existing is not None:
            return existing

        item = {"id": str(uuid.uuid4()), "description": description}
        # NX keeps the catalog entry unique when two runs add the same item
        if not await self.redis.set(self._catalog_key(description), dump_record(item), nx=True):
            return load_record(await self.redis.get(self._catalog_key(description))) or item
        await self.redis.set(self._item_key(item["id"]), dump_record(item))
        return item

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
        await self.redis.rpush(self._lines_key(document_type, document_id), dump_record(line))
        return line

    async def find_items_by_document_id(
        self, document_id: str, document_type: DocumentType
    ) -> list[Record]:
        lines = []
        for raw in await self.redis.lrange(self._lines_key(document_type, document_id), 0, -1):
            line = load_record(raw) or {}
            item = load_record(await self.redis.get(self._item_key(line["item_id"]))) or {}
            lines.append({**line, "description": item.get("description")})
        return lines
