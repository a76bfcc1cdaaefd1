"""Factory for repository sets based on configuration."""

import logging
from dataclasses import dataclass
from typing import Any

from services.normalization.schema import DocumentType
from services.repositories.base import DocumentRepository, ItemRepository, PartyRepository
from services.repositories.memory import (
    InMemoryDocumentRepository,
    InMemoryItemRepository,
    InMemoryPartyRepository,
)
from services.repositories.redis_store import (
    RedisDocumentRepository,
    RedisItemRepository,
    RedisPartyRepository,
)
from services.shared.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Repositories:
    """Every repository the invoice and purchase order pipelines need."""

    documents: dict[DocumentType, DocumentRepository]
    customers: PartyRepository
    vendors: PartyRepository
    items: ItemRepository


def create_repositories(settings: Settings, redis: Any = None, *, shared: bool = False) -> Repositories:
    """Create repositories for the configured backend.

    In-memory repositories live inside one process. They cannot be used
    when runs execute in the arq worker, because the worker would never
    see the records the API created.

    Args:
        settings: Application settings
        redis: ``redis.asyncio`` client, required for the redis backend
        shared: The caller runs in a different process from the API (the worker)

    Returns:
        Repository set

    Raises:
        ValueError: If the backend cannot serve the requested deployment
    """
    if settings.repository_backend == "redis":
        if redis is None:
            raise ValueError("The redis repository backend needs a Redis connection")
        prefix = settings.repository_key_prefix
        logger.info(f"Using Redis repositories with key prefix '{prefix}'")
        return Repositories(
            documents={
                document_type: RedisDocumentRepository(redis, document_type, prefix)
                for document_type in DocumentType
            },
            customers=RedisPartyRepository(redis, "customers", prefix),
            vendors=RedisPartyRepository(redis, "vendors", prefix),
            items=RedisItemRepository(redis, prefix),
        )

    if shared or settings.queue_enabled:
        raise ValueError(
            "Queued processing needs repositories shared by the API and the worker. "
            "Set APP_REPOSITORY_BACKEND=redis"
        )

    logger.info("Using in-memory repositories")
    return Repositories(
        documents={document_type: InMemoryDocumentRepository() for document_type in DocumentType},
        customers=InMemoryPartyRepository(),
        vendors=InMemoryPartyRepository(),
        items=InMemoryItemRepository(),
    )
