# infrastructure/datasource/store_factory.py
from __future__ import annotations

from typing import Optional

from application.ports.document_store import DocumentStorePort
from application.ports.logger import LoggerPort, NullLogger
from domain.plan import PlanSource
from infrastructure.config.settings import Settings
from infrastructure.datasource.in_memory_document_store import InMemoryDocumentStore
from infrastructure.datasource.mongo_document_store import MongoDocumentStore


class DocumentStoreFactory:
    """Inline records -> in-memory store; otherwise MongoDB (plan uri or configured default)."""

    def __init__(self, settings: Settings, logger: Optional[LoggerPort] = None):
        self._settings = settings
        self._logger = logger or NullLogger()

    def __call__(self, source: Optional[PlanSource]) -> Optional[DocumentStorePort]:
        if source is None:
            return None
        if source.inline:
            return InMemoryDocumentStore({(source.database, source.collection): source.records})
        return MongoDocumentStore(
            source.uri or self._settings.mongo_uri,
            batch_size=self._settings.max_batch_size,
            logger=self._logger,
        )
