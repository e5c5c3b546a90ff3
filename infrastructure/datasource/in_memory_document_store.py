# infrastructure/datasource/in_memory_document_store.py
from __future__ import annotations

import copy
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional, Tuple

from application.ports.document_store import DocumentCursorPort, DocumentStorePort
from domain.data_source import DataSourceQuery
from domain.exceptions import CursorExpiredError, DataSourceConnectionError
from domain.values import MISSING, lookup_path


def matches(document: Dict[str, Any], filter_: Dict[str, Any]) -> bool:
    """Equality match on (dotted) field paths. An empty filter matches everything."""
    for path, expected in filter_.items():
        value = lookup_path(document, path)
        if value is MISSING or value != expected:
            return False
    return True


class InMemoryCursor(DocumentCursorPort):
    def __init__(self, store: "InMemoryDocumentStore", documents: List[Dict[str, Any]], expire_after_fetches: Optional[int]):
        self._store = store
        self._documents = documents
        self._position = 0
        self._fetches = 0
        self._expire_after = expire_after_fetches
        self.closed = False

    def fetch(self, count: int) -> List[Dict[str, Any]]:
        if self.closed:
            raise CursorExpiredError("cursor is closed")
        if self._expire_after is not None and self._fetches >= self._expire_after:
            raise CursorExpiredError("cursor not found on server")
        self._fetches += 1
        batch = self._documents[self._position : self._position + count]
        self._position += len(batch)
        return [copy.deepcopy(d) for d in batch]

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._store._cursor_closed(self)


class InMemoryDocumentStore(DocumentStorePort):
    """
    Document store held in process memory, keyed by (source, collection).

    Used by tests and by plan files that carry inline records. Faults can be
    injected: ``unreachable`` fails every call like a down server, and
    ``expire_after_fetches`` makes cursors die after that many fetches.
    """

    def __init__(
        self,
        collections: Optional[Dict[Tuple[str, str], Iterable[Dict[str, Any]]]] = None,
        unreachable: bool = False,
        expire_after_fetches: Optional[int] = None,
    ):
        self._collections: Dict[Tuple[str, str], List[Dict[str, Any]]] = {
            key: list(docs) for key, docs in (collections or {}).items()
        }
        self.unreachable = unreachable
        self.expire_after_fetches = expire_after_fetches
        self._lock = Lock()
        self.opened: List[InMemoryCursor] = []
        self.open_cursor_count = 0

    def insert_many(self, source: str, collection: str, documents: Iterable[Dict[str, Any]]) -> None:
        with self._lock:
            self._collections.setdefault((source, collection), []).extend(documents)

    def find_one(self, query: DataSourceQuery) -> Optional[Dict[str, Any]]:
        self._check_reachable(query)
        for doc in self._documents(query):
            if matches(doc, query.filter):
                return copy.deepcopy(doc)
        return None

    def open_cursor(self, query: DataSourceQuery) -> InMemoryCursor:
        self._check_reachable(query)
        docs = [d for d in self._documents(query) if matches(d, query.filter)]
        cursor = InMemoryCursor(self, docs, self.expire_after_fetches)
        with self._lock:
            self.opened.append(cursor)
            self.open_cursor_count += 1
        return cursor

    def _cursor_closed(self, cursor: InMemoryCursor) -> None:
        with self._lock:
            self.open_cursor_count -= 1

    def _documents(self, query: DataSourceQuery) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._collections.get((query.source, query.collection), []))

    def _check_reachable(self, query: DataSourceQuery) -> None:
        if self.unreachable:
            raise DataSourceConnectionError(f"data source unreachable: {query.source}")
