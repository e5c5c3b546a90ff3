# application/ports/document_store.py
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from domain.data_source import DataSourceQuery


class DocumentCursorPort(ABC):
    @abstractmethod
    def fetch(self, count: int) -> List[Dict[str, Any]]:
        """
        Return up to ``count`` documents in store order.
        Fewer than ``count`` means the cursor is exhausted.
        Raises CursorExpiredError if the server dropped the cursor.
        """
        ...

    @abstractmethod
    def close(self) -> None:
        ...


class DocumentStorePort(ABC):
    @abstractmethod
    def find_one(self, query: DataSourceQuery) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    def open_cursor(self, query: DataSourceQuery) -> DocumentCursorPort:
        """Raises DataSourceConnectionError if the store is unreachable."""
        ...

    def close(self) -> None:
        """Release client resources. Open cursors are closed by their owners."""
        pass
