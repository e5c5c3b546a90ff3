# infrastructure/datasource/mongo_document_store.py
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import MongoClient
from pymongo.errors import (
    ConfigurationError,
    ConnectionFailure,
    CursorNotFound,
    OperationFailure,
    ServerSelectionTimeoutError,
)

from application.ports.document_store import DocumentCursorPort, DocumentStorePort
from application.ports.logger import LoggerPort, NullLogger
from domain.data_source import DataSourceQuery
from domain.exceptions import CursorExpiredError, DataSourceConnectionError, DataSourceError


def to_plain(value: Any) -> Any:
    """ObjectId -> hex string, datetime -> ISO text, recursively."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    return value


class MongoCursor(DocumentCursorPort):
    def __init__(self, cursor, logger: LoggerPort):
        self._cursor = cursor
        self._logger = logger

    def fetch(self, count: int) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        try:
            for _ in range(count):
                doc = next(self._cursor, None)
                if doc is None:
                    break
                out.append(to_plain(doc))
        except CursorNotFound as e:
            raise CursorExpiredError(str(e)) from e
        except OperationFailure as e:
            # getMore の失敗はカーソル失効として扱う（途中再開はしない）
            raise CursorExpiredError(str(e)) from e
        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            raise CursorExpiredError(f"connection lost during fetch: {e}") from e
        return out

    def close(self) -> None:
        try:
            self._cursor.close()
        except (ConnectionFailure, OperationFailure) as e:
            raise DataSourceError(str(e)) from e


class MongoDocumentStore(DocumentStorePort):
    """
    pymongo adapter. ``batch_size`` is the server round-trip size; paging
    above it is done by BatchDataSource.
    """

    def __init__(
        self,
        uri: str,
        server_selection_timeout_ms: int = 5000,
        batch_size: int = 100,
        logger: Optional[LoggerPort] = None,
        client: Optional[MongoClient] = None,
    ):
        try:
            self._client = client or MongoClient(uri, serverSelectionTimeoutMS=server_selection_timeout_ms)
        except ConfigurationError as e:
            # InvalidURI もここ
            raise DataSourceConnectionError(f"Invalid MongoDB configuration: {e}") from e
        self._batch_size = batch_size
        self._logger = logger or NullLogger()

    def find_one(self, query: DataSourceQuery) -> Optional[Dict[str, Any]]:
        try:
            doc = self._collection(query).find_one(query.filter or {})
        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            raise DataSourceConnectionError(str(e)) from e
        except OperationFailure as e:
            raise DataSourceError(str(e)) from e
        return to_plain(doc) if doc is not None else None

    def open_cursor(self, query: DataSourceQuery) -> MongoCursor:
        try:
            # サーバ選択をここで確定させる（失敗は open 時に出す）
            self._client.admin.command("ping")
            cursor = self._collection(query).find(query.filter or {}, batch_size=self._batch_size)
        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            raise DataSourceConnectionError(str(e)) from e
        except OperationFailure as e:
            raise DataSourceError(str(e)) from e
        self._logger.debug("mongo.cursor_open", database=query.source, collection=query.collection)
        return MongoCursor(cursor, self._logger)

    def close(self) -> None:
        self._client.close()

    def _collection(self, query: DataSourceQuery):
        return self._client[query.source][query.collection]
