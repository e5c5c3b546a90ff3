# application/services/batch_data_source.py
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from application.ports.document_store import DocumentCursorPort, DocumentStorePort
from application.ports.logger import LoggerPort, NullLogger
from domain.data_source import DataSourceQuery, Page
from domain.exceptions import CursorExpiredError, DataSourceError, ValidationError


@dataclass
class CursorHandle:
    handle_id: str
    query: DataSourceQuery
    cursor: Optional[DocumentCursorPort]
    pages_delivered: int = 0
    records_delivered: int = 0
    exhausted: bool = False
    closed: bool = False
    # 1件先読みして has_more を正確にする
    lookahead: List[Dict[str, Any]] = field(default_factory=list)


class BatchDataSource:
    """
    Forward-only paging over a document store cursor.

    - records arrive in store order, no page is delivered twice
    - ``close`` is idempotent and releases the server cursor
    - a cursor dropped by the store raises CursorExpiredError; callers must
      treat it as terminal (resuming from an unknown offset could skip or
      duplicate records)
    """

    def __init__(self, store: DocumentStorePort, logger: Optional[LoggerPort] = None):
        self._store = store
        self._logger = logger or NullLogger()

    def probe(self, query: DataSourceQuery) -> Optional[Dict[str, Any]]:
        return self._store.find_one(query)

    def open(self, query: DataSourceQuery) -> CursorHandle:
        cursor = self._store.open_cursor(query)
        handle = CursorHandle(handle_id=uuid.uuid4().hex, query=query, cursor=cursor)
        self._logger.debug(
            "datasource.open",
            handle_id=handle.handle_id,
            source=query.source,
            collection=query.collection,
        )
        return handle

    def next_page(self, handle: CursorHandle, size: int) -> Page:
        if size < 1:
            raise ValidationError("page size must be >= 1")
        if handle.closed or handle.cursor is None:
            raise CursorExpiredError(f"cursor handle is closed: {handle.handle_id}")

        if handle.exhausted and not handle.lookahead:
            return Page(number=handle.pages_delivered, records=[], has_more=False)

        records = list(handle.lookahead)
        handle.lookahead = []
        wanted = size - len(records) + 1  # +1 = 次ページ有無の確認用

        if not handle.exhausted:
            try:
                fetched = handle.cursor.fetch(wanted)
            except CursorExpiredError:
                self._logger.error("datasource.cursor_expired", handle_id=handle.handle_id)
                raise
            if len(fetched) < wanted:
                handle.exhausted = True
            records.extend(fetched)

        if len(records) > size:
            handle.lookahead = records[size:]
            records = records[:size]

        handle.pages_delivered += 1
        handle.records_delivered += len(records)
        page = Page(
            number=handle.pages_delivered,
            records=records,
            has_more=bool(handle.lookahead),
        )
        self._logger.debug(
            "datasource.page",
            handle_id=handle.handle_id,
            page=page.number,
            size=len(records),
            has_more=page.has_more,
        )
        return page

    def close(self, handle: Optional[CursorHandle]) -> None:
        if handle is None or handle.closed:
            return
        handle.closed = True
        handle.lookahead = []
        cursor, handle.cursor = handle.cursor, None
        if cursor is None:
            return
        try:
            cursor.close()
        except DataSourceError as e:
            # 既にサーバ側で破棄済みの場合など。close は常に成功扱い
            self._logger.warning("datasource.close_failed", handle_id=handle.handle_id, error=str(e))
        self._logger.debug(
            "datasource.close",
            handle_id=handle.handle_id,
            pages=handle.pages_delivered,
            records=handle.records_delivered,
        )
