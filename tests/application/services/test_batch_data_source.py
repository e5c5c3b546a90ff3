# tests/application/services/test_batch_data_source.py
import pytest

from application.services.batch_data_source import BatchDataSource
from domain.data_source import DataSourceQuery
from domain.exceptions import CursorExpiredError, DataSourceConnectionError, ValidationError
from infrastructure.datasource.in_memory_document_store import InMemoryDocumentStore

QUERY = DataSourceQuery(source="app", collection="users")


def _store(count: int, **kwargs) -> InMemoryDocumentStore:
    return InMemoryDocumentStore({("app", "users"): [{"n": i} for i in range(count)]}, **kwargs)


class TestPaging:
    def test_pages_in_store_order_with_exact_has_more(self):
        # Arrange
        source = BatchDataSource(_store(5))
        handle = source.open(QUERY)

        # Act
        pages = [source.next_page(handle, 2) for _ in range(3)]

        # Assert
        assert [[r["n"] for r in p.records] for p in pages] == [[0, 1], [2, 3], [4]]
        assert [p.has_more for p in pages] == [True, True, False]
        assert [p.number for p in pages] == [1, 2, 3]

    def test_exact_multiple_reports_no_more_on_last_page(self):
        source = BatchDataSource(_store(4))
        handle = source.open(QUERY)
        source.next_page(handle, 2)
        last = source.next_page(handle, 2)
        assert len(last) == 2
        assert last.has_more is False

    def test_after_exhaustion_returns_empty_page(self):
        source = BatchDataSource(_store(1))
        handle = source.open(QUERY)
        source.next_page(handle, 5)
        page = source.next_page(handle, 5)
        assert page.records == []
        assert page.has_more is False

    def test_no_record_is_delivered_twice(self):
        source = BatchDataSource(_store(7))
        handle = source.open(QUERY)
        seen = []
        while True:
            page = source.next_page(handle, 3)
            seen.extend(r["n"] for r in page.records)
            if not page.has_more:
                break
        assert seen == list(range(7))

    def test_page_size_may_change_between_calls(self):
        source = BatchDataSource(_store(6))
        handle = source.open(QUERY)
        assert len(source.next_page(handle, 1)) == 1
        assert [r["n"] for r in source.next_page(handle, 4).records] == [1, 2, 3, 4]

    def test_filter_is_applied(self):
        store = InMemoryDocumentStore({("app", "users"): [{"n": 1, "on": True}, {"n": 2, "on": False}]})
        source = BatchDataSource(store)
        handle = source.open(DataSourceQuery("app", "users", {"on": True}))
        assert [r["n"] for r in source.next_page(handle, 10).records] == [1]

    def test_invalid_page_size(self):
        source = BatchDataSource(_store(1))
        handle = source.open(QUERY)
        with pytest.raises(ValidationError):
            source.next_page(handle, 0)


class TestFailures:
    def test_unreachable_store_fails_on_open(self):
        source = BatchDataSource(_store(3, unreachable=True))
        with pytest.raises(DataSourceConnectionError):
            source.open(QUERY)

    def test_expired_cursor_is_terminal(self):
        store = _store(10, expire_after_fetches=1)
        source = BatchDataSource(store)
        handle = source.open(QUERY)
        source.next_page(handle, 2)
        with pytest.raises(CursorExpiredError):
            source.next_page(handle, 2)

    def test_next_page_on_closed_handle(self):
        source = BatchDataSource(_store(3))
        handle = source.open(QUERY)
        source.close(handle)
        with pytest.raises(CursorExpiredError):
            source.next_page(handle, 1)


class TestClose:
    def test_close_releases_cursor_and_is_idempotent(self):
        store = _store(3)
        source = BatchDataSource(store)
        handle = source.open(QUERY)
        assert store.open_cursor_count == 1

        source.close(handle)
        source.close(handle)

        assert handle.closed is True
        assert store.open_cursor_count == 0

    def test_close_after_error_is_safe(self):
        store = _store(5, expire_after_fetches=0)
        source = BatchDataSource(store)
        handle = source.open(QUERY)
        with pytest.raises(CursorExpiredError):
            source.next_page(handle, 2)
        source.close(handle)
        assert store.open_cursor_count == 0

    def test_close_none_is_noop(self):
        BatchDataSource(_store(0)).close(None)


def test_probe_returns_first_match_or_none() -> None:
    source = BatchDataSource(_store(3))
    assert source.probe(QUERY) == {"n": 0}
    assert source.probe(DataSourceQuery("app", "missing")) is None
