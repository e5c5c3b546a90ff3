# tests/application/executor/test_execution_engine.py
from __future__ import annotations

import threading

import pytest

from application.executor.execution_engine import ExecutionEngine
from application.executor.outcome_log import OutcomeLog, StopSignal
from application.services.batch_data_source import BatchDataSource
from domain.binding import Binding
from domain.data_source import DataSourceQuery
from domain.exceptions import BindingError, ValidationError
from domain.run import EngineState
from domain.run_config import ConcurrencyMode, TestRunConfig
from domain.template import RequestTemplate
from infrastructure.datasource.in_memory_document_store import InMemoryDocumentStore
from tests.fake_http_client import FakeHttpClient, refused

QUERY = DataSourceQuery(source="app", collection="users")

TEMPLATE = RequestTemplate(
    method="POST",
    url="https://api.example.com/users/${id}",
    headers={"Content-Type": "application/json"},
    body={"name": "${name}"},
    body_is_json=True,
)


def _store(count: int, **kwargs) -> InMemoryDocumentStore:
    docs = [{"id": i, "name": f"user{i}"} for i in range(1, count + 1)]
    return InMemoryDocumentStore({("app", "users"): docs}, **kwargs)


def _config(total: int, mode: str = "sequential", batch: int = 2, **kwargs) -> TestRunConfig:
    return TestRunConfig(total_requests=total, concurrency_mode=ConcurrencyMode(mode), batch_size=batch, **kwargs)


def _run(http, store, config, **kwargs):
    engine = ExecutionEngine(http)
    return engine.run(TEMPLATE, [], BatchDataSource(store), QUERY, config, **kwargs)


class TestExecutionCount:
    @pytest.mark.parametrize("mode", ["sequential", "concurrent"])
    def test_stops_at_total_requests(self, mode):
        # Arrange
        http = FakeHttpClient()
        store = _store(6)

        # Act
        result = _run(http, store, _config(4, mode))

        # Assert
        assert result.state == EngineState.COMPLETED
        assert len(result.outcomes) == 4
        assert result.exhausted_early is False
        assert len(http.requests) == 4

    @pytest.mark.parametrize("mode", ["sequential", "concurrent"])
    def test_exhausted_source_ends_early(self, mode):
        # Arrange
        http = FakeHttpClient()
        store = _store(6)

        # Act
        result = _run(http, store, _config(10, mode))

        # Assert
        assert result.state == EngineState.COMPLETED
        assert result.exhausted_early is True
        assert len(result.outcomes) == 6
        assert store.open_cursor_count == 0

    def test_records_bound_in_store_order(self):
        http = FakeHttpClient()
        _run(http, _store(3), _config(3))
        assert [r.url for r in http.requests] == [
            "https://api.example.com/users/1",
            "https://api.example.com/users/2",
            "https://api.example.com/users/3",
        ]
        assert [r.body for r in http.requests] == [{"name": "user1"}, {"name": "user2"}, {"name": "user3"}]

    def test_empty_source_executes_nothing(self):
        http = FakeHttpClient()
        result = _run(http, _store(0), _config(5))
        assert result.state == EngineState.COMPLETED
        assert result.exhausted_early is True
        assert result.outcomes == []
        assert result.report.total == 0

    def test_static_mode_replays_template(self):
        # Arrange
        http = FakeHttpClient()
        template = RequestTemplate(method="GET", url="https://api.example.com/health")

        # Act
        result = ExecutionEngine(http).run(template, [], None, None, _config(5))

        # Assert
        assert result.state == EngineState.COMPLETED
        assert len(result.outcomes) == 5
        assert {r.url for r in http.requests} == {"https://api.example.com/health"}

    def test_sequences_are_unique_and_dense(self):
        result = _run(FakeHttpClient(), _store(7), _config(7, "concurrent", batch=3))
        assert sorted(o.sequence for o in result.outcomes) == list(range(7))


class TestConcurrency:
    def test_in_flight_never_exceeds_batch_size(self):
        # Arrange
        http = FakeHttpClient(delay_sec=0.02)

        # Act
        result = _run(http, _store(9), _config(9, "concurrent", batch=3))

        # Assert
        assert len(result.outcomes) == 9
        assert 1 <= http.peak_in_flight <= 3

    def test_sequential_runs_one_at_a_time(self):
        http = FakeHttpClient(delay_sec=0.01)
        _run(http, _store(4), _config(4, "sequential", batch=4))
        assert http.peak_in_flight == 1


class TestFailures:
    def test_http_errors_are_outcomes(self):
        # Arrange
        http = FakeHttpClient(statuses=[200, 500, 404])

        # Act
        result = _run(http, _store(3), _config(3))

        # Assert
        assert result.state == EngineState.COMPLETED
        assert [o.status_code for o in result.outcomes] == [200, 500, 404]
        assert result.report.succeeded == 1
        assert result.report.failed == 2

    def test_transport_error_is_recorded_and_run_continues(self):
        # Arrange
        http = FakeHttpClient(statuses=[refused(), 200])

        # Act
        result = _run(http, _store(2), _config(2))

        # Assert
        assert result.state == EngineState.COMPLETED
        first, second = result.outcomes
        assert first.status_code is None
        assert first.error == "connection refused"
        assert second.status_code == 200
        assert result.report.status_code_histogram == {0: 1, 200: 1}

    def test_cursor_expiry_is_fatal_and_keeps_partial_outcomes(self):
        # Arrange
        store = _store(10, expire_after_fetches=1)

        # Act
        result = _run(FakeHttpClient(), store, _config(10))

        # Assert
        assert result.state == EngineState.FATAL
        assert len(result.outcomes) == 2
        assert result.error.startswith("CursorExpiredError")
        assert store.open_cursor_count == 0

    def test_unreachable_source_is_fatal(self):
        http = FakeHttpClient()
        result = _run(http, _store(5, unreachable=True), _config(5))
        assert result.state == EngineState.FATAL
        assert result.outcomes == []
        assert http.requests == []
        assert result.error.startswith("DataSourceConnectionError")

    def test_bad_binding_fails_before_any_request(self):
        http = FakeHttpClient()
        bindings = [Binding(template_component="header:X-Id", source="generated", value="nope")]
        with pytest.raises(BindingError):
            ExecutionEngine(http).run(TEMPLATE, bindings, BatchDataSource(_store(1)), QUERY, _config(1))
        assert http.requests == []

    def test_source_without_query_is_rejected(self):
        with pytest.raises(ValidationError):
            ExecutionEngine(FakeHttpClient()).run(TEMPLATE, [], BatchDataSource(_store(1)), None, _config(1))

    def test_listener_errors_do_not_stop_the_run(self):
        def listener(outcome):
            raise RuntimeError("boom")

        result = _run(FakeHttpClient(), _store(3), _config(3), listener=listener)
        assert result.state == EngineState.COMPLETED
        assert len(result.outcomes) == 3


class TestStop:
    @pytest.mark.parametrize("stop_after", [1, 2, 3])
    def test_stop_after_k_outcomes(self, stop_after):
        # Arrange
        store = _store(10)
        stop = StopSignal()
        log = OutcomeLog()

        def listener(outcome):
            if len(log) >= stop_after:
                stop.stop()

        # Act
        result = _run(FakeHttpClient(), store, _config(10), stop_signal=stop, listener=listener, outcome_log=log)

        # Assert
        assert result.state == EngineState.CANCELLED
        assert len(result.outcomes) == stop_after
        assert store.open_cursor_count == 0

    def test_stop_before_start(self):
        stop = StopSignal()
        stop.stop()
        http = FakeHttpClient()
        result = _run(http, _store(3), _config(3), stop_signal=stop)
        assert result.state == EngineState.CANCELLED
        assert http.requests == []

    def test_stop_interrupts_delay(self):
        # Arrange
        stop = StopSignal()
        store = _store(5)
        timer = threading.Timer(0.1, stop.stop)

        # Act
        timer.start()
        try:
            result = _run(FakeHttpClient(), store, _config(5, delay_ms=60_000), stop_signal=stop)
        finally:
            timer.cancel()

        # Assert
        assert result.state == EngineState.CANCELLED
        assert len(result.outcomes) == 1
        assert store.open_cursor_count == 0

    def test_concurrent_stop_lets_in_flight_requests_finish(self):
        # Arrange
        stop = StopSignal()
        store = _store(20)
        log = OutcomeLog()

        def listener(outcome):
            stop.stop()

        # Act
        result = _run(
            FakeHttpClient(delay_sec=0.01),
            store,
            _config(20, "concurrent", batch=4),
            stop_signal=stop,
            listener=listener,
            outcome_log=log,
        )

        # Assert
        assert result.state == EngineState.CANCELLED
        assert len(result.outcomes) == 4
        assert all(o.status_code == 200 for o in result.outcomes)
        assert store.open_cursor_count == 0


def test_report_matches_outcomes() -> None:
    # Arrange
    http = FakeHttpClient(statuses=[200, 201, 503], headers={"X-Request-Id": "req-1"})

    # Act
    result = _run(http, _store(3), _config(3, trace_sample_size=2))

    # Assert
    report = result.report
    assert report.total == 3
    assert report.status_code_histogram == {200: 1, 201: 1, 503: 1}
    assert report.status_groups["2xx"] == 2
    assert report.status_groups["5xx"] == 1
    assert len(report.trace_sample) == 2
    assert result.outcomes[0].trace.request_id == "req-1"
