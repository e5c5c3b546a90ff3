from __future__ import annotations

import json

import pytest
from fastapi import HTTPException

from api import main
from api.main import RunOptionsModel, SourceModel, StartRunRequest
from domain.run_record import RunStatus
from infrastructure.datasource.in_memory_document_store import InMemoryDocumentStore
from tests.fake_http_client import FakeHttpClient


def _reset_run_stores() -> None:
    main.RUN_REPOSITORY._runs.clear()
    main.RUN_LOG_STORE._logs.clear()


def _request(records=3, total=3, **run_options) -> StartRunRequest:
    return StartRunRequest(
        name="users",
        curl="curl 'https://api.example.com/users/${id}'",
        bindings=[{"template_component": "header:X-Request-Id", "source": "generated", "value": "uuid"}],
        run=RunOptionsModel(total_requests=total, **run_options),
        source=SourceModel(records=[{"id": i} for i in range(1, records + 1)]),
    )


@pytest.fixture
def http(monkeypatch) -> FakeHttpClient:
    client = FakeHttpClient(statuses=[200, 200, 500])
    monkeypatch.setattr(main, "_build_http_client", lambda batch_size: client)
    return client


def test_async_run_returns_accepted_and_updates_status(http) -> None:
    # Arrange
    _reset_run_stores()

    # Act
    response = main.start_run(_request(), wait_sec=0)
    payload = json.loads(response.body.decode())
    run_id = payload["run_id"]

    # Assert
    assert response.status_code == 202
    assert payload["links"]["report"] == f"/runs/{run_id}/report"
    assert main.RUN_SCHEDULER.wait(run_id, timeout_sec=5) is True
    record = main.RUN_REPOSITORY.get(run_id)
    assert record.status == RunStatus.COMPLETED
    assert record.result["report"]["total"] == 3
    assert record.result["report"]["status_code_histogram"] == {"200": 2, "500": 1}
    assert [r.url for r in http.requests] == [
        "https://api.example.com/users/1",
        "https://api.example.com/users/2",
        "https://api.example.com/users/3",
    ]
    assert http.closed is True


def test_async_run_wait_returns_status(http) -> None:
    # Arrange
    _reset_run_stores()

    # Act
    response = main.start_run(_request(records=2, total=5), wait_sec=5)

    # Assert
    assert response.status == "completed"
    assert response.complete is True
    assert response.exhausted_early is True
    assert response.report["total"] == 2
    assert response.error is None


def test_report_endpoint(http) -> None:
    _reset_run_stores()
    response = main.start_run(_request(), wait_sec=5)

    report = main.get_run_report(response.run_id)

    assert report.complete is True
    assert report.report["succeeded"] == 2
    assert report.report["failed"] == 1
    assert report.report["status_groups"]["5xx"] == 1


def test_run_logs_endpoint_returns_entries(http) -> None:
    # Arrange
    _reset_run_stores()
    response = main.start_run(_request(), wait_sec=5)

    # Act
    logs = main.get_run_logs(response.run_id, event=None)
    ends = main.get_run_logs(response.run_id, event="run.end")

    # Assert
    events = [entry.event for entry in logs]
    assert events[0] == "run.accepted"
    assert "run.start" in events
    assert len(ends) == 1
    assert ends[0].fields["run_id"] == response.run_id
    assert ends[0].fields["executed"] == 3


def test_stop_running_run(monkeypatch) -> None:
    # Arrange
    _reset_run_stores()
    client = FakeHttpClient(delay_sec=0.01)
    monkeypatch.setattr(main, "_build_http_client", lambda batch_size: client)
    request = _request(records=50, total=50, delay_ms=50)

    # Act
    accepted = json.loads(main.start_run(request, wait_sec=0).body.decode())
    run_id = accepted["run_id"]
    stopped = main.stop_run(run_id)
    main.RUN_SCHEDULER.wait(run_id, timeout_sec=10)

    # Assert
    assert stopped.run_id == run_id
    status = main.get_run_status(run_id)
    assert status.status == "cancelled"
    assert status.complete is False
    assert status.report["total"] < 50


def test_stop_finished_run_is_conflict(http) -> None:
    _reset_run_stores()
    response = main.start_run(_request(), wait_sec=5)

    with pytest.raises(HTTPException) as excinfo:
        main.stop_run(response.run_id)

    assert excinfo.value.status_code == 409


def test_fatal_data_source_marks_run_failed(http, monkeypatch) -> None:
    # Arrange
    _reset_run_stores()
    monkeypatch.setattr(main, "_build_store_factory", lambda: (lambda source: InMemoryDocumentStore(unreachable=True)))

    # Act
    response = main.start_run(_request(), wait_sec=5)

    # Assert
    assert response.status == "failed"
    assert response.complete is False
    assert response.error_detail["code"] == "datasource_unreachable"
    assert http.requests == []


@pytest.mark.parametrize(
    "request_kwargs",
    [
        {"curl": "curl -X POST https://api.example.com/users"},
        {"bindings": [{"template_component": "cookie:x", "field_path": "a"}]},
        {"bindings": [{"template_component": "header:X", "source": "generated", "value": "nope"}]},
        {"run": RunOptionsModel(total_requests=1, concurrency_mode="parallel")},
        {"run": RunOptionsModel(total_requests=1, batch_size=100_000)},
    ],
)
def test_invalid_requests_are_rejected_before_running(http, request_kwargs) -> None:
    # Arrange
    _reset_run_stores()
    values = dict(name="bad", curl="curl https://api.example.com/users", run=RunOptionsModel(total_requests=1))
    values.update(request_kwargs)

    # Act
    with pytest.raises(HTTPException) as excinfo:
        main.start_run(StartRunRequest(**values), wait_sec=0)

    # Assert
    assert excinfo.value.status_code == 400
    assert main.RUN_REPOSITORY.list() == []
    assert http.requests == []


def test_wait_sec_limit() -> None:
    with pytest.raises(HTTPException) as excinfo:
        main.start_run(_request(), wait_sec=main.MAX_WAIT_SEC + 1)
    assert excinfo.value.status_code == 400


def test_unknown_run_is_404() -> None:
    for call in (main.get_run_status, main.get_run_report, main.stop_run):
        with pytest.raises(HTTPException) as excinfo:
            call("missing")
        assert excinfo.value.status_code == 404
    with pytest.raises(HTTPException):
        main.get_run_logs("missing", event=None)
