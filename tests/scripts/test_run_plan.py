from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

from scripts import run_plan
from tests.fake_http_client import FakeHttpClient

PLAN = """
name: ping
curl: curl 'https://api.example.com/ping/${id}'
run:
  total_requests: 3
  batch_size: 2
source:
  records:
    - {id: 1}
    - {id: 2}
"""


def _write_plan(tmp_path: Path) -> Path:
    path = tmp_path / "ping.yaml"
    path.write_text(PLAN, encoding="utf-8")
    return path


def _fake_client(monkeypatch, statuses=(200,)) -> FakeHttpClient:
    client = FakeHttpClient(statuses=statuses)
    monkeypatch.setattr(run_plan, "RequestsHttpClient", lambda pool_size: client)
    return client


def test_run_plan_file_prints_report(monkeypatch, capsys, tmp_path: Path) -> None:
    # Arrange
    client = _fake_client(monkeypatch)
    plan_path = _write_plan(tmp_path)
    report_path = tmp_path / "report.json"
    monkeypatch.setattr(sys, "argv", ["run_plan.py", str(plan_path), "--report-file", str(report_path)])

    # Act
    with pytest.raises(SystemExit) as excinfo:
        run_plan.main()

    # Assert
    captured = capsys.readouterr()
    assert "Plan: ping" in captured.out
    assert "State: completed" in captured.out
    assert "Data source exhausted after 2 records" in captured.out
    assert excinfo.value.code == 0
    assert [r.url for r in client.requests] == ["https://api.example.com/ping/1", "https://api.example.com/ping/2"]
    saved = json.loads(report_path.read_text(encoding="utf-8"))
    assert saved["state"] == "completed"
    assert saved["report"]["total"] == 2


def test_run_fail_on_errors(monkeypatch, capsys, tmp_path: Path) -> None:
    _fake_client(monkeypatch, statuses=(500,))
    plan_path = _write_plan(tmp_path)
    monkeypatch.setattr(
        sys, "argv", ["run_plan.py", "run", "--plan-file", str(plan_path), "--total-requests", "1", "--fail-on-errors"]
    )

    with pytest.raises(SystemExit) as excinfo:
        run_plan.main()

    assert excinfo.value.code == 1
    assert '"failed": 1' in capsys.readouterr().out


def test_run_missing_plan(monkeypatch, capsys, tmp_path: Path) -> None:
    monkeypatch.setattr(sys, "argv", ["run_plan.py", "run", "--plan-file", str(tmp_path / "none.yaml")])

    with pytest.raises(SystemExit) as excinfo:
        run_plan.main()

    assert excinfo.value.code == 1
    assert "ERROR: Plan file not found" in capsys.readouterr().out


def test_parse_command_prints_template(monkeypatch, capsys) -> None:
    monkeypatch.setattr(sys, "argv", ["run_plan.py", "parse", "--curl", "curl -X DELETE https://api.example.com/users/1"])

    with pytest.raises(SystemExit) as excinfo:
        run_plan.main()

    out = capsys.readouterr().out
    assert excinfo.value.code == 0
    assert json.loads(out)["method"] == "DELETE"


def test_catalog_command(monkeypatch, capsys, tmp_path: Path) -> None:
    monkeypatch.setattr(sys, "argv", ["run_plan.py", "catalog", "--plan-file", str(_write_plan(tmp_path))])

    with pytest.raises(SystemExit) as excinfo:
        run_plan.main()

    assert excinfo.value.code == 0
    assert json.loads(capsys.readouterr().out) == [{"path": "id", "kind": "number", "sample_value": 1}]


def test_start_requests_async_run(monkeypatch, capsys, tmp_path: Path) -> None:
    # Arrange
    captured = {}

    class DummyResponse:
        status_code = 202

        def json(self):
            return {"run_id": "run-123", "status": "queued"}

    def fake_post(url, json, params, timeout):
        captured["url"] = url
        captured["json"] = json
        captured["params"] = params
        return DummyResponse()

    monkeypatch.setattr(run_plan.requests, "post", fake_post)
    monkeypatch.setattr(
        sys,
        "argv",
        [
            "run_plan.py",
            "start",
            "--plan-file",
            str(_write_plan(tmp_path)),
            "--api-base-url",
            "http://localhost:8000/",
            "--wait-sec",
            "3",
        ],
    )

    # Act
    with pytest.raises(SystemExit) as excinfo:
        run_plan.main()

    # Assert
    assert excinfo.value.code == 0
    assert captured["url"] == "http://localhost:8000/runs"
    assert captured["params"] == {"wait_sec": 3}
    assert captured["json"]["name"] == "ping"
    assert captured["json"]["run"] == {"total_requests": 3, "batch_size": 2}
    assert "run-123" in capsys.readouterr().out


def test_wait_polls_until_finished(monkeypatch, capsys) -> None:
    # Arrange
    statuses = iter(["queued", "running", "completed"])

    class DummyResponse:
        def __init__(self, status):
            self._status = status

        def raise_for_status(self):
            pass

        def json(self):
            return {"run_id": "run-123", "status": self._status}

    monkeypatch.setattr(run_plan.requests, "get", lambda url, timeout: DummyResponse(next(statuses)))
    monkeypatch.setattr(
        sys,
        "argv",
        ["run_plan.py", "wait", "--run-id", "run-123", "--api-base-url", "http://localhost:8000", "--interval-sec", "0"],
    )

    # Act
    with pytest.raises(SystemExit) as excinfo:
        run_plan.main()

    # Assert
    assert excinfo.value.code == 0
    assert '"completed"' in capsys.readouterr().out
