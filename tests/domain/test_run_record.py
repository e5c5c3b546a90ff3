# tests/domain/test_run_record.py
from datetime import datetime, timezone

from domain.run import EngineState
from domain.run_record import RunRecord, RunStatus


def test_finished_statuses() -> None:
    assert not RunStatus.QUEUED.finished
    assert not RunStatus.RUNNING.finished
    assert RunStatus.COMPLETED.finished
    assert RunStatus.CANCELLED.finished
    assert RunStatus.FAILED.finished


def test_terminal_engine_states() -> None:
    assert {s for s in EngineState if s.terminal} == {EngineState.COMPLETED, EngineState.CANCELLED, EngineState.FATAL}


def test_with_status_keeps_previous_fields() -> None:
    # Arrange
    created = datetime(2024, 1, 1, tzinfo=timezone.utc)
    record = RunRecord(
        run_id="r1",
        plan_name="users",
        status=RunStatus.QUEUED,
        created_at=created,
        updated_at=created,
        result=None,
        error=None,
        error_detail=None,
    )
    later = datetime(2024, 1, 2, tzinfo=timezone.utc)

    # Act
    running = record.with_status(RunStatus.RUNNING, later)
    done = running.with_status(RunStatus.COMPLETED, later, result={"report": {}})

    # Assert
    assert running.created_at == created
    assert running.updated_at == later
    assert done.result == {"report": {}}
    assert done.plan_name == "users"
