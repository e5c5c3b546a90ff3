"""FastAPI アプリケーション - REST API エンドポイント"""
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional
from uuid import uuid4

from fastapi import Body, FastAPI, HTTPException, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

import sys

# プロジェクトルートをPythonパスに追加
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from infrastructure.config.settings import Settings
from infrastructure.datasource.store_factory import DocumentStoreFactory
from infrastructure.logging.console_logger import ConsoleLogger
from infrastructure.logging.composite_logger import CompositeLogger
from infrastructure.logging.run_log_logger import RunLogLogger
from infrastructure.plan.base_loader import PlanLoadError
from infrastructure.plan.json_loader import JsonPlanLoader
from infrastructure.run.in_memory_run_log_store import InMemoryRunLogStore
from infrastructure.run.in_memory_run_repository import InMemoryRunRepository
from infrastructure.run.in_memory_run_scheduler import InMemoryRunScheduler
from application.executor.outcome_log import OutcomeLog, StopSignal
from application.executor.plan_runner import PlanRunner, PreparedRun, prepare_plan
from application.ports.http_client import HttpClientPort
from application.ports.requests_client import RequestsHttpClient
from application.services.batch_data_source import BatchDataSource
from application.services.curl_parser import CurlParser
from application.services.field_catalog import build_catalog, probe_catalog
from application.services.metrics_aggregator import aggregate
from application.services.run_error_builder import RunErrorBuilder
from domain.exceptions import DataSourceError, ParseError, RunStateError, ValidationError
from domain.plan import TestPlan
from domain.run import EngineState, RunResult
from domain.run_record import RunRecord, RunStatus


# リクエストモデル
class SourceModel(BaseModel):
    """Where records come from: a MongoDB collection or inline records"""
    uri: Optional[str] = Field(default=None, description="MongoDB URI (default: CURLRUNNER_MONGO_URI)")
    database: Optional[str] = Field(default=None, description="Database name")
    collection: Optional[str] = Field(default=None, description="Collection name")
    filter: Dict[str, Any] = Field(default_factory=dict, description="Find filter")
    records: Optional[List[Dict[str, Any]]] = Field(default=None, description="Inline records")


class BindingModel(BaseModel):
    template_component: str = Field(description="method | url | header:<name> | query:<name> | body | body:<path>")
    field_path: str = Field(default="", description="Dotted record path")
    source: str = Field(default="record", description="record | fixed | generated")
    value: Optional[Any] = Field(default=None, description="Fixed value or generator name")
    encoded_path: Optional[str] = Field(default=None, description="Path inside a base64 JSON value")


class RunOptionsModel(BaseModel):
    total_requests: int = Field(description="Number of requests to execute")
    concurrency_mode: str = Field(default="sequential", description="sequential | concurrent")
    batch_size: int = Field(default=10, description="Page size and max in-flight requests")
    delay_ms: int = Field(default=0, description="Delay between requests (sequential) or batches (concurrent)")
    timeout_sec: Optional[float] = Field(default=None, description="Per-request timeout")
    trace_sample_size: Optional[int] = Field(default=None, description="Traces kept in the report")


class ParseTemplateRequest(BaseModel):
    curl: str = Field(description="curl command line")
    allow_empty_body: bool = Field(default=False, description="Accept POST/PUT/PATCH without a body")


class CatalogRequest(BaseModel):
    source: Optional[SourceModel] = Field(default=None, description="Probe the first matching document")
    record: Optional[Dict[str, Any]] = Field(default=None, description="Catalog this record instead")


class StartRunRequest(BaseModel):
    name: str = Field(default="adhoc", description="Run label")
    curl: str = Field(description="curl command line")
    allow_empty_body: bool = Field(default=False)
    bindings: List[BindingModel] = Field(default_factory=list)
    run: RunOptionsModel
    source: Optional[SourceModel] = Field(default=None, description="Omit to replay the template as is")


# レスポンスモデル
class TemplateResponse(BaseModel):
    method: str
    url: str
    headers: Dict[str, str]
    body: Optional[Any] = None
    body_is_json: bool
    query_params: List[List[str]]


class FieldDescriptorResponse(BaseModel):
    path: str
    kind: str
    sample_value: Optional[Any] = None


class RunAcceptedResponse(BaseModel):
    """Accepted response for async execution"""
    run_id: str = Field(description="Run identifier")
    status: str = Field(description="Run status")
    links: Dict[str, str] = Field(description="Related resources")


class RunStatusResponse(BaseModel):
    """Run status with the (live) report"""
    run_id: str
    name: str
    status: str
    complete: bool = Field(description="True only for runs that finished normally")
    exhausted_early: bool = False
    report: Dict[str, Any]
    error: Optional[str] = None
    error_detail: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: datetime


class RunReportResponse(BaseModel):
    run_id: str
    status: str
    complete: bool
    report: Dict[str, Any]


class RunLogEntryResponse(BaseModel):
    """Async run log entry"""
    timestamp: datetime = Field(description="Log timestamp")
    event: str = Field(description="Log event name")
    fields: Dict[str, Any] = Field(description="Log payload")


@dataclass
class LiveRun:
    stop: StopSignal
    outcomes: OutcomeLog
    trace_sample_size: int


# FastAPIアプリケーション
app = FastAPI(
    title="curlrunner",
    description="curl コマンドをテンプレートにしたデータ駆動 API テスト実行エンジン",
    version="1.0.0",
)

# 設定
SETTINGS = Settings.from_env()
RUN_REPOSITORY = InMemoryRunRepository()
RUN_LOG_STORE = InMemoryRunLogStore()
RUN_SCHEDULER = InMemoryRunScheduler(max_workers=SETTINGS.scheduler_workers)
LIVE_RUNS: Dict[str, LiveRun] = {}
LIVE_RUNS_LOCK = Lock()
MAX_WAIT_SEC = 30

_STATUS_BY_STATE = {
    EngineState.COMPLETED: RunStatus.COMPLETED,
    EngineState.CANCELLED: RunStatus.CANCELLED,
    EngineState.FATAL: RunStatus.FAILED,
}


@app.get("/")
def read_root():
    """ヘルスチェック"""
    return {"status": "ok", "service": "curlrunner"}


def _build_logger(run_id: str) -> CompositeLogger:
    return CompositeLogger.of(
        ConsoleLogger(),
        RunLogLogger(run_id=run_id, log_store=RUN_LOG_STORE),
    )


def _build_http_client(batch_size: int) -> HttpClientPort:
    return RequestsHttpClient(pool_size=max(batch_size, 10))


def _build_store_factory() -> DocumentStoreFactory:
    return DocumentStoreFactory(SETTINGS, ConsoleLogger())


def _build_plan(request: StartRunRequest) -> TestPlan:
    data = request.model_dump()
    run = data["run"]
    if run.get("timeout_sec") is None:
        run["timeout_sec"] = SETTINGS.request_timeout_sec
    if run.get("trace_sample_size") is None:
        run["trace_sample_size"] = SETTINGS.trace_sample_size
    if run["batch_size"] > SETTINGS.max_batch_size:
        raise ValidationError(f"batch_size must be <= {SETTINGS.max_batch_size}")
    return JsonPlanLoader().load_from_dict(data, default_name=request.name)


def _create_run_record(plan: TestPlan, run_id: str) -> RunRecord:
    now = datetime.now(timezone.utc)
    return RunRecord(
        run_id=run_id,
        plan_name=plan.name,
        status=RunStatus.QUEUED,
        created_at=now,
        updated_at=now,
        result=None,
        error=None,
        error_detail=None,
    )


def _build_run_links(run_id: str) -> Dict[str, str]:
    return {
        "self": f"/runs/{run_id}",
        "report": f"/runs/{run_id}/report",
        "stop": f"/runs/{run_id}/stop",
        "logs": f"/runs/{run_id}/logs",
    }


def _result_payload(result: RunResult) -> Dict[str, Any]:
    return {
        "engine_state": result.state.value,
        "exhausted_early": result.exhausted_early,
        "report": result.report.to_dict(),
    }


def _current_report(record: RunRecord) -> Dict[str, Any]:
    with LIVE_RUNS_LOCK:
        live = LIVE_RUNS.get(record.run_id)
    if live is not None:
        # 実行中はアウトカムログから再集計する
        return aggregate(live.outcomes.snapshot(), live.trace_sample_size).to_dict()
    if record.result and "report" in record.result:
        return record.result["report"]
    return aggregate([]).to_dict()


def _build_status_response(record: RunRecord) -> RunStatusResponse:
    result = record.result or {}
    return RunStatusResponse(
        run_id=record.run_id,
        name=record.plan_name,
        status=record.status.value,
        complete=record.status == RunStatus.COMPLETED,
        exhausted_early=bool(result.get("exhausted_early", False)),
        report=_current_report(record),
        error=record.error,
        error_detail=record.error_detail,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _get_record_or_404(run_id: str) -> RunRecord:
    record = RUN_REPOSITORY.get(run_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Run not found: {run_id}")
    return record


def _execute_async_run(prepared: PreparedRun, run_id: str, live: LiveRun) -> None:
    logger = _build_logger(run_id).bind(run_id=run_id)
    error_builder = RunErrorBuilder()

    try:
        RUN_REPOSITORY.transition_status(run_id, RunStatus.QUEUED, RunStatus.RUNNING)
    except RunStateError as exc:
        logger.error("run.transition_failed", error=str(exc))
        return

    http_client = _build_http_client(prepared.plan.run.batch_size)
    try:
        runner = PlanRunner(http_client, _build_store_factory(), logger)
        result = runner.run(prepared, run_id=run_id, stop_signal=live.stop, outcome_log=live.outcomes)
        detail = error_builder.build_from_result(result)
        RUN_REPOSITORY.transition_status(
            run_id,
            RunStatus.RUNNING,
            _STATUS_BY_STATE[result.state],
            result=_result_payload(result),
            error=result.error,
            error_detail=detail.to_dict() if detail else None,
        )
    except Exception as exc:
        detail = error_builder.build_from_exception(exc, outcomes_recorded=len(live.outcomes))
        logger.error("run.failed", error=str(exc), error_type=type(exc).__name__)
        RUN_REPOSITORY.transition_status(
            run_id,
            RunStatus.RUNNING,
            RunStatus.FAILED,
            result={"report": aggregate(live.outcomes.snapshot(), live.trace_sample_size).to_dict()},
            error=detail.message,
            error_detail=detail.to_dict(),
        )
    finally:
        http_client.close()
        with LIVE_RUNS_LOCK:
            LIVE_RUNS.pop(run_id, None)


@app.post("/templates/parse", response_model=TemplateResponse)
def parse_template(request: ParseTemplateRequest = Body(...)) -> TemplateResponse:
    try:
        template = CurlParser().parse(request.curl, allow_empty_body=request.allow_empty_body)
    except ParseError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return TemplateResponse(
        **template.to_dict(),
        query_params=[list(pair) for pair in template.query_params],
    )


@app.post("/catalog", response_model=List[FieldDescriptorResponse])
def get_catalog(request: CatalogRequest = Body(...)) -> List[FieldDescriptorResponse]:
    if request.record is not None:
        catalog = build_catalog(request.record)
    elif request.source is not None:
        try:
            plan_source = JsonPlanLoader().load_source(request.source.model_dump())
        except PlanLoadError as e:
            raise HTTPException(status_code=400, detail=str(e))
        try:
            store = _build_store_factory()(plan_source)
            try:
                catalog = probe_catalog(BatchDataSource(store), plan_source.to_query())
            finally:
                store.close()
        except DataSourceError as e:
            raise HTTPException(status_code=502, detail=str(e))
    else:
        raise HTTPException(status_code=400, detail="Either 'record' or 'source' is required")

    return [FieldDescriptorResponse(**d.to_dict()) for d in catalog]


@app.post("/runs", response_model=RunStatusResponse)
def start_run(
    request: StartRunRequest = Body(...),
    wait_sec: Optional[int] = Query(default=None, ge=0),
):
    """
    テスト実行を開始する

    Args:
        request: curl・バインディング・実行設定・データソース
        wait_sec: 指定時は最大この秒数だけ完了を待つ

    Returns:
        202 + run_id（未完了）または完了した実行の状態
    """
    if wait_sec is not None and wait_sec > MAX_WAIT_SEC:
        raise HTTPException(
            status_code=400,
            detail=f"wait_sec must be <= {MAX_WAIT_SEC}",
        )

    try:
        plan = _build_plan(request)
        # 解析・バインディング検証は受付時に行う（不正なら何も実行しない）
        prepared = prepare_plan(plan)
    except (ParseError, ValidationError, PlanLoadError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    run_id = uuid4().hex
    record = _create_run_record(plan, run_id)
    RUN_REPOSITORY.create(record)

    live = LiveRun(stop=StopSignal(), outcomes=OutcomeLog(), trace_sample_size=plan.run.trace_sample_size)
    with LIVE_RUNS_LOCK:
        LIVE_RUNS[run_id] = live

    logger = _build_logger(run_id).bind(run_id=run_id)
    logger.info("run.accepted", name=plan.name, total_requests=plan.run.total_requests)

    RUN_SCHEDULER.submit(run_id, lambda: _execute_async_run(prepared, run_id, live))

    if wait_sec and RUN_SCHEDULER.wait(run_id, wait_sec):
        return _build_status_response(_get_record_or_404(run_id))

    accepted = RunAcceptedResponse(
        run_id=run_id,
        status=record.status.value,
        links=_build_run_links(run_id),
    )
    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content=accepted.model_dump(),
    )


@app.get("/runs/{run_id}", response_model=RunStatusResponse)
def get_run_status(run_id: str) -> RunStatusResponse:
    return _build_status_response(_get_record_or_404(run_id))


@app.get("/runs/{run_id}/report", response_model=RunReportResponse)
def get_run_report(run_id: str) -> RunReportResponse:
    record = _get_record_or_404(run_id)
    return RunReportResponse(
        run_id=record.run_id,
        status=record.status.value,
        complete=record.status == RunStatus.COMPLETED,
        report=_current_report(record),
    )


@app.post("/runs/{run_id}/stop", response_model=RunStatusResponse)
def stop_run(run_id: str) -> RunStatusResponse:
    record = _get_record_or_404(run_id)
    with LIVE_RUNS_LOCK:
        live = LIVE_RUNS.get(run_id)
    if live is None or record.status.finished:
        raise HTTPException(status_code=409, detail=f"Run already finished: {run_id}")
    live.stop.stop()
    _build_logger(run_id).bind(run_id=run_id).info("run.stop_requested")
    return _build_status_response(RUN_REPOSITORY.get(run_id) or record)


@app.get("/runs/{run_id}/logs", response_model=List[RunLogEntryResponse])
def get_run_logs(run_id: str, event: Optional[str] = Query(default=None)) -> List[RunLogEntryResponse]:
    _get_record_or_404(run_id)
    entries = RUN_LOG_STORE.list(run_id, event=event)
    return [
        RunLogEntryResponse(
            timestamp=entry.timestamp,
            event=entry.event,
            fields=entry.fields,
        )
        for entry in entries
    ]
