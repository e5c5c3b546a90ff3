# application/executor/plan_runner.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from application.executor.execution_engine import ExecutionEngine, OutcomeListener
from application.executor.outcome_log import OutcomeLog, StopSignal
from application.ports.document_store import DocumentStorePort
from application.ports.http_client import HttpClientPort
from application.ports.logger import LoggerPort, NullLogger
from application.services.batch_data_source import BatchDataSource
from application.services.binding_resolver import BindingResolver
from application.services.curl_parser import CurlParser
from domain.plan import PlanSource, TestPlan
from domain.run import RunResult
from domain.template import RequestTemplate

StoreFactory = Callable[[Optional[PlanSource]], Optional[DocumentStorePort]]


@dataclass(frozen=True)
class PreparedRun:
    plan: TestPlan
    template: RequestTemplate


def prepare_plan(plan: TestPlan, parser: Optional[CurlParser] = None, logger: Optional[LoggerPort] = None) -> PreparedRun:
    """Raises ParseError / BindingError before anything is executed."""
    template = (parser or CurlParser()).parse(plan.curl, allow_empty_body=plan.allow_empty_body)
    BindingResolver(logger).compile(template, plan.bindings)
    return PreparedRun(plan=plan, template=template)


class PlanRunner:
    """
    Glue between a TestPlan and the engine: parse and check everything up
    front (``prepare``), then execute with a fresh store per run.
    """

    def __init__(
        self,
        http_client: HttpClientPort,
        store_factory: StoreFactory,
        logger: Optional[LoggerPort] = None,
        parser: Optional[CurlParser] = None,
    ):
        self._http = http_client
        self._store_factory = store_factory
        self._logger = logger or NullLogger()
        self._parser = parser or CurlParser()

    def prepare(self, plan: TestPlan) -> PreparedRun:
        return prepare_plan(plan, self._parser, self._logger)

    def run(
        self,
        prepared: PreparedRun,
        run_id: Optional[str] = None,
        stop_signal: Optional[StopSignal] = None,
        outcome_log: Optional[OutcomeLog] = None,
        listener: Optional[OutcomeListener] = None,
    ) -> RunResult:
        plan = prepared.plan
        store = self._store_factory(plan.source)
        try:
            source = BatchDataSource(store, self._logger) if store is not None else None
            query = plan.source.to_query() if plan.source is not None else None
            engine = ExecutionEngine(self._http, BindingResolver(self._logger), self._logger)
            return engine.run(
                prepared.template,
                plan.bindings,
                source,
                query,
                plan.run,
                stop_signal=stop_signal,
                listener=listener,
                run_id=run_id,
                outcome_log=outcome_log,
            )
        finally:
            if store is not None:
                store.close()
