# application/executor/execution_engine.py
from __future__ import annotations

import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Union

from application.executor.outcome_log import OutcomeLog, StopSignal
from application.ports.http_client import HttpClientPort, TransportError
from application.ports.logger import LoggerPort, NullLogger
from application.services.batch_data_source import BatchDataSource, CursorHandle
from application.services.binding_resolver import BindingResolver, CompiledTemplate
from application.services.metrics_aggregator import aggregate
from application.services.redactor import mask_dict
from application.services.response_excerpt import build_excerpt
from application.services.trace_extractor import extract_trace_info
from domain.binding import Binding, BindingSet
from domain.data_source import DataSourceQuery, Page
from domain.exceptions import CursorExpiredError, DataSourceConnectionError, ValidationError
from domain.outcome import ExecutionOutcome
from domain.run import EngineState, RunResult
from domain.run_config import TestRunConfig
from domain.template import BoundRequest, RequestTemplate

OutcomeListener = Callable[[ExecutionOutcome], None]


class ExecutionEngine:
    """
    Drives N executions of a bound template against the real endpoint.

    Pages are fetched one at a time (never ahead of consumption). In
    concurrent mode the records of one page are dispatched together, so at
    most ``batch_size`` requests are in flight. Per-request failures become
    outcomes; only data-source failures end the run as FATAL.
    """

    def __init__(
        self,
        http_client: HttpClientPort,
        resolver: Optional[BindingResolver] = None,
        logger: Optional[LoggerPort] = None,
    ):
        self._http = http_client
        self._logger = logger or NullLogger()
        self._resolver = resolver or BindingResolver(self._logger)

    def run(
        self,
        template: RequestTemplate,
        bindings: Union[BindingSet, Iterable[Binding]],
        source: Optional[BatchDataSource],
        query: Optional[DataSourceQuery],
        config: TestRunConfig,
        stop_signal: Optional[StopSignal] = None,
        listener: Optional[OutcomeListener] = None,
        run_id: Optional[str] = None,
        outcome_log: Optional[OutcomeLog] = None,
    ) -> RunResult:
        run_id = run_id or uuid.uuid4().hex
        logger = self._logger.bind(run_id=run_id)
        stop = stop_signal or StopSignal()
        log = outcome_log if outcome_log is not None else OutcomeLog()

        if source is not None and query is None:
            raise ValidationError("a data source needs a query")

        # BindingError / 不正なジェネレータ名はここで失敗させる（何も実行しない）
        compiled = self._resolver.compile(template, bindings)

        state = EngineState.IDLE
        logger.info(
            "run.start",
            method=template.method,
            url=template.url,
            total_requests=config.total_requests,
            mode=config.concurrency_mode.value,
            batch_size=config.batch_size,
            static=source is None,
        )

        handle: Optional[CursorHandle] = None
        pool: Optional[ThreadPoolExecutor] = None
        cancelled = False
        exhausted_early = False
        fatal_error: Optional[str] = None
        t0 = time.perf_counter()

        try:
            if config.concurrent:
                pool = ThreadPoolExecutor(max_workers=config.batch_size, thread_name_prefix=f"run-{run_id[:8]}")
            if source is not None:
                handle = source.open(query)

            remaining = config.total_requests
            page_number = 0
            while remaining > 0:
                if stop.stopped:
                    cancelled = True
                    break

                state = EngineState.FETCHING
                size = min(config.batch_size, remaining)
                if source is None:
                    page_number += 1
                    page = Page(number=page_number, records=[{} for _ in range(size)], has_more=True)
                else:
                    page = source.next_page(handle, size)
                logger.debug("page.fetched", page=page.number, size=len(page), has_more=page.has_more)

                state = EngineState.DISPATCHING
                if config.concurrent:
                    dispatched = self._dispatch_concurrent(pool, compiled, page, config, log, stop, listener, logger)
                else:
                    dispatched = self._dispatch_sequential(compiled, page, config, log, stop, listener, logger)
                remaining -= dispatched

                if dispatched < len(page):
                    cancelled = True
                    break
                if remaining > 0 and not page.has_more:
                    exhausted_early = True
                    logger.info("run.source_exhausted", executed=len(log), requested=config.total_requests)
                    break
                if remaining > 0 and config.concurrent and config.delay_ms > 0:
                    if stop.wait(config.delay_ms / 1000):
                        cancelled = True
                        break

            state = EngineState.DRAINING
        except (DataSourceConnectionError, CursorExpiredError) as e:
            state = EngineState.FATAL
            fatal_error = f"{type(e).__name__}: {e}"
            logger.error("run.fatal", error=str(e), error_type=type(e).__name__, executed=len(log))
        finally:
            # 実行中のリクエストは最後まで待つ（強制中断しない）
            if pool is not None:
                pool.shutdown(wait=True)
            if source is not None:
                source.close(handle)

        if state != EngineState.FATAL:
            state = EngineState.CANCELLED if cancelled else EngineState.COMPLETED

        outcomes = log.snapshot()
        report = aggregate(outcomes, config.trace_sample_size)
        logger.info(
            "run.end",
            state=state.value,
            executed=len(outcomes),
            succeeded=report.succeeded,
            failed=report.failed,
            exhausted_early=exhausted_early,
            elapsed_ms=int((time.perf_counter() - t0) * 1000),
        )
        return RunResult(
            run_id=run_id,
            state=state,
            outcomes=outcomes,
            report=report,
            exhausted_early=exhausted_early,
            error=fatal_error,
        )

    def _dispatch_sequential(
        self,
        compiled: CompiledTemplate,
        page: Page,
        config: TestRunConfig,
        log: OutcomeLog,
        stop: StopSignal,
        listener: Optional[OutcomeListener],
        logger: LoggerPort,
    ) -> int:
        count = 0
        for record in page.records:
            if stop.stopped:
                break
            if config.delay_ms > 0 and len(log) > 0:
                if stop.wait(config.delay_ms / 1000):
                    break
            seq = log.reserve_sequence()
            self._execute_one(compiled, record, seq, config, log, listener, logger)
            count += 1
        return count

    def _dispatch_concurrent(
        self,
        pool: ThreadPoolExecutor,
        compiled: CompiledTemplate,
        page: Page,
        config: TestRunConfig,
        log: OutcomeLog,
        stop: StopSignal,
        listener: Optional[OutcomeListener],
        logger: LoggerPort,
    ) -> int:
        futures: List[Future] = []
        for record in page.records:
            if stop.stopped:
                break
            seq = log.reserve_sequence()
            futures.append(pool.submit(self._execute_one, compiled, record, seq, config, log, listener, logger))
        wait(futures)
        for f in futures:
            # _execute_one は例外を outcome に変換するので通常ここでは何も起きない
            f.result()
        return len(futures)

    def _execute_one(
        self,
        compiled: CompiledTemplate,
        record: Dict,
        seq: int,
        config: TestRunConfig,
        log: OutcomeLog,
        listener: Optional[OutcomeListener],
        logger: LoggerPort,
    ) -> ExecutionOutcome:
        started = datetime.now(timezone.utc)
        t0 = time.perf_counter()
        request: Optional[BoundRequest] = None
        try:
            request = self._resolver.render(compiled, record)
            logger.debug(
                "request.start",
                seq=seq,
                method=request.method,
                url=request.url,
                headers=mask_dict(request.headers),
            )
            resp = self._http.execute(request, config.timeout_sec)
            outcome = ExecutionOutcome(
                sequence=seq,
                status_code=resp.status,
                latency_ms=resp.elapsed_ms or (time.perf_counter() - t0) * 1000,
                timestamp=started,
                trace=extract_trace_info(resp.headers),
                request=request,
                response_excerpt=build_excerpt(resp.text, resp.headers),
            )
        except TransportError as e:
            elapsed = e.elapsed_ms if e.elapsed_ms is not None else (time.perf_counter() - t0) * 1000
            logger.warning("request.transport_error", seq=seq, error=str(e))
            outcome = ExecutionOutcome(
                sequence=seq,
                status_code=None,
                latency_ms=elapsed,
                timestamp=started,
                error=str(e) or type(e).__name__,
                request=request,
            )
        except Exception as e:
            logger.error("request.failed", seq=seq, error=str(e), error_type=type(e).__name__)
            outcome = ExecutionOutcome(
                sequence=seq,
                status_code=None,
                latency_ms=(time.perf_counter() - t0) * 1000,
                timestamp=started,
                error=f"{type(e).__name__}: {e}",
                request=request,
            )

        log.append(outcome)
        logger.debug(
            "request.end",
            seq=seq,
            status=outcome.status_code,
            latency_ms=round(outcome.latency_ms, 2),
            ok=outcome.succeeded,
        )
        if listener is not None:
            try:
                listener(outcome)
            except Exception as e:
                logger.error("listener.failed", seq=seq, error=str(e))
        return outcome
