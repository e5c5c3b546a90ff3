#!/usr/bin/env python3
"""
Test plan execution script

Usage:
  python scripts/run_plan.py run --plan-file <path> [--report-file <path>] [--fail-on-errors]
  python scripts/run_plan.py run --plan <name> [--total-requests <n>] [--mode sequential|concurrent]
  python scripts/run_plan.py parse --curl <command>
  python scripts/run_plan.py catalog --plan-file <path>
  python scripts/run_plan.py start --plan-file <path> --api-base-url <url> [--wait-sec <sec>]
  python scripts/run_plan.py wait --run-id <id> --api-base-url <url> [--timeout-sec <sec>]
  python scripts/run_plan.py status --run-id <id> --api-base-url <url>
  python scripts/run_plan.py stop --run-id <id> --api-base-url <url>
  python scripts/run_plan.py logs --run-id <id> --api-base-url <url>

Examples:
  python scripts/run_plan.py plans/sample_inline.yaml
  python scripts/run_plan.py run --plan sample_inline --total-requests 5
  python scripts/run_plan.py start --plan-file plans/sample_inline.yaml --api-base-url http://localhost:8000
"""
from __future__ import annotations

import argparse
import dataclasses
import json
import signal
import sys
import time
from pathlib import Path

import requests

# プロジェクトルートをPythonパスに追加
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from infrastructure.config.settings import Settings
from infrastructure.logging.log_setup import setup_console_logging

SETTINGS = Settings.from_env()
setup_console_logging(level=SETTINGS.log_level)

from application.executor.outcome_log import StopSignal
from application.executor.plan_runner import PlanRunner
from application.ports.requests_client import RequestsHttpClient
from application.services.batch_data_source import BatchDataSource
from application.services.curl_parser import CurlParser
from application.services.field_catalog import probe_catalog
from domain.exceptions import DataSourceError, ParseError, ValidationError
from domain.plan import TestPlan
from domain.run import EngineState
from domain.run_config import ConcurrencyMode
from infrastructure.datasource.store_factory import DocumentStoreFactory
from infrastructure.logging.console_logger import ConsoleLogger
from infrastructure.plan.base_loader import PlanLoadError
from infrastructure.plan.file_finder import PlanFileFinder
from infrastructure.plan.loader_registry import PlanLoaderRegistry


PLANS_DIR = project_root / "plans"
DEFAULT_API_TIMEOUT_SEC = 30
FINISHED_STATUSES = {"completed", "cancelled", "failed"}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="curl test plan runner")
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Run a plan locally")
    run_parser.add_argument("--plan", type=str, help="Plan name under plans/")
    run_parser.add_argument("--plan-file", type=str)
    run_parser.add_argument("--total-requests", type=int)
    run_parser.add_argument("--mode", type=str, choices=[m.value for m in ConcurrencyMode])
    run_parser.add_argument("--batch-size", type=int)
    run_parser.add_argument("--report-file", type=str)
    run_parser.add_argument("--fail-on-errors", action="store_true")

    parse_parser = subparsers.add_parser("parse", help="Parse a curl command and print the template")
    parse_parser.add_argument("--curl", type=str, required=True)
    parse_parser.add_argument("--allow-empty-body", action="store_true")

    catalog_parser = subparsers.add_parser("catalog", help="Print the field catalog of a plan's source")
    catalog_parser.add_argument("--plan", type=str)
    catalog_parser.add_argument("--plan-file", type=str)

    start_parser = subparsers.add_parser("start", help="Start a plan via API")
    start_parser.add_argument("--plan", type=str)
    start_parser.add_argument("--plan-file", type=str)
    start_parser.add_argument("--api-base-url", type=str, required=True)
    start_parser.add_argument("--wait-sec", type=int)

    wait_parser = subparsers.add_parser("wait", help="Wait for async run completion")
    wait_parser.add_argument("--run-id", type=str, required=True)
    wait_parser.add_argument("--api-base-url", type=str, required=True)
    wait_parser.add_argument("--timeout-sec", type=int, default=DEFAULT_API_TIMEOUT_SEC)
    wait_parser.add_argument("--interval-sec", type=float, default=1.0)

    for name, help_text in (
        ("status", "Fetch async run status"),
        ("stop", "Stop an async run"),
        ("logs", "Fetch async run logs"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--run-id", type=str, required=True)
        sub.add_argument("--api-base-url", type=str, required=True)

    return parser


def _resolve_plan_path(args: argparse.Namespace) -> Path:
    if args.plan_file:
        path = Path(args.plan_file)
        if not path.exists():
            raise ValueError(f"Plan file not found: {path}")
        return path
    if args.plan:
        found = PlanFileFinder(PLANS_DIR).find(args.plan)
        if found is None:
            raise ValueError(f"Plan not found: {args.plan}")
        return found
    raise ValueError("plan-file or plan is required")


def _load_plan(args: argparse.Namespace) -> TestPlan:
    path = _resolve_plan_path(args)
    try:
        return PlanLoaderRegistry().load(path)
    except PlanLoadError as e:
        raise ValueError(f"Failed to load plan: {e}") from e


def _apply_overrides(plan: TestPlan, args: argparse.Namespace) -> TestPlan:
    overrides = {}
    if args.total_requests is not None:
        overrides["total_requests"] = args.total_requests
    if args.mode is not None:
        overrides["concurrency_mode"] = ConcurrencyMode(args.mode)
    if args.batch_size is not None:
        overrides["batch_size"] = args.batch_size
    if not overrides:
        return plan
    return dataclasses.replace(plan, run=dataclasses.replace(plan.run, **overrides))


def _run_local(args: argparse.Namespace) -> int:
    try:
        plan = _apply_overrides(_load_plan(args), args)
    except ValidationError as e:
        raise ValueError(str(e)) from e

    print(f"Plan: {plan.name}")
    print(f"Requests: {plan.run.total_requests} ({plan.run.concurrency_mode.value}, batch {plan.run.batch_size})")

    logger = ConsoleLogger()
    http_client = RequestsHttpClient(pool_size=max(plan.run.batch_size, 10))
    runner = PlanRunner(http_client, DocumentStoreFactory(SETTINGS, logger), logger)
    try:
        prepared = runner.prepare(plan)
    except (ParseError, ValidationError) as e:
        http_client.close()
        raise ValueError(str(e)) from e

    stop = StopSignal()
    # Ctrl+C は停止要求として扱い、実行中のリクエストは最後まで待つ
    previous = signal.signal(signal.SIGINT, lambda _signum, _frame: stop.stop())
    print("\n=== Executing ===\n")
    try:
        result = runner.run(prepared, stop_signal=stop)
    except DataSourceError as e:
        raise ValueError(str(e)) from e
    finally:
        signal.signal(signal.SIGINT, previous)
        http_client.close()

    report = result.report.to_dict()
    print("\n=== Result ===")
    print(f"Run ID: {result.run_id}")
    print(f"State: {result.state.value}")
    if result.exhausted_early:
        print(f"Data source exhausted after {report['total']} records")
    if result.error:
        print(f"Error: {result.error}")
    print(json.dumps(report, indent=2, ensure_ascii=False))

    if args.report_file:
        Path(args.report_file).write_text(
            json.dumps({"run_id": result.run_id, "state": result.state.value, "report": report}, indent=2, ensure_ascii=False),
            encoding="utf-8",
        )

    if result.state != EngineState.COMPLETED:
        return 1
    if args.fail_on_errors and result.report.failed:
        return 1
    return 0


def _parse_curl(args: argparse.Namespace) -> int:
    try:
        template = CurlParser().parse(args.curl, allow_empty_body=args.allow_empty_body)
    except ParseError as e:
        raise ValueError(str(e)) from e
    print(json.dumps(template.to_dict(), indent=2, ensure_ascii=False))
    return 0


def _catalog(args: argparse.Namespace) -> int:
    plan = _load_plan(args)
    if plan.source is None:
        raise ValueError("Plan has no source")
    try:
        store = DocumentStoreFactory(SETTINGS)(plan.source)
        try:
            catalog = probe_catalog(BatchDataSource(store), plan.source.to_query())
        finally:
            store.close()
    except DataSourceError as e:
        raise ValueError(str(e)) from e
    print(json.dumps([d.to_dict() for d in catalog], indent=2, ensure_ascii=False, default=str))
    return 0


def _build_api_payload(plan_path: Path) -> dict:
    # API は plan と同じ形の JSON を受け付ける
    try:
        payload = PlanLoaderRegistry().get_loader(plan_path).load_raw(plan_path)
    except PlanLoadError as e:
        raise ValueError(str(e)) from e
    payload.setdefault("name", plan_path.stem)
    return payload


def _start_api(args: argparse.Namespace) -> int:
    payload = _build_api_payload(_resolve_plan_path(args))
    url = f"{args.api_base_url.rstrip('/')}/runs"
    params = {}
    if args.wait_sec is not None:
        params["wait_sec"] = args.wait_sec
    response = requests.post(url, json=payload, params=params, timeout=DEFAULT_API_TIMEOUT_SEC)
    print(f"Status: {response.status_code}")
    print(json.dumps(response.json(), indent=2, ensure_ascii=False))
    return 0 if response.status_code < 400 else 1


def _get_json(url: str) -> dict:
    response = requests.get(url, timeout=DEFAULT_API_TIMEOUT_SEC)
    response.raise_for_status()
    return response.json()


def _wait_api(args: argparse.Namespace) -> int:
    deadline = time.monotonic() + args.timeout_sec
    status_url = f"{args.api_base_url.rstrip('/')}/runs/{args.run_id}"
    while True:
        data = _get_json(status_url)
        status = data.get("status", "").lower()
        if status in FINISHED_STATUSES:
            print(json.dumps(data, indent=2, ensure_ascii=False))
            return 0 if status == "completed" else 1
        if time.monotonic() >= deadline:
            print(json.dumps(data, indent=2, ensure_ascii=False))
            return 1
        time.sleep(args.interval_sec)


def _status_api(args: argparse.Namespace) -> int:
    data = _get_json(f"{args.api_base_url.rstrip('/')}/runs/{args.run_id}")
    print(json.dumps(data, indent=2, ensure_ascii=False))
    return 0


def _stop_api(args: argparse.Namespace) -> int:
    url = f"{args.api_base_url.rstrip('/')}/runs/{args.run_id}/stop"
    response = requests.post(url, timeout=DEFAULT_API_TIMEOUT_SEC)
    print(f"Status: {response.status_code}")
    print(json.dumps(response.json(), indent=2, ensure_ascii=False))
    return 0 if response.status_code < 400 else 1


def _logs_api(args: argparse.Namespace) -> int:
    data = _get_json(f"{args.api_base_url.rstrip('/')}/runs/{args.run_id}/logs")
    print(json.dumps(data, indent=2, ensure_ascii=False))
    return 0


COMMANDS = {
    "run": _run_local,
    "parse": _parse_curl,
    "catalog": _catalog,
    "start": _start_api,
    "wait": _wait_api,
    "status": _status_api,
    "stop": _stop_api,
    "logs": _logs_api,
}


def main() -> None:
    parser = _build_parser()
    argv = sys.argv[1:]
    if argv and argv[0] not in COMMANDS and not argv[0].startswith("-"):
        argv = ["run", "--plan-file", argv[0]] + argv[1:]
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        exit_code = COMMANDS[args.command](args)
    except ValueError as exc:
        print(f"ERROR: {exc}")
        sys.exit(1)
    except requests.RequestException as exc:
        print(f"ERROR: API request failed: {exc}")
        sys.exit(1)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
