# infrastructure/plan/base_loader.py
"""
Plan files describe one test run: the captured curl command, the bindings,
the run options and where the records come from.

    name: create-users
    curl: |
      curl -X POST 'https://api.example.com/users' -H 'Content-Type: application/json' -d '{"name":"${user.name}"}'
    bindings:
      - template_component: header:X-Request-Id
        source: generated
        value: uuid
    run:
      total_requests: 100
      concurrency_mode: concurrent
      batch_size: 10
    source:
      uri: mongodb://localhost:27017
      database: app
      collection: users
      filter: {active: true}
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

from domain.binding import BindingSet
from domain.exceptions import ValidationError
from domain.plan import PlanSource, TestPlan
from domain.run_config import TestRunConfig


class PlanLoadError(Exception):
    pass


class PlanLoaderBase(ABC):
    def load_from_file(self, path: Path | str) -> TestPlan:
        p = Path(path)
        return self.load_from_dict(self.load_raw(p), default_name=p.stem)

    def load_raw(self, path: Path | str) -> Dict[str, Any]:
        """File contents as a mapping, before any plan validation."""
        p = Path(path)
        if not p.exists():
            raise PlanLoadError(f"Plan file not found: {path}")

        try:
            data = self._load_file(p)
        except (OSError, UnicodeDecodeError) as e:
            raise PlanLoadError(f"Plan file could not be read: {path}: {e}") from e

        if data is None:
            raise PlanLoadError(f"Plan file is empty: {path}")
        if not isinstance(data, dict):
            raise PlanLoadError(f"Plan file is invalid: {path}")
        return data

    def load_from_dict(self, data: Dict[str, Any], default_name: str = "plan") -> TestPlan:
        curl = data.get("curl")
        if not isinstance(curl, str) or not curl.strip():
            raise PlanLoadError("Plan requires a 'curl' command")

        try:
            bindings = BindingSet.from_dicts(data.get("bindings") or [])
            run = TestRunConfig.from_dict(data.get("run") or {})
        except ValidationError as e:
            raise PlanLoadError(str(e)) from e

        return TestPlan(
            name=str(data.get("name") or default_name),
            curl=curl,
            bindings=bindings,
            run=run,
            source=self.load_source(data.get("source")),
            allow_empty_body=bool(data.get("allow_empty_body", False)),
        )

    def load_source(self, data: Optional[Dict[str, Any]]) -> Optional[PlanSource]:
        if not data:
            return None
        if not isinstance(data, dict):
            raise PlanLoadError("'source' must be a mapping")

        records = data.get("records")
        if records is not None and not (
            isinstance(records, list) and all(isinstance(r, dict) for r in records)
        ):
            raise PlanLoadError("'source.records' must be a list of mappings")

        filter_ = data.get("filter") or {}
        if not isinstance(filter_, dict):
            raise PlanLoadError("'source.filter' must be a mapping")

        database = data.get("database") or ("inline" if records is not None else None)
        collection = data.get("collection") or ("records" if records is not None else None)
        if not database or not collection:
            raise PlanLoadError("'source' requires 'database' and 'collection'")

        return PlanSource(
            database=str(database),
            collection=str(collection),
            filter=filter_,
            uri=data.get("uri"),
            records=records,
        )

    @abstractmethod
    def _load_file(self, path: Path) -> Any:
        ...
