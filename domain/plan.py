# domain/plan.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from domain.binding import BindingSet
from domain.data_source import DataSourceQuery
from domain.run_config import TestRunConfig


@dataclass(frozen=True)
class PlanSource:
    """
    Where the run's records come from: a live store (``uri``) or records
    carried inline in the plan. ``uri`` None with no records means the
    configured default store.
    """
    database: str
    collection: str
    filter: Dict[str, Any] = field(default_factory=dict)
    uri: Optional[str] = None
    records: Optional[List[Dict[str, Any]]] = None

    @property
    def inline(self) -> bool:
        return self.records is not None

    def to_query(self) -> DataSourceQuery:
        return DataSourceQuery(source=self.database, collection=self.collection, filter=dict(self.filter))


@dataclass(frozen=True)
class TestPlan:
    name: str
    curl: str
    bindings: BindingSet
    run: TestRunConfig
    source: Optional[PlanSource] = None
    allow_empty_body: bool = False

    __test__ = False
