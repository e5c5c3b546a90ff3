# domain/data_source.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass(frozen=True)
class DataSourceQuery:
    source: str
    collection: str
    filter: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Page:
    number: int
    records: List[Dict[str, Any]]
    has_more: bool

    def __len__(self) -> int:
        return len(self.records)
