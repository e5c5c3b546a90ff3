# application/services/field_catalog.py
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from domain.data_source import DataSourceQuery
from domain.values import FieldKind, kind_of

if TYPE_CHECKING:
    from application.services.batch_data_source import BatchDataSource


@dataclass(frozen=True)
class FieldDescriptor:
    path: str
    kind: FieldKind
    sample_value: Any

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "kind": self.kind.value, "sample_value": self.sample_value}


def build_catalog(probe_record: Optional[Dict[str, Any]]) -> List[FieldDescriptor]:
    """
    Flatten one probe document into leaf field paths, depth-first in the
    document's own key order. Arrays are leaves; nested objects recurse.
    """
    out: List[FieldDescriptor] = []
    if probe_record:
        _walk(probe_record, "", out)
    return out


def _walk(node: Dict[str, Any], prefix: str, out: List[FieldDescriptor]) -> None:
    for key, value in node.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict):
            _walk(value, path, out)
        else:
            out.append(FieldDescriptor(path=path, kind=kind_of(value), sample_value=value))


def catalog_paths(catalog: List[FieldDescriptor]) -> List[str]:
    return [d.path for d in catalog]


def probe_catalog(data_source: "BatchDataSource", query: DataSourceQuery) -> List[FieldDescriptor]:
    """Catalog of the first document the query matches (empty when none)."""
    return build_catalog(data_source.probe(query))
