# domain/values.py
from __future__ import annotations

from enum import Enum
from typing import Any


class FieldKind(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    NULL = "null"


def kind_of(value: Any) -> FieldKind:
    # bool は int のサブクラスなので先に判定する
    if value is None:
        return FieldKind.NULL
    if isinstance(value, bool):
        return FieldKind.BOOLEAN
    if isinstance(value, (int, float)):
        return FieldKind.NUMBER
    if isinstance(value, dict):
        return FieldKind.OBJECT
    if isinstance(value, (list, tuple)):
        return FieldKind.ARRAY
    # ObjectId / datetime などドライバ固有の型は文字列として扱う
    return FieldKind.STRING


MISSING = object()


def lookup_path(record: Any, path: str) -> Any:
    """
    Dotted path traversal: "user.name", "items.0.id".
    Returns MISSING when any segment cannot be resolved.
    """
    if not path:
        return MISSING
    cur = record
    for part in path.split("."):
        if isinstance(cur, dict):
            if part not in cur:
                return MISSING
            cur = cur[part]
        elif isinstance(cur, (list, tuple)) and part.isdigit():
            idx = int(part)
            if idx >= len(cur):
                return MISSING
            cur = cur[idx]
        else:
            return MISSING
    return cur


def assign_path(target: Any, path: str, value: Any) -> bool:
    """
    Write ``value`` at dotted ``path`` inside ``target`` (in place).
    Missing or non-container intermediate keys become objects.
    Returns False when the path runs through a list index that does not exist.
    """
    parts = path.split(".")
    cur = target
    for i, part in enumerate(parts):
        last = i == len(parts) - 1
        if isinstance(cur, list):
            if not part.isdigit() or int(part) >= len(cur):
                return False
            idx = int(part)
            if last:
                cur[idx] = value
                return True
            if not isinstance(cur[idx], (dict, list)):
                cur[idx] = {}
            cur = cur[idx]
        elif isinstance(cur, dict):
            if last:
                cur[part] = value
                return True
            if not isinstance(cur.get(part), (dict, list)):
                cur[part] = {}
            cur = cur[part]
        else:
            return False
    return False
