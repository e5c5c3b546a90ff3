# application/services/template_segments.py
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple, Union

from domain.values import MISSING, lookup_path


@dataclass(frozen=True)
class Literal:
    text: str


@dataclass(frozen=True)
class Placeholder:
    path: str


Segment = Union[Literal, Placeholder]


def parse_segments(text: str) -> Tuple[Segment, ...]:
    """
    "id=${user.id}&x=1" -> (Literal("id="), Placeholder("user.id"), Literal("&x=1"))

    An unclosed "${" is kept as literal text.
    """
    if text is None:
        return ()
    if "${" not in text:
        return (Literal(text),)

    out: List[Segment] = []
    buf = ""
    i = 0
    while i < len(text):
        start = text.find("${", i)
        if start < 0:
            buf += text[i:]
            break
        end = text.find("}", start + 2)
        if end < 0:
            buf += text[i:]
            break
        buf += text[i:start]
        if buf:
            out.append(Literal(buf))
            buf = ""
        out.append(Placeholder(text[start + 2 : end].strip()))
        i = end + 1
    if buf:
        out.append(Literal(buf))
    return tuple(out)


def has_placeholders(segments: Tuple[Segment, ...]) -> bool:
    return any(isinstance(s, Placeholder) for s in segments)


def stringify(value: Any) -> str:
    if value is None or value is MISSING:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)
    return str(value)


def render_text(segments: Tuple[Segment, ...], record: Dict[str, Any]) -> str:
    parts: List[str] = []
    for seg in segments:
        if isinstance(seg, Literal):
            parts.append(seg.text)
        else:
            parts.append(stringify(lookup_path(record, seg.path)))
    return "".join(parts)


def render_typed(segments: Tuple[Segment, ...], record: Dict[str, Any]) -> Any:
    """
    A value made of exactly one placeholder keeps the record's native type
    (number stays number); anything else renders as text.
    """
    if len(segments) == 1 and isinstance(segments[0], Placeholder):
        value = lookup_path(record, segments[0].path)
        return "" if value is MISSING else value
    return render_text(segments, record)
