# application/services/binding_resolver.py
from __future__ import annotations

import copy
import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from application.ports.logger import LoggerPort, NullLogger
from application.services.base64_json import assign_in_base64_json
from application.services.template_segments import (
    Segment,
    has_placeholders,
    parse_segments,
    render_text,
    render_typed,
    stringify,
)
from application.services.value_generators import generate
from domain.binding import Binding, BindingSet, BindingSource, Slot, SlotKind
from domain.template import BoundRequest, RequestTemplate
from domain.values import MISSING, assign_path, lookup_path

BodyPath = Tuple[Union[str, int], ...]


@dataclass(frozen=True)
class CompiledTemplate:
    """
    Placeholder segments computed once per template, replayed per record.
    """
    template: RequestTemplate
    url: Tuple[Segment, ...]
    headers: Tuple[Tuple[str, Tuple[Segment, ...]], ...]
    raw_body: Optional[Tuple[Segment, ...]]
    body_leaves: Tuple[Tuple[BodyPath, Tuple[Segment, ...]], ...]
    bindings: Tuple[Binding, ...]


class BindingResolver:
    """
    Materializes a RequestTemplate for one data record.

    1. ``${path}`` placeholders in the URL, header values and string body
       leaves are looked up in the record; a path that cannot be resolved
       renders as "" (never an error).
    2. Explicit bindings then overwrite their slot, in binding order.
       Body path bindings keep the record's native JSON type.
    """

    def __init__(self, logger: Optional[LoggerPort] = None):
        self._logger = logger or NullLogger()

    def compile(self, template: RequestTemplate, bindings: Union[BindingSet, Iterable[Binding]] = ()) -> CompiledTemplate:
        binding_set = bindings if isinstance(bindings, BindingSet) else BindingSet(bindings)
        for b in binding_set:
            if b.source == BindingSource.GENERATED:
                # 未知のジェネレータ名は実行前にエラーにする
                generate(b.value)

        raw_body = None
        leaves: List[Tuple[BodyPath, Tuple[Segment, ...]]] = []
        if isinstance(template.body, str):
            raw_body = parse_segments(template.body)
        elif template.body is not None:
            _collect_leaves(template.body, (), leaves)

        return CompiledTemplate(
            template=template,
            url=parse_segments(template.url),
            headers=tuple((name, parse_segments(value)) for name, value in template.headers.items()),
            raw_body=raw_body,
            body_leaves=tuple(leaves),
            bindings=tuple(binding_set),
        )

    def resolve(
        self,
        template: Union[RequestTemplate, CompiledTemplate],
        bindings: Union[BindingSet, Iterable[Binding], None] = None,
        record: Optional[Dict[str, Any]] = None,
    ) -> BoundRequest:
        compiled = template if isinstance(template, CompiledTemplate) else self.compile(template, bindings or ())
        return self.render(compiled, record or {})

    def render(self, compiled: CompiledTemplate, record: Dict[str, Any]) -> BoundRequest:
        tpl = compiled.template
        method = tpl.method
        url = render_text(compiled.url, record)
        headers = {name: render_text(segs, record) for name, segs in compiled.headers}
        body = self._render_body(compiled, record)

        for binding in compiled.bindings:
            value = self._binding_value(binding, record)
            slot = binding.slot
            if slot.kind == SlotKind.METHOD:
                method = stringify(value).upper() or method
            elif slot.kind == SlotKind.URL:
                url = self._encode(url, binding, value)
            elif slot.kind == SlotKind.HEADER:
                _set_header(headers, slot.name, lambda current: self._encode(current, binding, value))
            elif slot.kind == SlotKind.QUERY:
                url = _set_query_param(url, slot.name, lambda current: self._encode(current, binding, value))
            elif slot.kind == SlotKind.BODY:
                body = self._apply_body_binding(body, tpl, slot, binding, value)

        return BoundRequest(method=method, url=url, headers=headers, body=body)

    def _render_body(self, compiled: CompiledTemplate, record: Dict[str, Any]) -> Any:
        body = compiled.template.body
        if body is None:
            return None
        if compiled.raw_body is not None:
            return render_text(compiled.raw_body, record)
        # 共有テンプレートは変更しない
        out = copy.deepcopy(body)
        for path, segs in compiled.body_leaves:
            _set_by_keys(out, path, render_typed(segs, record))
        return out

    def _binding_value(self, binding: Binding, record: Dict[str, Any]) -> Any:
        if binding.source == BindingSource.FIXED:
            return binding.value
        if binding.source == BindingSource.GENERATED:
            return generate(binding.value)
        value = lookup_path(record, binding.field_path)
        return "" if value is MISSING else value

    def _encode(self, current: Optional[str], binding: Binding, value: Any) -> str:
        if binding.encoded_path:
            return assign_in_base64_json(current, binding.encoded_path, value)
        return stringify(value)

    def _apply_body_binding(self, body: Any, tpl: RequestTemplate, slot: Slot, binding: Binding, value: Any) -> Any:
        if body is None:
            # テンプレートに無いボディは作らない
            self._logger.debug("binding.no_body", slot=binding.template_component, method=tpl.method)
            return None
        if not slot.name:
            if binding.encoded_path:
                return assign_in_base64_json(body, binding.encoded_path, value)
            return copy.deepcopy(value)

        if isinstance(body, str):
            try:
                parsed = json.loads(body) if body.strip() else {}
            except ValueError:
                parsed = None
            if not isinstance(parsed, (dict, list)):
                # スカラー JSON や非 JSON の生ボディはそのまま送る
                self._logger.debug(
                    "binding.body_not_json",
                    slot=binding.template_component,
                    method=tpl.method,
                )
                return body
            body = parsed

        if binding.encoded_path:
            current = lookup_path(body, slot.name)
            value = assign_in_base64_json(None if current is MISSING else current, binding.encoded_path, value)

        if not assign_path(body, slot.name, copy.deepcopy(value)):
            self._logger.debug("binding.body_path_unreachable", slot=binding.template_component)
        return body


def _collect_leaves(node: Any, path: BodyPath, out: List[Tuple[BodyPath, Tuple[Segment, ...]]]) -> None:
    if isinstance(node, dict):
        for k, v in node.items():
            _collect_leaves(v, path + (k,), out)
    elif isinstance(node, list):
        for i, v in enumerate(node):
            _collect_leaves(v, path + (i,), out)
    elif isinstance(node, str):
        segs = parse_segments(node)
        if has_placeholders(segs):
            out.append((path, segs))


def _set_by_keys(target: Any, path: BodyPath, value: Any) -> None:
    cur = target
    for key in path[:-1]:
        cur = cur[key]
    cur[path[-1]] = value


def _set_header(headers: Dict[str, str], name: str, make_value) -> None:
    for existing in headers:
        if existing.lower() == name.lower():
            headers[existing] = make_value(headers[existing])
            return
    headers[name] = make_value(None)


def _set_query_param(url: str, name: str, make_value) -> str:
    parts = urlsplit(url)
    pairs = parse_qsl(parts.query, keep_blank_values=True)
    current = next((v for k, v in pairs if k == name), None)
    new_value = make_value(current)

    replaced = False
    out: List[Tuple[str, str]] = []
    for k, v in pairs:
        if k == name:
            if not replaced:
                out.append((k, new_value))
                replaced = True
            continue
        out.append((k, v))
    if not replaced:
        out.append((name, new_value))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(out), parts.fragment))
