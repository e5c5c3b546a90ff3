# domain/binding.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional

from domain.exceptions import BindingError


class SlotKind(str, Enum):
    METHOD = "method"
    URL = "url"
    HEADER = "header"
    QUERY = "query"
    BODY = "body"


class BindingSource(str, Enum):
    RECORD = "record"
    FIXED = "fixed"
    GENERATED = "generated"


@dataclass(frozen=True)
class Slot:
    kind: SlotKind
    name: str = ""  # header/query name or body json path ("" = whole body)

    @classmethod
    def parse(cls, component: str) -> "Slot":
        """
        method | url | header:<name> | query:<name> | body | body:<jsonPath>
        """
        raw = (component or "").strip()
        head, sep, rest = raw.partition(":")
        try:
            kind = SlotKind(head.strip().lower())
        except ValueError:
            raise BindingError(f"unknown template component: {component!r}")

        name = rest.strip()
        if kind in (SlotKind.METHOD, SlotKind.URL):
            if sep:
                raise BindingError(f"{kind.value} takes no qualifier: {component!r}")
            return cls(kind)
        if kind in (SlotKind.HEADER, SlotKind.QUERY) and not name:
            raise BindingError(f"{kind.value} binding requires a name: {component!r}")
        if kind == SlotKind.BODY and sep and not name:
            raise BindingError(f"empty body path: {component!r}")
        return cls(kind, name)

    @property
    def key(self) -> str:
        if not self.name:
            return self.kind.value
        # ヘッダ名は大文字小文字を区別しない
        name = self.name.lower() if self.kind == SlotKind.HEADER else self.name
        return f"{self.kind.value}:{name}"


@dataclass(frozen=True)
class Binding:
    template_component: str
    field_path: str = ""
    source: BindingSource = BindingSource.RECORD
    value: Optional[Any] = None
    encoded_path: Optional[str] = None  # path inside a base64 JSON value

    def __post_init__(self) -> None:
        # frozen なので object.__setattr__ で正規化
        if not isinstance(self.source, BindingSource):
            try:
                object.__setattr__(self, "source", BindingSource(self.source))
            except ValueError:
                raise BindingError(f"unknown binding source: {self.source!r}")
        if self.source == BindingSource.RECORD and not self.field_path:
            raise BindingError(f"record binding needs a field path: {self.template_component}")
        if self.source == BindingSource.GENERATED and not self.value:
            raise BindingError(f"generated binding needs a generator name: {self.template_component}")
        Slot.parse(self.template_component)

    @property
    def slot(self) -> Slot:
        return Slot.parse(self.template_component)


class BindingSet:
    """Ordered bindings; one binding per template slot."""

    def __init__(self, bindings: Iterable[Binding] = ()):
        self._bindings: List[Binding] = []
        self._keys: Dict[str, Binding] = {}
        for b in bindings:
            self.add(b)

    def add(self, binding: Binding) -> None:
        key = binding.slot.key
        if key in self._keys:
            raise BindingError(f"slot already bound: {key}")
        self._keys[key] = binding
        self._bindings.append(binding)

    def get(self, component: str) -> Optional[Binding]:
        return self._keys.get(Slot.parse(component).key)

    def __iter__(self) -> Iterator[Binding]:
        return iter(self._bindings)

    def __len__(self) -> int:
        return len(self._bindings)

    @classmethod
    def from_dicts(cls, items: Iterable[Dict[str, Any]]) -> "BindingSet":
        out = cls()
        for item in items or []:
            out.add(
                Binding(
                    template_component=item.get("template_component") or item.get("slot", ""),
                    field_path=item.get("field_path", ""),
                    source=item.get("source", BindingSource.RECORD.value),
                    value=item.get("value"),
                    encoded_path=item.get("encoded_path"),
                )
            )
        return out
