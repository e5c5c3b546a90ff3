# domain/template.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qsl, urlsplit


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"


BODY_REQUIRED_METHODS = {HttpMethod.POST.value, HttpMethod.PUT.value, HttpMethod.PATCH.value}


@dataclass(frozen=True)
class RequestTemplate:
    """
    Parsed, placeholder-bearing shape of one HTTP request.

    Never mutated after parsing; per-record variations are made on copies
    by the binding resolver.
    """
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[Any] = None  # dict / list (JSON) or raw str
    body_is_json: bool = False

    def header(self, name: str) -> Optional[str]:
        wanted = name.lower()
        for k, v in self.headers.items():
            if k.lower() == wanted:
                return v
        return None

    @property
    def has_body(self) -> bool:
        if self.body is None:
            return False
        if isinstance(self.body, str):
            return self.body != ""
        return True

    @property
    def query_params(self) -> List[Tuple[str, str]]:
        return parse_qsl(urlsplit(self.url).query, keep_blank_values=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "method": self.method,
            "url": self.url,
            "headers": dict(self.headers),
            "body": self.body,
            "body_is_json": self.body_is_json,
        }


@dataclass(frozen=True)
class BoundRequest:
    method: str
    url: str
    headers: Dict[str, str]
    body: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "method": self.method,
            "url": self.url,
            "headers": dict(self.headers),
            "body": self.body,
        }
