# application/services/base64_json.py
from __future__ import annotations

import base64
import binascii
import json
from typing import Any, Optional

from domain.values import assign_path


def decode_base64_json(value: Any) -> Optional[Any]:
    """
    Decode a base64 string holding a JSON object or array.
    Returns None for anything else (plain strings, scalars, invalid base64).
    """
    if not isinstance(value, str) or not value:
        return None
    padded = value + "=" * (-len(value) % 4)
    try:
        raw = base64.b64decode(padded, validate=True)
        decoded = json.loads(raw.decode("utf-8"))
    except (binascii.Error, ValueError):
        return None
    if isinstance(decoded, (dict, list)):
        return decoded
    return None


def encode_base64_json(obj: Any) -> str:
    raw = json.dumps(obj, ensure_ascii=False, separators=(",", ":"), default=str)
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


def assign_in_base64_json(encoded: Any, path: str, value: Any) -> str:
    """
    Rewrite one field inside a base64 encoded JSON document, keeping the
    remaining fields. A value that does not decode starts from an empty object.
    """
    doc = decode_base64_json(encoded)
    if doc is None:
        doc = {}
    assign_path(doc, path, value)
    return encode_base64_json(doc)
