# application/services/trace_extractor.py
from __future__ import annotations

from typing import Dict, Optional

from domain.outcome import TraceInfo

# 代表的なヘッダ名（小文字で比較）
_KNOWN_HEADERS: Dict[str, tuple] = {
    "trace_id": ("x-trace-id", "trace-id", "traceid", "x-traceid", "x-b3-traceid", "x-amzn-trace-id", "x-cloud-trace-context"),
    "span_id": ("x-span-id", "span-id", "spanid", "x-spanid", "x-b3-spanid"),
    "session_id": ("x-session-id", "session-id", "sessionid", "x-sessionid"),
    "request_id": ("x-request-id", "request-id", "requestid", "x-requestid"),
    "correlation_id": ("x-correlation-id", "correlation-id", "correlationid", "x-correlationid"),
}

# 名前の一部で拾うフォールバック (末尾が id のものだけ。X-Request-Start などは拾わない)
_FALLBACK_TOKENS: Dict[str, str] = {
    "trace_id": "trace",
    "span_id": "span",
    "session_id": "session",
    "request_id": "request",
    "correlation_id": "correlation",
}


def extract_trace_info(headers: Optional[Dict[str, str]]) -> TraceInfo:
    """
    Scan response headers case-insensitively for distributed-trace identifiers.
    Absence of any identifier is not an error.
    """
    lowered = {str(k).lower(): v for k, v in (headers or {}).items() if v}
    found: Dict[str, str] = {}

    for field_name, names in _KNOWN_HEADERS.items():
        for name in names:
            if name in lowered:
                found[field_name] = lowered[name]
                break

    # W3C traceparent: version-traceid-parentid-flags
    if "traceparent" in lowered:
        parts = lowered["traceparent"].split("-")
        if len(parts) == 4:
            found.setdefault("trace_id", parts[1])
            found.setdefault("span_id", parts[2])

    for field_name, token in _FALLBACK_TOKENS.items():
        if field_name in found:
            continue
        for name, value in lowered.items():
            if token in name and name.endswith("id"):
                found[field_name] = value
                break

    return TraceInfo(**found)
