# application/ports/requests_client.py
from __future__ import annotations

import json
import time
from typing import Dict, Optional

import requests
from requests.adapters import HTTPAdapter

from application.ports.http_client import HttpClientPort, HttpResponse, TransportError
from domain.template import BoundRequest


class RequestsHttpClient(HttpClientPort):
    """
    requests.Session ベースの実装。
    Session はスレッド間で共有される（接続プールの再利用のため）。
    """

    def __init__(self, base_headers: Optional[Dict[str, str]] = None, pool_size: int = 10):
        self._session = requests.Session()
        adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
        self._session.mount("http://", adapter)
        self._session.mount("https://", adapter)
        self._base_headers = base_headers or {}

    def execute(self, request: BoundRequest, timeout_sec: float) -> HttpResponse:
        headers = dict(self._base_headers)
        headers.update(request.headers or {})

        data: Optional[bytes] = None
        if request.body is not None:
            if isinstance(request.body, (dict, list)):
                data = json.dumps(request.body, ensure_ascii=False).encode("utf-8")
                if not any(k.lower() == "content-type" for k in headers):
                    headers["Content-Type"] = "application/json"
            else:
                data = str(request.body).encode("utf-8")

        t0 = time.perf_counter()
        try:
            resp = self._session.request(
                method=request.method.upper(),
                url=request.url,
                headers=headers,
                data=data,
                timeout=timeout_sec,
            )
        except requests.RequestException as e:
            raise TransportError(str(e), elapsed_ms=(time.perf_counter() - t0) * 1000)

        elapsed_ms = (time.perf_counter() - t0) * 1000
        return HttpResponse(
            status=resp.status_code,
            url=str(resp.url),
            text=resp.text,
            headers=dict(resp.headers),
            elapsed_ms=elapsed_ms,
            encoding=resp.encoding,
        )

    def close(self) -> None:
        self._session.close()
