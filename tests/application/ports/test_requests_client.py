# tests/application/ports/test_requests_client.py
import pytest
import requests

from application.ports.http_client import TransportError
from application.ports.requests_client import RequestsHttpClient
from application.services.binding_resolver import BindingResolver
from application.services.curl_parser import CurlParser
from domain.template import BoundRequest


class DummyResponse:
    status_code = 201
    url = "https://api.example.com/users"
    text = '{"id": 1}'
    headers = {"X-Request-Id": "req-1"}
    encoding = "utf-8"


@pytest.fixture
def client():
    client = RequestsHttpClient(base_headers={"User-Agent": "curlrunner", "Accept": "*/*"})
    yield client
    client.close()


def test_json_body_is_serialized(client, monkeypatch) -> None:
    # Arrange
    captured = {}

    def fake_request(method, url, headers, data, timeout):
        captured.update(method=method, url=url, headers=headers, data=data, timeout=timeout)
        return DummyResponse()

    monkeypatch.setattr(client._session, "request", fake_request)
    request = BoundRequest(
        method="post",
        url="https://api.example.com/users",
        headers={"Accept": "application/json"},
        body={"name": "Ada"},
    )

    # Act
    response = client.execute(request, timeout_sec=5)

    # Assert
    assert captured["method"] == "POST"
    assert captured["timeout"] == 5
    assert captured["data"] == b'{"name": "Ada"}'
    assert captured["headers"] == {
        "User-Agent": "curlrunner",
        "Accept": "application/json",
        "Content-Type": "application/json",
    }
    assert response.status == 201
    assert response.headers == {"X-Request-Id": "req-1"}
    assert response.elapsed_ms >= 0


def test_raw_body_is_sent_as_text(client, monkeypatch) -> None:
    captured = {}

    def fake_request(method, url, headers, data, timeout):
        captured["data"] = data
        captured["headers"] = headers
        return DummyResponse()

    monkeypatch.setattr(client._session, "request", fake_request)

    client.execute(BoundRequest(method="PUT", url="https://x", headers={}, body="a=1&b=2"), timeout_sec=1)

    assert captured["data"] == b"a=1&b=2"
    assert "Content-Type" not in captured["headers"]


@pytest.mark.parametrize("payload", ["true", "\"x\"", "null"])
def test_scalar_json_body_goes_out_verbatim(client, monkeypatch, payload) -> None:
    # Arrange
    captured = {}

    def fake_request(method, url, headers, data, timeout):
        captured["data"] = data
        return DummyResponse()

    monkeypatch.setattr(client._session, "request", fake_request)
    template = CurlParser().parse(
        f"curl -X PUT https://api.example.com/flag -H 'Content-Type: application/json' -d '{payload}'"
    )
    bound = BindingResolver().resolve(template, [], {})

    # Act
    client.execute(bound, timeout_sec=1)

    # Assert
    assert captured["data"] == payload.encode("utf-8")


def test_connection_errors_become_transport_errors(client, monkeypatch) -> None:
    def fake_request(**kwargs):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(client._session, "request", fake_request)

    with pytest.raises(TransportError) as excinfo:
        client.execute(BoundRequest(method="GET", url="https://x", headers={}), timeout_sec=1)

    assert "connection refused" in str(excinfo.value)
    assert excinfo.value.elapsed_ms is not None
