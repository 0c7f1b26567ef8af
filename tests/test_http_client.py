"""Tests for the resilient HTTP client."""

from types import SimpleNamespace
from typing import List

import httpx
import pytest

from service_control_plane.app.adapters import http_client as http_client_module
from service_control_plane.app.adapters.http_client import (
    HTTPClient,
    RequestConstructionError,
    RetryExhaustedError,
    TransportError,
    build_request,
)

URL = "http://workload.example.svc/api/items"


def scripted(statuses: List[int], calls: List[httpx.Request]):
    """Transport handler answering with ``statuses`` in order, then the last one forever."""

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        status = statuses[min(len(calls), len(statuses)) - 1]
        return httpx.Response(status, content=f"attempt {len(calls)}".encode())

    return handler


@pytest.fixture
def sleeps(monkeypatch):
    recorded: List[float] = []

    async def fake_sleep(delay):
        recorded.append(delay)

    monkeypatch.setattr(http_client_module, "asyncio", SimpleNamespace(sleep=fake_sleep))
    return recorded


@pytest.mark.asyncio
async def test_first_attempt_success_makes_one_call(sleeps):
    """A 200 on the first attempt returns at once."""
    calls: List[httpx.Request] = []
    client = HTTPClient(transport=httpx.MockTransport(scripted([200], calls)))

    response, body = await client.make_request_with_retry(URL, "GET", max_attempts=5, retry_delay=0.5)

    assert response.status_code == 200
    assert body == b"attempt 1"
    assert len(calls) == 1
    assert sleeps == []
    await client.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize("max_attempts", [1, 2, 4])
async def test_exhaustion_makes_exactly_max_attempts(sleeps, max_attempts):
    calls: List[httpx.Request] = []
    client = HTTPClient(transport=httpx.MockTransport(scripted([503], calls)))

    with pytest.raises(RetryExhaustedError) as exc_info:
        await client.make_request_with_retry(URL, "GET", max_attempts=max_attempts, retry_delay=0.25)

    assert len(calls) == max_attempts
    assert str(exc_info.value) == "failed to make request after multiple retries"
    assert len(exc_info.value.attempts) == max_attempts
    assert "503" in exc_info.value.attempts[0]
    await client.aclose()


@pytest.mark.asyncio
async def test_delay_between_attempts_but_not_after_last(sleeps):
    calls: List[httpx.Request] = []
    client = HTTPClient(transport=httpx.MockTransport(scripted([500], calls)))

    with pytest.raises(RetryExhaustedError):
        await client.make_request_with_retry(URL, "POST", body=b"{}", max_attempts=3, retry_delay=0.75)

    assert sleeps == [0.75, 0.75]
    await client.aclose()


@pytest.mark.asyncio
async def test_recovers_after_failures_and_resends_same_body(sleeps):
    calls: List[httpx.Request] = []
    client = HTTPClient(transport=httpx.MockTransport(scripted([502, 500, 200], calls)))

    response, body = await client.make_request_with_retry(
        URL,
        "PUT",
        body=b'{"replicas": 2}',
        headers={"Content-Type": "application/json"},
        max_attempts=5,
        retry_delay=0.1,
    )

    assert response.status_code == 200
    assert body == b"attempt 3"
    assert [c.content for c in calls] == [b'{"replicas": 2}'] * 3
    assert all(c.method == "PUT" for c in calls)
    assert calls[0].headers["content-type"] == "application/json"
    assert sleeps == [0.1, 0.1]
    await client.aclose()


@pytest.mark.asyncio
async def test_transport_errors_are_retried(sleeps):
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        if len(attempts) < 2:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, content=b"ok")

    client = HTTPClient(transport=httpx.MockTransport(handler))
    response, body = await client.make_request_with_retry(URL, "GET", max_attempts=3, retry_delay=0)

    assert response.status_code == 200
    assert body == b"ok"
    assert len(attempts) == 2
    await client.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "method,url",
    [
        ("GE T", URL),
        ("", URL),
        ("GET", ":www.abv"),
        ("GET", "ftp://example.com/file"),
        ("GET", "http://"),
    ],
)
async def test_malformed_request_is_not_retried(sleeps, method, url):
    calls: List[httpx.Request] = []
    client = HTTPClient(transport=httpx.MockTransport(scripted([200], calls)))

    with pytest.raises(RequestConstructionError):
        await client.make_request_with_retry(url, method, max_attempts=3, retry_delay=1)

    assert calls == []
    assert sleeps == []
    await client.aclose()


@pytest.mark.asyncio
async def test_attempt_bounds_are_enforced():
    client = HTTPClient(transport=httpx.MockTransport(scripted([200], [])))
    with pytest.raises(ValueError):
        await client.make_request_with_retry(URL, "GET", max_attempts=0)
    with pytest.raises(ValueError):
        await client.make_request_with_retry(URL, "GET", retry_delay=-1)
    await client.aclose()


@pytest.mark.asyncio
async def test_do_reports_timeouts():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    client = HTTPClient(transport=httpx.MockTransport(handler))
    with pytest.raises(TransportError) as exc_info:
        await client.do(build_request("GET", URL))
    assert exc_info.value.timeout is True
    await client.aclose()


def test_timeout_can_be_changed():
    client = HTTPClient(timeout=30.0)
    assert client.get_timeout() == 30.0

    client.set_timeout(5.0)

    assert client.get_timeout() == 5.0
    assert client.client.timeout.read == 5.0
    with pytest.raises(ValueError):
        client.set_timeout(-1)
