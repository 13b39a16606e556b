from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from resilient_http import (
    HttpxTransport,
    JsonBodyInterceptor,
    RequestSpec,
    RequestTimeoutError,
    ResilienceProfile,
    ResilientHttpClient,
)


async def _no_sleep(seconds: float) -> None:
    return None


def _client(handler, **kwargs) -> tuple[ResilientHttpClient, httpx.AsyncClient]:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = ResilientHttpClient(
        client_name="sec",
        base_url="https://data.sec.gov",
        transport=HttpxTransport(http),
        sleep=_no_sleep,
        **kwargs,
    )
    return client, http


def test_headers_and_body_reach_the_wire() -> None:
    seen: list[httpx.Request] = []

    def send_request(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"id": "f-1"})

    client, http = _client(
        send_request,
        default_headers={"User-Agent": "ingest research@example.com"},
        interceptors=[JsonBodyInterceptor()],
    )

    async def run():
        async with http:
            return await client.execute(
                RequestSpec(
                    method="POST",
                    operation="filings",
                    path="/filings",
                    headers={"X-Team": "quant"},
                    body={"cik": "0000320193"},
                )
            )

    assert asyncio.run(run()) == {"id": "f-1"}
    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "https://data.sec.gov/filings"
    assert request.headers["user-agent"] == "ingest research@example.com"
    assert request.headers["x-team"] == "quant"
    assert request.headers["content-type"] == "application/json"
    assert json.loads(request.content) == {"cik": "0000320193"}


def test_query_params_are_encoded() -> None:
    seen: list[httpx.Request] = []

    def send_request(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[])

    client, http = _client(send_request)

    async def run():
        async with http:
            await client.execute(
                RequestSpec(
                    method="GET",
                    operation="submissions",
                    path="/submissions",
                    query={"forms": ["10-K", "10-Q"], "amended": False, "skip": None, "limit": 10},
                )
            )

    asyncio.run(run())
    params = seen[0].url.params
    assert params.get_list("forms") == ["10-K", "10-Q"]
    assert params["amended"] == "false"
    assert params["limit"] == "10"
    assert "skip" not in params


def test_server_error_then_success() -> None:
    statuses = iter([503, 200])
    calls = 0

    def send_request(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        status = next(statuses)
        return httpx.Response(status, json={"status": status})

    client, http = _client(send_request, default_resilience=ResilienceProfile(max_attempts=2))

    async def run():
        async with http:
            return await client.execute(RequestSpec(method="GET", operation="tickers", path="/tickers"))

    assert asyncio.run(run()) == {"status": 200}
    assert calls == 2


def test_httpx_timeout_is_classified_as_timeout() -> None:
    def send_request(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    client, http = _client(send_request)

    async def run():
        async with http:
            await client.execute(RequestSpec(method="GET", operation="tickers", path="/tickers"))

    with pytest.raises(RequestTimeoutError) as excinfo:
        asyncio.run(run())

    assert isinstance(excinfo.value.cause, httpx.ReadTimeout)


def test_caller_owned_httpx_client_is_not_closed() -> None:
    def send_request(request: httpx.Request) -> httpx.Response:
        return httpx.Response(204)

    client, http = _client(send_request)

    async def run():
        async with client:
            await client.execute(RequestSpec(method="GET", operation="ping", path="/ping"))
        closed = http.is_closed
        await http.aclose()
        return closed

    assert asyncio.run(run()) is False
