from __future__ import annotations

import asyncio

import httpx

from resilient_http import (
    Correlation,
    CorrelationHeadersInterceptor,
    HttpxTransport,
    RequestSpec,
    ResilientHttpClient,
    cursor,
    offset_limit,
    paginate_all,
    paginate_iter,
)

ROWS = [{"id": index} for index in range(7)]


def _offset_handler(request: httpx.Request) -> httpx.Response:
    offset = int(request.url.params.get("offset", "0"))
    limit = int(request.url.params.get("limit", "3"))
    return httpx.Response(200, json={"data": ROWS[offset : offset + limit]})


def _cursor_handler(request: httpx.Request) -> httpx.Response:
    position = int(request.url.params.get("cursor", "0"))
    page = ROWS[position : position + 3]
    next_cursor = str(position + 3) if position + 3 < len(ROWS) else None
    return httpx.Response(200, json={"data": page, "next": next_cursor})


def _run(handler, operation, **client_kwargs):
    async def run():
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        async with http:
            client = ResilientHttpClient(
                client_name="finra",
                base_url="https://api.example.com",
                transport=HttpxTransport(http),
                **client_kwargs,
            )
            return await operation(client)

    return asyncio.run(run())


def _items(page):
    return page["data"]


def test_offset_limit_collects_until_empty_page() -> None:
    initial = RequestSpec(method="GET", operation="rows", path="/rows", query={"offset": 0, "limit": 3})

    result = _run(
        _offset_handler,
        lambda client: paginate_all(client, initial, offset_limit(3, extract_items=_items), extract_items=_items),
    )

    assert [row["id"] for row in result.items] == list(range(7))
    assert result.pages == 4
    assert result.truncated is False
    assert all(outcome.ok for outcome in result.page_outcomes)


def test_cursor_pagination() -> None:
    initial = RequestSpec(method="GET", operation="rows", path="/rows")

    result = _run(
        _cursor_handler,
        lambda client: paginate_all(client, initial, cursor(lambda page: page["next"]), extract_items=_items),
    )

    assert len(result.items) == 7
    assert result.pages == 3
    assert result.truncated is False


def test_max_items_truncates() -> None:
    initial = RequestSpec(method="GET", operation="rows", path="/rows")

    result = _run(
        _cursor_handler,
        lambda client: paginate_all(
            client, initial, cursor(lambda page: page["next"]), extract_items=_items, max_items=4
        ),
    )

    assert [row["id"] for row in result.items] == [0, 1, 2, 3]
    assert result.pages == 2
    assert result.truncated is True
    assert result.truncation_reason == "max_items"


def test_max_pages_truncates_only_when_more_pages_exist() -> None:
    initial = RequestSpec(method="GET", operation="rows", path="/rows")
    next_request = cursor(lambda page: page["next"])

    truncated = _run(
        _cursor_handler,
        lambda client: paginate_all(client, initial, next_request, extract_items=_items, max_pages=2),
    )
    complete = _run(
        _cursor_handler,
        lambda client: paginate_all(client, initial, next_request, extract_items=_items, max_pages=3),
    )

    assert truncated.pages == 2
    assert truncated.truncated is True
    assert truncated.truncation_reason == "max_pages"
    assert complete.pages == 3
    assert complete.truncated is False


def test_paginate_iter_yields_pages() -> None:
    initial = RequestSpec(method="GET", operation="rows", path="/rows")

    async def collect(client):
        return [page async for page in paginate_iter(client, initial, cursor(lambda page: page["next"]))]

    pages = _run(_cursor_handler, collect)

    assert [len(page["data"]) for page in pages] == [3, 3, 1]


def test_each_page_is_a_fresh_logical_request() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.headers["x-request-id"])
        return _cursor_handler(request)

    initial = RequestSpec(
        method="GET", operation="rows", path="/rows", correlation=Correlation(request_id="first-page")
    )

    result = _run(
        handler,
        lambda client: paginate_all(client, initial, cursor(lambda page: page["next"]), extract_items=_items),
        interceptors=[CorrelationHeadersInterceptor()],
    )

    assert result.pages == 3
    assert seen[0] == "first-page"
    assert len(set(seen)) == 3
