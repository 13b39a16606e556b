from __future__ import annotations

import asyncio
import json

from pydantic import BaseModel

from resilient_http import (
    AuthInterceptor,
    BeforeSendContext,
    ClassifiedError,
    Correlation,
    CorrelationHeadersInterceptor,
    ErrorCategory,
    ErrorContext,
    IdempotencyKeyInterceptor,
    Interceptor,
    InterceptorPipeline,
    JsonBodyInterceptor,
    RequestSpec,
)
from resilient_http.outcomes import AttemptContext
from resilient_http.preparation import ClientDefaults, prepare_request


def _context(**spec_kwargs) -> BeforeSendContext:
    spec_kwargs.setdefault("method", "POST")
    spec_kwargs.setdefault("operation", "orders")
    spec_kwargs.setdefault("path", "/orders")
    request = prepare_request(RequestSpec(**spec_kwargs), ClientDefaults(base_url="https://api.example.com"))
    attempt = AttemptContext(attempt=1, abort=asyncio.Event(), deadline_remaining_ms=1_000, timeout_ms=1_000)
    return BeforeSendContext(request=request.for_attempt(1), attempt=attempt)


class Order(BaseModel):
    symbol: str
    quantity: int
    note: str | None = None


def test_auth_interceptor_supports_async_token_providers() -> None:
    async def get_token() -> str:
        return "abc"

    ctx = _context()
    asyncio.run(InterceptorPipeline([AuthInterceptor(get_token)]).before_send(ctx))

    assert ctx.request.headers["Authorization"] == "Bearer abc"


def test_auth_interceptor_custom_header_and_empty_token() -> None:
    ctx = _context()
    interceptor = AuthInterceptor(lambda: "k-1", header_name="X-Api-Key", format_token=str)
    asyncio.run(InterceptorPipeline([interceptor]).before_send(ctx))
    assert ctx.request.headers["X-Api-Key"] == "k-1"

    ctx = _context()
    asyncio.run(InterceptorPipeline([AuthInterceptor(lambda: None)]).before_send(ctx))
    assert "Authorization" not in ctx.request.headers


def test_json_body_interceptor_handles_models_and_keeps_content_type() -> None:
    ctx = _context(body=Order(symbol="AAPL", quantity=10), headers={"content-type": "application/vnd.api+json"})

    asyncio.run(InterceptorPipeline([JsonBodyInterceptor()]).before_send(ctx))

    assert json.loads(ctx.request.body) == {"symbol": "AAPL", "quantity": 10}
    assert ctx.request.headers["content-type"] == "application/vnd.api+json"
    assert "Content-Type" not in ctx.request.headers


def test_json_body_interceptor_serializes_nested_models() -> None:
    ctx = _context(body={"orders": [Order(symbol="MSFT", quantity=1)]})

    asyncio.run(InterceptorPipeline([JsonBodyInterceptor()]).before_send(ctx))

    assert ctx.request.body == b'{"orders":[{"symbol":"MSFT","quantity":1}]}'


def test_json_body_interceptor_leaves_missing_body_alone() -> None:
    ctx = _context(method="GET")

    asyncio.run(InterceptorPipeline([JsonBodyInterceptor()]).before_send(ctx))

    assert ctx.request.body is None
    assert "Content-Type" not in ctx.request.headers


def test_idempotency_and_correlation_headers() -> None:
    ctx = _context(idempotency_key="order-42", correlation=Correlation(request_id="r-1", correlation_id="c-1"))

    pipeline = InterceptorPipeline([IdempotencyKeyInterceptor(), CorrelationHeadersInterceptor()])
    asyncio.run(pipeline.before_send(ctx))

    assert ctx.request.headers["Idempotency-Key"] == "order-42"
    assert ctx.request.headers["X-Request-Id"] == "r-1"
    assert ctx.request.headers["X-Correlation-Id"] == "c-1"


def test_observer_failures_are_isolated() -> None:
    seen: list[str] = []

    class Broken(Interceptor):
        def on_error(self, ctx):
            raise ValueError("boom")

    class Watcher(Interceptor):
        async def on_error(self, ctx):
            seen.append(ctx.error.category.value)

    request = _context().request
    ctx = ErrorContext(request=request, error=ClassifiedError(ErrorCategory.NETWORK), attempt=1)

    asyncio.run(InterceptorPipeline([Watcher(), Broken()]).on_error(ctx))

    assert seen == ["network"]
