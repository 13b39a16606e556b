from __future__ import annotations

import asyncio

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import SpanKind, StatusCode

from resilient_http import (
    CacheDirective,
    CacheEntry,
    InMemoryCache,
    OpenTelemetryTracingAdapter,
    RawResponse,
    RequestSpec,
    ResilienceProfile,
    ResilientHttpClient,
    TransientServerError,
)


def _tracing() -> tuple[OpenTelemetryTracingAdapter, InMemorySpanExporter]:
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    return OpenTelemetryTracingAdapter(provider.get_tracer("tests")), exporter


class _Transport:
    def __init__(self, *statuses: int) -> None:
        self.statuses = list(statuses)

    async def send(self, request, context):
        return RawResponse(status=self.statuses.pop(0), headers={"content-type": "application/json"}, body=b"{}")


async def _no_sleep(seconds: float) -> None:
    return None


def _client(transport, tracing, **kwargs) -> ResilientHttpClient:
    return ResilientHttpClient(
        client_name="iex",
        base_url="https://cloud.example.com",
        transport=transport,
        tracing=tracing,
        sleep=_no_sleep,
        **kwargs,
    )


def test_one_span_covers_all_attempts() -> None:
    tracing, exporter = _tracing()
    client = _client(_Transport(503, 200), tracing, default_resilience=ResilienceProfile(max_attempts=2))

    asyncio.run(client.execute(RequestSpec(method="GET", operation="quote", path="/quote/AAPL")))

    (span,) = exporter.get_finished_spans()
    assert span.name == "iex.quote"
    assert span.kind is SpanKind.CLIENT
    assert span.attributes["http.request.method"] == "GET"
    assert span.attributes["url.full"] == "https://cloud.example.com/quote/AAPL"
    assert span.attributes["http.response.status_code"] == 200
    assert span.attributes["resilient_http.attempts"] == 2
    assert span.attributes["resilient_http.category"] == "none"
    assert span.status.status_code is StatusCode.OK


def test_failed_request_marks_span_as_error() -> None:
    tracing, exporter = _tracing()
    client = _client(_Transport(503), tracing)

    with pytest.raises(TransientServerError):
        asyncio.run(client.execute(RequestSpec(method="GET", operation="quote", path="/quote/AAPL")))

    (span,) = exporter.get_finished_spans()
    assert span.status.status_code is StatusCode.ERROR
    assert span.attributes["resilient_http.category"] == "transient"


def test_cache_hit_still_produces_a_span() -> None:
    tracing, exporter = _tracing()
    cache = InMemoryCache()
    cache.set("quote:aapl", CacheEntry(value={"price": 1}))
    client = _client(_Transport(), tracing, cache=cache)

    asyncio.run(
        client.execute(
            RequestSpec(method="GET", operation="quote", path="/quote/AAPL", cache=CacheDirective(key="quote:aapl"))
        )
    )

    (span,) = exporter.get_finished_spans()
    assert span.attributes["resilient_http.cache_hit"] is True
    assert span.attributes["resilient_http.attempts"] == 0
