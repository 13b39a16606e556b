"""OpenTelemetry tracing adapter: one span per logical request."""

from __future__ import annotations

from opentelemetry import trace
from opentelemetry.trace import Span, Status, StatusCode, Tracer

from .collaborators import SpanInfo
from .outcomes import RequestOutcome


class OpenTelemetryTracingAdapter:
    def __init__(self, tracer: Tracer | None = None) -> None:
        self._tracer = tracer or trace.get_tracer("resilient_http")

    def start_span(self, info: SpanInfo) -> Span:
        attributes = {
            "http.request.method": info.method.value,
            "url.full": info.url,
            "resilient_http.client": info.client_name,
            "resilient_http.operation": info.operation,
        }
        if info.correlation.request_id:
            attributes["resilient_http.request_id"] = info.correlation.request_id
        if info.correlation.correlation_id:
            attributes["resilient_http.correlation_id"] = info.correlation.correlation_id
        return self._tracer.start_span(
            f"{info.client_name}.{info.operation}",
            kind=trace.SpanKind.CLIENT,
            attributes=attributes,
        )

    def end_span(self, span: Span, outcome: RequestOutcome) -> None:
        if outcome.status is not None:
            span.set_attribute("http.response.status_code", outcome.status)
        span.set_attribute("resilient_http.attempts", outcome.attempts)
        span.set_attribute("resilient_http.category", outcome.category.value)
        span.set_attribute("resilient_http.cache_hit", outcome.cache_hit)
        if outcome.ok:
            span.set_status(Status(StatusCode.OK))
        else:
            span.set_status(Status(StatusCode.ERROR, outcome.category.value))
        span.end()
