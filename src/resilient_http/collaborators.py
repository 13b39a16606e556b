"""Contracts for the optional collaborators the client calls into.

Every method may be implemented sync or async. Each contract has a no-op
default so a client runs standalone.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Mapping, Protocol

from ._utils import epoch_ms
from .models import Correlation, HttpMethod
from .outcomes import ClassifiedError, RequestOutcome


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    # Epoch milliseconds; ``None`` never expires.
    expires_at: float | None = None

    def is_expired(self, now_ms: float | None = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (epoch_ms() if now_ms is None else now_ms)


class Cache(Protocol):
    def get(self, key: str) -> CacheEntry | None | Awaitable[CacheEntry | None]: ...

    def set(self, key: str, entry: CacheEntry) -> None | Awaitable[None]: ...


@dataclass(frozen=True)
class RateLimiterContext:
    client_name: str
    operation: str
    method: HttpMethod
    attempt: int
    request_id: str | None = None
    extensions: Mapping[str, Any] = field(default_factory=dict)


class RateLimiter(Protocol):
    def throttle(self, key: str, context: RateLimiterContext) -> None | Awaitable[None]: ...

    def on_success(self, key: str, context: RateLimiterContext) -> None | Awaitable[None]: ...

    def on_error(
        self, key: str, error: ClassifiedError, context: RateLimiterContext
    ) -> None | Awaitable[None]: ...


class CircuitBreaker(Protocol):
    def before_request(self, key: str) -> None | Awaitable[None]:
        """Raise to deny the request."""
        ...

    def on_success(self, key: str) -> None | Awaitable[None]: ...

    def on_failure(self, key: str, error: ClassifiedError) -> None | Awaitable[None]: ...


@dataclass(frozen=True)
class RequestMetrics:
    client_name: str
    operation: str
    method: HttpMethod
    url: str
    correlation: Correlation
    outcome: RequestOutcome
    extensions: Mapping[str, Any] = field(default_factory=dict)


class MetricsSink(Protocol):
    def record_request(self, info: RequestMetrics) -> None | Awaitable[None]: ...


@dataclass(frozen=True)
class SpanInfo:
    client_name: str
    operation: str
    method: HttpMethod
    url: str
    correlation: Correlation
    extensions: Mapping[str, Any] = field(default_factory=dict)


class TracingAdapter(Protocol):
    def start_span(self, info: SpanInfo) -> Any:
        """Return a span handle, or ``None`` to skip tracing this request."""
        ...

    def end_span(self, span: Any, outcome: RequestOutcome) -> None: ...


class NoopCache:
    def get(self, key: str) -> CacheEntry | None:
        return None

    def set(self, key: str, entry: CacheEntry) -> None:
        return None

    def delete(self, key: str) -> None:
        return None


class InMemoryCache:
    """Process-local cache; expired entries are evicted when read."""

    def __init__(self) -> None:
        self._store: dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._store)

    def get(self, key: str) -> CacheEntry | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        if entry.is_expired():
            self._store.pop(key, None)
            return None
        return entry

    def set(self, key: str, entry: CacheEntry) -> None:
        self._store[key] = entry

    def delete(self, key: str) -> None:
        self._store.pop(key, None)

    def clear(self) -> None:
        self._store.clear()


class NoopRateLimiter:
    def throttle(self, key: str, context: RateLimiterContext) -> None:
        return None

    def on_success(self, key: str, context: RateLimiterContext) -> None:
        return None

    def on_error(self, key: str, error: ClassifiedError, context: RateLimiterContext) -> None:
        return None


class NoopCircuitBreaker:
    def before_request(self, key: str) -> None:
        return None

    def on_success(self, key: str) -> None:
        return None

    def on_failure(self, key: str, error: ClassifiedError) -> None:
        return None


class NoopMetricsSink:
    def record_request(self, info: RequestMetrics) -> None:
        return None


class NoopTracingAdapter:
    def start_span(self, info: SpanInfo) -> None:
        return None

    def end_span(self, span: Any, outcome: RequestOutcome) -> None:
        return None
