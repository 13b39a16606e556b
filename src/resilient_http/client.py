"""Asynchronous resilient HTTP client.

One call to :meth:`ResilientHttpClient.send` is one logical request: it is
prepared once, answered from the cache when possible, and otherwise driven
through attempts (interceptors, circuit breaker, rate limiter, transport,
classification) until it succeeds, runs out of attempts or runs out of time.
Metrics and tracing see exactly one record per logical request.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Mapping, Sequence

from ._utils import epoch_ms, maybe_await
from .backoff import compute_backoff_ms, should_retry
from .classification import ClassificationContext, DefaultErrorClassifier, ErrorClassifier
from .collaborators import (
    Cache,
    CacheEntry,
    CircuitBreaker,
    MetricsSink,
    NoopCache,
    NoopCircuitBreaker,
    NoopMetricsSink,
    NoopRateLimiter,
    NoopTracingAdapter,
    RateLimiter,
    RateLimiterContext,
    RequestMetrics,
    SpanInfo,
    TracingAdapter,
)
from .exceptions import (
    AdmissionDeniedError,
    ConfigurationError,
    DeadlineExceededError,
    RequestError,
    error_class_for,
)
from .headers import parse_rate_limit_feedback, sanitize_headers
from .interceptors import (
    AfterResponseContext,
    BeforeSendContext,
    ErrorContext,
    Interceptor,
    InterceptorPipeline,
)
from .models import (
    CacheMode,
    ErrorCategory,
    ParseMode,
    PreparedRequest,
    RequestSpec,
    ResilienceProfile,
)
from .outcomes import (
    AttemptContext,
    ClassifiedError,
    ExecutionResult,
    RateLimitFeedback,
    RawResponse,
    RequestOutcome,
)
from .preparation import ClientDefaults, prepare_request, validate_base_url
from .transport import HttpxTransport, Transport

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_MS = 60_000.0


def _discard_result(task: asyncio.Future[Any]) -> None:
    if not task.cancelled():
        task.exception()


@dataclass
class _RequestState:
    started_at: datetime
    started: float
    deadline: float
    attempts: int = 0
    status: int | None = None
    rate_limit: RateLimitFeedback | None = None

    def remaining_ms(self) -> float:
        return (self.deadline - time.monotonic()) * 1000.0

    def outcome(self, *, ok: bool, category: ErrorCategory, cache_hit: bool = False) -> RequestOutcome:
        return RequestOutcome(
            ok=ok,
            status=self.status,
            category=category,
            attempts=self.attempts,
            started_at=self.started_at,
            finished_at=datetime.now(timezone.utc),
            duration_ms=(time.monotonic() - self.started) * 1000.0,
            rate_limit=self.rate_limit,
            cache_hit=cache_hit,
        )


@dataclass
class _AttemptResult:
    response: RawResponse | None = None
    error: BaseException | None = None
    timed_out: bool = False


class ResilientHttpClient:
    """Caller-owned client; close it with ``aclose()`` or ``async with``."""

    default_headers: Mapping[str, str] = {
        "Accept": "application/json",
        "User-Agent": "resilient-http/0.1.0",
    }

    def __init__(
        self,
        *,
        client_name: str = "resilient-http",
        base_url: str | None = None,
        transport: Transport | None = None,
        default_headers: Mapping[str, str] | None = None,
        default_resilience: ResilienceProfile | None = None,
        operation_resilience: Mapping[str, ResilienceProfile] | None = None,
        classifier: ErrorClassifier | None = None,
        interceptors: Sequence[Interceptor] = (),
        cache: Cache | None = None,
        rate_limiter: RateLimiter | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        metrics: MetricsSink | None = None,
        tracing: TracingAdapter | None = None,
        default_cache_ttl_ms: float = DEFAULT_CACHE_TTL_MS,
        resolve_base_url: Callable[[RequestSpec], str | None] | None = None,
        allow_http: bool = False,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if not client_name:
            raise ConfigurationError("client_name must not be empty")
        if default_cache_ttl_ms <= 0:
            raise ConfigurationError("default_cache_ttl_ms must be greater than 0")
        self.client_name = client_name
        self.base_url = validate_base_url(base_url, allow_http=allow_http) if base_url else None
        headers = dict(self.default_headers)
        if default_headers:
            headers.update({str(key): str(value) for key, value in default_headers.items()})
        self._defaults = ClientDefaults(
            base_url=self.base_url,
            headers=headers,
            resilience=default_resilience,
            operation_resilience=dict(operation_resilience or {}),
            resolve_base_url=resolve_base_url,
            allow_http=allow_http,
        )
        self._owns_transport = transport is None
        self._transport: Transport = transport or HttpxTransport()
        self._classifier = classifier
        self._default_classifier = DefaultErrorClassifier()
        self._pipeline = InterceptorPipeline(interceptors)
        self._cache: Cache = cache or NoopCache()
        self._rate_limiter: RateLimiter = rate_limiter or NoopRateLimiter()
        self._circuit_breaker: CircuitBreaker = circuit_breaker or NoopCircuitBreaker()
        self._metrics: MetricsSink = metrics or NoopMetricsSink()
        self._tracing: TracingAdapter = tracing or NoopTracingAdapter()
        self._default_cache_ttl_ms = float(default_cache_ttl_ms)
        self._sleep = sleep

    async def __aenter__(self) -> "ResilientHttpClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_transport and isinstance(self._transport, HttpxTransport):
            await self._transport.aclose()

    def prepare(self, spec: RequestSpec) -> PreparedRequest:
        return prepare_request(spec, self._defaults)

    async def execute(self, spec: RequestSpec) -> Any:
        """Run one logical request and return its parsed body."""
        result = await self.send(spec)
        return result.value

    async def request_json(self, spec: RequestSpec) -> Any:
        return await self.execute(replace(spec, parse_as=ParseMode.JSON))

    async def request_text(self, spec: RequestSpec) -> str:
        return await self.execute(replace(spec, parse_as=ParseMode.TEXT))

    async def request_bytes(self, spec: RequestSpec) -> bytes:
        return await self.execute(replace(spec, parse_as=ParseMode.BYTES))

    async def send(self, spec: RequestSpec) -> ExecutionResult:
        """Run one logical request and return its value, raw response and outcome."""
        prepared = self.prepare(spec)
        started = time.monotonic()
        state = _RequestState(
            started_at=datetime.now(timezone.utc),
            started=started,
            deadline=started + prepared.resilience.overall_timeout_ms / 1000.0,
        )
        span = self._start_span(prepared)

        cached = await self._read_cache(prepared)
        if cached is not None:
            logger.debug("http.cache.hit", extra=self._log_extra(prepared))
            outcome = state.outcome(ok=True, category=ErrorCategory.NONE, cache_hit=True)
            await self._finish(prepared, span, outcome)
            return ExecutionResult(value=cached.value, response=None, outcome=outcome, request=prepared)

        try:
            result = await self._attempt_loop(prepared, state)
        except RequestError as exc:
            await self._finish(prepared, span, exc.outcome or state.outcome(ok=False, category=ErrorCategory.UNKNOWN))
            raise
        except BaseException as exc:
            category = ErrorCategory.CANCELED if isinstance(exc, asyncio.CancelledError) else ErrorCategory.UNKNOWN
            logger.warning(
                "http.request.aborted",
                extra=self._log_extra(prepared, attempt=state.attempts, error=type(exc).__name__),
            )
            await self._finish(prepared, span, state.outcome(ok=False, category=category))
            raise

        await self._write_cache(prepared, result.value)
        await self._finish(prepared, span, result.outcome)
        return result

    async def _attempt_loop(self, prepared: PreparedRequest, state: _RequestState) -> ExecutionResult:
        attempt = 0
        last: tuple[ClassifiedError, _AttemptResult] | None = None
        while True:
            remaining_ms = state.remaining_ms()
            if remaining_ms <= 0:
                raise self._deadline_error(prepared, state, last)

            attempt += 1
            request = prepared.for_attempt(attempt)
            context = AttemptContext(
                attempt=attempt,
                abort=asyncio.Event(),
                deadline_remaining_ms=remaining_ms,
                timeout_ms=remaining_ms,
            )
            limiter_context = RateLimiterContext(
                client_name=self.client_name,
                operation=request.operation,
                method=request.method,
                attempt=attempt,
                request_id=request.correlation.request_id,
                extensions=request.extensions,
            )

            await self._pipeline.before_send(BeforeSendContext(request=request, attempt=context))
            if request.body is not None and not isinstance(request.body, (bytes, bytearray, str)):
                raise ConfigurationError(
                    f"Request body of type {type(request.body).__name__} must be serialized by an interceptor",
                    operation=request.operation,
                    request_id=request.correlation.request_id,
                )
            await maybe_await(self._circuit_breaker.before_request(request.key))
            await self._throttle(request, limiter_context)

            # Throttling may have suspended; the timeout covers what is left.
            remaining_ms = state.remaining_ms()
            per_attempt = request.resilience.per_attempt_timeout_ms
            timeout_is_deadline = per_attempt is None or per_attempt >= remaining_ms
            context.deadline_remaining_ms = remaining_ms
            context.timeout_ms = remaining_ms if timeout_is_deadline else per_attempt
            if remaining_ms <= 0:
                raise self._deadline_error(prepared, state, last)

            logger.debug(
                "http.request.attempt",
                extra=self._log_extra(
                    request,
                    attempt=attempt,
                    max_attempts=request.resilience.max_attempts,
                    headers=sanitize_headers(request.headers),
                ),
            )
            state.attempts = attempt
            result = await self._send_attempt(request, context)
            if result.response is not None:
                state.status = result.response.status
                state.rate_limit = parse_rate_limit_feedback(result.response.headers) or state.rate_limit
            classification = await self._classify(request, attempt, result)

            if result.response is not None and not classification.is_error:
                await self._pipeline.after_response(
                    AfterResponseContext(
                        request=request.for_attempt(attempt),
                        response=result.response,
                        classification=classification,
                        attempt=attempt,
                    )
                )
                await self._call_optional(
                    "rate_limiter.on_success", request, self._rate_limiter.on_success, request.key, limiter_context
                )
                await self._call_optional(
                    "circuit_breaker.on_success", request, self._circuit_breaker.on_success, request.key
                )
                value = result.response.parse(request.parse_as)
                outcome = state.outcome(ok=True, category=ErrorCategory.NONE)
                logger.info(
                    "http.request.success",
                    extra=self._log_extra(
                        request, attempt=attempt, status=result.response.status, duration_ms=outcome.duration_ms
                    ),
                )
                return ExecutionResult(value=value, response=result.response, outcome=outcome, request=request)

            last = (classification, result)
            await self._pipeline.on_error(
                ErrorContext(
                    request=request.for_attempt(attempt),
                    error=classification,
                    attempt=attempt,
                    response=result.response,
                    exception=result.error,
                )
            )
            await self._call_optional(
                "rate_limiter.on_error",
                request,
                self._rate_limiter.on_error,
                request.key,
                classification,
                limiter_context,
            )
            await self._call_optional(
                "circuit_breaker.on_failure", request, self._circuit_breaker.on_failure, request.key, classification
            )

            remaining_ms = state.remaining_ms()
            decision = should_retry(request, classification, attempt, remaining_ms)
            failure_extra = self._log_extra(
                request,
                attempt=attempt,
                status=classification.status,
                category=classification.category.value,
                reason=classification.reason,
            )
            if decision.retry:
                delay_ms = min(compute_backoff_ms(attempt, classification, request.resilience), remaining_ms)
                logger.warning("http.request.retry", extra={**failure_extra, "delay_ms": delay_ms})
                if delay_ms > 0:
                    await self._sleep(delay_ms / 1000.0)
                continue

            logger.error("http.request.failed", extra={**failure_extra, "decision": decision.reason})
            if decision.deadline_bound or (result.timed_out and timeout_is_deadline):
                raise self._deadline_error(prepared, state, last)
            raise self._request_error(request, state, classification, result)

    async def _send_attempt(self, request: PreparedRequest, context: AttemptContext) -> _AttemptResult:
        task = asyncio.ensure_future(self._transport.send(request, context))
        try:
            done, _ = await asyncio.wait({task}, timeout=context.timeout_ms / 1000.0)
        except asyncio.CancelledError:
            context.abort.set()
            task.cancel()
            raise
        if not done:
            # Abandoned: the transport is told to stop but is not waited for.
            context.abort.set()
            task.cancel()
            task.add_done_callback(_discard_result)
            return _AttemptResult(
                error=TimeoutError(f"attempt {context.attempt} timed out after {context.timeout_ms:.0f}ms"),
                timed_out=True,
            )
        if task.cancelled():
            return _AttemptResult(error=asyncio.CancelledError())
        error = task.exception()
        if error is not None:
            return _AttemptResult(error=error)
        return _AttemptResult(response=task.result())

    async def _classify(self, request: PreparedRequest, attempt: int, result: _AttemptResult) -> ClassifiedError:
        context = ClassificationContext(
            attempt=attempt,
            request=request,
            response=None if result.error is not None else result.response,
            error=result.error,
        )
        classification: ClassifiedError | None = None
        if self._classifier is not None:
            try:
                classification = await maybe_await(self._classifier.classify(context))
            except Exception:
                logger.warning("classifier.failed", extra=self._log_extra(request, attempt=attempt), exc_info=True)
        if classification is None:
            classification = self._default_classifier.classify(context)
        return classification

    async def _throttle(self, request: PreparedRequest, context: RateLimiterContext) -> None:
        """Limiter failures are fail-open unless it raises AdmissionDeniedError; breaker failures always deny."""
        try:
            await maybe_await(self._rate_limiter.throttle(request.key, context))
        except AdmissionDeniedError:
            raise
        except Exception:
            logger.warning("rate_limiter.throttle.failed", extra=self._log_extra(request), exc_info=True)

    async def _call_optional(
        self, name: str, request: PreparedRequest, hook: Callable[..., Any], *args: Any
    ) -> None:
        """Run a feedback or bookkeeping hook; its failures are logged, never raised."""
        try:
            await maybe_await(hook(*args))
        except Exception:
            logger.warning("collaborator.hook.failed", extra=self._log_extra(request, hook=name), exc_info=True)

    async def _read_cache(self, request: PreparedRequest) -> CacheEntry | None:
        directive = request.cache
        if directive is None or directive.mode is not CacheMode.DEFAULT:
            return None
        try:
            entry = await maybe_await(self._cache.get(directive.key))
        except Exception:
            logger.warning("http.cache.get.error", extra=self._log_extra(request), exc_info=True)
            return None
        if entry is None:
            return None
        if entry.is_expired():
            delete = getattr(self._cache, "delete", None)
            if callable(delete):
                await self._call_optional("cache.delete", request, delete, directive.key)
            return None
        return entry

    async def _write_cache(self, request: PreparedRequest, value: Any) -> None:
        directive = request.cache
        if directive is None or directive.mode is CacheMode.BYPASS:
            return
        ttl_ms = directive.ttl_ms if directive.ttl_ms is not None else self._default_cache_ttl_ms
        try:
            await maybe_await(self._cache.set(directive.key, CacheEntry(value=value, expires_at=epoch_ms() + ttl_ms)))
        except Exception:
            logger.warning("http.cache.set.error", extra=self._log_extra(request), exc_info=True)

    def _start_span(self, request: PreparedRequest) -> Any:
        try:
            return self._tracing.start_span(
                SpanInfo(
                    client_name=self.client_name,
                    operation=request.operation,
                    method=request.method,
                    url=request.url,
                    correlation=request.correlation,
                    extensions=request.extensions,
                )
            )
        except Exception:
            logger.warning("tracing.start_span.failed", extra=self._log_extra(request), exc_info=True)
            return None

    async def _finish(self, request: PreparedRequest, span: Any, outcome: RequestOutcome) -> None:
        info = RequestMetrics(
            client_name=self.client_name,
            operation=request.operation,
            method=request.method,
            url=request.url,
            correlation=request.correlation,
            outcome=outcome,
            extensions=request.extensions,
        )
        await self._call_optional("metrics.record_request", request, self._metrics.record_request, info)
        if span is not None:
            try:
                self._tracing.end_span(span, outcome)
            except Exception:
                logger.warning("tracing.end_span.failed", extra=self._log_extra(request), exc_info=True)

    def _request_error(
        self,
        request: PreparedRequest,
        state: _RequestState,
        classification: ClassifiedError,
        result: _AttemptResult,
    ) -> RequestError:
        outcome = state.outcome(ok=False, category=classification.category)
        error_cls = error_class_for(classification.category.value)
        body = result.response.parse(ParseMode.AUTO) if result.response is not None else None
        return error_cls(
            classification.reason or f"{request.operation} failed",
            category=classification.category.value,
            status_code=classification.status,
            reason=classification.reason,
            attempts=state.attempts,
            outcome=outcome,
            body=body,
            headers=result.response.headers if result.response is not None else None,
            retry_after_ms=classification.fallback.retry_after_ms,
            operation=request.operation,
            request_id=request.correlation.request_id,
            correlation_id=request.correlation.correlation_id,
            parent_correlation_id=request.correlation.parent_correlation_id,
            cause=result.error,
        )

    def _deadline_error(
        self,
        request: PreparedRequest,
        state: _RequestState,
        last: tuple[ClassifiedError, _AttemptResult] | None,
    ) -> DeadlineExceededError:
        outcome = state.outcome(ok=False, category=ErrorCategory.DEADLINE_EXCEEDED)
        classification, result = last if last is not None else (None, _AttemptResult())
        return DeadlineExceededError(
            f"{request.operation} exceeded its {request.resilience.overall_timeout_ms:.0f}ms deadline",
            category=ErrorCategory.DEADLINE_EXCEEDED.value,
            status_code=classification.status if classification is not None else None,
            reason=classification.reason if classification is not None else None,
            attempts=state.attempts,
            outcome=outcome,
            headers=result.response.headers if result.response is not None else None,
            operation=request.operation,
            request_id=request.correlation.request_id,
            correlation_id=request.correlation.correlation_id,
            parent_correlation_id=request.correlation.parent_correlation_id,
            cause=result.error,
        )

    def _log_extra(self, request: PreparedRequest, **extra: Any) -> dict[str, Any]:
        return {
            "client": self.client_name,
            "operation": request.operation,
            "method": request.method.value,
            "request_id": request.correlation.request_id,
            **extra,
        }
