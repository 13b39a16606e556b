"""Resilient HTTP request execution for the market-data ingestion clients."""

from .backoff import RetryDecision, compute_backoff_ms, is_idempotent, should_retry
from .classification import (
    RETRYABLE_CATEGORIES,
    ClassificationContext,
    DefaultErrorClassifier,
    ErrorClassifier,
    default_classify,
    is_retryable,
)
from .client import ResilientHttpClient
from .collaborators import (
    Cache,
    CacheEntry,
    CircuitBreaker,
    InMemoryCache,
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
    AuthError,
    CircuitOpenError,
    ConfigurationError,
    DeadlineExceededError,
    NetworkError,
    QuotaExceededError,
    RateLimitError,
    RequestAbortedError,
    RequestCanceledError,
    RequestError,
    RequestTimeoutError,
    RequestValidationError,
    ResilientHttpError,
    TransientServerError,
    UnknownRequestError,
)
from .interceptors import (
    AfterResponseContext,
    AuthInterceptor,
    BeforeSendContext,
    CorrelationHeadersInterceptor,
    ErrorContext,
    IdempotencyKeyInterceptor,
    Interceptor,
    InterceptorPipeline,
    JsonBodyInterceptor,
)
from .models import (
    CacheDirective,
    CacheMode,
    Correlation,
    ErrorCategory,
    HttpMethod,
    ParseMode,
    PreparedRequest,
    RequestSpec,
    ResilienceProfile,
    ResolvedResilience,
)
from .outcomes import (
    AttemptContext,
    ClassifiedError,
    ExecutionResult,
    FallbackHint,
    RateLimitFeedback,
    RawResponse,
    RequestOutcome,
)
from .pagination import PaginationResult, PaginationState, cursor, offset_limit, paginate_all, paginate_iter
from .tracing import OpenTelemetryTracingAdapter
from .transport import HttpxTransport, Transport

__all__ = [
    "AdmissionDeniedError",
    "AfterResponseContext",
    "AttemptContext",
    "AuthError",
    "AuthInterceptor",
    "BeforeSendContext",
    "Cache",
    "CacheDirective",
    "CacheEntry",
    "CacheMode",
    "CircuitBreaker",
    "CircuitOpenError",
    "ClassificationContext",
    "ClassifiedError",
    "ConfigurationError",
    "Correlation",
    "CorrelationHeadersInterceptor",
    "DeadlineExceededError",
    "DefaultErrorClassifier",
    "ErrorCategory",
    "ErrorClassifier",
    "ErrorContext",
    "ExecutionResult",
    "FallbackHint",
    "HttpMethod",
    "HttpxTransport",
    "IdempotencyKeyInterceptor",
    "InMemoryCache",
    "Interceptor",
    "InterceptorPipeline",
    "JsonBodyInterceptor",
    "MetricsSink",
    "NetworkError",
    "NoopCache",
    "NoopCircuitBreaker",
    "NoopMetricsSink",
    "NoopRateLimiter",
    "NoopTracingAdapter",
    "OpenTelemetryTracingAdapter",
    "PaginationResult",
    "PaginationState",
    "ParseMode",
    "PreparedRequest",
    "QuotaExceededError",
    "RETRYABLE_CATEGORIES",
    "RateLimitError",
    "RateLimitFeedback",
    "RateLimiter",
    "RateLimiterContext",
    "RawResponse",
    "RequestAbortedError",
    "RequestCanceledError",
    "RequestError",
    "RequestMetrics",
    "RequestOutcome",
    "RequestSpec",
    "RequestTimeoutError",
    "RequestValidationError",
    "ResilienceProfile",
    "ResilientHttpClient",
    "ResilientHttpError",
    "ResolvedResilience",
    "RetryDecision",
    "SpanInfo",
    "TracingAdapter",
    "TransientServerError",
    "Transport",
    "UnknownRequestError",
    "compute_backoff_ms",
    "cursor",
    "default_classify",
    "is_idempotent",
    "is_retryable",
    "offset_limit",
    "paginate_all",
    "paginate_iter",
    "should_retry",
]
