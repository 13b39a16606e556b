"""Request and resilience models shared by the client and its collaborators."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator


class HttpMethod(str, Enum):
    GET = "GET"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"

    @classmethod
    def coerce(cls, value: HttpMethod | str) -> HttpMethod:
        if isinstance(value, HttpMethod):
            return value
        return cls(str(value).strip().upper())


SAFE_METHODS = frozenset({HttpMethod.GET, HttpMethod.HEAD, HttpMethod.OPTIONS})


class ErrorCategory(str, Enum):
    NONE = "none"
    AUTH = "auth"
    VALIDATION = "validation"
    QUOTA = "quota"
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    TRANSIENT = "transient"
    NETWORK = "network"
    CANCELED = "canceled"
    UNKNOWN = "unknown"
    DEADLINE_EXCEEDED = "deadline_exceeded"


class CacheMode(str, Enum):
    DEFAULT = "default"
    BYPASS = "bypass"
    REFRESH = "refresh"


class ParseMode(str, Enum):
    AUTO = "auto"
    JSON = "json"
    TEXT = "text"
    BYTES = "bytes"


class ResilienceProfile(BaseModel):
    """A layer of resilience settings; unset fields defer to lower layers.

    Layers are combined with :meth:`merge` (later layers win) and turned into
    concrete settings with :meth:`resolve`, which fills the hard-coded
    fallbacks. With nothing configured a request gets exactly one attempt.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_attempts: int | None = Field(default=None, ge=1)
    retry_enabled: bool | None = None
    per_attempt_timeout_ms: float | None = Field(default=None, gt=0)
    overall_timeout_ms: float | None = Field(default=None, gt=0)
    base_backoff_ms: float | None = Field(default=None, ge=0)
    max_backoff_ms: float | None = Field(default=None, ge=0)
    jitter_factor: float | None = Field(default=None, ge=0, le=1)
    retry_idempotent_methods: bool | None = None
    idempotent_methods: frozenset[HttpMethod] | None = None
    max_suggested_retry_delay_ms: float | None = Field(default=None, ge=0)

    @field_validator("idempotent_methods", mode="before")
    @classmethod
    def _coerce_methods(cls, value: Any) -> Any:
        if value is None:
            return None
        return frozenset(HttpMethod.coerce(item) for item in value)

    @classmethod
    def merge(cls, *layers: ResilienceProfile | None) -> ResilienceProfile:
        merged: dict[str, Any] = {}
        for layer in layers:
            if layer is None:
                continue
            merged.update(layer.model_dump(exclude_none=True))
        return cls.model_validate(merged)

    def resolve(self) -> ResolvedResilience:
        values = dict(RESILIENCE_FALLBACKS)
        values.update(self.model_dump(exclude_none=True))
        return ResolvedResilience.model_validate(values)


class ResolvedResilience(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    max_attempts: int = Field(ge=1)
    retry_enabled: bool
    per_attempt_timeout_ms: float | None = Field(default=None, gt=0)
    overall_timeout_ms: float = Field(gt=0)
    base_backoff_ms: float = Field(ge=0)
    max_backoff_ms: float = Field(ge=0)
    jitter_factor: float = Field(ge=0, le=1)
    retry_idempotent_methods: bool
    idempotent_methods: frozenset[HttpMethod]
    max_suggested_retry_delay_ms: float = Field(ge=0)


RESILIENCE_FALLBACKS: Mapping[str, Any] = {
    "max_attempts": 1,
    "retry_enabled": True,
    "per_attempt_timeout_ms": None,
    "overall_timeout_ms": 30_000.0,
    "base_backoff_ms": 250.0,
    "max_backoff_ms": 10_000.0,
    "jitter_factor": 0.2,
    "retry_idempotent_methods": True,
    # Added to GET/HEAD/OPTIONS; PUT and DELETE are opt-in.
    "idempotent_methods": frozenset(),
    "max_suggested_retry_delay_ms": 60_000.0,
}


@dataclass(frozen=True)
class Correlation:
    request_id: str | None = None
    correlation_id: str | None = None
    parent_correlation_id: str | None = None


@dataclass(frozen=True)
class CacheDirective:
    key: str
    mode: CacheMode = CacheMode.DEFAULT
    ttl_ms: float | None = None


@dataclass
class RequestSpec:
    """One logical request as described by the caller.

    Exactly one target form must be given: an absolute ``url``, or a ``path``
    joined onto ``base_url`` (or the client's base URL) with ``query``.
    """

    method: HttpMethod | str
    operation: str
    url: str | None = None
    path: str | None = None
    base_url: str | None = None
    query: Mapping[str, Any] | None = None
    headers: Mapping[str, str] | None = None
    body: Any = None
    correlation: Correlation | None = None
    resilience: ResilienceProfile | None = None
    idempotency_key: str | None = None
    cache: CacheDirective | None = None
    parse_as: ParseMode = ParseMode.AUTO
    extensions: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class PreparedRequest:
    """A fully resolved request; attempts work on copies from :meth:`for_attempt`."""

    method: HttpMethod
    url: str
    operation: str
    headers: dict[str, str]
    body: Any
    correlation: Correlation
    resilience: ResolvedResilience
    idempotency_key: str | None = None
    cache: CacheDirective | None = None
    parse_as: ParseMode = ParseMode.AUTO
    extensions: Mapping[str, Any] = field(default_factory=dict)
    attempt: int = 0

    @property
    def key(self) -> str:
        return f"{self.method.value}:{self.operation}"

    def for_attempt(self, attempt: int) -> PreparedRequest:
        return replace(self, headers=dict(self.headers), attempt=attempt)
