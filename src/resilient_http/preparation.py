"""Turns a caller-supplied RequestSpec into a PreparedRequest."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Mapping
from urllib.parse import urlparse

import httpx
from pydantic import ValidationError

from ._utils import new_id
from .exceptions import ConfigurationError
from .headers import merge_headers
from .models import Correlation, HttpMethod, PreparedRequest, RequestSpec, ResilienceProfile

_LOCAL_HOSTS = {"localhost", "127.0.0.1", "::1"}


@dataclass(frozen=True)
class ClientDefaults:
    base_url: str | None = None
    headers: Mapping[str, str] = field(default_factory=dict)
    resilience: ResilienceProfile | None = None
    operation_resilience: Mapping[str, ResilienceProfile] = field(default_factory=dict)
    resolve_base_url: Callable[[RequestSpec], str | None] | None = None
    allow_http: bool = False


def validate_base_url(url: str, *, allow_http: bool = False) -> str:
    """Validate a base URL and return it without trailing slashes."""
    if "\x00" in url:
        raise ConfigurationError("Invalid base_url")
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        raise ConfigurationError("base_url must include scheme and host")
    if parsed.scheme not in {"http", "https"}:
        raise ConfigurationError(f"Unsupported base_url scheme: {parsed.scheme}")
    if parsed.scheme == "http" and not allow_http:
        host = (parsed.hostname or "").lower()
        if host not in _LOCAL_HOSTS:
            raise ConfigurationError("Non-HTTPS base_url is not allowed without allow_http=True")
    return url.rstrip("/")


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def coerce_query_params(query: Mapping[str, Any] | None) -> list[tuple[str, str]]:
    """Flatten query values: sequences repeat the key, ``None`` is dropped."""
    if not query:
        return []
    params: list[tuple[str, str]] = []
    for key, value in query.items():
        if value is None:
            continue
        values = value if isinstance(value, (list, tuple, set, frozenset)) else (value,)
        for item in values:
            if item is None:
                continue
            params.append((str(key), _query_value(item)))
    return params


def _with_query(target: str, query: Mapping[str, Any] | None) -> str:
    params = coerce_query_params(query)
    url = httpx.URL(target)
    if params:
        url = url.copy_merge_params(params)
    return str(url)


def build_url(spec: RequestSpec, defaults: ClientDefaults) -> str:
    if spec.url is None and spec.path is None:
        raise ConfigurationError("Request needs either url or path", operation=spec.operation)
    if spec.url is not None and spec.path is not None:
        raise ConfigurationError("Request must not set both url and path", operation=spec.operation)

    if spec.url is not None:
        parsed = urlparse(spec.url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ConfigurationError(f"url must be absolute: {spec.url!r}", operation=spec.operation)
        return _with_query(spec.url, spec.query)

    path = spec.path or ""
    if "://" in path:
        raise ConfigurationError("Full URLs belong in url, not path", operation=spec.operation)
    if "\x00" in path:
        raise ConfigurationError("Invalid path characters", operation=spec.operation)

    base = spec.base_url
    if base is None and defaults.resolve_base_url is not None:
        base = defaults.resolve_base_url(spec)
    if base is None:
        base = defaults.base_url
    if not base:
        raise ConfigurationError(
            "No base_url configured and request path is not an absolute URL",
            operation=spec.operation,
        )
    base = validate_base_url(base, allow_http=defaults.allow_http)
    return _with_query(f"{base}/{path.lstrip('/')}", spec.query)


def prepare_request(spec: RequestSpec, defaults: ClientDefaults) -> PreparedRequest:
    """Resolve ids, URL, headers and resilience; raises before any network activity."""
    if not spec.operation:
        raise ConfigurationError("Request operation name is required")
    try:
        method = HttpMethod.coerce(spec.method)
    except ValueError as exc:
        raise ConfigurationError(
            f"Unsupported HTTP method: {spec.method!r}", operation=spec.operation, cause=exc
        ) from exc

    url = build_url(spec, defaults)

    given = spec.correlation or Correlation()
    request_id = given.request_id or new_id()
    correlation = Correlation(
        request_id=request_id,
        correlation_id=given.correlation_id or request_id,
        parent_correlation_id=given.parent_correlation_id,
    )

    try:
        resilience = ResilienceProfile.merge(
            defaults.resilience,
            defaults.operation_resilience.get(spec.operation),
            spec.resilience,
        ).resolve()
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid resilience profile: {exc}",
            operation=spec.operation,
            request_id=request_id,
            cause=exc,
        ) from exc

    return PreparedRequest(
        method=method,
        url=url,
        operation=spec.operation,
        headers=merge_headers(defaults.headers, spec.headers),
        body=spec.body,
        correlation=correlation,
        resilience=resilience,
        idempotency_key=spec.idempotency_key,
        cache=spec.cache,
        parse_as=spec.parse_as,
        extensions=dict(spec.extensions),
    )
