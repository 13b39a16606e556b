"""Interceptor pipeline and the standard interceptors.

``before_send`` hooks run in registration order and may rewrite the request
for the upcoming attempt; raising from one aborts the whole logical request.
``after_response`` and ``on_error`` hooks run in reverse registration order
and only observe: their failures are logged and never change the retry
decision.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Sequence

from pydantic import BaseModel

from ._utils import maybe_await
from .headers import has_header
from .models import PreparedRequest
from .outcomes import AttemptContext, ClassifiedError, RawResponse

logger = logging.getLogger(__name__)


@dataclass
class BeforeSendContext:
    request: PreparedRequest
    attempt: AttemptContext


@dataclass(frozen=True)
class AfterResponseContext:
    request: PreparedRequest
    response: RawResponse
    classification: ClassifiedError
    attempt: int


@dataclass(frozen=True)
class ErrorContext:
    request: PreparedRequest
    error: ClassifiedError
    attempt: int
    response: RawResponse | None = None
    exception: BaseException | None = None


class Interceptor:
    """Base class; override any subset of the hooks (sync or async)."""

    def before_send(self, ctx: BeforeSendContext) -> Awaitable[None] | None:
        return None

    def after_response(self, ctx: AfterResponseContext) -> Awaitable[None] | None:
        return None

    def on_error(self, ctx: ErrorContext) -> Awaitable[None] | None:
        return None


class InterceptorPipeline:
    def __init__(self, interceptors: Sequence[Interceptor] = ()) -> None:
        self._interceptors = tuple(interceptors)

    def __len__(self) -> int:
        return len(self._interceptors)

    async def before_send(self, ctx: BeforeSendContext) -> None:
        for interceptor in self._interceptors:
            await maybe_await(interceptor.before_send(ctx))

    async def after_response(self, ctx: AfterResponseContext) -> None:
        for interceptor in reversed(self._interceptors):
            try:
                await maybe_await(interceptor.after_response(ctx))
            except Exception:
                logger.warning(
                    "interceptor.after_response.failed",
                    extra={"interceptor": type(interceptor).__name__, "operation": ctx.request.operation},
                    exc_info=True,
                )

    async def on_error(self, ctx: ErrorContext) -> None:
        for interceptor in reversed(self._interceptors):
            try:
                await maybe_await(interceptor.on_error(ctx))
            except Exception:
                logger.warning(
                    "interceptor.on_error.failed",
                    extra={"interceptor": type(interceptor).__name__, "operation": ctx.request.operation},
                    exc_info=True,
                )


def _bearer(token: str) -> str:
    return f"Bearer {token}"


class AuthInterceptor(Interceptor):
    """Adds an authorization header from a (possibly async) token provider."""

    def __init__(
        self,
        get_token: Callable[[], str | None | Awaitable[str | None]],
        *,
        header_name: str = "Authorization",
        format_token: Callable[[str], str] = _bearer,
    ) -> None:
        self._get_token = get_token
        self._header_name = header_name
        self._format_token = format_token

    async def before_send(self, ctx: BeforeSendContext) -> None:
        token = await maybe_await(self._get_token())
        if token:
            ctx.request.headers[self._header_name] = self._format_token(token)


class JsonBodyInterceptor(Interceptor):
    """Serializes mapping, sequence and pydantic bodies to JSON bytes."""

    def __init__(self, *, content_type: str = "application/json") -> None:
        self._content_type = content_type

    def before_send(self, ctx: BeforeSendContext) -> None:
        request = ctx.request
        body = request.body
        if body is None:
            return
        if isinstance(body, BaseModel):
            request.body = body.model_dump_json(exclude_none=True).encode()
        elif isinstance(body, (Mapping, list, tuple)):
            request.body = json.dumps(_jsonable(body), separators=(",", ":")).encode()
        if not has_header(request.headers, "content-type"):
            request.headers["Content-Type"] = self._content_type


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", exclude_none=True)
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


class IdempotencyKeyInterceptor(Interceptor):
    def __init__(self, *, header_name: str = "Idempotency-Key") -> None:
        self._header_name = header_name

    def before_send(self, ctx: BeforeSendContext) -> None:
        if ctx.request.idempotency_key:
            ctx.request.headers[self._header_name] = ctx.request.idempotency_key


class CorrelationHeadersInterceptor(Interceptor):
    def __init__(
        self,
        *,
        request_id_header: str = "X-Request-Id",
        correlation_id_header: str = "X-Correlation-Id",
    ) -> None:
        self._request_id_header = request_id_header
        self._correlation_id_header = correlation_id_header

    def before_send(self, ctx: BeforeSendContext) -> None:
        correlation = ctx.request.correlation
        if correlation.request_id:
            ctx.request.headers[self._request_id_header] = correlation.request_id
        if correlation.correlation_id:
            ctx.request.headers[self._correlation_id_header] = correlation.correlation_id
