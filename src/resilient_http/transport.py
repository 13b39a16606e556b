"""Transports send one fully formed request and return the raw response."""

from __future__ import annotations

from typing import Protocol

import httpx

from .exceptions import RequestAbortedError
from .models import PreparedRequest
from .outcomes import AttemptContext, RawResponse


class Transport(Protocol):
    async def send(self, request: PreparedRequest, context: AttemptContext) -> RawResponse:
        """Send ``request``; must give up once ``context.abort`` is set."""
        ...


class HttpxTransport:
    """Transport over an ``httpx.AsyncClient``.

    A client passed in stays owned by the caller; otherwise one is created
    here and closed by :meth:`aclose`.
    """

    def __init__(
        self,
        httpx_client: httpx.AsyncClient | None = None,
        *,
        follow_redirects: bool = True,
    ) -> None:
        self._owns_client = httpx_client is None
        self._httpx = httpx_client or httpx.AsyncClient(
            follow_redirects=follow_redirects,
            trust_env=False,
            timeout=None,
        )

    async def send(self, request: PreparedRequest, context: AttemptContext) -> RawResponse:
        if context.aborted:
            raise RequestAbortedError("attempt aborted before send", operation=request.operation)
        timeout = context.timeout_ms / 1000.0 if context.timeout_ms > 0 else None
        response = await self._httpx.request(
            request.method.value,
            request.url,
            headers=request.headers,
            content=request.body,
            timeout=timeout,
        )
        if context.aborted:
            raise RequestAbortedError("attempt aborted while in flight", operation=request.operation)
        return RawResponse(
            status=response.status_code,
            headers=dict(response.headers),
            body=response.content,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._httpx.aclose()
