"""Value types produced while executing a logical request."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Mapping

from .models import ErrorCategory, ParseMode

if TYPE_CHECKING:
    from .models import PreparedRequest


@dataclass(frozen=True)
class FallbackHint:
    """Classifier hint; an explicit ``retryable`` overrides the category."""

    retry_after_ms: float | None = None
    retryable: bool | None = None


@dataclass(frozen=True)
class ClassifiedError:
    category: ErrorCategory
    status: int | None = None
    reason: str | None = None
    fallback: FallbackHint = field(default_factory=FallbackHint)

    @property
    def is_error(self) -> bool:
        return self.category is not ErrorCategory.NONE


@dataclass(frozen=True)
class RateLimitFeedback:
    request_remaining: int | None = None
    request_limit: int | None = None
    request_reset_ms: float | None = None
    token_remaining: int | None = None
    token_limit: int | None = None
    token_reset_ms: float | None = None

    @property
    def is_rate_limited(self) -> bool:
        return self.request_remaining == 0 or self.token_remaining == 0


@dataclass(frozen=True)
class RequestOutcome:
    ok: bool
    status: int | None
    category: ErrorCategory
    attempts: int
    started_at: datetime
    finished_at: datetime
    duration_ms: float
    rate_limit: RateLimitFeedback | None = None
    cache_hit: bool = False


@dataclass
class AttemptContext:
    attempt: int
    abort: asyncio.Event
    deadline_remaining_ms: float
    timeout_ms: float

    @property
    def aborted(self) -> bool:
        return self.abort.is_set()


@dataclass(frozen=True)
class RawResponse:
    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str) -> str | None:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None

    @property
    def content_type(self) -> str:
        return (self.header("content-type") or "").lower()

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        if not self.body:
            return None
        return json.loads(self.body)

    def parse(self, parse_as: ParseMode = ParseMode.AUTO) -> Any:
        if parse_as is ParseMode.BYTES:
            return self.body
        if parse_as is ParseMode.TEXT:
            return self.text
        if parse_as is ParseMode.JSON:
            return self.json()
        if self.status == 204 or not self.body:
            return None
        if "json" not in self.content_type:
            return self.text
        try:
            return self.json()
        except ValueError:
            return self.text


@dataclass(frozen=True)
class ExecutionResult:
    value: Any
    response: RawResponse | None
    outcome: RequestOutcome
    request: PreparedRequest
