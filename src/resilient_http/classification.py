"""Mapping of attempt results onto retry-relevant error categories."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Protocol

import httpx

from .exceptions import RequestAbortedError
from .headers import parse_retry_after
from .models import ErrorCategory, HttpMethod, PreparedRequest
from .outcomes import ClassifiedError, FallbackHint, RawResponse

RETRYABLE_CATEGORIES = frozenset(
    {
        ErrorCategory.RATE_LIMIT,
        ErrorCategory.TRANSIENT,
        ErrorCategory.NETWORK,
        ErrorCategory.TIMEOUT,
    }
)

_TIMEOUT_MARKERS = ("timeout", "timed out")


@dataclass(frozen=True)
class ClassificationContext:
    """What a classifier sees: the response or the raised error, never both."""

    attempt: int
    request: PreparedRequest
    response: RawResponse | None = None
    error: BaseException | None = None


class ErrorClassifier(Protocol):
    def classify(
        self, context: ClassificationContext
    ) -> ClassifiedError | None | Awaitable[ClassifiedError | None]:
        """Return a classification, or ``None`` to use the default rules."""
        ...


def classify_status(response: RawResponse) -> ClassifiedError:
    status = response.status
    if 200 <= status < 300:
        return ClassifiedError(ErrorCategory.NONE, status=status)
    if status in {401, 403}:
        return ClassifiedError(ErrorCategory.AUTH, status=status, reason=f"HTTP {status}")
    if status in {400, 404, 422}:
        return ClassifiedError(ErrorCategory.VALIDATION, status=status, reason=f"HTTP {status}")
    if status == 402:
        return ClassifiedError(ErrorCategory.QUOTA, status=status, reason="HTTP 402")
    if status == 429:
        return ClassifiedError(
            ErrorCategory.RATE_LIMIT,
            status=status,
            reason="HTTP 429",
            fallback=FallbackHint(retry_after_ms=parse_retry_after(response.header("retry-after"))),
        )
    if status == 408:
        return ClassifiedError(ErrorCategory.TIMEOUT, status=status, reason="HTTP 408")
    if 500 <= status < 600 and status not in {501, 505}:
        return ClassifiedError(
            ErrorCategory.TRANSIENT,
            status=status,
            reason=f"HTTP {status}",
            fallback=FallbackHint(retry_after_ms=parse_retry_after(response.header("retry-after"))),
        )
    return ClassifiedError(ErrorCategory.UNKNOWN, status=status, reason=f"HTTP {status}")


def classify_exception(error: BaseException) -> ClassifiedError:
    reason = str(error) or type(error).__name__
    if isinstance(error, (asyncio.CancelledError, RequestAbortedError)):
        return ClassifiedError(ErrorCategory.CANCELED, reason=reason)
    if isinstance(error, (TimeoutError, asyncio.TimeoutError, httpx.TimeoutException)):
        return ClassifiedError(ErrorCategory.TIMEOUT, reason=reason)
    if any(marker in reason.lower() for marker in _TIMEOUT_MARKERS):
        return ClassifiedError(ErrorCategory.TIMEOUT, reason=reason)
    return ClassifiedError(ErrorCategory.NETWORK, reason=reason)


def default_classify(
    method: HttpMethod,
    *,
    response: RawResponse | None = None,
    error: BaseException | None = None,
) -> ClassifiedError:
    """Classify one attempt from its status code or the exception the transport raised.

    ``method`` is part of the signature so that method-sensitive rules can be
    layered on top; the built-in table does not depend on it.
    """
    if error is not None:
        return classify_exception(error)
    if response is None:
        return ClassifiedError(ErrorCategory.UNKNOWN, reason="attempt produced no response")
    return classify_status(response)


class DefaultErrorClassifier:
    def classify(self, context: ClassificationContext) -> ClassifiedError:
        return default_classify(context.request.method, response=context.response, error=context.error)


def is_retryable(classification: ClassifiedError) -> bool:
    """An explicit hint always wins over the category."""
    if classification.fallback.retryable is not None:
        return classification.fallback.retryable
    return classification.category in RETRYABLE_CATEGORIES
