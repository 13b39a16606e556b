"""Exceptions raised by the resilient HTTP client."""

from __future__ import annotations

from typing import TYPE_CHECKING, Mapping

if TYPE_CHECKING:
    from .outcomes import RequestOutcome


class ResilientHttpError(Exception):
    """Base exception for all resilient HTTP client failures."""

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        request_id: str | None = None,
        correlation_id: str | None = None,
        parent_correlation_id: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.request_id = request_id
        self.correlation_id = correlation_id
        self.parent_correlation_id = parent_correlation_id
        self.cause = cause


class ConfigurationError(ResilientHttpError):
    """Raised for malformed requests or client configuration, before any network activity."""


class AdmissionDeniedError(ResilientHttpError):
    """Raised by a fail-closed collaborator to refuse a request."""


class CircuitOpenError(AdmissionDeniedError):
    """Raised by circuit breakers that refuse traffic for an operation key."""


class RequestAbortedError(ResilientHttpError):
    """Raised by transports when the attempt's abort signal fired."""


class RequestError(ResilientHttpError):
    """Terminal failure of a logical request after classification and retries."""

    def __init__(
        self,
        message: str,
        *,
        category: str,
        status_code: int | None = None,
        reason: str | None = None,
        attempts: int = 0,
        outcome: RequestOutcome | None = None,
        body: object = None,
        headers: Mapping[str, str] | None = None,
        retry_after_ms: float | None = None,
        operation: str | None = None,
        request_id: str | None = None,
        correlation_id: str | None = None,
        parent_correlation_id: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(
            message,
            operation=operation,
            request_id=request_id,
            correlation_id=correlation_id,
            parent_correlation_id=parent_correlation_id,
            cause=cause,
        )
        self.category = category
        self.status_code = status_code
        self.reason = reason
        self.attempts = attempts
        self.outcome = outcome
        self.body = body
        self.headers = dict(headers) if headers is not None else {}
        self.retry_after_ms = retry_after_ms

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        parts = [self.category]
        if self.status_code is not None:
            parts.append(str(self.status_code))
        return " ".join(parts) + f": {self.args[0]} (attempts={self.attempts})"


class AuthError(RequestError):
    """Raised for authentication and authorization failures."""


class RequestValidationError(RequestError):
    """Raised when the server rejected the request as malformed or unknown."""


class QuotaExceededError(RequestError):
    """Raised for HTTP 402 responses."""


class RateLimitError(RequestError):
    """Raised for HTTP 429 responses once retries are exhausted."""


class RequestTimeoutError(RequestError):
    """Raised when an attempt exceeded its timeout and no retry remained."""


class TransientServerError(RequestError):
    """Raised for retryable 5xx responses once retries are exhausted."""


class NetworkError(RequestError):
    """Raised for transport-level failures like DNS and TCP errors."""


class RequestCanceledError(RequestError):
    """Raised when the transport reported the attempt as aborted."""


class UnknownRequestError(RequestError):
    """Raised for failures that match no known category."""


class DeadlineExceededError(RequestError):
    """Raised when the overall time budget of a logical request ran out."""


_ERRORS_BY_CATEGORY: dict[str, type[RequestError]] = {
    "auth": AuthError,
    "validation": RequestValidationError,
    "quota": QuotaExceededError,
    "rate_limit": RateLimitError,
    "timeout": RequestTimeoutError,
    "transient": TransientServerError,
    "network": NetworkError,
    "canceled": RequestCanceledError,
    "unknown": UnknownRequestError,
    "deadline_exceeded": DeadlineExceededError,
}


def error_class_for(category: str) -> type[RequestError]:
    return _ERRORS_BY_CATEGORY.get(category, UnknownRequestError)
