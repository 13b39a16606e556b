"""Retry decisions and backoff delays."""

from __future__ import annotations

import random
from dataclasses import dataclass

from .classification import RETRYABLE_CATEGORIES
from .models import SAFE_METHODS, PreparedRequest, ResolvedResilience
from .outcomes import ClassifiedError


@dataclass(frozen=True)
class RetryDecision:
    retry: bool
    reason: str
    # True when only the deadline stood in the way of another attempt.
    deadline_bound: bool = False


def is_idempotent(request: PreparedRequest) -> bool:
    """GET, HEAD and OPTIONS always count; ``idempotent_methods`` adds to them."""
    if request.idempotency_key:
        return True
    resilience = request.resilience
    if not resilience.retry_idempotent_methods:
        return False
    return request.method in SAFE_METHODS or request.method in resilience.idempotent_methods


def should_retry(
    request: PreparedRequest,
    classification: ClassifiedError,
    attempt: int,
    remaining_ms: float,
) -> RetryDecision:
    resilience = request.resilience
    hint = classification.fallback.retryable
    if not resilience.retry_enabled:
        return RetryDecision(False, "retries disabled")
    if hint is False:
        return RetryDecision(False, "classifier marked the failure as final")
    forced = hint is True
    if not forced and classification.category not in RETRYABLE_CATEGORIES:
        return RetryDecision(False, f"category {classification.category.value} is not retryable")
    if not forced and not is_idempotent(request):
        return RetryDecision(False, f"{request.method.value} is not idempotent")
    if attempt >= resilience.max_attempts:
        return RetryDecision(False, "attempts exhausted")
    if remaining_ms <= 0:
        return RetryDecision(False, "deadline reached", deadline_bound=True)
    return RetryDecision(True, "retryable")


def compute_backoff_ms(
    attempt: int,
    classification: ClassifiedError,
    resilience: ResolvedResilience,
    *,
    rng: random.Random | None = None,
) -> float:
    """Delay before the attempt following ``attempt``.

    A server-suggested delay is honoured up to ``max_suggested_retry_delay_ms``;
    otherwise the delay grows exponentially with a multiplicative jitter and is
    capped at ``max_backoff_ms``.
    """
    retry_after = classification.fallback.retry_after_ms
    if retry_after is not None:
        return max(0.0, min(retry_after, resilience.max_suggested_retry_delay_ms))

    jitter_factor = resilience.jitter_factor
    jitter = (rng or random).uniform(1 - jitter_factor, 1 + jitter_factor)
    delay = resilience.base_backoff_ms * (2 ** max(0, attempt - 1)) * jitter
    return max(0.0, min(delay, resilience.max_backoff_ms))
