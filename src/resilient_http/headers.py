"""Header helpers: merging, redaction and server hints."""

from __future__ import annotations

import datetime as _dt
import logging
import math
import re
from email.utils import parsedate_to_datetime
from typing import Mapping

from .outcomes import RateLimitFeedback

logger = logging.getLogger(__name__)

SENSITIVE_HEADERS = {
    "authorization",
    "proxy-authorization",
    "cookie",
    "x-api-key",
    "apikey",
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")


def sanitize_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Return headers with sensitive values redacted for logging/telemetry."""
    redacted: dict[str, str] = {}
    for key, value in headers.items():
        if key.lower() in SENSITIVE_HEADERS:
            redacted[key] = "[REDACTED]"
        else:
            redacted[key] = value
    return redacted


def merge_headers(*layers: Mapping[str, str] | None) -> dict[str, str]:
    """Merge header layers case-insensitively; the last write wins and keeps its casing."""
    merged: dict[str, str] = {}
    index: dict[str, str] = {}
    for layer in layers:
        if not layer:
            continue
        for key, value in layer.items():
            name = str(key)
            previous = index.get(name.lower())
            if previous is not None and previous != name:
                logger.debug("http.headers.override", extra={"header": name, "replaced": previous})
                del merged[previous]
            merged[name] = str(value)
            index[name.lower()] = name
    return merged


def has_header(headers: Mapping[str, str], name: str) -> bool:
    lowered = name.lower()
    return any(key.lower() == lowered for key in headers)


def parse_retry_after(raw: str | None) -> float | None:
    """Parse Retry-After header values into milliseconds."""
    if raw is None:
        return None

    raw = raw.strip()
    if not raw:
        return None

    try:
        return max(0.0, float(raw)) * 1000.0
    except ValueError:
        pass

    try:
        parsed = parsedate_to_datetime(raw)
    except (ValueError, TypeError, OverflowError):
        return None

    if parsed is None:
        return None

    now = _dt.datetime.now(_dt.timezone.utc)
    if parsed.utcoffset() is None:
        parsed_utc = parsed.replace(tzinfo=_dt.timezone.utc)
    else:
        parsed_utc = parsed.astimezone(_dt.timezone.utc)

    delta = (parsed_utc - now).total_seconds()
    return max(0.0, delta) * 1000.0


def _parse_reset(raw: str | None) -> float | None:
    """Reset hints come as seconds ("1.5") or durations ("6m0s", "20ms")."""
    if raw is None:
        return None
    raw = raw.strip()
    if not raw:
        return None
    try:
        seconds = float(raw)
    except ValueError:
        pass
    else:
        return max(0.0, seconds) * 1000.0 if math.isfinite(seconds) else None
    parts = _DURATION_PART.findall(raw)
    if not parts or "".join(value + unit for value, unit in parts) != raw:
        return None
    scale = {"h": 3_600_000.0, "m": 60_000.0, "s": 1000.0, "ms": 1.0}
    return sum(float(value) * scale[unit] for value, unit in parts)


def parse_rate_limit_feedback(headers: Mapping[str, str]) -> RateLimitFeedback | None:
    """Extract request/token budgets from ``x-ratelimit-*`` headers.

    Returns ``None`` if no rate-limit headers are present.
    """
    lowered = {key.lower(): value for key, value in headers.items()}

    def _int(*keys: str) -> int | None:
        for key in keys:
            value = lowered.get(key)
            if value is None:
                continue
            try:
                return int(float(value))
            except (ValueError, OverflowError):
                return None
        return None

    def _reset(*keys: str) -> float | None:
        for key in keys:
            if key in lowered:
                return _parse_reset(lowered[key])
        return None

    feedback = RateLimitFeedback(
        request_remaining=_int("x-ratelimit-remaining-requests", "x-ratelimit-remaining"),
        request_limit=_int("x-ratelimit-limit-requests", "x-ratelimit-limit"),
        request_reset_ms=_reset("x-ratelimit-reset-requests", "x-ratelimit-reset"),
        token_remaining=_int("x-ratelimit-remaining-tokens"),
        token_limit=_int("x-ratelimit-limit-tokens"),
        token_reset_ms=_reset("x-ratelimit-reset-tokens"),
    )
    if feedback == RateLimitFeedback():
        return None
    return feedback
