from __future__ import annotations

import inspect
import time
import uuid
from typing import Any


async def maybe_await(value: Any) -> Any:
    """Await ``value`` when a collaborator returned an awaitable."""
    if inspect.isawaitable(value):
        return await value
    return value


def new_id() -> str:
    return uuid.uuid4().hex


def epoch_ms() -> float:
    return time.time() * 1000.0
