"""
Retry decorator for connector methods, with exponential backoff between attempts.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from functools import wraps
from typing import Any, Callable, Tuple, Type, TypeVar, cast

log = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def _next_delay(current: float, backoff: float, max_delay: float | None) -> float:
    nxt = current * backoff
    return min(nxt, max_delay) if max_delay is not None else nxt


def retry(
    *,
    attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    max_delay: float | None = None,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
) -> Callable[[F], F]:
    """Retry the wrapped call on ``exceptions``; the last failure propagates."""
    attempts = max(1, attempts)

    def decorator(func: F) -> F:
        name = getattr(func, "__qualname__", repr(func))

        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                wait = delay
                for attempt in range(1, attempts + 1):
                    try:
                        return await func(*args, **kwargs)
                    except exceptions as exc:
                        if attempt >= attempts:
                            raise
                        log.debug("%s failed (attempt %d/%d): %s", name, attempt, attempts, exc)
                        await asyncio.sleep(wait)
                        wait = _next_delay(wait, backoff, max_delay)

            return cast(F, async_wrapper)

        @wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            wait = delay
            for attempt in range(1, attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as exc:
                    if attempt >= attempts:
                        raise
                    log.debug("%s failed (attempt %d/%d): %s", name, attempt, attempts, exc)
                    time.sleep(wait)
                    wait = _next_delay(wait, backoff, max_delay)

        return cast(F, sync_wrapper)

    return decorator
