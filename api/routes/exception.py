"""
Centralized exception handling decorator for API route functions.

The :func:`handle_exceptions` decorator wraps an endpoint handler and converts
uncaught exceptions into :class:`fastapi.HTTPException` responses.
HTTPExceptions raised by the handler propagate untouched. A superseded
investigation becomes a ``409`` with ``{"status": "cancelled"}``, query
transport failures become ``502`` (``504`` for timeouts), invalid input
``422``, and anything else a ``500`` carrying the exception message.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

import inspect
import logging
from functools import wraps
from typing import Any, Callable, TypeVar, cast

from fastapi import HTTPException

from datasources.exceptions import DataSourceError, QueryTimeout
from engine.investigation.runner import InvestigationCancelled

log = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def _translate(exc: Exception) -> HTTPException:
    if isinstance(exc, InvestigationCancelled):
        log.debug("Investigation discarded: %s", exc)
        return HTTPException(status_code=409, detail={"status": "cancelled", "reason": str(exc)})
    if isinstance(exc, QueryTimeout):
        return HTTPException(status_code=504, detail=str(exc))
    if isinstance(exc, DataSourceError):
        log.warning("Query backend error: %s", exc)
        return HTTPException(status_code=502, detail=str(exc))
    if isinstance(exc, ValueError):
        return HTTPException(status_code=422, detail=str(exc))
    log.exception("Unhandled error in route")
    return HTTPException(status_code=500, detail=str(exc))


def handle_exceptions(func: F) -> F:
    """Decorator that converts uncaught exceptions to HTTP errors.

    Works with both regular and async route functions.
    """

    if inspect.iscoroutinefunction(func):
        @wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return await func(*args, **kwargs)
            except HTTPException:
                raise
            except Exception as exc:
                raise _translate(exc) from exc

        return cast(F, async_wrapper)

    @wraps(func)
    def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except HTTPException:
            raise
        except Exception as exc:
            raise _translate(exc) from exc

    return cast(F, sync_wrapper)
