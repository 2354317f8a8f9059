"""
Health check route reporting the store backend and ClickHouse reachability.

Copyright (c) 2026 Stefan Kumarasinghe
Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter

from api.routes.common import get_provider
from api.routes.exception import handle_exceptions
from datasources.exceptions import DataSourceError
from store.client import get_redis, is_using_fallback

log = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health")
@handle_exceptions
async def health() -> Dict[str, Any]:
    await get_redis()
    provider = get_provider()
    try:
        reachable = await provider.ping()
    except DataSourceError as exc:
        log.warning("ClickHouse health probe failed: %s", exc)
        reachable = False
    return {
        "status": "ok" if reachable else "degraded",
        "store": "fallback" if is_using_fallback() else "redis",
        "source": provider.source,
        "clickhouse": "ok" if reachable else "unreachable",
    }
