"""
Persistent investigation cache. Entries are keyed by the base dataset (time range and host filter) and carry the query context they were computed under, so a later request may reuse them when it only narrows the facet filters.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from config import settings
from engine.filters import is_filter_superset
from engine.investigation.context import QueryContext
from store import keys
from store.client import redis_delete, redis_get, redis_scan, redis_set

log = logging.getLogger(__name__)


@dataclass
class CachedInvestigation:
    results: List[Dict[str, Any]]
    top_contributors: List[Dict[str, Any]]
    context: Optional[QueryContext] = None
    version: int = field(default_factory=lambda: settings.cache_version)
    timestamp: int = 0


def _now_ms() -> int:
    return int(time.time() * 1000)


def _to_json(entry: CachedInvestigation) -> str:
    return json.dumps({
        "results": entry.results,
        "top_contributors": entry.top_contributors,
        "context": entry.context.to_dict() if entry.context is not None else None,
        "version": entry.version,
        "timestamp": entry.timestamp,
    })


def _from_json(data: str) -> CachedInvestigation:
    d = json.loads(data)
    raw_context = d.get("context")
    return CachedInvestigation(
        results=list(d.get("results") or []),
        top_contributors=list(d.get("top_contributors") or []),
        context=QueryContext.from_dict(raw_context) if isinstance(raw_context, dict) else None,
        version=d.get("version"),
        timestamp=int(d.get("timestamp") or 0),
    )


def is_cache_eligible(current: QueryContext, cached: QueryContext) -> bool:
    """Same time range and host, and the current filters only add to the cached ones."""
    if current.time_filter != cached.time_filter:
        log.info("Cache ineligible: time filter changed")
        return False
    if current.host_filter != cached.host_filter:
        log.info("Cache ineligible: host filter changed")
        return False
    if not is_filter_superset(current.filter_map, cached.filter_map):
        log.info("Cache ineligible: filters changed or removed")
        return False

    if len(current.filter_map) > len(cached.filter_map):
        log.info("Cache eligible: drilled in (%d -> %d filters)", len(cached.filter_map), len(current.filter_map))
    else:
        log.info("Cache eligible: same context")
    return True


async def load(cache_key: str, current: QueryContext) -> Optional[CachedInvestigation]:
    try:
        raw = await redis_get(keys.investigation(cache_key))
        if not raw:
            log.debug("No cached investigation for key %s", cache_key)
            return None
        entry = _from_json(raw)
    except Exception as exc:
        log.debug("Investigation cache load failed %s: %s", cache_key, exc)
        return None

    if entry.version != settings.cache_version:
        log.info("Cache version mismatch: %s vs %s", entry.version, settings.cache_version)
        return None
    if _now_ms() - entry.timestamp >= settings.cache_ttl_seconds * 1000:
        log.info("Cache expired (older than %ds)", settings.cache_ttl_seconds)
        return None

    if entry.context is None:
        log.info("Cache eligible: entry predates context tracking")
        return entry
    if not is_cache_eligible(current, entry.context):
        return None

    log.info("Cache loaded: %d contributors", len(entry.top_contributors))
    return entry


async def save(
    cache_key: str,
    results: List[Dict[str, Any]],
    top_contributors: List[Dict[str, Any]],
    context: QueryContext,
) -> None:
    entry = CachedInvestigation(
        results=results,
        top_contributors=top_contributors,
        context=context,
        version=settings.cache_version,
        timestamp=_now_ms(),
    )
    try:
        await redis_set(keys.investigation(cache_key), _to_json(entry), ttl=settings.cache_ttl_seconds)
    except Exception as exc:
        log.warning("Failed to cache investigation %s: %s", cache_key, exc)


async def _entry_timestamp(key: str) -> int:
    try:
        raw = await redis_get(key)
        return int(json.loads(raw).get("timestamp") or 0) if raw else 0
    except Exception as exc:
        log.debug("Unreadable cache entry %s: %s", key, exc)
        return 0


async def cleanup(keep: Optional[int] = None) -> int:
    """Delete all but the ``keep`` most recent entries; returns how many were removed."""
    keep = settings.cache_keep_entries if keep is None else max(0, keep)
    try:
        found = await redis_scan(keys.investigation_pattern())
        stamped = [(await _entry_timestamp(k), k) for k in found]
        stamped.sort(key=lambda item: item[0], reverse=True)
        stale = [k for _, k in stamped[keep:]]
        for key in stale:
            await redis_delete(key)
    except Exception as exc:
        log.debug("Investigation cache cleanup failed: %s", exc)
        return 0
    if stale:
        log.debug("Pruned %d cached investigations", len(stale))
    return len(stale)


async def clear_all() -> int:
    try:
        found = await redis_scan(keys.investigation_pattern())
        for key in found:
            await redis_delete(key)
    except Exception as exc:
        log.warning("Failed to clear cached investigations: %s", exc)
        return 0
    log.info("Cleared %d cached investigations", len(found))
    return len(found)
