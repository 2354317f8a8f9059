"""
Investigation orchestration: names each anomaly, fans facet queries out concurrently, ranks the contributing dimension values across facets and persists the strongest ones so navigation within the same dataset can reuse them.

Each operator session carries a generation counter. A run captures the generation when it starts and is discarded with InvestigationCancelled if the session moved to another scope before the run could commit its results.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Dict, List, Optional, Sequence, Tuple, TypeVar, Union

from config import settings
from engine.identity import generate_anomaly_id, generate_cache_key, round_to_minute
from engine.investigation.context import AnomalyWindow, QueryContext
from engine.investigation.facets import (
    DEFAULT_FACETS,
    AnomalyFacetResult,
    FacetDefinition,
    QueryProvider,
    SelectionFacetResult,
    investigate_facet,
    investigate_facet_for_selection,
)
from store import investigations as investigation_store

log = logging.getLogger(__name__)

_T = TypeVar("_T")
FacetResult = Union[AnomalyFacetResult, SelectionFacetResult]


class InvestigationCancelled(Exception):
    """The session moved to a different scope while this run was in flight."""


@dataclass(frozen=True)
class Contributor:
    facet_id: str
    category: str
    rank: int
    result: FacetResult
    anomaly_id: Optional[str] = None

    @property
    def facet(self) -> str:
        return self.facet_id.replace("breakdown-", "")

    @property
    def dim(self) -> str:
        return self.result.dim

    @property
    def significance(self) -> float:
        return self.result.significance

    @property
    def anomaly_label(self) -> Optional[str]:
        return "-".join(self.anomaly_id.split("-")[:2]) if self.anomaly_id else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "anomaly_id": self.anomaly_id,
            "anomaly_label": self.anomaly_label,
            "facet": self.facet,
            "facet_id": self.facet_id,
            "category": self.category,
            "rank": self.rank,
            **dataclasses.asdict(self.result),
        }


@dataclass
class AnomalyInvestigation:
    anomaly_id: str
    window: AnomalyWindow
    facets: Dict[str, List[AnomalyFacetResult]] = field(default_factory=dict)
    # every facet that answered, including those with nothing to report
    facet_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "anomaly_id": self.anomaly_id,
            "anomaly": {
                "start_time": self.window.start_time.isoformat(),
                "end_time": self.window.end_time.isoformat(),
                "category": self.window.category.value,
                "type": self.window.type.value,
                "rank": self.window.rank,
                "magnitude": self.window.magnitude,
            },
            "facet_ids": list(self.facet_ids),
            "facets": {
                facet_id: [dataclasses.asdict(r) for r in results]
                for facet_id, results in self.facets.items()
            },
        }


@dataclass
class InvestigationOutcome:
    cache_key: str
    results: List[Dict[str, Any]]
    top_contributors: List[Dict[str, Any]]
    source: str = "fresh"


class InvestigationSession:
    """Per-operator investigation state: scope, generation and last results."""

    def __init__(self) -> None:
        self.generation = 0
        self.context: Optional[QueryContext] = None
        self.force_refresh = False
        self.cache_key: Optional[str] = None
        self.investigations_by_id: Dict[str, Dict[str, Any]] = {}
        self.last_results: List[Dict[str, Any]] = []
        self.cached_top_contributors: Optional[List[Dict[str, Any]]] = None

    def begin(self, context: Optional[QueryContext] = None) -> int:
        if context is not None and context != self.context:
            self.generation += 1
            self.context = context
            self.cache_key = None
        return self.generation

    def is_current(self, token: int) -> bool:
        return token == self.generation

    def ensure_current(self, token: int) -> None:
        if not self.is_current(token):
            raise InvestigationCancelled(f"run {token} superseded by generation {self.generation}")

    def invalidate(self) -> None:
        self.generation += 1
        self.cache_key = None
        self.last_results = []
        self.cached_top_contributors = None

    def remember(self, cache_key: str, results: List[Dict[str, Any]], top: Optional[List[Dict[str, Any]]]) -> None:
        self.cache_key = cache_key
        self.last_results = results
        self.cached_top_contributors = top
        for result in results:
            anomaly_id = result.get("anomaly_id")
            if anomaly_id:
                self.investigations_by_id[anomaly_id] = result

    def get_investigation(self, anomaly_id: str) -> Optional[Dict[str, Any]]:
        return self.investigations_by_id.get(anomaly_id)


def highlight_contributors(
    contributors: Sequence[Dict[str, Any]],
    focused_anomaly_id: Optional[str] = None,
    top_n: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """The leading contributors to emphasise, optionally restricted to one anomaly."""
    top_n = settings.investigation_highlight_top_n if top_n is None else top_n
    picked: List[Dict[str, Any]] = []
    seen: set[Tuple[str, str]] = set()
    for c in contributors:
        if len(picked) >= top_n:
            break
        if focused_anomaly_id and c.get("anomaly_id") != focused_anomaly_id:
            continue
        key = (str(c.get("facet_id")), str(c.get("dim")))
        if key in seen:
            continue
        seen.add(key)
        picked.append(c)
    return picked


async def _bounded(sem: asyncio.Semaphore, coro: Awaitable[_T]) -> _T:
    async with sem:
        return await coro


def _query_ttl(force: bool) -> Optional[int]:
    return settings.force_refresh_cache_ttl if force else None


def _window_key(start: datetime, end: datetime, category: str) -> Tuple[str, str, str]:
    return round_to_minute(start), round_to_minute(end), category


def _cached_window_key(result: Dict[str, Any]) -> Optional[Tuple[str, str, str]]:
    anomaly = result.get("anomaly") or {}
    try:
        start = datetime.fromisoformat(str(anomaly["start_time"]))
        end = datetime.fromisoformat(str(anomaly["end_time"]))
    except (KeyError, ValueError):
        return None
    return _window_key(start, end, str(anomaly.get("category")))


def covering_results(
    results: Sequence[Dict[str, Any]],
    top_contributors: Sequence[Dict[str, Any]],
    anomalies: Sequence[AnomalyWindow],
    facets: Sequence[FacetDefinition],
) -> Optional[Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]]:
    """Cut earlier results down to the requested windows and facets.

    Returns None unless every requested window was investigated over every
    requested facet. Windows are matched by time and category rather than
    by id, since a drill-in renames the same window.
    """
    facet_ids = {f.id for f in facets}
    by_window = {}
    for result in results:
        key = _cached_window_key(result)
        if key is not None:
            by_window[key] = result

    picked: List[Dict[str, Any]] = []
    for window in anomalies:
        result = by_window.get(_window_key(window.start_time, window.end_time, window.category.value))
        if result is None or not facet_ids <= set(result.get("facet_ids") or ()):
            return None
        picked.append({
            **result,
            "facet_ids": [f for f in result["facet_ids"] if f in facet_ids],
            "facets": {k: v for k, v in (result.get("facets") or {}).items() if k in facet_ids},
        })

    anomaly_ids = {r.get("anomaly_id") for r in picked}
    top = [
        c for c in top_contributors
        if c.get("anomaly_id") in anomaly_ids and c.get("facet_id") in facet_ids
    ]
    return picked, top


async def investigate_anomalies(
    provider: QueryProvider,
    session: InvestigationSession,
    anomalies: Sequence[AnomalyWindow],
    context: QueryContext,
    facet_filters: str,
    full_start: datetime,
    full_end: datetime,
    facets: Sequence[FacetDefinition] = DEFAULT_FACETS,
) -> InvestigationOutcome:
    cache_key = generate_cache_key(context.time_filter, context.host_filter)
    if not anomalies:
        return InvestigationOutcome(cache_key=cache_key, results=[], top_contributors=[])

    token = session.begin(context)
    force = session.force_refresh
    session.force_refresh = False

    if not force and session.cache_key == cache_key and session.last_results:
        covered = covering_results(
            session.last_results, session.cached_top_contributors or [], anomalies, facets,
        )
        if covered is not None:
            log.debug("Using in-memory investigation for %s", cache_key)
            return InvestigationOutcome(
                cache_key=cache_key, results=covered[0], top_contributors=covered[1], source="memory",
            )

    if not force:
        cached = await investigation_store.load(cache_key, context)
        covered = None
        if cached is not None and cached.results:
            covered = covering_results(cached.results, cached.top_contributors, anomalies, facets)
        if covered is not None:
            session.ensure_current(token)
            session.remember(cache_key, cached.results, cached.top_contributors or None)
            return InvestigationOutcome(
                cache_key=cache_key, results=covered[0], top_contributors=covered[1], source="cache",
            )
        if cached is not None:
            log.info("Cached investigation for %s does not cover this request", cache_key)

    log.info("Starting fresh investigation of %d anomalies over %d facets", len(anomalies), len(facets))
    investigations: List[AnomalyInvestigation] = []
    jobs: List[Tuple[AnomalyInvestigation, FacetDefinition]] = []
    for window in anomalies:
        anomaly_id = generate_anomaly_id(
            context.time_filter, facet_filters, window.start_time, window.end_time, window.category,
        )
        inv = AnomalyInvestigation(anomaly_id=anomaly_id, window=window)
        investigations.append(inv)
        jobs.extend((inv, facet) for facet in facets)

    sem = asyncio.Semaphore(max(1, int(settings.investigation_max_parallel_queries)))
    ttl = _query_ttl(force)
    raw = await asyncio.gather(
        *[
            _bounded(sem, investigate_facet(
                provider, facet, inv.window, full_start, full_end,
                host_filter=context.host_filter, facet_filters=facet_filters, cache_ttl=ttl,
            ))
            for inv, facet in jobs
        ],
        return_exceptions=True,
    )

    contributors: List[Contributor] = []
    for (inv, facet), analysis in zip(jobs, raw):
        if isinstance(analysis, BaseException):
            log.error("Investigation error for %s on %s: %s", facet.id, inv.anomaly_id, analysis)
            continue
        inv.facet_ids.append(facet.id)
        if not analysis:
            continue
        inv.facets[facet.id] = analysis
        contributors.extend(
            Contributor(
                facet_id=facet.id,
                category=inv.window.category.value,
                rank=inv.window.rank,
                result=item,
                anomaly_id=inv.anomaly_id,
            )
            for item in analysis
        )

    session.ensure_current(token)

    contributors.sort(key=lambda c: c.significance, reverse=True)
    top = [c.to_dict() for c in contributors[: settings.investigation_cache_top_n]]
    results = [inv.to_dict() for inv in investigations]
    session.remember(cache_key, results, top)

    await investigation_store.save(cache_key, results, top, context)
    await investigation_store.cleanup()
    log.info("Investigation %s found %d contributors", cache_key, len(contributors))
    return InvestigationOutcome(cache_key=cache_key, results=results, top_contributors=top)


async def investigate_time_range(
    provider: QueryProvider,
    session: InvestigationSession,
    selection_start: datetime,
    selection_end: datetime,
    full_start: datetime,
    full_end: datetime,
    host_filter: str = "",
    facet_filters: str = "",
    facets: Sequence[FacetDefinition] = DEFAULT_FACETS,
    context: Optional[QueryContext] = None,
) -> List[Contributor]:
    token = session.begin(context)
    window = AnomalyWindow.selection(selection_start, selection_end)
    force = session.force_refresh
    session.force_refresh = False

    sem = asyncio.Semaphore(max(1, int(settings.investigation_max_parallel_queries)))
    ttl = _query_ttl(force)
    raw = await asyncio.gather(
        *[
            _bounded(sem, investigate_facet_for_selection(
                provider, facet, window, full_start, full_end,
                host_filter=host_filter, facet_filters=facet_filters, cache_ttl=ttl,
            ))
            for facet in facets
        ],
        return_exceptions=True,
    )

    contributors: List[Contributor] = []
    for facet, analysis in zip(facets, raw):
        if isinstance(analysis, BaseException):
            log.error("Selection investigation error for %s: %s", facet.id, analysis)
            continue
        contributors.extend(
            Contributor(facet_id=facet.id, category=window.category.value, rank=window.rank, result=item)
            for item in analysis
        )

    session.ensure_current(token)
    contributors.sort(key=lambda c: c.significance, reverse=True)
    log.info("Selection investigation found %d contributors", len(contributors))
    return contributors
