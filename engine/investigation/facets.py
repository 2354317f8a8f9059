"""
Facet investigation: for one dimension (host, path, ASN, ...) compare how its traffic behaves inside an anomaly or selected window against the rest of the visible range, and surface the values that explain the change.

Anomaly mode looks for values over-represented in the anomalous status class. Selection mode looks for any traffic-share, error-share or error-rate shift in either direction. Both return at most a handful of rows rounded to one decimal, and a failing query yields no rows for that facet rather than failing the whole investigation.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from config import settings
from engine.investigation.context import AnomalyWindow
from engine.investigation.sql import investigate_facet_sql, investigate_selection_sql

log = logging.getLogger(__name__)

# rate change reported when a value had no baseline traffic but shows up in the window
NEW_DURING_WINDOW = math.inf


class QueryProvider(Protocol):
    @property
    def source(self) -> str: ...

    async def query(self, sql: str, cache_ttl: Optional[int] = None) -> List[Dict[str, Any]]: ...


@dataclass(frozen=True)
class FacetDefinition:
    id: str
    col: str
    extra_filter: str = ""
    filter_col: Optional[str] = None

    @property
    def name(self) -> str:
        return self.id.replace("breakdown-", "")


DEFAULT_FACETS: Tuple[FacetDefinition, ...] = (
    FacetDefinition("breakdown-hosts", "`request.host`"),
    FacetDefinition("breakdown-forwarded-hosts", "`request.headers.x_forwarded_host`"),
    FacetDefinition("breakdown-paths", "`request.url`"),
    FacetDefinition(
        "breakdown-errors",
        "`response.headers.x_error`",
        extra_filter="AND `response.headers.x_error` != ''",
    ),
    FacetDefinition("breakdown-user-agents", "`request.headers.user_agent`"),
    FacetDefinition(
        "breakdown-ips",
        "if(`request.headers.x_forwarded_for` != '', `request.headers.x_forwarded_for`, `client.ip`)",
    ),
    FacetDefinition(
        "breakdown-asn",
        "concat(toString(`client.asn`), ' ', dictGet('helix_logs_production.asn_dict', 'name', `client.asn`))",
        extra_filter="AND `client.asn` != 0",
        filter_col="`client.asn`",
    ),
    FacetDefinition("breakdown-datacenters", "`cdn.datacenter`"),
    FacetDefinition("breakdown-cache", "upper(`cdn.cache_status`)"),
    FacetDefinition("breakdown-content-types", "`response.headers.content_type`"),
    FacetDefinition(
        "breakdown-backend-type",
        "`helix.backend_type`",
        extra_filter="AND `helix.backend_type` != ''",
    ),
)


@dataclass(frozen=True)
class AnomalyFacetResult:
    dim: str
    anomaly_rate: float
    baseline_rate: float
    rate_change: float
    anomaly_share: float
    baseline_share: float
    share_change: float
    error_rate_change: float

    @property
    def significance(self) -> float:
        return max(self.share_change, self.error_rate_change)


@dataclass(frozen=True)
class SelectionFacetResult:
    dim: str
    selection_rate: float
    baseline_rate: float
    rate_change: float
    selection_share: float
    baseline_share: float
    share_change: float
    err_share_change: float
    err_rate_change: float
    max_change: float

    @property
    def significance(self) -> float:
        return self.max_change

    @property
    def dominant_change(self) -> float:
        """Signed value of whichever change has the largest magnitude."""
        dominant = 0.0
        for value in (self.share_change, self.err_share_change, self.err_rate_change):
            if abs(value) > abs(dominant):
                dominant = value
        return dominant


def _count(value: Any) -> int:
    # ClickHouse renders UInt64 as JSON strings
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return 0


def _round1(value: float) -> float:
    if math.isinf(value) or math.isnan(value):
        return value
    return math.floor(value * 10 + 0.5) / 10


def _pct(part: float, whole: float) -> float:
    return part / whole * 100 if whole > 0 else 0.0


def _rate_change(inside: float, outside: float) -> float:
    if outside > 0:
        return (inside - outside) / outside * 100
    if inside > 0:
        return NEW_DURING_WINDOW
    return 0.0


def _per_minute(count: int, minutes: float) -> float:
    return count / minutes if minutes > 0 else 0.0


def window_minutes(window: AnomalyWindow, full_start: datetime, full_end: datetime) -> Tuple[float, float]:
    """Wall-clock minutes inside the window and in the rest of the range."""
    inside = window.minutes
    total = (full_end - full_start).total_seconds() / 60.0
    return inside, max(0.0, total - inside)


def analyze_anomaly_rows(
    rows: Iterable[Dict[str, Any]],
    anomaly_minutes: float,
    baseline_minutes: float,
    min_rate: Optional[float] = None,
    min_change: Optional[float] = None,
    max_results: Optional[int] = None,
) -> List[AnomalyFacetResult]:
    min_rate = settings.investigation_min_rate if min_rate is None else min_rate
    min_change = settings.investigation_min_change if min_change is None else min_change
    max_results = settings.investigation_max_results if max_results is None else max_results

    rows = [r for r in rows if isinstance(r, dict)]
    total_anomaly_cat = sum(_count(r.get("anomaly_cat_cnt")) for r in rows)
    total_baseline_cat = sum(_count(r.get("baseline_cat_cnt")) for r in rows)

    analyzed: List[AnomalyFacetResult] = []
    for row in rows:
        anomaly_cat = _count(row.get("anomaly_cat_cnt"))
        baseline_cat = _count(row.get("baseline_cat_cnt"))
        anomaly_total = _count(row.get("anomaly_total_cnt"))
        baseline_total = _count(row.get("baseline_total_cnt"))

        anomaly_rate = _per_minute(anomaly_cat, anomaly_minutes)
        baseline_rate = _per_minute(baseline_cat, baseline_minutes)
        anomaly_share = _pct(anomaly_cat, total_anomaly_cat)
        baseline_share = _pct(baseline_cat, total_baseline_cat)
        error_rate_change = _pct(anomaly_cat, anomaly_total) - _pct(baseline_cat, baseline_total)

        analyzed.append(AnomalyFacetResult(
            dim=str(row.get("dim", "")),
            anomaly_rate=_round1(anomaly_rate),
            baseline_rate=_round1(baseline_rate),
            rate_change=_round1(_rate_change(anomaly_rate, baseline_rate)),
            anomaly_share=_round1(anomaly_share),
            baseline_share=_round1(baseline_share),
            share_change=_round1(anomaly_share - baseline_share),
            error_rate_change=_round1(error_rate_change),
        ))

    kept = [
        r for r in analyzed
        if (r.anomaly_rate > min_rate or r.baseline_rate > min_rate)
        and (r.share_change > min_change or r.error_rate_change > min_change)
    ]
    kept.sort(key=lambda r: r.significance, reverse=True)
    return kept[:max_results]


def analyze_selection_rows(
    rows: Iterable[Dict[str, Any]],
    selection_minutes: float,
    baseline_minutes: float,
    min_rate: Optional[float] = None,
    min_change: Optional[float] = None,
    max_results: Optional[int] = None,
    facet_id: str = "",
) -> List[SelectionFacetResult]:
    min_rate = settings.investigation_min_rate if min_rate is None else min_rate
    min_change = settings.investigation_min_change if min_change is None else min_change
    max_results = settings.investigation_max_results if max_results is None else max_results

    rows = [r for r in rows if isinstance(r, dict)]
    total_sel = sum(_count(r.get("selection_cnt")) for r in rows)
    total_base = sum(_count(r.get("baseline_cnt")) for r in rows)
    total_sel_err = sum(_count(r.get("selection_err_cnt")) for r in rows)
    total_base_err = sum(_count(r.get("baseline_err_cnt")) for r in rows)

    analyzed: List[SelectionFacetResult] = []
    for row in rows:
        sel = _count(row.get("selection_cnt"))
        base = _count(row.get("baseline_cnt"))
        sel_err = _count(row.get("selection_err_cnt"))
        base_err = _count(row.get("baseline_err_cnt"))

        selection_rate = _per_minute(sel, selection_minutes)
        baseline_rate = _per_minute(base, baseline_minutes)
        selection_share = _pct(sel, total_sel)
        baseline_share = _pct(base, total_base)

        share_change = _round1(selection_share - baseline_share)
        err_share_change = _round1(_pct(sel_err, total_sel_err) - _pct(base_err, total_base_err))
        err_rate_change = _round1(_pct(sel_err, sel) - _pct(base_err, base))

        analyzed.append(SelectionFacetResult(
            dim=str(row.get("dim", "")),
            selection_rate=_round1(selection_rate),
            baseline_rate=_round1(baseline_rate),
            rate_change=_round1(_rate_change(selection_rate, baseline_rate)),
            selection_share=_round1(selection_share),
            baseline_share=_round1(baseline_share),
            share_change=share_change,
            err_share_change=err_share_change,
            err_rate_change=err_rate_change,
            max_change=max(abs(share_change), abs(err_share_change), abs(err_rate_change)),
        ))

    kept = [
        r for r in analyzed
        if (r.selection_rate > min_rate or r.baseline_rate > min_rate) and r.max_change > min_change
    ]
    kept.sort(key=lambda r: r.max_change, reverse=True)

    if not kept and analyzed:
        top = max(analyzed, key=lambda r: r.max_change)
        log.debug(
            "%s: %d dims analysed, none significant (top share=%spp err_share=%spp err_rate=%spp)",
            facet_id or "facet", len(analyzed), top.share_change, top.err_share_change, top.err_rate_change,
        )
    return kept[:max_results]


async def investigate_facet(
    provider: QueryProvider,
    facet: FacetDefinition,
    window: AnomalyWindow,
    full_start: datetime,
    full_end: datetime,
    host_filter: str = "",
    facet_filters: str = "",
    cache_ttl: Optional[int] = None,
) -> List[AnomalyFacetResult]:
    sql = investigate_facet_sql(
        source=provider.source,
        col=facet.col,
        category=window.category,
        window_start=window.start_time,
        window_end=window.end_time,
        full_start=full_start,
        full_end=full_end,
        host_filter=host_filter,
        facet_filters=facet_filters,
        extra=facet.extra_filter,
        limit=settings.investigation_row_limit,
    )
    ttl = settings.investigation_query_cache_ttl if cache_ttl is None else cache_ttl
    try:
        rows = await provider.query(sql, cache_ttl=ttl)
    except Exception as exc:
        log.error("Investigation error for %s: %s", facet.id, exc)
        return []

    inside, outside = window_minutes(window, full_start, full_end)
    return analyze_anomaly_rows(rows, inside, outside)


async def investigate_facet_for_selection(
    provider: QueryProvider,
    facet: FacetDefinition,
    window: AnomalyWindow,
    full_start: datetime,
    full_end: datetime,
    host_filter: str = "",
    facet_filters: str = "",
    cache_ttl: Optional[int] = None,
) -> List[SelectionFacetResult]:
    sql = investigate_selection_sql(
        source=provider.source,
        col=facet.col,
        selection_start=window.start_time,
        selection_end=window.end_time,
        full_start=full_start,
        full_end=full_end,
        host_filter=host_filter,
        facet_filters=facet_filters,
        extra=facet.extra_filter,
        limit=settings.investigation_row_limit,
    )
    ttl = settings.investigation_query_cache_ttl if cache_ttl is None else cache_ttl
    try:
        rows = await provider.query(sql, cache_ttl=ttl)
    except Exception as exc:
        log.error("Selection investigation error for %s: %s", facet.id, exc)
        return []

    inside, outside = window_minutes(window, full_start, full_end)
    return analyze_selection_rows(rows, inside, outside, facet_id=facet.id)


def select_facets(facet_ids: Optional[Sequence[str]]) -> Tuple[FacetDefinition, ...]:
    if not facet_ids:
        return DEFAULT_FACETS
    wanted = {f if f.startswith("breakdown-") else f"breakdown-{f}" for f in facet_ids}
    return tuple(f for f in DEFAULT_FACETS if f.id in wanted)
