"""
Service layer binding HTTP requests to step detection, anomaly naming and facet investigation, and holding the per-operator investigation sessions.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

import dataclasses
import logging
from collections import OrderedDict
from datetime import datetime
from typing import List, Optional, Sequence

from api.requests import (
    DetectRequest,
    InvestigateAnomaliesRequest,
    InvestigateSelectionRequest,
    LegacyDetectRequest,
    TrafficRequest,
)
from api.responses import (
    DetectedAnomalyModel,
    DetectionResponse,
    InvestigationResponse,
    LegacyDetectionResponse,
    SelectionContributorModel,
    SelectionInvestigationResponse,
)
from config import settings
from engine.fetcher import fetch_traffic_series
from engine.identity import generate_anomaly_id
from engine.investigation.context import AnomalyWindow
from engine.investigation.facets import QueryProvider, select_facets
from engine.investigation.runner import (
    Contributor,
    InvestigationSession,
    highlight_contributors,
    investigate_anomalies,
    investigate_time_range,
)
from engine.steps import DetectedAnomaly, detect_step, detect_steps
from store import investigations as investigation_store

log = logging.getLogger(__name__)


class InvestigationService:
    def __init__(self, max_sessions: Optional[int] = None) -> None:
        self._max_sessions = max_sessions or settings.investigation_max_sessions
        self._sessions: "OrderedDict[str, InvestigationSession]" = OrderedDict()

    def session(self, session_id: str) -> InvestigationSession:
        session = self._sessions.get(session_id)
        if session is None:
            session = InvestigationSession()
            self._sessions[session_id] = session
            while len(self._sessions) > self._max_sessions:
                evicted, _ = self._sessions.popitem(last=False)
                log.debug("Evicted investigation session %s", evicted)
        else:
            self._sessions.move_to_end(session_id)
        return session

    def find_session(self, session_id: str) -> Optional[InvestigationSession]:
        return self._sessions.get(session_id)

    def invalidate_all(self) -> None:
        for session in self._sessions.values():
            session.invalidate()

    def reset(self) -> None:
        self._sessions.clear()


def _anomaly_model(
    anomaly: DetectedAnomaly,
    timestamps: Sequence[datetime] = (),
    time_filter: Optional[str] = None,
    facet_filters: str = "",
) -> DetectedAnomalyModel:
    data = dataclasses.asdict(anomaly)
    data["type"] = anomaly.type.value
    data["category"] = anomaly.category.value
    if timestamps and anomaly.end_index < len(timestamps):
        window = AnomalyWindow.from_detected(anomaly, timestamps)
        data["start_time"] = window.start_time
        data["end_time"] = window.end_time
        if time_filter is not None:
            data["anomaly_id"] = generate_anomaly_id(
                time_filter, facet_filters, window.start_time, window.end_time, window.category,
            )
    return DetectedAnomalyModel(**data)


def detect(req: DetectRequest) -> DetectionResponse:
    series = req.series.to_series()
    options = req.options.to_options() if req.options else None
    found = detect_steps(series, max_count=req.max_count, options=options)

    time_filter = None
    facet_filters = ""
    if req.scope is not None and series.timestamps:
        time_filter = req.scope.time_filter(series.timestamps[0], series.timestamps[-1])
        facet_filters = req.scope.compiled().sql

    return DetectionResponse(
        buckets=len(series),
        anomalies=[_anomaly_model(a, series.timestamps, time_filter, facet_filters) for a in found],
    )


def detect_legacy(req: LegacyDetectRequest) -> LegacyDetectionResponse:
    series = req.series.to_series()
    winner = detect_step(series, options=req.options.to_options() if req.options else None)
    if winner is None:
        return LegacyDetectionResponse()
    data = dataclasses.asdict(winner)
    data["type"] = winner.type.value
    data["category"] = winner.category.value
    return LegacyDetectionResponse(anomaly=DetectedAnomalyModel(**data))


async def detect_traffic(provider: QueryProvider, req: TrafficRequest) -> DetectionResponse:
    time_filter = req.scope.time_filter(req.start, req.end)
    compiled = req.scope.compiled()
    series = await fetch_traffic_series(
        provider,
        req.start,
        req.end,
        time_filter=time_filter,
        host_filter=req.scope.host_filter(),
        facet_filters=compiled.sql,
    )
    options = req.options.to_options() if req.options else None
    found = detect_steps(series, max_count=req.max_count, options=options)
    log.info("Detected %d anomalies over %d buckets", len(found), len(series))
    return DetectionResponse(
        buckets=len(series),
        anomalies=[_anomaly_model(a, series.timestamps, time_filter, compiled.sql) for a in found],
    )


async def investigate(
    provider: QueryProvider,
    service: InvestigationService,
    req: InvestigateAnomaliesRequest,
) -> InvestigationResponse:
    session = service.session(req.session_id)
    if req.force_refresh:
        session.force_refresh = True

    outcome = await investigate_anomalies(
        provider,
        session,
        [a.to_window() for a in req.anomalies],
        req.scope.context(req.start, req.end),
        req.scope.compiled().sql,
        req.start,
        req.end,
        facets=select_facets(req.facets),
    )
    return InvestigationResponse(
        cache_key=outcome.cache_key,
        source=outcome.source,
        results=outcome.results,
        top_contributors=outcome.top_contributors,
        highlights=highlight_contributors(outcome.top_contributors, req.focused_anomaly_id),
    )


def _selection_model(c: Contributor) -> SelectionContributorModel:
    return SelectionContributorModel(
        **dataclasses.asdict(c.result),
        facet=c.facet,
        facet_id=c.facet_id,
        category=c.category,
        dominant_change=c.result.dominant_change,
    )


async def investigate_selection(
    provider: QueryProvider,
    service: InvestigationService,
    req: InvestigateSelectionRequest,
) -> SelectionInvestigationResponse:
    session = service.session(req.session_id)
    if req.force_refresh:
        session.force_refresh = True

    contributors = await investigate_time_range(
        provider,
        session,
        req.selection_start,
        req.selection_end,
        req.start,
        req.end,
        host_filter=req.scope.host_filter(),
        facet_filters=req.scope.compiled().sql,
        facets=select_facets(req.facets),
        context=req.scope.context(req.start, req.end),
    )
    models: List[SelectionContributorModel] = [_selection_model(c) for c in contributors]
    return SelectionInvestigationResponse(
        contributors=models,
        highlights=models[: settings.investigation_highlight_top_n],
    )


async def clear_cache(service: InvestigationService) -> int:
    cleared = await investigation_store.clear_all()
    service.invalidate_all()
    return cleared


investigation_service = InvestigationService()
