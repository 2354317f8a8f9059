"""
Investigation routes: anomaly and selection investigations, lookup of a named anomaly's last result, and cache maintenance.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, HTTPException

from api.requests import InvestigateAnomaliesRequest, InvestigateSelectionRequest
from api.responses import CacheClearResponse, InvestigationResponse, SelectionInvestigationResponse
from api.routes.common import get_investigation_service, get_provider
from api.routes.exception import handle_exceptions
from services import investigation_service as svc

router = APIRouter(tags=["Investigation"])


@router.post("/investigations/anomalies", response_model=InvestigationResponse)
@handle_exceptions
async def investigate_anomalies(req: InvestigateAnomaliesRequest) -> InvestigationResponse:
    return await svc.investigate(get_provider(), get_investigation_service(), req)


@router.post("/investigations/selection", response_model=SelectionInvestigationResponse)
@handle_exceptions
async def investigate_selection(req: InvestigateSelectionRequest) -> SelectionInvestigationResponse:
    return await svc.investigate_selection(get_provider(), get_investigation_service(), req)


@router.get("/investigations/{anomaly_id}")
@handle_exceptions
async def get_investigation(anomaly_id: str, session_id: str = "default") -> Dict[str, Any]:
    session = get_investigation_service().find_session(session_id)
    result = session.get_investigation(anomaly_id) if session is not None else None
    if result is None:
        raise HTTPException(status_code=404, detail=f"No investigation for {anomaly_id}")
    return result


@router.delete("/investigations/cache", response_model=CacheClearResponse)
@handle_exceptions
async def clear_investigation_cache() -> CacheClearResponse:
    cleared = await svc.clear_cache(get_investigation_service())
    return CacheClearResponse(cleared=cleared)
