"""
Step detection routes: detect on a supplied series, the legacy single-winner detector, and detection over traffic loaded from ClickHouse.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

from fastapi import APIRouter

from api.requests import DetectRequest, LegacyDetectRequest, TrafficRequest
from api.responses import DetectionResponse, LegacyDetectionResponse
from api.routes.common import get_provider
from api.routes.exception import handle_exceptions
from services import investigation_service as svc

router = APIRouter(tags=["Detection"])


@router.post("/anomalies/steps", response_model=DetectionResponse)
@handle_exceptions
async def detect_steps(req: DetectRequest) -> DetectionResponse:
    return svc.detect(req)


@router.post("/anomalies/step", response_model=LegacyDetectionResponse)
@handle_exceptions
async def detect_step(req: LegacyDetectRequest) -> LegacyDetectionResponse:
    return svc.detect_legacy(req)


@router.post("/anomalies/traffic", response_model=DetectionResponse)
@handle_exceptions
async def detect_traffic(req: TrafficRequest) -> DetectionResponse:
    return await svc.detect_traffic(get_provider(), req)
