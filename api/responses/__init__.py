"""
Response models for detection and investigation endpoints.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Dict, List, Optional

import numpy as np
from pydantic import BaseModel, Field, model_serializer


def _coerce(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: _coerce(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_coerce(v) for v in obj]
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.floating):
        obj = float(obj)
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    # JSON has no infinity; a rate change of null means new during the window
    if isinstance(obj, float) and not math.isfinite(obj):
        return None
    return obj


class NpModel(BaseModel):

    @model_serializer(mode="wrap")
    def _serialize(self, handler: Any) -> Any:
        return _coerce(handler(self))


class DetectedAnomalyModel(NpModel):
    start_index: int
    end_index: int
    type: str
    magnitude: float
    category: str
    duration: int
    score: float
    rank: int
    anomaly_id: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


class DetectionResponse(NpModel):
    buckets: int
    anomalies: List[DetectedAnomalyModel] = Field(default_factory=list)


class LegacyDetectionResponse(NpModel):
    anomaly: Optional[DetectedAnomalyModel] = None


class SelectionFacetResultModel(NpModel):
    dim: str
    selection_rate: float
    baseline_rate: float
    rate_change: Optional[float]
    selection_share: float
    baseline_share: float
    share_change: float
    err_share_change: float
    err_rate_change: float
    max_change: float


class SelectionContributorModel(SelectionFacetResultModel):
    facet: str
    facet_id: str
    category: str = "blue"
    dominant_change: float = 0.0


class InvestigationResponse(NpModel):
    cache_key: str
    source: str
    results: List[Dict[str, Any]] = Field(default_factory=list)
    top_contributors: List[Dict[str, Any]] = Field(default_factory=list)
    highlights: List[Dict[str, Any]] = Field(default_factory=list)


class SelectionInvestigationResponse(NpModel):
    contributors: List[SelectionContributorModel] = Field(default_factory=list)
    highlights: List[SelectionContributorModel] = Field(default_factory=list)


class CacheClearResponse(BaseModel):
    cleared: int
