"""
Request models for detection and investigation endpoints.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, FrozenSet, List, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from engine.enums import Category, StepType
from engine.filters import CompiledFilters, Filter, compile_filters
from engine.investigation.context import AnomalyWindow, QueryContext, build_host_filter
from engine.investigation.facets import DEFAULT_FACETS
from engine.investigation.sql import build_time_filter
from engine.steps import DetectionOptions, TrafficSeries

# filters may only target columns the facet catalogue breaks down by
FILTER_COLUMNS: FrozenSet[str] = frozenset(
    col for facet in DEFAULT_FACETS for col in (facet.col, facet.filter_col) if col
)


class FilterModel(BaseModel):
    col: str
    value: Union[int, float, str]
    exclude: bool = False
    filter_col: Optional[str] = None
    filter_value: Optional[Union[int, float, str]] = None

    @field_validator("col", "filter_col")
    @classmethod
    def validate_column(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in FILTER_COLUMNS:
            raise ValueError(f"Unsupported filter column: {v!r}")
        return v

    def to_filter(self) -> Filter:
        return Filter(
            col=self.col,
            value=self.value,
            exclude=self.exclude,
            filter_col=self.filter_col,
            filter_value=self.filter_value,
        )


class QueryScope(BaseModel):
    host: Optional[str] = None
    filters: List[FilterModel] = Field(default_factory=list)

    def compiled(self) -> CompiledFilters:
        return compile_filters([f.to_filter() for f in self.filters])

    def host_filter(self) -> str:
        return build_host_filter(self.host)

    def time_filter(self, start: datetime, end: datetime) -> str:
        return build_time_filter(start, end)

    def context(self, start: datetime, end: datetime) -> QueryContext:
        return QueryContext(
            time_filter=self.time_filter(start, end),
            host_filter=self.host_filter(),
            filter_map=self.compiled().map,
        )


class SeriesModel(BaseModel):
    ok: Optional[List[float]] = None
    client: Optional[List[float]] = None
    server: Optional[List[float]] = None
    timestamps: List[datetime] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_shape(self) -> "SeriesModel":
        self.to_series()
        return self

    def to_series(self) -> TrafficSeries:
        return TrafficSeries(ok=self.ok, client=self.client, server=self.server, timestamps=list(self.timestamps))


class DetectionOptionsModel(BaseModel):
    start_margin: Optional[int] = Field(default=None, ge=0)
    end_margin: Optional[int] = Field(default=None, ge=0)
    min_gap: Optional[int] = Field(default=None, ge=0)
    weights: Optional[Dict[str, float]] = None

    def to_options(self) -> DetectionOptions:
        return DetectionOptions(
            start_margin=self.start_margin,
            end_margin=self.end_margin,
            min_gap=self.min_gap,
            weights=self.weights,
        )


class DetectRequest(BaseModel):
    series: SeriesModel
    max_count: Optional[int] = Field(default=None, ge=0, le=50)
    options: Optional[DetectionOptionsModel] = None
    scope: Optional[QueryScope] = None


class LegacyDetectRequest(BaseModel):
    series: SeriesModel
    options: Optional[DetectionOptionsModel] = None


class TrafficRequest(BaseModel):
    start: datetime
    end: datetime
    scope: QueryScope = Field(default_factory=QueryScope)
    max_count: Optional[int] = Field(default=None, ge=0, le=50)
    options: Optional[DetectionOptionsModel] = None

    @model_validator(mode="after")
    def _check_range(self) -> "TrafficRequest":
        if self.end <= self.start:
            raise ValueError("end must be after start")
        return self


class AnomalyWindowModel(BaseModel):
    start_time: datetime
    end_time: datetime
    category: Category = Category.green
    type: StepType = StepType.spike
    rank: int = Field(default=1, ge=0)
    magnitude: float = 0.0

    def to_window(self) -> AnomalyWindow:
        return AnomalyWindow(
            start_time=self.start_time,
            end_time=self.end_time,
            category=self.category,
            type=self.type,
            rank=self.rank,
            magnitude=self.magnitude,
        )


class InvestigateAnomaliesRequest(BaseModel):
    session_id: str = "default"
    start: datetime
    end: datetime
    anomalies: List[AnomalyWindowModel] = Field(default_factory=list)
    scope: QueryScope = Field(default_factory=QueryScope)
    facets: Optional[List[str]] = None
    force_refresh: bool = False
    focused_anomaly_id: Optional[str] = None

    @model_validator(mode="after")
    def _check_range(self) -> "InvestigateAnomaliesRequest":
        if self.end <= self.start:
            raise ValueError("end must be after start")
        return self


class InvestigateSelectionRequest(BaseModel):
    session_id: str = "default"
    start: datetime
    end: datetime
    selection_start: datetime
    selection_end: datetime
    scope: QueryScope = Field(default_factory=QueryScope)
    facets: Optional[List[str]] = None
    force_refresh: bool = False

    @model_validator(mode="after")
    def _check_range(self) -> "InvestigateSelectionRequest":
        if self.end <= self.start:
            raise ValueError("end must be after start")
        if self.selection_end < self.selection_start:
            raise ValueError("selection_end must not precede selection_start")
        return self
