"""
Query scope and investigation windows: the immutable snapshot of time range, host filter and facet filters an investigation runs under, and the time windows compared against the rest of that range.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Sequence

from engine.enums import Category, LegacyCategory, StepType
from engine.filters import (
    Filter,
    FilterMap,
    compile_filters,
    escape_string,
    filter_map_from_dict,
    filter_map_to_dict,
)
from engine.steps.detection import DetectedAnomaly

_LEGACY_CATEGORIES = {
    LegacyCategory.error: Category.red,
    LegacyCategory.success: Category.green,
}


def _window_category(category: Any) -> Category:
    if isinstance(category, LegacyCategory):
        return _LEGACY_CATEGORIES[category]
    return Category(getattr(category, "value", category))


def build_host_filter(host: Optional[str]) -> str:
    if not host:
        return ""
    escaped = escape_string(host)
    return (
        f"AND (`request.host` LIKE '%{escaped}%' "
        f"OR `request.headers.x_forwarded_host` LIKE '%{escaped}%')"
    )


@dataclass(frozen=True)
class QueryContext:
    time_filter: str
    host_filter: str = ""
    filter_map: FilterMap = field(default_factory=dict)

    @classmethod
    def build(cls, time_filter: str, host_filter: str = "", filters: Sequence[Filter] = ()) -> "QueryContext":
        return cls(time_filter=time_filter, host_filter=host_filter, filter_map=compile_filters(filters).map)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time_filter": self.time_filter,
            "host_filter": self.host_filter,
            "filter_map": filter_map_to_dict(self.filter_map),
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "QueryContext":
        return cls(
            time_filter=str(raw.get("time_filter") or ""),
            host_filter=str(raw.get("host_filter") or ""),
            filter_map=filter_map_from_dict(raw.get("filter_map")),
        )


@dataclass(frozen=True)
class AnomalyWindow:
    start_time: datetime
    end_time: datetime
    category: Category = Category.green
    type: StepType = StepType.spike
    rank: int = 1
    magnitude: float = 0.0

    def __post_init__(self) -> None:
        if self.end_time < self.start_time:
            raise ValueError("window end precedes its start")

    @property
    def minutes(self) -> float:
        return (self.end_time - self.start_time).total_seconds() / 60.0

    @classmethod
    def from_detected(cls, anomaly: DetectedAnomaly, timestamps: Sequence[datetime]) -> "AnomalyWindow":
        if anomaly.end_index >= len(timestamps):
            raise ValueError("anomaly indices fall outside the series timestamps")
        return cls(
            start_time=timestamps[anomaly.start_index],
            end_time=timestamps[anomaly.end_index],
            category=_window_category(anomaly.category),
            type=anomaly.type,
            rank=anomaly.rank,
            magnitude=anomaly.magnitude,
        )

    @classmethod
    def selection(cls, start_time: datetime, end_time: datetime) -> "AnomalyWindow":
        return cls(start_time=start_time, end_time=end_time, category=Category.blue, type=StepType.selection, rank=0)
