"""
Step detection for CDN traffic: per-category median baselines, adaptive 1-sigma thresholds on the deviation ratio, weighted region scoring and greedy non-overlapping selection of the most significant spikes and dips.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from config import settings
from engine.enums import Category, Direction, LegacyCategory, StepType
from engine.steps.regions import AnomalyRegion, find_anomaly_regions
from engine.steps.series import TrafficSeries

AnyCategory = Union[Category, LegacyCategory]


@dataclass(frozen=True)
class DetectionOptions:
    start_margin: Optional[int] = None
    end_margin: Optional[int] = None
    min_gap: Optional[int] = None
    weights: Optional[Mapping[str, float]] = None

    def resolved(self, legacy: bool = False) -> "DetectionOptions":
        default_weights = settings.legacy_step_weights if legacy else settings.step_weights
        return DetectionOptions(
            start_margin=settings.detection_start_margin if self.start_margin is None else self.start_margin,
            end_margin=settings.detection_end_margin if self.end_margin is None else self.end_margin,
            min_gap=settings.detection_min_gap if self.min_gap is None else self.min_gap,
            weights=dict(default_weights) if self.weights is None else dict(self.weights),
        )


@dataclass(frozen=True)
class AnomalyCandidate:
    region: AnomalyRegion
    category: AnyCategory
    type: StepType
    score: float

    @property
    def start(self) -> int:
        return self.region.start

    @property
    def end(self) -> int:
        return self.region.end

    @property
    def duration(self) -> int:
        return self.region.duration


@dataclass(frozen=True)
class DetectedAnomaly:
    start_index: int
    end_index: int
    type: StepType
    magnitude: float
    category: AnyCategory
    duration: int
    score: float
    rank: int


def _deviation_profile(
    values: Sequence[float],
    start_margin: int,
    end_margin: int,
) -> Tuple[np.ndarray, float]:
    arr = np.asarray(values, dtype=float)
    lo, hi = start_margin, len(arr) - end_margin
    valid = arr[lo:hi]
    if valid.size == 0:
        return np.zeros_like(arr), 0.0

    baseline = float(np.median(valid))
    if baseline > 0:
        deviations = (arr - baseline) / baseline
    else:
        # an all-zero baseline would turn any single request into an infinite ratio
        deviations = np.zeros_like(arr)

    threshold = float(np.std(deviations[lo:hi]))
    return deviations, threshold


def _score(region: AnomalyRegion, weight: float) -> float:
    return region.peak_deviation * math.sqrt(region.duration) * weight


def _candidates(
    profiles: Dict[AnyCategory, Tuple[np.ndarray, float]],
    weights: Mapping[str, float],
    start_margin: int,
    end_margin: int,
) -> List[AnomalyCandidate]:
    out: List[AnomalyCandidate] = []
    for category, (deviations, threshold) in profiles.items():
        for direction, step_type in ((Direction.above, StepType.spike), (Direction.below, StepType.dip)):
            weight = weights.get(f"{category.value}_{step_type.value}")
            if not weight:
                continue
            for region in find_anomaly_regions(deviations, threshold, direction, start_margin, end_margin):
                out.append(AnomalyCandidate(
                    region=region,
                    category=category,
                    type=step_type,
                    score=_score(region, weight),
                ))
    return out


def _clearance(a: AnomalyCandidate, b: AnomalyCandidate, min_gap: int) -> int:
    return max(min_gap, a.duration // 2 + b.duration // 2)


def _too_close(candidate: AnomalyCandidate, chosen: AnomalyCandidate, min_gap: int) -> bool:
    gap = _clearance(candidate, chosen, min_gap)
    return not (candidate.end < chosen.start - gap or candidate.start > chosen.end + gap)


def select_non_overlapping(
    candidates: Sequence[AnomalyCandidate],
    max_count: int,
    min_gap: int,
) -> List[AnomalyCandidate]:
    ranked = sorted(candidates, key=lambda c: c.score, reverse=True)
    selected: List[AnomalyCandidate] = []
    for candidate in ranked:
        if len(selected) >= max_count:
            break
        if any(_too_close(candidate, s, min_gap) for s in selected):
            continue
        selected.append(candidate)
    return selected


def _to_detected(candidate: AnomalyCandidate, rank: int) -> DetectedAnomaly:
    return DetectedAnomaly(
        start_index=candidate.start,
        end_index=candidate.end,
        type=candidate.type,
        magnitude=candidate.region.peak_deviation,
        category=candidate.category,
        duration=candidate.duration,
        score=candidate.score,
        rank=rank,
    )


def detect_steps(
    series: TrafficSeries,
    max_count: int | None = None,
    options: DetectionOptions | None = None,
) -> List[DetectedAnomaly]:
    if max_count is None:
        max_count = settings.detection_max_count
    if len(series) < settings.min_series_length or max_count <= 0:
        return []

    opts = (options or DetectionOptions()).resolved()
    profiles: Dict[AnyCategory, Tuple[np.ndarray, float]] = {
        category: _deviation_profile(values, opts.start_margin, opts.end_margin)
        for category, values in series.categories().items()
    }
    candidates = _candidates(profiles, opts.weights, opts.start_margin, opts.end_margin)
    selected = select_non_overlapping(candidates, max_count, opts.min_gap)
    return [_to_detected(c, rank) for rank, c in enumerate(selected, start=1)]


def detect_step(
    series: TrafficSeries,
    options: DetectionOptions | None = None,
) -> Optional[DetectedAnomaly]:
    if len(series) < settings.min_series_length:
        return None

    opts = (options or DetectionOptions()).resolved(legacy=True)
    ok = series.values_or_zeros("ok")
    client = np.asarray(series.values_or_zeros("client"), dtype=float)
    server = np.asarray(series.values_or_zeros("server"), dtype=float)
    errors = (
        client * settings.legacy_client_error_weight
        + server * settings.legacy_server_error_weight
    )

    profiles: Dict[AnyCategory, Tuple[np.ndarray, float]] = {
        LegacyCategory.error: _deviation_profile(errors, opts.start_margin, opts.end_margin),
        LegacyCategory.success: _deviation_profile(ok, opts.start_margin, opts.end_margin),
    }
    candidates = _candidates(profiles, opts.weights, opts.start_margin, opts.end_margin)
    if not candidates:
        return None

    winner = max(candidates, key=lambda c: c.score)
    return _to_detected(winner, rank=1)
