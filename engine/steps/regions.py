"""
Region finding over a deviation-ratio sequence: maximal contiguous runs of buckets whose deviation exceeds a threshold in one direction, with the leading and trailing margins excluded to skip partial-bucket and ingestion-delay artifacts.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

from engine.enums import Direction


@dataclass(frozen=True)
class AnomalyRegion:
    start: int
    end: int
    duration: int
    total_deviation: float
    peak_deviation: float
    avg_deviation: float


def _close(start: int, end: int, total: float, peak: float) -> AnomalyRegion:
    duration = end - start + 1
    return AnomalyRegion(
        start=start,
        end=end,
        duration=duration,
        total_deviation=total,
        peak_deviation=peak,
        avg_deviation=total / duration,
    )


def find_anomaly_regions(
    deviations: Sequence[float],
    threshold: float,
    direction: Direction | str,
    start_margin: int = 2,
    end_margin: int = 2,
) -> List[AnomalyRegion]:
    direction = Direction(direction)
    last = len(deviations) - end_margin
    regions: List[AnomalyRegion] = []

    region_start = -1
    total = peak = 0.0

    for i in range(max(0, start_margin), last):
        dev = float(deviations[i])
        anomalous = dev > threshold if direction is Direction.above else dev < -threshold

        if anomalous:
            if region_start < 0:
                region_start = i
                total = peak = abs(dev)
            else:
                total += abs(dev)
                peak = max(peak, abs(dev))
        elif region_start >= 0:
            regions.append(_close(region_start, i - 1, total, peak))
            region_start = -1

    if region_start >= 0:
        regions.append(_close(region_start, last - 1, total, peak))

    return regions
