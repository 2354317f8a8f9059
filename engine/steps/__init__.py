"""
Step detection over status-class traffic series: region finding, adaptive thresholds and weighted ranking of spikes and dips.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from engine.steps.detection import DetectedAnomaly, DetectionOptions, detect_step, detect_steps
from engine.steps.regions import AnomalyRegion, find_anomaly_regions
from engine.steps.series import TrafficSeries

__all__ = [
    "AnomalyRegion",
    "DetectedAnomaly",
    "DetectionOptions",
    "TrafficSeries",
    "detect_step",
    "detect_steps",
    "find_anomaly_regions",
]
