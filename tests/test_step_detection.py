"""
Test Suite for step detection over status-class traffic

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

import math

import pytest

from engine.enums import Category, LegacyCategory, StepType
from engine.steps import DetectionOptions, TrafficSeries, detect_step, detect_steps
from engine.steps.detection import AnomalyCandidate, select_non_overlapping
from engine.steps.regions import AnomalyRegion


def _series(ok=None, client=None, server=None):
    return TrafficSeries(ok=ok, client=client, server=server)


def _candidate(start, end, score):
    duration = end - start + 1
    region = AnomalyRegion(start, end, duration, float(duration), 1.0, 1.0)
    return AnomalyCandidate(region=region, category=Category.red, type=StepType.spike, score=score)


def test_single_green_spike_detected():
    ok = [100.0] * 20
    for i in (8, 9, 10):
        ok[i] = 300.0

    found = detect_steps(_series(ok=ok))

    assert len(found) == 1
    a = found[0]
    assert (a.start_index, a.end_index, a.duration) == (8, 10, 3)
    assert a.category is Category.green
    assert a.type is StepType.spike
    assert a.magnitude == pytest.approx(2.0)
    assert a.score == pytest.approx(2.0 * math.sqrt(3) * 2.0)
    assert a.rank == 1


def test_flat_series_has_no_anomalies():
    assert detect_steps(_series(ok=[50.0] * 30, client=[3.0] * 30, server=[1.0] * 30)) == []


def test_all_zero_baseline_yields_nothing():
    server = [0.0] * 20
    server[10] = 4.0
    assert detect_steps(_series(server=server)) == []


def test_short_series_returns_empty():
    assert detect_steps(_series(ok=[1.0, 100.0, 1.0, 1.0, 1.0, 1.0, 1.0])) == []
    assert detect_step(_series(ok=[1.0] * 7)) is None


def test_ranks_follow_score_order():
    ok = [100.0] * 30
    ok[5] = ok[6] = 400.0
    ok[20] = ok[21] = 200.0

    found = detect_steps(_series(ok=ok))

    assert [(a.start_index, a.end_index) for a in found] == [(5, 6), (20, 21)]
    assert [a.rank for a in found] == [1, 2]
    assert found[0].score > found[1].score


def test_max_count_limits_results():
    ok = [100.0] * 30
    ok[5] = ok[6] = 400.0
    ok[20] = ok[21] = 200.0
    found = detect_steps(_series(ok=ok), max_count=1)
    assert len(found) == 1
    assert found[0].start_index == 5
    assert detect_steps(_series(ok=ok), max_count=0) == []


def test_end_margin_zero_reaches_last_bucket():
    ok = [100.0] * 20
    ok[18] = ok[19] = 300.0

    assert detect_steps(_series(ok=ok)) == []

    found = detect_steps(_series(ok=ok), options=DetectionOptions(end_margin=0))
    assert [(a.start_index, a.end_index) for a in found] == [(18, 19)]


def test_zero_weight_disables_category_and_type():
    ok = [100.0] * 20
    ok[8] = ok[9] = ok[10] = 300.0
    options = DetectionOptions(weights={"green_spike": 0.0, "green_dip": 2.0})
    assert detect_steps(_series(ok=ok), options=options) == []


def test_nearby_candidates_are_suppressed_by_duration_clearance():
    strong = _candidate(10, 15, score=9.0)
    weak = _candidate(19, 24, score=5.0)
    # clearance is max(min_gap, 6 // 2 + 6 // 2) = 6, and 19 <= 15 + 6
    assert select_non_overlapping([weak, strong], max_count=5, min_gap=2) == [strong]


def test_distant_candidates_are_both_kept():
    first = _candidate(10, 12, score=9.0)
    second = _candidate(22, 24, score=5.0)
    assert select_non_overlapping([second, first], max_count=5, min_gap=2) == [first, second]


def test_min_gap_dominates_for_short_candidates():
    first = _candidate(10, 10, score=3.0)
    second = _candidate(13, 13, score=2.0)
    assert select_non_overlapping([first, second], max_count=5, min_gap=3) == [first]
    assert select_non_overlapping([first, second], max_count=5, min_gap=2) == [first, second]


def test_selected_anomalies_never_overlap():
    ok = [100.0] * 40
    server = [10.0] * 40
    for i in range(12, 16):
        ok[i] = 20.0
        server[i] = 60.0
    found = detect_steps(_series(ok=ok, server=server), max_count=5)

    assert found
    spans = sorted((a.start_index, a.end_index) for a in found)
    for (s1, e1), (s2, e2) in zip(spans, spans[1:]):
        assert e1 < s2


def test_legacy_detector_prefers_weighted_error_spike():
    ok = [100.0] * 20
    server = [1.0] * 20
    for i in (8, 9, 10):
        server[i] = 5.0

    winner = detect_step(_series(ok=ok, server=server))

    assert winner is not None
    assert winner.category is LegacyCategory.error
    assert winner.type is StepType.spike
    assert (winner.start_index, winner.end_index) == (8, 10)
    assert winner.magnitude == pytest.approx(4.0)
    assert winner.score == pytest.approx(4.0 * math.sqrt(3) * 10.0)
    assert winner.rank == 1


def test_legacy_detector_returns_none_without_candidates():
    assert detect_step(_series(ok=[100.0] * 20, server=[0.0] * 20)) is None


# one hour of per-minute CDN traffic (ok, 4xx, 5xx); 4xx jumps at index 8
REAL_TRAFFIC = [
    (29321, 4835, 185), (62374, 11805, 320), (64109, 11107, 241), (64878, 9875, 286),
    (70722, 10168, 291), (87118, 10852, 343), (79909, 13132, 362), (87551, 12309, 388),
    (71661, 28932, 376), (95562, 18359, 424), (93239, 11378, 435), (90492, 11996, 544),
    (86064, 10623, 452), (90787, 11413, 358), (81593, 11097, 384), (70973, 11750, 348),
    (74590, 10204, 419), (76793, 11905, 376), (78309, 12666, 489), (83069, 10855, 368),
    (79898, 10099, 407), (78972, 10239, 478), (94156, 11704, 482), (110628, 10215, 473),
    (92292, 10751, 394), (94989, 10802, 436), (95992, 12266, 377), (81765, 10196, 311),
    (75309, 11682, 371), (76558, 9912, 347), (88861, 10292, 335), (74727, 11097, 379),
    (72673, 10656, 378), (69385, 10422, 438), (66435, 11415, 354), (66063, 10352, 371),
    (78223, 10779, 338), (73214, 10705, 252), (71712, 9977, 324), (69377, 10450, 308),
    (66511, 11850, 334), (65707, 10667, 314), (65417, 9795, 553), (64782, 10316, 378),
    (66743, 11046, 329), (62203, 10501, 307), (69531, 10092, 300), (75612, 11187, 285),
    (68203, 9308, 308), (63897, 10464, 315), (71908, 10199, 322), (75586, 10087, 328),
    (71510, 10270, 315), (78671, 10084, 359), (80763, 9793, 310), (78042, 9069, 303),
    (85987, 12139, 343), (65363, 12313, 371), (65486, 10453, 277), (58460, 9883, 72),
    (21705, 3796, 2),
]


def _columns(rows):
    return _series(
        ok=[float(r[0]) for r in rows],
        client=[float(r[1]) for r in rows],
        server=[float(r[2]) for r in rows],
    )


def test_legacy_detector_finds_real_client_error_spike():
    winner = detect_step(_columns(REAL_TRAFFIC))

    assert winner is not None
    assert winner.type is StepType.spike
    assert winner.category is LegacyCategory.error
    assert winner.start_index == 8
    assert winner.end_index < len(REAL_TRAFFIC) - 2


def test_wide_neighbours_are_excluded_by_both_widths():
    rows = [(100, 5, 1)] * 40
    rows = [(100, 60, 10) if 10 <= i <= 15 else r for i, r in enumerate(rows)]
    rows = [(100, 55, 9) if 19 <= i <= 24 else r for i, r in enumerate(rows)]

    found = detect_steps(_columns(rows), max_count=5, options=DetectionOptions(end_margin=0))

    assert any(a.start_index <= 15 and a.end_index >= 10 for a in found)
    assert not any(19 <= a.start_index <= 24 for a in found)


def test_late_spike_needs_zero_end_margin():
    rows = [(100, 10, 1)] * 15
    rows[13] = (100, 80, 20)
    rows[14] = (100, 70, 15)

    assert not any(a.end_index >= 13 for a in detect_steps(_columns(rows)))
    assert any(a.end_index >= 13 for a in detect_steps(_columns(rows), options=DetectionOptions(end_margin=0)))


def test_flat_series_yields_nothing_from_either_detector():
    flat = _columns([(1000, 50, 5)] * 30)
    assert detect_steps(flat) == []
    assert detect_step(flat) is None
