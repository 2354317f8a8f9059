"""
Test Suite for facet analysis in anomaly and selection mode

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

import math
from datetime import datetime, timedelta, timezone

import pytest

from config import settings
from engine.enums import Category
from engine.investigation.context import AnomalyWindow
from engine.investigation.facets import (
    DEFAULT_FACETS,
    NEW_DURING_WINDOW,
    SelectionFacetResult,
    _round1,
    analyze_anomaly_rows,
    analyze_selection_rows,
    investigate_facet,
    investigate_facet_for_selection,
    select_facets,
    window_minutes,
)
from fakes import ANOMALY_ROWS, SELECTION_ROWS, FakeProvider

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
T1 = T0 + timedelta(minutes=60)
W0 = T0 + timedelta(minutes=20)
W1 = W0 + timedelta(minutes=10)


def test_round1_rounds_half_up():
    assert _round1(2.25) == 2.3
    assert _round1(-2.25) == -2.2
    assert _round1(-33.3333) == -33.3
    assert _round1(math.inf) == math.inf


def test_window_minutes_excludes_window_from_baseline():
    window = AnomalyWindow(start_time=W0, end_time=W1)
    assert window_minutes(window, T0, T1) == (10.0, 50.0)


def test_anomaly_rows_keep_overrepresented_values():
    results = analyze_anomaly_rows(ANOMALY_ROWS, anomaly_minutes=10, baseline_minutes=50)

    assert len(results) == 1
    r = results[0]
    assert r.dim == "shop.example.com"
    assert r.anomaly_rate == 8.0
    assert r.baseline_rate == 1.0
    assert r.rate_change == 700.0
    assert r.anomaly_share == 80.0
    assert r.baseline_share == 25.0
    assert r.share_change == 55.0
    assert r.error_rate_change == 70.0
    assert r.significance == 70.0


def test_anomaly_rows_flag_new_values():
    rows = [{"dim": "bot", "anomaly_cat_cnt": 30, "baseline_cat_cnt": 0,
             "anomaly_total_cnt": 30, "baseline_total_cnt": 100}]
    results = analyze_anomaly_rows(rows, anomaly_minutes=10, baseline_minutes=50)
    assert len(results) == 1
    assert results[0].rate_change == NEW_DURING_WINDOW
    assert results[0].share_change == 100.0


def test_anomaly_rows_thresholds_and_limit():
    assert analyze_anomaly_rows(ANOMALY_ROWS, 10, 50, min_rate=10.0) == []
    assert analyze_anomaly_rows(ANOMALY_ROWS, 10, 50, min_change=80.0) == []
    assert analyze_anomaly_rows(ANOMALY_ROWS, 10, 50, max_results=0) == []
    assert analyze_anomaly_rows([], 10, 50) == []


def test_selection_rows_report_both_directions():
    results = analyze_selection_rows(SELECTION_ROWS, selection_minutes=10, baseline_minutes=50)

    assert [r.dim for r in results] == ["FRA", "AMS"]
    fra, ams = results
    assert (fra.selection_rate, fra.baseline_rate, fra.rate_change) == (10.0, 2.0, 400.0)
    assert (fra.share_change, fra.err_share_change, fra.err_rate_change) == (30.0, 80.0, 40.0)
    assert fra.max_change == 80.0
    assert fra.dominant_change == 80.0

    assert ams.rate_change == 25.0
    assert (ams.share_change, ams.err_share_change, ams.err_rate_change) == (-30.0, -80.0, -10.0)
    assert ams.max_change == 80.0
    assert ams.dominant_change == -80.0


def test_selection_rows_drop_insignificant_values():
    assert analyze_selection_rows(SELECTION_ROWS, 10, 50, min_change=80.0) == []
    assert analyze_selection_rows(SELECTION_ROWS, 10, 50, min_rate=20.0) == []


def test_dominant_change_prefers_first_on_ties():
    r = SelectionFacetResult("x", 1, 1, 0, 1, 1, share_change=-10.0, err_share_change=10.0,
                             err_rate_change=5.0, max_change=10.0)
    assert r.dominant_change == -10.0


@pytest.mark.asyncio
async def test_investigate_facet_queries_provider_and_analyzes():
    provider = FakeProvider(rows=ANOMALY_ROWS)
    window = AnomalyWindow(start_time=W0, end_time=W1, category=Category.red)
    hosts = DEFAULT_FACETS[0]

    results = await investigate_facet(provider, hosts, window, T0, T1, facet_filters="AND x = 1")

    assert [r.dim for r in results] == ["shop.example.com"]
    assert len(provider.calls) == 1
    call = provider.calls[0]
    assert call["cache_ttl"] == settings.investigation_query_cache_ttl
    assert "cnt_5xx as cat_cnt" in call["sql"]
    assert "`request.host` as dim" in call["sql"]
    assert "FROM logs.requests" in call["sql"]


@pytest.mark.asyncio
async def test_investigate_facet_failure_yields_no_rows():
    provider = FakeProvider(rows=ANOMALY_ROWS, fail_on="FROM")
    window = AnomalyWindow(start_time=W0, end_time=W1, category=Category.red)
    assert await investigate_facet(provider, DEFAULT_FACETS[0], window, T0, T1) == []


@pytest.mark.asyncio
async def test_investigate_facet_for_selection_uses_extra_filter():
    provider = FakeProvider(rows=SELECTION_ROWS)
    window = AnomalyWindow.selection(W0, W1)
    errors = next(f for f in DEFAULT_FACETS if f.id == "breakdown-errors")

    results = await investigate_facet_for_selection(provider, errors, window, T0, T1, cache_ttl=1)

    assert [r.dim for r in results] == ["FRA", "AMS"]
    assert provider.calls[0]["cache_ttl"] == 1
    assert "AND `response.headers.x_error` != ''" in provider.calls[0]["sql"]


def test_default_facets_and_selection():
    ids = [f.id for f in DEFAULT_FACETS]
    assert len(ids) == 11
    assert all(i.startswith("breakdown-") for i in ids)
    asn = next(f for f in DEFAULT_FACETS if f.name == "asn")
    assert asn.filter_col == "`client.asn`"

    assert select_facets(None) == DEFAULT_FACETS
    assert [f.id for f in select_facets(["hosts", "breakdown-cache", "nope"])] == [
        "breakdown-hosts", "breakdown-cache",
    ]
