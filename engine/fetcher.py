"""
Fetcher for the status-bucketed traffic series that feeds step detection.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from config import settings
from engine.investigation.facets import QueryProvider
from engine.investigation.sql import TimeBucket, bucket_for_range, time_series_sql
from engine.steps.series import TrafficSeries

log = logging.getLogger(__name__)


async def fetch_traffic_series(
    provider: QueryProvider,
    range_start: datetime,
    range_end: datetime,
    time_filter: str = "",
    host_filter: str = "",
    facet_filters: str = "",
    bucket: Optional[TimeBucket] = None,
    cache_ttl: Optional[int] = None,
) -> TrafficSeries:
    if range_end <= range_start:
        raise ValueError("range end must be after range start")

    bucket = bucket or bucket_for_range(range_start, range_end)
    sql = time_series_sql(
        source=provider.source,
        bucket=bucket,
        range_start=range_start,
        range_end=range_end,
        time_filter=time_filter,
        host_filter=host_filter,
        facet_filters=facet_filters,
    )
    ttl = settings.query_cache_ttl if cache_ttl is None else cache_ttl
    rows = await provider.query(sql, cache_ttl=ttl)

    series = TrafficSeries.from_rows(rows)
    log.debug("fetch_traffic_series buckets=%d step=%s", len(series), bucket.step)
    return series
