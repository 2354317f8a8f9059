"""
ClickHouse statements for investigation and time-series loading. Facet comparisons use a two-level aggregation: an inner per-(minute, dim) count that the minute projections can serve, and an outer split of those minutes into the investigated window and the rest of the range.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Tuple

from config import CATEGORY_COUNT_COLUMNS, CATEGORY_STATUS_FILTERS
from engine.enums import Category

_STATUS_COUNTS = (
    "countIf(`response.status` < 400) as cnt_ok",
    "countIf(`response.status` >= 400 AND `response.status` < 500) as cnt_4xx",
    "countIf(`response.status` >= 500) as cnt_5xx",
)


def _status_counts(indent: str) -> str:
    return (",\n" + indent).join(_STATUS_COUNTS)


def sql_datetime(moment: datetime) -> str:
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%d %H:%M:%S")


def build_time_filter(start: datetime, end: datetime) -> str:
    return (
        f"toStartOfMinute(timestamp) BETWEEN toStartOfMinute(toDateTime('{sql_datetime(start)}')) "
        f"AND toStartOfMinute(toDateTime('{sql_datetime(end)}'))"
    )


def build_minute_filter(start: datetime, end: datetime) -> str:
    return (
        f"minute BETWEEN toStartOfMinute(toDateTime('{sql_datetime(start)}')) "
        f"AND toStartOfMinute(toDateTime('{sql_datetime(end)}'))"
    )


def category_count_expr(category: Category | str) -> str:
    return CATEGORY_COUNT_COLUMNS.get(Category(category).value, "cnt")


def category_filter(category: Category | str) -> str:
    return CATEGORY_STATUS_FILTERS.get(Category(category).value, "1=1")


def _where(time_filter: str, *clauses: str) -> str:
    tail = " ".join(c for c in clauses if c)
    return f"{time_filter}\n    {tail}" if tail else time_filter


def investigate_facet_sql(
    source: str,
    col: str,
    category: Category | str,
    window_start: datetime,
    window_end: datetime,
    full_start: datetime,
    full_end: datetime,
    host_filter: str = "",
    facet_filters: str = "",
    extra: str = "",
    limit: int = 50,
) -> str:
    window = build_minute_filter(window_start, window_end)
    return f"""SELECT
  dim,
  sumIf(cat_cnt, {window}) as anomaly_cat_cnt,
  sumIf(cat_cnt, NOT ({window})) as baseline_cat_cnt,
  sumIf(cnt, {window}) as anomaly_total_cnt,
  sumIf(cnt, NOT ({window})) as baseline_total_cnt
FROM (
  SELECT
    toStartOfMinute(timestamp) as minute,
    {col} as dim,
    count() as cnt,
    {_status_counts("    ")},
    {category_count_expr(category)} as cat_cnt
  FROM {source}
  WHERE {_where(build_time_filter(full_start, full_end), host_filter, facet_filters, extra)}
  GROUP BY minute, dim
)
GROUP BY dim
HAVING anomaly_cat_cnt > 0 OR baseline_cat_cnt > 0
ORDER BY anomaly_cat_cnt DESC
LIMIT {int(limit)}"""


def investigate_selection_sql(
    source: str,
    col: str,
    selection_start: datetime,
    selection_end: datetime,
    full_start: datetime,
    full_end: datetime,
    host_filter: str = "",
    facet_filters: str = "",
    extra: str = "",
    limit: int = 50,
) -> str:
    window = build_minute_filter(selection_start, selection_end)
    return f"""SELECT
  dim,
  sumIf(cnt, {window}) as selection_cnt,
  sumIf(cnt, NOT ({window})) as baseline_cnt,
  sumIf(cnt_4xx + cnt_5xx, {window}) as selection_err_cnt,
  sumIf(cnt_4xx + cnt_5xx, NOT ({window})) as baseline_err_cnt
FROM (
  SELECT
    toStartOfMinute(timestamp) as minute,
    {col} as dim,
    count() as cnt,
    countIf(`response.status` >= 400 AND `response.status` < 500) as cnt_4xx,
    countIf(`response.status` >= 500) as cnt_5xx
  FROM {source}
  WHERE {_where(build_time_filter(full_start, full_end), host_filter, facet_filters, extra)}
  GROUP BY minute, dim
)
GROUP BY dim
HAVING selection_cnt > 0 OR baseline_cnt > 0
ORDER BY selection_cnt DESC
LIMIT {int(limit)}"""


@dataclass(frozen=True)
class TimeBucket:
    expression: str
    step: str

    def aligned(self, moment: datetime) -> str:
        """The bucket expression evaluated at ``moment`` instead of a row timestamp."""
        return self.expression.replace("timestamp", f"toDateTime('{sql_datetime(moment)}')")


_BUCKETS: Tuple[Tuple[float, TimeBucket], ...] = (
    (15, TimeBucket("toStartOfInterval(timestamp, INTERVAL 5 SECOND)", "INTERVAL 5 SECOND")),
    (60, TimeBucket("toStartOfInterval(timestamp, INTERVAL 10 SECOND)", "INTERVAL 10 SECOND")),
    (720, TimeBucket("toStartOfMinute(timestamp)", "INTERVAL 1 MINUTE")),
    (1440, TimeBucket("toStartOfFiveMinutes(timestamp)", "INTERVAL 5 MINUTE")),
)
_WIDEST_BUCKET = TimeBucket("toStartOfTenMinutes(timestamp)", "INTERVAL 10 MINUTE")


def bucket_for_range(start: datetime, end: datetime) -> TimeBucket:
    minutes = (end - start).total_seconds() / 60.0
    for limit, bucket in _BUCKETS:
        if minutes <= limit:
            return bucket
    return _WIDEST_BUCKET


def time_series_sql(
    source: str,
    bucket: TimeBucket,
    range_start: datetime,
    range_end: datetime,
    time_filter: str = "",
    host_filter: str = "",
    facet_filters: str = "",
    extra: str = "",
) -> str:
    time_filter = time_filter or build_time_filter(range_start, range_end)
    where = " ".join(c for c in (time_filter, host_filter, facet_filters, extra) if c)
    return f"""SELECT
  {bucket.expression} as t,
  {_status_counts("  ")}
FROM {source}
WHERE {where}
GROUP BY t
ORDER BY t WITH FILL FROM {bucket.aligned(range_start)} TO {bucket.aligned(range_end)} STEP {bucket.step}"""
