"""
Traffic series container and row parsing for the status-bucketed time-series query, turning ClickHouse JSON rows into parallel green/yellow/red count sequences with their bucket timestamps.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from engine.enums import Category

log = logging.getLogger(__name__)

_CATEGORY_FIELDS = {
    Category.green: "ok",
    Category.yellow: "client",
    Category.red: "server",
}


def parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    text = str(value).strip().replace("Z", "+00:00")
    parsed = datetime.fromisoformat(text.replace(" ", "T", 1))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _count(value: Any) -> float:
    try:
        return max(0.0, float(value))
    except (TypeError, ValueError):
        return 0.0


@dataclass
class TrafficSeries:
    ok: Optional[List[float]] = None
    client: Optional[List[float]] = None
    server: Optional[List[float]] = None
    timestamps: List[datetime] = field(default_factory=list)

    def __post_init__(self) -> None:
        lengths = {len(v) for v in (self.ok, self.client, self.server) if v is not None}
        if not lengths:
            raise ValueError("traffic series needs at least one category")
        if len(lengths) > 1:
            raise ValueError(f"category sequences differ in length: {sorted(lengths)}")
        if self.timestamps and len(self.timestamps) not in lengths:
            raise ValueError("timestamps do not match the series length")

    def __len__(self) -> int:
        for values in (self.ok, self.client, self.server):
            if values is not None:
                return len(values)
        return 0

    def categories(self) -> Dict[Category, List[float]]:
        present: Dict[Category, List[float]] = {}
        for category in (Category.red, Category.yellow, Category.green):
            values = getattr(self, _CATEGORY_FIELDS[category])
            if values is not None:
                present[category] = values
        return present

    def values_or_zeros(self, name: str) -> List[float]:
        values = getattr(self, name)
        return list(values) if values is not None else [0.0] * len(self)

    @classmethod
    def from_rows(cls, rows: Iterable[Dict[str, Any]]) -> "TrafficSeries":
        ok: List[float] = []
        client: List[float] = []
        server: List[float] = []
        timestamps: List[datetime] = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            try:
                ts = parse_timestamp(row["t"])
            except (KeyError, ValueError) as exc:
                log.debug("skipping series row without a usable timestamp: %s", exc)
                continue
            timestamps.append(ts)
            ok.append(_count(row.get("cnt_ok")))
            client.append(_count(row.get("cnt_4xx")))
            server.append(_count(row.get("cnt_5xx")))
        return cls(ok=ok, client=client, server=server, timestamps=timestamps)
