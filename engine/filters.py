"""
Facet filter compilation into ClickHouse WHERE fragments, plus the structured filter map used to decide whether a cached investigation still covers the current drill-in.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

FilterValue = Union[str, int, float]


@dataclass(frozen=True)
class Filter:
    col: str
    value: FilterValue
    exclude: bool = False
    filter_col: Optional[str] = None
    filter_value: Optional[FilterValue] = None

    @property
    def sql_col(self) -> str:
        return self.filter_col or self.col

    @property
    def sql_value(self) -> FilterValue:
        return self.value if self.filter_value is None else self.filter_value


@dataclass
class FilterGroup:
    sql_col: str
    includes: List[FilterValue] = field(default_factory=list)
    excludes: List[FilterValue] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"sql_col": self.sql_col, "includes": list(self.includes), "excludes": list(self.excludes)}

    @classmethod
    def from_dict(cls, sql_col: str, raw: Mapping[str, Any]) -> "FilterGroup":
        return cls(
            sql_col=str(raw.get("sql_col") or sql_col),
            includes=list(raw.get("includes") or []),
            excludes=list(raw.get("excludes") or []),
        )


FilterMap = Dict[str, FilterGroup]


@dataclass(frozen=True)
class CompiledFilters:
    sql: str
    map: FilterMap


def build_filter_map(filters: Iterable[Filter]) -> FilterMap:
    by_column: FilterMap = {}
    for f in filters:
        group = by_column.setdefault(f.sql_col, FilterGroup(sql_col=f.sql_col))
        if f.exclude:
            group.excludes.append(f.sql_value)
        else:
            group.includes.append(f.sql_value)
    return by_column


def escape_string(value: Any) -> str:
    """Escape a value for use inside a single-quoted ClickHouse string literal."""
    return str(value).replace("\\", "\\\\").replace("'", "\\'")


def _literal(value: FilterValue) -> str:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return f"'{escape_string(value)}'"


def _group_clause(group: FilterGroup) -> Optional[str]:
    parts: List[str] = []
    if group.includes:
        includes = [f"{group.sql_col} = {_literal(v)}" for v in group.includes]
        parts.append(includes[0] if len(includes) == 1 else f"({' OR '.join(includes)})")
    if group.excludes:
        parts.append(" AND ".join(f"{group.sql_col} != {_literal(v)}" for v in group.excludes))

    if not parts:
        return None
    if len(parts) == 1:
        return parts[0]
    return f"({' AND '.join(parts)})"


def compile_filters(filters: Optional[Sequence[Filter]]) -> CompiledFilters:
    """Compile facet filters into an ``AND ...`` SQL fragment and a filter map.

    Includes on one column are OR'ed, excludes AND'ed, and distinct columns
    AND'ed together. String values have backslashes and single quotes escaped.
    """
    if not filters:
        return CompiledFilters(sql="", map={})

    filter_map = build_filter_map(filters)
    clauses = [c for c in (_group_clause(g) for g in filter_map.values()) if c]
    return CompiledFilters(sql=" ".join(f"AND {c}" for c in clauses), map=filter_map)


def is_filter_superset(current: Mapping[str, FilterGroup], cached: Optional[Mapping[str, FilterGroup]]) -> bool:
    """True when every cached column and value is still present in ``current``."""
    for sql_col, cached_group in (cached or {}).items():
        current_group = current.get(sql_col)
        if current_group is None:
            return False

        current_includes = {str(v) for v in current_group.includes}
        current_excludes = {str(v) for v in current_group.excludes}
        if any(str(v) not in current_includes for v in cached_group.includes):
            return False
        if any(str(v) not in current_excludes for v in cached_group.excludes):
            return False
    return True


def filter_map_to_dict(filter_map: Mapping[str, FilterGroup]) -> Dict[str, Dict[str, Any]]:
    return {col: group.to_dict() for col, group in filter_map.items()}


def filter_map_from_dict(raw: Optional[Mapping[str, Any]]) -> FilterMap:
    if not isinstance(raw, Mapping):
        return {}
    return {
        str(col): FilterGroup.from_dict(str(col), group)
        for col, group in raw.items()
        if isinstance(group, Mapping)
    }
