"""
Test Suite for facet filter compilation and superset checks

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from engine.filters import (
    Filter,
    FilterGroup,
    compile_filters,
    escape_string,
    filter_map_from_dict,
    filter_map_to_dict,
    is_filter_superset,
)

HOST = "`request.host`"
DC = "`cdn.datacenter`"
ASN = "`client.asn`"


def test_empty_filters_compile_to_nothing():
    compiled = compile_filters([])
    assert compiled.sql == ""
    assert compiled.map == {}
    assert compile_filters(None).sql == ""


def test_includes_or_excludes_and_columns_and():
    compiled = compile_filters([
        Filter(HOST, "a.com"),
        Filter(HOST, "b.com"),
        Filter(DC, "FRA", exclude=True),
        Filter(ASN, 13335),
    ])
    assert compiled.sql == (
        f"AND ({HOST} = 'a.com' OR {HOST} = 'b.com') "
        f"AND {DC} != 'FRA' "
        f"AND {ASN} = 13335"
    )
    assert compiled.map[HOST].includes == ["a.com", "b.com"]
    assert compiled.map[DC].excludes == ["FRA"]


def test_include_and_exclude_on_one_column_are_grouped():
    compiled = compile_filters([
        Filter(DC, "FRA"),
        Filter(DC, "AMS", exclude=True),
        Filter(DC, "LHR", exclude=True),
    ])
    assert compiled.sql == f"AND ({DC} = 'FRA' AND {DC} != 'AMS' AND {DC} != 'LHR')"


def test_filter_column_and_value_override_display():
    f = Filter(
        col="concat(toString(`client.asn`), ' ', name)",
        value="13335 CLOUDFLARENET",
        filter_col=ASN,
        filter_value=13335,
    )
    compiled = compile_filters([f])
    assert compiled.sql == f"AND {ASN} = 13335"
    assert list(compiled.map) == [ASN]


def test_quotes_are_escaped():
    assert compile_filters([Filter("`request.url`", "/it's")]).sql == "AND `request.url` = '/it\\'s'"


def test_backslash_cannot_close_the_literal():
    value = "x\\' OR 1=1 OR 'a'='a"
    sql = compile_filters([Filter("`request.host`", value)]).sql
    assert sql == "AND `request.host` = 'x\\\\\\' OR 1=1 OR \\'a\\'=\\'a'"
    assert escape_string("a\\b") == "a\\\\b"


def test_superset_of_empty_cache_is_always_true():
    current = compile_filters([Filter(HOST, "a.com")]).map
    assert is_filter_superset(current, {})
    assert is_filter_superset({}, None)


def test_drill_in_is_a_superset():
    cached = compile_filters([Filter(HOST, "a.com")]).map
    current = compile_filters([Filter(HOST, "a.com"), Filter(DC, "FRA")]).map
    assert is_filter_superset(current, cached)
    assert not is_filter_superset(cached, current)


def test_removed_or_changed_values_are_not_a_superset():
    cached = compile_filters([Filter(HOST, "a.com"), Filter(DC, "FRA", exclude=True)]).map
    assert not is_filter_superset(compile_filters([Filter(HOST, "b.com"), Filter(DC, "FRA", exclude=True)]).map, cached)
    assert not is_filter_superset(compile_filters([Filter(HOST, "a.com")]).map, cached)
    assert not is_filter_superset(compile_filters([Filter(HOST, "a.com"), Filter(DC, "AMS", exclude=True)]).map, cached)


def test_superset_compares_values_as_strings():
    cached = {ASN: FilterGroup(sql_col=ASN, includes=["13335"])}
    current = compile_filters([Filter(ASN, 13335)]).map
    assert is_filter_superset(current, cached)


def test_filter_map_dict_round_trip():
    original = compile_filters([Filter(HOST, "a.com"), Filter(DC, "FRA", exclude=True)]).map
    restored = filter_map_from_dict(filter_map_to_dict(original))
    assert restored == original
    assert filter_map_from_dict(None) == {}
    assert filter_map_from_dict({"x": "not a group"}) == {}
