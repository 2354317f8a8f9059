"""
Test Suite for Helper Functions

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

import pytest
import httpx

from datasources.helpers import fetch_text, normalize_sql, post_json
from datasources.exceptions import DataSourceUnavailable, InvalidQuery, MalformedResponse, QueryTimeout


class DummyResponse:
    def __init__(self, status_code=200, text="", json_data=None, bad_json=False):
        self.status_code = status_code
        self.text = text
        self._json = json_data if json_data is not None else {}
        self._bad_json = bad_json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise httpx.HTTPStatusError("err", request=None, response=self)

    def json(self):
        if self._bad_json:
            raise ValueError("not json")
        return self._json


class DummyClient:
    def __init__(self, resp=None, exc=None):
        self.resp = resp
        self.exc = exc
        self.posted = {}

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def post(self, url, content=None, params=None, headers=None):
        self.posted = {"url": url, "content": content, "params": params, "headers": headers}
        if self.exc:
            raise self.exc
        return self.resp

    async def get(self, url, headers=None):
        if self.exc:
            raise self.exc
        return self.resp


def _install(monkeypatch, client):
    monkeypatch.setattr(httpx, "AsyncClient", lambda timeout, auth=None: client)


def test_normalize_sql_collapses_whitespace():
    assert normalize_sql("SELECT\n  a,\n\tb\nFROM t  ") == "SELECT a, b FROM t"


@pytest.mark.asyncio
async def test_post_json_success(monkeypatch):
    client = DummyClient(DummyResponse(json_data={"data": [{"a": 1}]}))
    _install(monkeypatch, client)
    got = await post_json("http://ch/", "SELECT 1", params={"use_query_cache": 1})
    assert got == {"data": [{"a": 1}]}
    assert client.posted["content"] == b"SELECT 1"
    assert client.posted["params"] == {"use_query_cache": 1}


@pytest.mark.asyncio
async def test_post_json_http_error(monkeypatch):
    _install(monkeypatch, DummyClient(DummyResponse(status_code=400, text="Syntax error")))
    with pytest.raises(InvalidQuery) as exc_info:
        await post_json("http://ch/", "SELEC 1", invalid_msg="ClickHouse query failed")
    assert "[400]" in str(exc_info.value)
    assert "Syntax error" in str(exc_info.value)


@pytest.mark.asyncio
async def test_post_json_timeout(monkeypatch):
    _install(monkeypatch, DummyClient(exc=httpx.ReadTimeout("slow")))
    with pytest.raises(QueryTimeout):
        await post_json("http://ch/", "SELECT 1")


@pytest.mark.asyncio
async def test_post_json_unreachable(monkeypatch):
    _install(monkeypatch, DummyClient(exc=httpx.ConnectError("refused")))
    with pytest.raises(DataSourceUnavailable):
        await post_json("http://ch/", "SELECT 1")


@pytest.mark.asyncio
async def test_post_json_malformed_bodies(monkeypatch):
    _install(monkeypatch, DummyClient(DummyResponse(bad_json=True)))
    with pytest.raises(MalformedResponse):
        await post_json("http://ch/", "SELECT 1")

    _install(monkeypatch, DummyClient(DummyResponse(json_data=[1, 2])))
    with pytest.raises(MalformedResponse):
        await post_json("http://ch/", "SELECT 1")


@pytest.mark.asyncio
async def test_fetch_text(monkeypatch):
    _install(monkeypatch, DummyClient(DummyResponse(text="Ok.\n")))
    assert await fetch_text("http://ch/ping") == "Ok.\n"

    _install(monkeypatch, DummyClient(exc=httpx.ConnectError("refused")))
    with pytest.raises(DataSourceUnavailable):
        await fetch_text("http://ch/ping")
