"""
Readiness behavior tests for API health endpoint.
"""

from __future__ import annotations

import json

import pytest

import main as app_main
from datasources.data_config import DataSourceSettings


@pytest.mark.asyncio
async def test_ready_endpoint_returns_503_with_backend_details_when_not_ready(monkeypatch):
    monkeypatch.setattr(app_main, "_backend_ready", False)
    monkeypatch.setattr(app_main, "_backend_status", {"clickhouse": "failed: timeout"})
    response = await app_main.ready()
    payload = json.loads(response.body.decode("utf-8"))
    assert response.status_code == 503
    assert payload["ready"] is False
    assert payload["backends"]["clickhouse"].startswith("failed:")


@pytest.mark.asyncio
async def test_readiness_probes_clickhouse_ping(monkeypatch):
    seen = {}

    async def fake_wait_for(name, url, timeout, headers=None, accept_status=(200,)):
        seen["url"] = url

    monkeypatch.setattr(app_main, "wait_for", fake_wait_for)
    monkeypatch.setattr(app_main, "_backend_ready", False)
    monkeypatch.setattr(app_main, "_backend_status", {})

    await app_main._wait_for_backend_bg(DataSourceSettings(clickhouse_url="http://ch:8123/"))

    assert seen["url"] == "http://ch:8123/ping"
    assert app_main._backend_ready is True
    assert app_main._backend_status["clickhouse"] == "ready"


@pytest.mark.asyncio
async def test_readiness_failure_is_reported(monkeypatch):
    async def fake_wait_for(name, url, timeout, headers=None, accept_status=(200,)):
        raise RuntimeError("clickhouse down")

    monkeypatch.setattr(app_main, "wait_for", fake_wait_for)
    monkeypatch.setattr(app_main, "_backend_ready", True)
    monkeypatch.setattr(app_main, "_backend_status", {})

    await app_main._wait_for_backend_bg(DataSourceSettings())

    assert app_main._backend_ready is False
    assert app_main._backend_status["clickhouse"].startswith("failed:")
