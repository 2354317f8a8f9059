"""
Test Suite for Store Client

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

import pytest

from store import client as store_client
from store.client import _fallback, redis_delete, redis_get, redis_scan, redis_set


@pytest.mark.asyncio
async def test_fallback_operations():
    await redis_set("k1", "v1", ttl=60)
    assert await redis_get("k1") == "v1"
    await redis_delete("k1")
    assert await redis_get("k1") is None


@pytest.mark.asyncio
async def test_keys_pattern():
    await redis_set("trafficlens:a", "1")
    await redis_set("trafficlens:b", "2")
    await redis_set("other:c", "3")
    keys = await redis_scan("trafficlens:*")
    assert sorted(keys) == ["trafficlens:a", "trafficlens:b"]


@pytest.mark.asyncio
async def test_fallback_is_bounded(monkeypatch):
    monkeypatch.setattr(store_client, "_MAX_FALLBACK_SIZE", 2)
    await redis_set("a", "1")
    await redis_set("b", "2")
    await redis_set("c", "3")
    await redis_set("a", "updated")
    assert sorted(_fallback) == ["a", "b"]
    assert await redis_get("a") == "updated"


class BrokenRedis:
    async def get(self, key):
        raise ConnectionError("gone")

    async def setex(self, key, ttl, value):
        raise ConnectionError("gone")

    async def delete(self, key):
        raise ConnectionError("gone")


@pytest.mark.asyncio
async def test_redis_errors_fall_back_to_memory(monkeypatch):
    broken = BrokenRedis()

    async def get_broken():
        return broken

    monkeypatch.setattr(store_client, "get_redis", get_broken)
    await redis_set("k", "v", ttl=30)
    assert _fallback["k"] == "v"
    assert await redis_get("k") == "v"
    await redis_delete("k")
    assert "k" not in _fallback
