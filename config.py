"""
Constants and configuration for TrafficLens.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

import os
from typing import Dict

from pydantic_settings import BaseSettings


REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

TRAFFICLENS_CLICKHOUSE_URL = os.getenv("TRAFFICLENS_CLICKHOUSE_URL", "http://clickhouse:8123").rstrip("/")
TRAFFICLENS_CLICKHOUSE_USER = os.getenv("TRAFFICLENS_CLICKHOUSE_USER", "default")
TRAFFICLENS_CLICKHOUSE_PASSWORD = os.getenv("TRAFFICLENS_CLICKHOUSE_PASSWORD", "")
TRAFFICLENS_DATABASE = os.getenv("TRAFFICLENS_DATABASE", "helix_logs_production")
TRAFFICLENS_TABLE = os.getenv("TRAFFICLENS_TABLE", "cdn_requests_v2")

TRAFFICLENS_CONNECTOR_TIMEOUT = int(os.getenv("TRAFFICLENS_CONNECTOR_TIMEOUT", "30"))
TRAFFICLENS_STARTUP_TIMEOUT = int(os.getenv("TRAFFICLENS_STARTUP_TIMEOUT", "60"))

HEALTH_PATH = "/ping"
DATASOURCE_TIMEOUT = 30

# bump when the cached investigation format or the scoring changes
CACHE_VERSION = 3
CACHE_TTL_SECONDS: int = int(os.getenv("TRAFFICLENS_CACHE_TTL", "3600"))
CACHE_KEEP_ENTRIES = 10
CACHE_KEY_PREFIX = "trafficlens:anomaly_investigation:"

# category count columns produced by the inner minute aggregation
CATEGORY_COUNT_COLUMNS: Dict[str, str] = {
    "red": "cnt_5xx",
    "yellow": "cnt_4xx",
    "green": "cnt_ok",
}

CATEGORY_STATUS_FILTERS: Dict[str, str] = {
    "red": "`response.status` >= 500",
    "yellow": "`response.status` >= 400 AND `response.status` < 500",
    "green": "`response.status` < 400",
}


class Settings(BaseSettings):
    # query cache TTL handed to ClickHouse; a forced refresh drops it to 1s
    query_cache_ttl: int = 300
    investigation_query_cache_ttl: int = 60
    force_refresh_cache_ttl: int = 1

    # step detection
    min_series_length: int = 8
    detection_start_margin: int = 2
    detection_end_margin: int = 2
    detection_min_gap: int = 2
    detection_max_count: int = 5

    # weights for the multi-category detector, keyed "<category>_<type>"
    step_weights: Dict[str, float] = {
        "red_spike": 2.0,
        "yellow_spike": 2.0,
        "green_dip": 2.0,
        "green_spike": 2.0,
        "yellow_dip": 1.0,
        "red_dip": 1.0,
    }

    # legacy single-winner detector
    legacy_step_weights: Dict[str, float] = {
        "error_spike": 10.0,
        "success_dip": 10.0,
        "success_spike": 1.0,
    }
    legacy_client_error_weight: float = 2.0
    legacy_server_error_weight: float = 5.0

    # facet investigation
    investigation_min_rate: float = 0.5
    investigation_min_change: float = 5.0
    investigation_max_results: int = 5
    investigation_row_limit: int = 50
    investigation_cache_top_n: int = 30
    investigation_highlight_top_n: int = 3
    investigation_max_parallel_queries: int = 4
    investigation_max_sessions: int = 256

    # investigation cache
    cache_version: int = CACHE_VERSION
    cache_ttl_seconds: int = CACHE_TTL_SECONDS
    cache_keep_entries: int = CACHE_KEEP_ENTRIES

    store_redis_retry_cooldown_seconds: float = 10.0
    store_fallback_max_items: int = 10_000

    model_config = {
        "env_prefix": "TRAFFICLENS_",
        "extra": "ignore",
    }


settings = Settings()
