"""
ClickHouse HTTP connector

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""
import logging
from typing import Any, Dict, List, Optional

from config import DATASOURCE_TIMEOUT, HEALTH_PATH
from datasources.base import QueryConnector
from datasources.exceptions import DataSourceUnavailable, MalformedResponse, QueryTimeout
from datasources.helpers import fetch_text, normalize_sql, post_json
from datasources.retry import retry

log = logging.getLogger(__name__)


class ClickHouseConnector(QueryConnector):
    health_path = HEALTH_PATH

    def __init__(
        self,
        base_url: str,
        user: str = "default",
        password: Optional[str] = None,
        timeout: int = DATASOURCE_TIMEOUT,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(base_url, timeout, headers)
        self.user = user
        self.password = password or ""

    @property
    def _auth(self) -> Optional[tuple[str, str]]:
        return (self.user, self.password) if self.user else None

    @staticmethod
    def _params(cache_ttl: Optional[int]) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        if cache_ttl:
            params["use_query_cache"] = 1
            params["query_cache_ttl"] = int(cache_ttl)
            params["query_cache_nondeterministic_function_handling"] = "save"
        return params

    @retry(attempts=3, delay=0.5, backoff=2.0, exceptions=(DataSourceUnavailable, QueryTimeout))
    async def query(self, sql: str, cache_ttl: Optional[int] = None) -> List[Dict[str, Any]]:
        statement = f"{normalize_sql(sql)} FORMAT JSON"
        body = await post_json(
            f"{self.base_url}/",
            statement,
            params=self._params(cache_ttl),
            headers=self._headers(),
            auth=self._auth,
            timeout=self.timeout,
            invalid_msg="ClickHouse query failed",
            timeout_msg="ClickHouse query timed out",
            unavailable_msg="Cannot reach ClickHouse at",
        )
        data = body.get("data")
        if not isinstance(data, list):
            raise MalformedResponse("ClickHouse response has no data rows")
        log.debug("clickhouse rows=%d elapsed=%s", len(data), body.get("statistics", {}).get("elapsed"))
        return [row for row in data if isinstance(row, dict)]

    async def ping(self) -> bool:
        text = await fetch_text(
            self.health_url,
            headers=self.headers,
            auth=self._auth,
            timeout=self.timeout,
            invalid_msg="ClickHouse ping failed",
            timeout_msg="ClickHouse ping timed out",
            unavailable_msg="Cannot reach ClickHouse at",
        )
        return text.strip() == "Ok."
