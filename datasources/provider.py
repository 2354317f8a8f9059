"""
Provider wrapping the ClickHouse connector together with the database and table the engine queries.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from typing import Any, Dict, List, Optional

from connectors.clickhouse import ClickHouseConnector
from .data_config import DataSourceSettings


class DataSourceProvider:
    def __init__(self, settings: DataSourceSettings, connector: Optional[ClickHouseConnector] = None):
        self.settings = settings
        self.database = settings.database
        self.table = settings.table
        self.clickhouse = connector or ClickHouseConnector(
            base_url=settings.clickhouse_url,
            user=settings.clickhouse_user,
            password=settings.clickhouse_password,
            timeout=settings.connector_timeout,
        )

    @property
    def source(self) -> str:
        return f"{self.database}.{self.table}"

    async def query(self, sql: str, cache_ttl: Optional[int] = None) -> List[Dict[str, Any]]:
        return await self.clickhouse.query(sql, cache_ttl=cache_ttl)

    async def ping(self) -> bool:
        return await self.clickhouse.ping()

    async def aclose(self) -> None:
        await self.clickhouse.aclose()
