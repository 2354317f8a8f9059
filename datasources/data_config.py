"""
ClickHouse connection settings for the query transport.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""
import re
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

from config import (
    TRAFFICLENS_CLICKHOUSE_PASSWORD,
    TRAFFICLENS_CLICKHOUSE_URL,
    TRAFFICLENS_CLICKHOUSE_USER,
    TRAFFICLENS_CONNECTOR_TIMEOUT,
    TRAFFICLENS_DATABASE,
    TRAFFICLENS_STARTUP_TIMEOUT,
    TRAFFICLENS_TABLE,
)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class DataSourceSettings(BaseSettings):
    clickhouse_url: str = TRAFFICLENS_CLICKHOUSE_URL
    clickhouse_user: str = TRAFFICLENS_CLICKHOUSE_USER
    clickhouse_password: Optional[str] = TRAFFICLENS_CLICKHOUSE_PASSWORD
    database: str = TRAFFICLENS_DATABASE
    table: str = TRAFFICLENS_TABLE
    connector_timeout: int = TRAFFICLENS_CONNECTOR_TIMEOUT
    startup_timeout: int = TRAFFICLENS_STARTUP_TIMEOUT

    @field_validator("clickhouse_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: Optional[str]) -> Optional[str]:
        return str(v).rstrip("/") if v is not None else v

    @field_validator("database", "table", mode="before")
    @classmethod
    def validate_identifier(cls, v: str) -> str:
        value = str(v or "").strip()
        if not _IDENTIFIER_RE.match(value):
            raise ValueError(f"Unsupported ClickHouse identifier: {value!r}")
        return value

    model_config = {"env_prefix": "TRAFFICLENS_", "extra": "ignore"}
