"""
Error hierarchy raised by the ClickHouse query transport.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""


class DataSourceError(Exception):
    pass


class DataSourceUnavailable(DataSourceError):
    """The query endpoint could not be reached."""


class QueryTimeout(DataSourceError):
    pass


class InvalidQuery(DataSourceError):
    """ClickHouse rejected the statement or answered with a non-2xx status."""


class MalformedResponse(DataSourceError):
    """The response body was not the expected ``FORMAT JSON`` document."""


class BackendStartupTimeout(DataSourceError):
    pass
