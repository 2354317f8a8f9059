"""
Key layout for the investigation cache namespace.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

from config import CACHE_KEY_PREFIX


def investigation(cache_key: str) -> str:
    return f"{CACHE_KEY_PREFIX}{cache_key}"


def investigation_pattern() -> str:
    return f"{CACHE_KEY_PREFIX}*"
