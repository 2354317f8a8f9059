"""
Enumerations for traffic categories, step types and scan directions

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

from enum import Enum


class Category(str, Enum):
    red = "red"
    yellow = "yellow"
    green = "green"
    # operator-dragged selections are not tied to a status class
    blue = "blue"


class LegacyCategory(str, Enum):
    error = "error"
    success = "success"


class StepType(str, Enum):
    spike = "spike"
    dip = "dip"
    selection = "selection"


class Direction(str, Enum):
    above = "above"
    below = "below"
