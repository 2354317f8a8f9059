"""
Facet investigation of detected anomalies and operator selections.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from engine.investigation.context import AnomalyWindow, QueryContext, build_host_filter
from engine.investigation.facets import (
    DEFAULT_FACETS,
    NEW_DURING_WINDOW,
    AnomalyFacetResult,
    FacetDefinition,
    SelectionFacetResult,
    investigate_facet,
    investigate_facet_for_selection,
)

__all__ = [
    "AnomalyFacetResult",
    "AnomalyWindow",
    "DEFAULT_FACETS",
    "FacetDefinition",
    "NEW_DURING_WINDOW",
    "QueryContext",
    "SelectionFacetResult",
    "build_host_filter",
    "investigate_facet",
    "investigate_facet_for_selection",
]
