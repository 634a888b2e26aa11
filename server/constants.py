"""Centralized constants for report component kinds and defaults.

Single source of truth for the component ``kind`` discriminators, so the
registry, the accessors and the renderers agree on which kinds exist.
"""

from typing import FrozenSet

# =============================================================================
# DEFAULTS
# =============================================================================

# Seconds a report stays cached; 0 disables caching
DEFAULT_REPORT_CACHE_TTL: int = 60

# How many items tagged lists load at once
LOAD_LIMIT: int = 500

# Suffix of the side-channel expiry entry used by TTL-unaware cache backends
EXPIRES_AT_SUFFIX: str = "_expires_at"

# =============================================================================
# COMPONENT KINDS
# =============================================================================

TEXT_KIND = "text"
TABLE_KIND = "table"
FORMATTING_KIND = "formatting"
PARAMETERS_KIND = "parameters"
META_KIND = "meta"

BAR_CHART_KIND = "bar_chart"
BAR_CHART_RESULTS_KIND = "bar_chart_results"
BAR_STACK_CHART_KIND = "bar_stack_chart"
LINE_CHART_KIND = "line_chart"
MULTI_LINE_CHART_KIND = "multi_line_chart"

CHART_KINDS: FrozenSet[str] = frozenset([
    BAR_CHART_KIND,
    BAR_CHART_RESULTS_KIND,
    BAR_STACK_CHART_KIND,
    LINE_CHART_KIND,
    MULTI_LINE_CHART_KIND,
])
