"""
Built-in Tools Package

The twenty tools of the registry, grouped by capability. Each module
declares one ToolSpec per tool; tools.registry binds them to the analysis
settings and dispatches on ToolName.
"""

from experience_discovery.tools.builtin.analytics import (
    ANALYZE_CATEGORY_SPEC,
    ATTRIBUTE_CORRELATION_SPEC,
    COMPARE_CATEGORIES_SPEC,
    RANK_IDENTITIES_SPEC,
)
from experience_discovery.tools.builtin.insights import (
    EXPORT_RESULTS_SPEC,
    GENERATE_INSIGHTS_SPEC,
    PREDICT_TRENDS_SPEC,
    SUGGEST_FOLLOWUPS_SPEC,
)
from experience_discovery.tools.builtin.relationships import (
    DETECT_PATTERNS_SPEC,
    FIND_CONNECTIONS_SPEC,
)
from experience_discovery.tools.builtin.search import (
    ADVANCED_SEARCH_SPEC,
    ATTRIBUTE_SEARCH_SPEC,
    FULL_TEXT_SEARCH_SPEC,
    GEO_SEARCH_SPEC,
    SEMANTIC_SEARCH_SPEC,
)
from experience_discovery.tools.builtin.visualization import (
    GENERATE_DASHBOARD_SPEC,
    GENERATE_MAP_SPEC,
    GENERATE_NETWORK_SPEC,
    GENERATE_TIMELINE_SPEC,
    TEMPORAL_ANALYSIS_SPEC,
)

__all__ = [
    # Search
    "ADVANCED_SEARCH_SPEC",
    "ATTRIBUTE_SEARCH_SPEC",
    "SEMANTIC_SEARCH_SPEC",
    "FULL_TEXT_SEARCH_SPEC",
    "GEO_SEARCH_SPEC",
    # Insights
    "GENERATE_INSIGHTS_SPEC",
    "PREDICT_TRENDS_SPEC",
    "SUGGEST_FOLLOWUPS_SPEC",
    "EXPORT_RESULTS_SPEC",
    # Visualization
    "TEMPORAL_ANALYSIS_SPEC",
    "GENERATE_MAP_SPEC",
    "GENERATE_TIMELINE_SPEC",
    "GENERATE_NETWORK_SPEC",
    "GENERATE_DASHBOARD_SPEC",
    # Analytics
    "RANK_IDENTITIES_SPEC",
    "ANALYZE_CATEGORY_SPEC",
    "COMPARE_CATEGORIES_SPEC",
    "ATTRIBUTE_CORRELATION_SPEC",
    # Relationships
    "FIND_CONNECTIONS_SPEC",
    "DETECT_PATTERNS_SPEC",
]
