"""
Tool Groups - named capability bundles.

A group scopes which tools one orchestration pass may call. Groups overlap
on purpose: detectPatterns belongs to insights and relationships, and the
analytics tools also belong to insights.
"""

from enum import Enum
from types import MappingProxyType

from experience_discovery.models.domain import ToolName


class ToolGroup(str, Enum):
    SEARCH = "search"
    INSIGHTS = "insights"
    VISUALIZATION = "visualization"
    ANALYTICS = "analytics"
    RELATIONSHIPS = "relationships"
    UNIFIED = "unified"


_SEARCH = (
    ToolName.ADVANCED_SEARCH,
    ToolName.ATTRIBUTE_SEARCH,
    ToolName.SEMANTIC_SEARCH,
    ToolName.FULL_TEXT_SEARCH,
    ToolName.GEO_SEARCH,
)
_ANALYTICS = (
    ToolName.RANK_IDENTITIES,
    ToolName.ANALYZE_CATEGORY,
    ToolName.COMPARE_CATEGORIES,
    ToolName.ATTRIBUTE_CORRELATION,
)
_INSIGHTS = (
    ToolName.GENERATE_INSIGHTS,
    ToolName.PREDICT_TRENDS,
    ToolName.SUGGEST_FOLLOWUPS,
    ToolName.EXPORT_RESULTS,
    *_ANALYTICS,
    ToolName.DETECT_PATTERNS,
)
_VISUALIZATION = (
    ToolName.TEMPORAL_ANALYSIS,
    ToolName.GENERATE_MAP,
    ToolName.GENERATE_TIMELINE,
    ToolName.GENERATE_NETWORK,
    ToolName.GENERATE_DASHBOARD,
)
_RELATIONSHIPS = (
    ToolName.FIND_CONNECTIONS,
    ToolName.DETECT_PATTERNS,
)

GROUP_MEMBERS: MappingProxyType[ToolGroup, tuple[ToolName, ...]] = MappingProxyType(
    {
        ToolGroup.SEARCH: _SEARCH,
        ToolGroup.INSIGHTS: _INSIGHTS,
        ToolGroup.VISUALIZATION: _VISUALIZATION,
        ToolGroup.ANALYTICS: _ANALYTICS,
        ToolGroup.RELATIONSHIPS: _RELATIONSHIPS,
        ToolGroup.UNIFIED: tuple(ToolName),
    }
)


def tools_for_group(group: ToolGroup | str) -> tuple[ToolName, ...]:
    """
    Ordered members of a group.

    Raises:
        ValueError: If the group name is unknown.
    """
    return GROUP_MEMBERS[ToolGroup(group)]


def groups_for_tool(name: ToolName) -> list[ToolGroup]:
    """Every group containing the tool, in ToolGroup order."""
    return [group for group, members in GROUP_MEMBERS.items() if name in members]
