"""
Tool Registry - the closed catalogue of tools.

The registry is built once at start-up from the ToolName enum. Every member
is dispatched through one exhaustive ``match``; a ToolName added without a
case fails type checking at ``assert_never`` and fails loudly at start-up,
instead of silently resolving to nothing at request time.

Pattern: Service Registry (tool inventory)
Pattern: Exhaustive dispatch over a closed set of tagged variants
"""

from types import MappingProxyType
from typing import Iterator, Mapping, Optional, assert_never

from experience_discovery.core.config import AnalysisSettings
from experience_discovery.core.exceptions import UnknownTool
from experience_discovery.models.domain import ToolName
from experience_discovery.observability.logging import get_logger
from experience_discovery.tools import builtin
from experience_discovery.tools.base import Tool, ToolSchema, ToolSpec


logger = get_logger(__name__)


def spec_for(name: ToolName) -> ToolSpec:
    """The declaration of one tool."""
    match name:
        case ToolName.ADVANCED_SEARCH:
            return builtin.ADVANCED_SEARCH_SPEC
        case ToolName.ATTRIBUTE_SEARCH:
            return builtin.ATTRIBUTE_SEARCH_SPEC
        case ToolName.SEMANTIC_SEARCH:
            return builtin.SEMANTIC_SEARCH_SPEC
        case ToolName.FULL_TEXT_SEARCH:
            return builtin.FULL_TEXT_SEARCH_SPEC
        case ToolName.GEO_SEARCH:
            return builtin.GEO_SEARCH_SPEC
        case ToolName.GENERATE_INSIGHTS:
            return builtin.GENERATE_INSIGHTS_SPEC
        case ToolName.PREDICT_TRENDS:
            return builtin.PREDICT_TRENDS_SPEC
        case ToolName.SUGGEST_FOLLOWUPS:
            return builtin.SUGGEST_FOLLOWUPS_SPEC
        case ToolName.EXPORT_RESULTS:
            return builtin.EXPORT_RESULTS_SPEC
        case ToolName.TEMPORAL_ANALYSIS:
            return builtin.TEMPORAL_ANALYSIS_SPEC
        case ToolName.GENERATE_MAP:
            return builtin.GENERATE_MAP_SPEC
        case ToolName.GENERATE_TIMELINE:
            return builtin.GENERATE_TIMELINE_SPEC
        case ToolName.GENERATE_NETWORK:
            return builtin.GENERATE_NETWORK_SPEC
        case ToolName.GENERATE_DASHBOARD:
            return builtin.GENERATE_DASHBOARD_SPEC
        case ToolName.RANK_IDENTITIES:
            return builtin.RANK_IDENTITIES_SPEC
        case ToolName.ANALYZE_CATEGORY:
            return builtin.ANALYZE_CATEGORY_SPEC
        case ToolName.COMPARE_CATEGORIES:
            return builtin.COMPARE_CATEGORIES_SPEC
        case ToolName.ATTRIBUTE_CORRELATION:
            return builtin.ATTRIBUTE_CORRELATION_SPEC
        case ToolName.FIND_CONNECTIONS:
            return builtin.FIND_CONNECTIONS_SPEC
        case ToolName.DETECT_PATTERNS:
            return builtin.DETECT_PATTERNS_SPEC
        case _:
            assert_never(name)


# =============================================================================
# ToolRegistry Class
# =============================================================================


class ToolRegistry:
    """
    Immutable mapping of ToolName to bound Tool.

    Example:
        >>> registry = build_tool_registry()
        >>> tool = registry.get("advancedSearch")
        >>> output = await tool.execute(context, tool.input_model(categories=["dreams"]))
    """

    def __init__(self, tools: Mapping[ToolName, Tool]) -> None:
        self._tools: Mapping[ToolName, Tool] = MappingProxyType(dict(tools))

    def get(self, name: ToolName | str) -> Tool:
        """
        Look up a tool by enum member or wire name.

        Raises:
            UnknownTool: If the name is not a registered tool.
        """
        member = name if isinstance(name, ToolName) else ToolName.parse(name)
        if member is None or member not in self._tools:
            raise UnknownTool(f"Unknown tool: {name}", tool_name=str(name))
        return self._tools[member]

    def has(self, name: ToolName | str) -> bool:
        member = name if isinstance(name, ToolName) else ToolName.parse(name)
        return member is not None and member in self._tools

    def tools(self) -> list[Tool]:
        return list(self._tools.values())

    def names(self) -> list[ToolName]:
        return list(self._tools)

    def schemas(self, names: Optional[list[ToolName]] = None) -> list[ToolSchema]:
        """Schemas for the given tools (all when omitted), in the given order."""
        selected = names if names is not None else list(self._tools)
        return [self._tools[name].schema for name in selected if name in self._tools]

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def __contains__(self, name: object) -> bool:
        return isinstance(name, (ToolName, str)) and self.has(name)


def build_tool_registry(analysis: Optional[AnalysisSettings] = None) -> ToolRegistry:
    """
    Bind every ToolName to its implementation.

    Args:
        analysis: Thresholds and weights handed to every tool (defaults when omitted).

    Returns:
        ToolRegistry holding exactly one Tool per ToolName.
    """
    settings = analysis or AnalysisSettings()
    tools = {name: spec_for(name).bind(settings) for name in ToolName}
    logger.info("tool_registry_built", tools=len(tools))
    return ToolRegistry(tools)
