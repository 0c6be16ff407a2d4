"""
Tools Package - Tool Registry, Groups and Execution

This package provides the closed tool catalogue, the capability groups that
scope it, and the executor that runs one validated call.
"""

from experience_discovery.tools.base import Tool, ToolInput, ToolOutput, ToolSchema, ToolSpec
from experience_discovery.tools.executor import ToolExecutor, validate_arguments
from experience_discovery.tools.groups import ToolGroup, groups_for_tool, tools_for_group
from experience_discovery.tools.registry import ToolRegistry, build_tool_registry

__all__ = [
    "Tool",
    "ToolInput",
    "ToolOutput",
    "ToolSchema",
    "ToolSpec",
    "ToolExecutor",
    "validate_arguments",
    "ToolGroup",
    "groups_for_tool",
    "tools_for_group",
    "ToolRegistry",
    "build_tool_registry",
]
