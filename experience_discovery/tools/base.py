"""
Tool Definition - schema-validated operations against the tenant store.

A ToolSpec is declared once per tool in the builtin modules. Binding it to
the analysis settings yields the immutable Tool the registry holds:

    execute(context, validated_input) -> output

The context is an explicit argument of every execute; a tool never reaches
the store any other way.
"""

import functools
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

from experience_discovery.core.config import AnalysisSettings
from experience_discovery.core.context import RequestContext
from experience_discovery.models.domain import ToolName


class ToolInput(BaseModel):
    """Base for tool input schemas; unknown arguments are rejected."""

    model_config = ConfigDict(extra="forbid")


class ToolOutput(BaseModel):
    """Base for tool output schemas."""

    def headline(self) -> str:
        """One-sentence description of the result, used in narratives."""
        return ""


class ToolSchema(BaseModel):
    """
    What a reasoning engine (or API client) sees of a tool.

    Attributes:
        name: Tool name.
        description: When to use the tool.
        parameters: JSON Schema of the input.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    parameters: dict[str, Any] = Field(default_factory=dict)


Handler = Callable[[RequestContext, Any, AnalysisSettings], Awaitable[ToolOutput]]
Execute = Callable[[RequestContext, Any], Awaitable[ToolOutput]]


@dataclass(frozen=True)
class Tool:
    """A registered tool: name, schemas and bound execute function."""

    name: ToolName
    description: str
    input_model: type[ToolInput]
    output_model: type[ToolOutput]
    execute: Execute

    @functools.cached_property
    def schema(self) -> ToolSchema:
        return ToolSchema(
            name=self.name.value,
            description=self.description,
            parameters=self.input_model.model_json_schema(),
        )


@dataclass(frozen=True)
class ToolSpec:
    """Declaration of a tool before its analysis settings are known."""

    name: ToolName
    description: str
    input_model: type[ToolInput]
    output_model: type[ToolOutput]
    handler: Handler

    def bind(self, analysis: Optional[AnalysisSettings] = None) -> Tool:
        settings = analysis or AnalysisSettings()

        async def execute(context: RequestContext, params: Any) -> ToolOutput:
            return await self.handler(context, params, settings)

        return Tool(
            name=self.name,
            description=self.description,
            input_model=self.input_model,
            output_model=self.output_model,
            execute=execute,
        )
