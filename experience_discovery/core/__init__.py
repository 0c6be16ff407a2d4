"""
Core module for Experience Discovery.

This module contains configuration, exceptions and the request context.
Import the context from ``experience_discovery.core.context``; it depends on
the store port and is kept out of this namespace.
"""

from experience_discovery.core.config import AnalysisSettings, Settings, get_settings
from experience_discovery.core.exceptions import (
    ContextError,
    DiscoveryError,
    ErrorCategory,
    ErrorCode,
    OrchestrationError,
    ToolDomainError,
    ToolExecutionError,
    ToolInputError,
)

__all__ = [
    # Config
    "AnalysisSettings",
    "Settings",
    "get_settings",
    # Exceptions
    "ContextError",
    "DiscoveryError",
    "ErrorCategory",
    "ErrorCode",
    "OrchestrationError",
    "ToolDomainError",
    "ToolExecutionError",
    "ToolInputError",
]
