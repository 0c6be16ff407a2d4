"""
API Routes.

Exports:
- health_router: liveness and readiness probes
- tools_router: tool catalogue and single-tool execution
- discover_router: orchestrated discovery (single pass and capability router)
"""

from experience_discovery.api.routes.discover import router as discover_router
from experience_discovery.api.routes.health import router as health_router
from experience_discovery.api.routes.tools import router as tools_router

__all__ = ["discover_router", "health_router", "tools_router"]
