"""
API Dependencies - FastAPI dependency injection for the HTTP layer.

Long-lived collaborators (registry, orchestrator, router, assembler, store
factory) are built once in the application lifespan and parked on
``app.state``; the functions below hand them to route handlers. Every one
of them can be replaced in tests through ``app.dependency_overrides``.

Pattern: Centralized dependency injection following FastAPI best practices.
"""

import uuid
from typing import Optional

from fastapi import Depends, Header, Request

from experience_discovery.core.config import Settings, get_settings as _get_settings
from experience_discovery.core.context import RequestContext, create_context
from experience_discovery.core.exceptions import InvalidContext
from experience_discovery.observability.logging import get_logger
from experience_discovery.observability.tracing import get_current_trace_id
from experience_discovery.services.assembler import ResponseAssembler
from experience_discovery.services.orchestrator import Orchestrator
from experience_discovery.services.router import CapabilityRouter
from experience_discovery.store.factory import StoreFactory
from experience_discovery.tools.executor import ToolExecutor
from experience_discovery.tools.registry import ToolRegistry


logger = get_logger(__name__)


# =============================================================================
# Settings
# Pattern: Re-export from core.config for API layer
# =============================================================================


def get_settings() -> Settings:
    """
    Get application settings.

    Pattern: Singleton with @lru_cache (from core.config)
    """
    return _get_settings()


# =============================================================================
# Application-scoped services
# =============================================================================


def get_registry(request: Request) -> ToolRegistry:
    return request.app.state.registry


def get_orchestrator(request: Request) -> Orchestrator:
    return request.app.state.orchestrator


def get_capability_router(request: Request) -> CapabilityRouter:
    return request.app.state.capability_router


def get_assembler(request: Request) -> ResponseAssembler:
    return request.app.state.assembler


def get_store_factory(request: Request) -> StoreFactory:
    return request.app.state.store_factory


def get_tool_executor(orchestrator: Orchestrator = Depends(get_orchestrator)) -> ToolExecutor:
    """The orchestrator's executor, so single-tool runs share its timeout."""
    return orchestrator.executor


# =============================================================================
# Request Context
# =============================================================================


def parse_locale(accept_language: Optional[str]) -> Optional[str]:
    """
    Primary language of the first Accept-Language entry.

    Example:
        >>> parse_locale("de-DE,de;q=0.9,en;q=0.8")
        'de'
    """
    if not accept_language:
        return None
    first = accept_language.split(",")[0].split(";")[0].strip()
    if not first or first == "*":
        return None
    return first.split("-")[0].lower()


async def get_request_context(
    x_identity_id: Optional[str] = Header(default=None),
    accept_language: Optional[str] = Header(default=None),
    x_tier: Optional[str] = Header(default=None),
    x_request_id: Optional[str] = Header(default=None),
    store_factory: StoreFactory = Depends(get_store_factory),
) -> RequestContext:
    """
    Build the RequestContext for one HTTP request.

    The identity comes from ``X-Identity-Id``; authenticating it is the job
    of whatever sits in front of this service.

    Raises:
        InvalidContext: No identity header, or an unknown tier.
        StoreUnavailable: The store could not resolve the identity's tenant.
    """
    if not x_identity_id or not x_identity_id.strip():
        raise InvalidContext("X-Identity-Id header is required")
    identity_id = x_identity_id.strip()
    trace_id = x_request_id or get_current_trace_id() or uuid.uuid4().hex

    store = await store_factory.open(identity_id)
    context = create_context(
        store,
        identity_id,
        locale=parse_locale(accept_language),
        tier=x_tier.strip().lower() if x_tier else None,
        trace_id=trace_id,
    )
    logger.debug("request_context", identity_id=identity_id, tier=x_tier, trace_id=trace_id)
    return context


__all__ = [
    "get_assembler",
    "get_capability_router",
    "get_orchestrator",
    "get_registry",
    "get_request_context",
    "get_settings",
    "get_store_factory",
    "get_tool_executor",
    "parse_locale",
]
