"""
Experience Discovery - Main Application Entry Point

FastAPI application exposing the tool catalogue, single-pass discovery and
the specialist network over HTTP.

Startup builds, once per process:
- the tool registry (all tools bound to the analysis settings)
- the reasoning engine and coordinator named in configuration
- the orchestrator, capability router and response assembler
- the store factory for the configured backend
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from experience_discovery import __version__
from experience_discovery.api.middleware.logging import RequestLoggingMiddleware
from experience_discovery.api.routes.discover import router as discover_router
from experience_discovery.api.routes.health import router as health_router
from experience_discovery.api.routes.tools import router as tools_router
from experience_discovery.core.config import Settings, get_settings
from experience_discovery.core.exceptions import (
    ContextError,
    DiscoveryError,
    NoToolSelected,
    ReasoningUnavailable,
    StoreUnavailable,
    UnknownTool,
)
from experience_discovery.observability.logging import configure_logging, get_logger
from experience_discovery.observability.metrics import MetricsMiddleware, generate_metrics
from experience_discovery.observability.tracing import TracingMiddleware, setup_tracing
from experience_discovery.reasoning.base import CoordinatorEngine, ReasoningEngine
from experience_discovery.reasoning.factory import create_coordinator, create_reasoning_engine
from experience_discovery.services.assembler import ResponseAssembler
from experience_discovery.services.orchestrator import Orchestrator
from experience_discovery.services.router import CapabilityRouter
from experience_discovery.store.factory import StoreFactory, create_store_factory
from experience_discovery.tools.registry import build_tool_registry


APP_NAME = "Experience Discovery"
APP_DESCRIPTION = "Multi-tool query orchestration over a tenant-scoped experience corpus"

logger = get_logger(__name__)


# =============================================================================
# Error Responses
# Context errors are the caller's fault (400); an engine that picked nothing
# gets 422; an unreachable store or reasoning provider is a 5xx.
# =============================================================================


def _error_body(error: DiscoveryError) -> dict[str, Any]:
    return {
        "error": {
            "kind": error.kind,
            "category": error.category.value,
            "message": error.message,
        }
    }


def _status_for(error: DiscoveryError) -> int:
    if isinstance(error, ContextError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, UnknownTool):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, NoToolSelected):
        return 422  # constant name differs across Starlette releases
    if isinstance(error, ReasoningUnavailable):
        return status.HTTP_502_BAD_GATEWAY
    if isinstance(error, StoreUnavailable):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def discovery_error_handler(request: Request, exc: DiscoveryError) -> JSONResponse:
    status_code = _status_for(exc)
    log = logger.error if status_code >= 500 else logger.warning
    log("request_rejected", path=request.url.path, kind=exc.kind, status=status_code, error=exc.message)
    return JSONResponse(status_code=status_code, content=_error_body(exc))


# =============================================================================
# Application Factory
# =============================================================================


def create_app(
    settings: Optional[Settings] = None,
    store_factory: Optional[StoreFactory] = None,
    engine: Optional[ReasoningEngine] = None,
    coordinator: Optional[CoordinatorEngine] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to use (default: environment via get_settings()).
        store_factory: Store factory (default: from settings.store_backend).
        engine: Reasoning engine (default: from settings.reasoning_engine).
        coordinator: Specialist coordinator (default: matches the engine).
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        # =====================================================================
        # STARTUP
        # =====================================================================
        configure_logging(settings.log_level)
        if settings.tracing_enabled:
            setup_tracing(settings.service_name)

        registry = build_tool_registry(settings.analysis)
        reasoning = engine or create_reasoning_engine(settings)
        orchestrator = Orchestrator.from_settings(settings, registry, reasoning)

        app.state.settings = settings
        app.state.registry = registry
        app.state.orchestrator = orchestrator
        app.state.capability_router = CapabilityRouter(
            orchestrator, coordinator or create_coordinator(settings, reasoning)
        )
        app.state.assembler = ResponseAssembler()
        app.state.store_factory = store_factory or create_store_factory(settings)
        app.state.initialized = True

        logger.info(
            "service_started",
            service=settings.service_name,
            version=__version__,
            environment=settings.environment,
            engine=type(reasoning).__name__,
            store_backend=app.state.store_factory.backend,
            tools=len(registry),
        )

        yield

        # =====================================================================
        # SHUTDOWN
        # =====================================================================
        await app.state.store_factory.close()
        app.state.initialized = False
        logger.info("service_stopped", service=settings.service_name)

    app = FastAPI(
        title=APP_NAME,
        description=APP_DESCRIPTION,
        version=__version__,
        docs_url="/docs" if settings.environment != "production" else None,
        redoc_url="/redoc" if settings.environment != "production" else None,
        lifespan=lifespan,
    )

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(TracingMiddleware, exclude_paths=["/health", "/metrics"])
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(DiscoveryError, discovery_error_handler)

    app.include_router(health_router)
    app.include_router(tools_router)
    app.include_router(discover_router)

    @app.get("/metrics", response_class=PlainTextResponse, tags=["Health"])
    async def metrics() -> PlainTextResponse:
        """Prometheus metrics endpoint."""
        return PlainTextResponse(generate_metrics(), media_type="text/plain; version=0.0.4")

    @app.get("/", tags=["Info"])
    async def root() -> dict[str, Any]:
        """Root endpoint returning basic service information."""
        return {
            "service": APP_NAME,
            "version": __version__,
            "docs": "/docs" if settings.environment != "production" else "disabled",
        }

    return app


app = create_app()
