"""
Request Logging Middleware.

Logs method, path, status code and duration of every HTTP request as a
structured event. Sensitive headers are redacted before they reach the log.
"""

import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from experience_discovery.observability.logging import get_logger


logger = get_logger(__name__)


# =============================================================================
# Sensitive Header Redaction
# Pattern: Security - never log credentials
# =============================================================================

# Headers that should be redacted (case-insensitive substring match)
SENSITIVE_HEADER_PATTERNS = [
    "authorization",
    "api-key",
    "apikey",
    "api_key",
    "x-auth-token",
    "cookie",
]


def redact_sensitive_headers(headers: dict[str, str]) -> dict[str, str]:
    """
    Redact sensitive headers from a headers dictionary.

    Returns:
        Dictionary with sensitive values replaced with [REDACTED]
    """
    redacted = {}
    for key, value in headers.items():
        key_lower = key.lower()
        is_sensitive = any(pattern in key_lower for pattern in SENSITIVE_HEADER_PATTERNS)
        redacted[key] = "[REDACTED]" if is_sensitive else value
    return redacted


# =============================================================================
# Request Logging Middleware
# Pattern: ASGI middleware (Starlette/FastAPI)
# =============================================================================


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for logging HTTP requests and responses.

    Responses with status >= 400 are logged at warning level; requests that
    raise are logged at error level and re-raised.
    """

    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:
        start_time = time.perf_counter()
        method = request.method
        path = request.url.path
        client_host = request.client.host if request.client else "unknown"

        logger.debug(
            "http_request_started",
            method=method,
            path=path,
            client=client_host,
            headers=redact_sensitive_headers(dict(request.headers)),
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "http_request_failed",
                method=method,
                path=path,
                client=client_host,
                error_type=type(e).__name__,
                error=str(e),
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )
            raise

        log = logger.warning if response.status_code >= 400 else logger.info
        log(
            "http_request",
            method=method,
            path=path,
            status=response.status_code,
            client=client_host,
            duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )
        return response
