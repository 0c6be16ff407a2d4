"""API middleware."""

from experience_discovery.api.middleware.logging import RequestLoggingMiddleware, redact_sensitive_headers

__all__ = ["RequestLoggingMiddleware", "redact_sensitive_headers"]
