"""Experience Discovery - multi-tool query orchestration over a tenant-scoped experience corpus.

Note: Import `app` directly from `experience_discovery.main` to avoid circular imports.
"""

__version__ = "0.1.0"

__all__ = ["main", "api", "core", "models", "reasoning", "services", "store", "tools"]
