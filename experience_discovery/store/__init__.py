"""
Store Package - tenant-scoped access to experience records.

Exports:
- ExperienceStore: the port every tool reads through
- InMemoryExperienceDatabase / InMemoryExperienceStore: local backend and test double
- RestExperienceStore: PostgREST-style HTTP backend
- create_store_factory: backend selection from Settings
"""

from experience_discovery.store.base import ExperienceStore
from experience_discovery.store.circuit_breaker import CircuitBreaker, CircuitOpenError, CircuitState
from experience_discovery.store.memory import InMemoryExperienceDatabase, InMemoryExperienceStore, QueryLogEntry
from experience_discovery.store.rest import RestExperienceStore, create_store_client
from experience_discovery.store.factory import (
    InMemoryStoreFactory,
    RestStoreFactory,
    StoreFactory,
    create_store_factory,
)

__all__ = [
    "CircuitBreaker",
    "CircuitOpenError",
    "CircuitState",
    "ExperienceStore",
    "InMemoryExperienceDatabase",
    "InMemoryExperienceStore",
    "InMemoryStoreFactory",
    "QueryLogEntry",
    "RestExperienceStore",
    "RestStoreFactory",
    "StoreFactory",
    "create_store_client",
    "create_store_factory",
]
