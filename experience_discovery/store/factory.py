"""
Store factory - opens tenant-scoped handles for the configured backend.

The backend is chosen once, from Settings, when the factory is created;
nothing consults the choice again at call time.
"""

from abc import ABC, abstractmethod
from typing import Optional

import httpx

from experience_discovery.core.config import Settings
from experience_discovery.store.base import ExperienceStore
from experience_discovery.store.circuit_breaker import CircuitBreaker
from experience_discovery.store.memory import InMemoryExperienceDatabase
from experience_discovery.store.rest import RestExperienceStore, create_store_client


class StoreFactory(ABC):
    """Opens one store handle per request, bound to the caller's tenant."""

    backend: str = "store"

    @abstractmethod
    async def open(self, identity_id: str) -> ExperienceStore:
        ...

    async def ping(self) -> bool:
        """Whether the backend is reachable."""
        return True

    async def close(self) -> None:
        return None


class InMemoryStoreFactory(StoreFactory):
    backend = "memory"

    def __init__(self, database: Optional[InMemoryExperienceDatabase] = None) -> None:
        self.database = database or InMemoryExperienceDatabase()

    async def open(self, identity_id: str) -> ExperienceStore:
        return self.database.session(identity_id)

    async def ping(self) -> bool:
        return not self.database.unavailable


class RestStoreFactory(StoreFactory):
    """Shares one pooled HTTP client and one circuit breaker across handles."""

    backend = "rest"

    def __init__(self, client: httpx.AsyncClient, breaker: Optional[CircuitBreaker] = None) -> None:
        self.client = client
        self.breaker = breaker or CircuitBreaker(name="experience-store")

    async def open(self, identity_id: str) -> ExperienceStore:
        return await RestExperienceStore.open(self.client, identity_id, breaker=self.breaker)

    async def ping(self) -> bool:
        try:
            response = await self.client.get("/")
        except httpx.HTTPError:
            return False
        return response.status_code < 500

    async def close(self) -> None:
        await self.client.aclose()


def create_store_factory(
    settings: Settings,
    database: Optional[InMemoryExperienceDatabase] = None,
) -> StoreFactory:
    """
    Build the factory for ``settings.store_backend``.

    Args:
        settings: Application settings.
        database: In-memory database to serve from (memory backend only).
    """
    match settings.store_backend:
        case "rest":
            client = create_store_client(
                settings.store_url,
                settings.store_api_key.get_secret_value(),
                timeout_seconds=settings.store_timeout_seconds,
            )
            breaker = CircuitBreaker(
                failure_threshold=settings.circuit_breaker_failure_threshold,
                recovery_timeout_seconds=settings.circuit_breaker_recovery_timeout_seconds,
                name="experience-store",
            )
            return RestStoreFactory(client, breaker)
        case _:
            return InMemoryStoreFactory(database)
