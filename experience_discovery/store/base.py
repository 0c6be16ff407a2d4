"""
Store Base Interface - tenant-scoped experience store port.

This module defines the abstract base class for store adapters. A store
handle is bound to exactly one identity (and through it, one tenant) when
it is created; every read it performs is scoped to that tenant. Tools never
construct handles themselves, they read the one carried by RequestContext.

Design Pattern:
- Ports and Adapters (Hexagonal Architecture)
- ExperienceStore serves as the "port"
- InMemoryExperienceStore and RestExperienceStore serve as "adapters"
"""

from abc import ABC, abstractmethod
from typing import Optional

from experience_discovery.models.records import (
    ExperienceRecord,
    RecordConnection,
    RecordPage,
    RecordQuery,
    ScoredRecord,
)


class ExperienceStore(ABC):
    """
    Abstract base class for tenant-scoped store adapters.

    Methods:
        search: Filtered read (equality, range, radius, bbox, location text)
        get: Single record by id within the tenant
        full_text: Ranked keyword search
        embed: Turn free text into a query vector
        nearest: Vector-similarity search
        connections: Declared edges touching a set of records

    Raises (all methods):
        StoreUnavailable: If the backing store cannot be reached
    """

    @property
    @abstractmethod
    def tenant_id(self) -> str:
        """Tenant this handle is bound to."""
        ...

    @property
    @abstractmethod
    def identity_id(self) -> str:
        """Identity this handle was opened for."""
        ...

    @abstractmethod
    async def search(self, query: RecordQuery) -> RecordPage:
        """
        Filtered read scoped to the bound tenant.

        Args:
            query: Filters, sort key and pagination.

        Returns:
            RecordPage with the requested page and the total match count.
        """
        ...

    @abstractmethod
    async def get(self, record_id: str) -> Optional[ExperienceRecord]:
        """Return the record, or None when it is not visible to this tenant."""
        ...

    @abstractmethod
    async def full_text(
        self,
        query: str,
        language: str,
        categories: Optional[list[str]] = None,
        min_rank: float = 0.0,
        limit: int = 20,
    ) -> list[ScoredRecord]:
        """Keyword search ranked by relevance, highest first."""
        ...

    @abstractmethod
    async def embed(self, text: str) -> Optional[list[float]]:
        """Embed text for vector search; None when it cannot be embedded."""
        ...

    @abstractmethod
    async def nearest(
        self,
        vector: list[float],
        categories: Optional[list[str]] = None,
        min_similarity: float = 0.0,
        limit: int = 20,
        exclude_ids: Optional[list[str]] = None,
    ) -> list[ScoredRecord]:
        """Records ordered by cosine similarity to ``vector``, highest first."""
        ...

    @abstractmethod
    async def connections(self, record_ids: list[str]) -> list[RecordConnection]:
        """Declared connections with at least one endpoint in ``record_ids``."""
        ...
