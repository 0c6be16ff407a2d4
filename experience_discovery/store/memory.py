"""
In-Memory Store - multi-tenant test double and local backend.

This module provides an InMemoryExperienceDatabase that holds records for
many tenants and hands out InMemoryExperienceStore handles bound to one
identity's tenant. It is a proper implementation of the ExperienceStore
port, not a mock: filtering, ranking and vector search behave like a real
backend, which makes it usable for local development and demos as well as
tests.

Every answered query is appended to ``query_log`` so tests can assert that
a tool did, or did not, touch the store.
"""

import asyncio
import math
from dataclasses import dataclass, field
from typing import Iterable, Optional

from experience_discovery.analysis.statistics import cosine_similarity
from experience_discovery.analysis.text import HashingEmbedder, resolve_language, tokenize
from experience_discovery.core.exceptions import StoreUnavailable
from experience_discovery.models.records import (
    ExperienceRecord,
    RecordConnection,
    RecordPage,
    RecordQuery,
    ScoredRecord,
)
from experience_discovery.observability.logging import get_logger
from experience_discovery.store.base import ExperienceStore
from experience_discovery.store.filters import matches, sort_records


logger = get_logger(__name__)


@dataclass(frozen=True)
class QueryLogEntry:
    """One answered store operation."""

    tenant_id: str
    identity_id: str
    operation: str


@dataclass
class _Tenant:
    records: dict[str, ExperienceRecord] = field(default_factory=dict)
    connections: list[RecordConnection] = field(default_factory=list)


class InMemoryExperienceDatabase:
    """
    Multi-tenant record holder.

    Identities belong to the tenant registered with add_member(); an
    identity that was never registered forms a tenant of its own.

    Attributes:
        query_log: Every store operation answered, in order
        unavailable: When True every handle raises StoreUnavailable
        latency_seconds: Artificial delay per operation (timeout testing)

    Example:
        >>> db = InMemoryExperienceDatabase()
        >>> db.add_member("alice", tenant_id="acme")
        >>> db.add_records("acme", [record])
        >>> store = db.session("alice")
    """

    def __init__(self, embedder: Optional[HashingEmbedder] = None) -> None:
        self._tenants: dict[str, _Tenant] = {}
        self._memberships: dict[str, str] = {}
        self.embedder = embedder or HashingEmbedder()
        self.query_log: list[QueryLogEntry] = []
        self.unavailable = False
        self.latency_seconds = 0.0

    def add_member(self, identity_id: str, tenant_id: str) -> None:
        self._memberships[identity_id] = tenant_id
        self._tenants.setdefault(tenant_id, _Tenant())

    def tenant_of(self, identity_id: str) -> str:
        return self._memberships.get(identity_id, identity_id)

    def add_records(self, tenant_id: str, records: Iterable[ExperienceRecord]) -> None:
        """Store records, embedding any that arrive without a vector."""
        tenant = self._tenants.setdefault(tenant_id, _Tenant())
        for record in records:
            if record.embedding is None:
                vector = self.embedder.embed(f"{record.title} {record.story_text}")
                record = record.model_copy(update={"embedding": vector})
            tenant.records[record.id] = record

    def add_connections(self, tenant_id: str, connections: Iterable[RecordConnection]) -> None:
        self._tenants.setdefault(tenant_id, _Tenant()).connections.extend(connections)

    def session(self, identity_id: str) -> "InMemoryExperienceStore":
        """Open a handle bound to the identity's tenant."""
        return InMemoryExperienceStore(self, identity_id, self.tenant_of(identity_id))

    def queries_for(self, tenant_id: Optional[str] = None) -> list[QueryLogEntry]:
        if tenant_id is None:
            return list(self.query_log)
        return [entry for entry in self.query_log if entry.tenant_id == tenant_id]

    def _records(self, tenant_id: str) -> list[ExperienceRecord]:
        return list(self._tenants.get(tenant_id, _Tenant()).records.values())

    def _connections(self, tenant_id: str) -> list[RecordConnection]:
        return list(self._tenants.get(tenant_id, _Tenant()).connections)


class InMemoryExperienceStore(ExperienceStore):
    """ExperienceStore handle over an InMemoryExperienceDatabase, scoped to one tenant."""

    def __init__(self, database: InMemoryExperienceDatabase, identity_id: str, tenant_id: str) -> None:
        self._database = database
        self._identity_id = identity_id
        self._tenant_id = tenant_id

    @property
    def tenant_id(self) -> str:
        return self._tenant_id

    @property
    def identity_id(self) -> str:
        return self._identity_id

    async def _enter(self, operation: str) -> list[ExperienceRecord]:
        if self._database.latency_seconds:
            await asyncio.sleep(self._database.latency_seconds)
        if self._database.unavailable:
            raise StoreUnavailable(f"store for tenant '{self._tenant_id}' is unavailable")
        self._database.query_log.append(QueryLogEntry(self._tenant_id, self._identity_id, operation))
        logger.debug("store_query", tenant_id=self._tenant_id, operation=operation)
        return self._database._records(self._tenant_id)

    async def search(self, query: RecordQuery) -> RecordPage:
        records = await self._enter("search")
        matched = sort_records([r for r in records if matches(r, query)], query.sort)
        page = matched[query.offset : query.offset + query.limit]
        return RecordPage(records=page, total=len(matched))

    async def get(self, record_id: str) -> Optional[ExperienceRecord]:
        await self._enter("get")
        return self._database._tenants.get(self._tenant_id, _Tenant()).records.get(record_id)

    async def full_text(
        self,
        query: str,
        language: str,
        categories: Optional[list[str]] = None,
        min_rank: float = 0.0,
        limit: int = 20,
    ) -> list[ScoredRecord]:
        records = await self._enter("full_text")
        language = resolve_language(language)
        terms = set(tokenize(query, language))
        if not terms:
            return []

        scored: list[ScoredRecord] = []
        for record in records:
            if categories and record.category not in categories:
                continue
            rank = _rank(terms, record, language)
            if rank > 0 and rank >= min_rank:
                scored.append(ScoredRecord(record=record, score=rank))
        scored.sort(key=lambda s: (-s.score, s.record.id))
        return scored[:limit]

    async def embed(self, text: str) -> Optional[list[float]]:
        if self._database.unavailable:
            raise StoreUnavailable("embedding index is unavailable")
        return self._database.embedder.embed(text)

    async def nearest(
        self,
        vector: list[float],
        categories: Optional[list[str]] = None,
        min_similarity: float = 0.0,
        limit: int = 20,
        exclude_ids: Optional[list[str]] = None,
    ) -> list[ScoredRecord]:
        records = await self._enter("nearest")
        excluded = set(exclude_ids or [])
        scored = []
        for record in records:
            if record.id in excluded or record.embedding is None:
                continue
            if categories and record.category not in categories:
                continue
            similarity = cosine_similarity(vector, record.embedding)
            if similarity >= min_similarity:
                scored.append(ScoredRecord(record=record, score=round(similarity, 6)))
        scored.sort(key=lambda s: (-s.score, s.record.id))
        return scored[:limit]

    async def connections(self, record_ids: list[str]) -> list[RecordConnection]:
        await self._enter("connections")
        wanted = set(record_ids)
        return [
            c
            for c in self._database._connections(self._tenant_id)
            if c.source_id in wanted or c.target_id in wanted
        ]


def _rank(terms: set[str], record: ExperienceRecord, language: str) -> float:
    """Share of query terms found, boosted slightly for title hits and frequency."""
    title_tokens = tokenize(record.title, language)
    body_tokens = tokenize(" ".join([record.story_text, *record.tags]), language)
    found = terms & (set(title_tokens) | set(body_tokens))
    if not found:
        return 0.0
    coverage = len(found) / len(terms)
    hits = sum(body_tokens.count(t) + 2 * title_tokens.count(t) for t in found)
    density = math.log1p(hits) / math.log1p(hits + len(body_tokens) + len(title_tokens))
    return round(0.8 * coverage + 0.2 * density, 6)
