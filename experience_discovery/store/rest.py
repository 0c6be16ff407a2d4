"""
REST Store - ExperienceStore adapter over a PostgREST-style backend.

Every operation is an RPC call (``POST /rpc/<function>``) or a table read
carrying the bound tenant id, so the backend filters rows by tenant on
every request. The service key travels as ``apikey`` plus a bearer token;
the identity is sent as ``X-Identity-Id`` for row-level policies.

Failure mapping:
- timeouts, transport errors and 5xx answers -> StoreUnavailable (and a
  circuit-breaker failure)
- 4xx answers -> ToolExecutionFailed (the request was wrong, not the store)

Pattern: Client adapter for a downstream service
Pattern: Circuit Breaker around every call
"""

from typing import Any, Optional

import httpx

from experience_discovery.core.exceptions import StoreUnavailable, ToolExecutionFailed
from experience_discovery.models.records import (
    ExperienceRecord,
    RecordConnection,
    RecordPage,
    RecordQuery,
    ScoredRecord,
)
from experience_discovery.observability.logging import get_logger
from experience_discovery.store.base import ExperienceStore
from experience_discovery.store.circuit_breaker import CircuitBreaker


logger = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15.0
DEFAULT_MAX_CONNECTIONS = 100
DEFAULT_MAX_KEEPALIVE = 20


def create_store_client(
    base_url: str,
    api_key: str,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """
    HTTP client with pooling, timeouts and the service credentials.

    Args:
        base_url: Backend root, e.g. "https://db.example.org/rest/v1".
        api_key: Service key sent as ``apikey`` and bearer token.
        timeout_seconds: Connect/read/write/pool timeout.
        transport: Optional transport (``httpx.MockTransport`` in tests).
    """
    headers = {
        "User-Agent": "experience-discovery/1.0",
        "Accept": "application/json",
        "apikey": api_key,
        "Authorization": f"Bearer {api_key}",
    }
    return httpx.AsyncClient(
        base_url=base_url,
        timeout=httpx.Timeout(timeout_seconds),
        headers=headers,
        transport=transport
        or httpx.AsyncHTTPTransport(
            retries=1,
            limits=httpx.Limits(
                max_connections=DEFAULT_MAX_CONNECTIONS,
                max_keepalive_connections=DEFAULT_MAX_KEEPALIVE,
            ),
        ),
    )


def _is_store_fault(error: Exception) -> bool:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code >= 500
    return isinstance(error, httpx.HTTPError)


class RestExperienceStore(ExperienceStore):
    """
    Tenant-scoped handle over a shared HTTP client.

    Handles are cheap; open one per request with ``RestExperienceStore.open``.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        identity_id: str,
        tenant_id: str,
        breaker: Optional[CircuitBreaker] = None,
    ) -> None:
        self._client = client
        self._identity_id = identity_id
        self._tenant_id = tenant_id
        self._breaker = breaker or CircuitBreaker(name="experience-store")

    @classmethod
    async def open(
        cls,
        client: httpx.AsyncClient,
        identity_id: str,
        breaker: Optional[CircuitBreaker] = None,
    ) -> "RestExperienceStore":
        """
        Resolve the identity's tenant and bind a handle to it.

        Raises:
            StoreUnavailable: The backend could not be reached.
            ToolExecutionFailed: The backend knows no tenant for the identity.
        """
        probe = cls(client, identity_id, tenant_id="", breaker=breaker)
        body = await probe._request("POST", "/rpc/tenant_for_identity", json={"identity_id": identity_id})
        tenant_id = body.get("tenant_id") if isinstance(body, dict) else body
        if not tenant_id:
            raise ToolExecutionFailed(f"No tenant is registered for identity '{identity_id}'")
        return cls(client, identity_id, str(tenant_id), breaker=probe._breaker)

    @property
    def tenant_id(self) -> str:
        return self._tenant_id

    @property
    def identity_id(self) -> str:
        return self._identity_id

    # =========================================================================
    # Transport
    # =========================================================================

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        async def send() -> httpx.Response:
            response = await self._client.request(
                method, path, headers={"X-Identity-Id": self._identity_id}, **kwargs
            )
            response.raise_for_status()
            return response

        try:
            response = await self._breaker.call(send, counts_as_failure=_is_store_fault)
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning("store_http_error", path=path, status=status, tenant_id=self._tenant_id)
            if status >= 500:
                raise StoreUnavailable(f"store answered {status} for {path}") from e
            raise ToolExecutionFailed(f"store rejected {path}: {status} {e.response.text[:200]}") from e
        except httpx.HTTPError as e:
            logger.warning("store_unreachable", path=path, error=str(e), tenant_id=self._tenant_id)
            raise StoreUnavailable(f"store request to {path} failed: {e}") from e

        logger.debug("store_query", path=path, tenant_id=self._tenant_id)
        return response.json() if response.content else None

    async def _rpc(self, function: str, **payload: Any) -> Any:
        return await self._request("POST", f"/rpc/{function}", json={"tenant_id": self._tenant_id, **payload})

    # =========================================================================
    # ExperienceStore
    # =========================================================================

    async def search(self, query: RecordQuery) -> RecordPage:
        body = await self._rpc("search_experiences", query=query.model_dump(mode="json"))
        return RecordPage.model_validate(body or {})

    async def get(self, record_id: str) -> Optional[ExperienceRecord]:
        rows = await self._request(
            "GET",
            "/experiences",
            params={"id": f"eq.{record_id}", "tenant_id": f"eq.{self._tenant_id}", "limit": "1"},
        )
        if not rows:
            return None
        return ExperienceRecord.model_validate(rows[0])

    async def full_text(
        self,
        query: str,
        language: str,
        categories: Optional[list[str]] = None,
        min_rank: float = 0.0,
        limit: int = 20,
    ) -> list[ScoredRecord]:
        rows = await self._rpc(
            "full_text_search",
            query=query,
            language=language,
            categories=categories or [],
            min_rank=min_rank,
            match_count=limit,
        )
        return [ScoredRecord.model_validate(row) for row in rows or []]

    async def embed(self, text: str) -> Optional[list[float]]:
        body = await self._request("POST", "/rpc/embed_text", json={"text": text})
        return body.get("embedding") if isinstance(body, dict) else None

    async def nearest(
        self,
        vector: list[float],
        categories: Optional[list[str]] = None,
        min_similarity: float = 0.0,
        limit: int = 20,
        exclude_ids: Optional[list[str]] = None,
    ) -> list[ScoredRecord]:
        rows = await self._rpc(
            "match_experiences",
            query_embedding=vector,
            categories=categories or [],
            min_similarity=min_similarity,
            match_count=limit,
            exclude_ids=exclude_ids or [],
        )
        return [ScoredRecord.model_validate(row) for row in rows or []]

    async def connections(self, record_ids: list[str]) -> list[RecordConnection]:
        rows = await self._rpc("experience_connections", record_ids=record_ids)
        return [RecordConnection.model_validate(row) for row in rows or []]
