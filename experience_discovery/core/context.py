"""
Request Context - immutable per-request bundle.

A RequestContext carries the tenant-scoped store handle, the authenticated
identity, locale and optional tier/trace metadata. It is built once per
inbound request by create_context(), handed by reference to every tool
call, and never mutated. Tools read the store exclusively through
``context.store``; nothing in the package holds a module-level handle.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from experience_discovery.core.exceptions import InvalidContext, MissingContextField
from experience_discovery.store.base import ExperienceStore


DEFAULT_LOCALE = "en"

_REQUIRED_FIELDS = ("store", "identity_id")
_FIELDS = _REQUIRED_FIELDS + ("locale", "tier", "trace_id")


class Tier(str, Enum):
    """Subscription tier of the calling identity."""

    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class RequestContext(BaseModel):
    """
    Immutable per-request context.

    Attributes:
        store: Store handle bound to the identity's tenant.
        identity_id: Authenticated identity making the request.
        locale: Preferred language, default "en".
        tier: Optional subscription tier.
        trace_id: Optional id correlating logs and spans of this request.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    store: Optional[ExperienceStore] = None
    identity_id: Optional[str] = None
    locale: str = DEFAULT_LOCALE
    tier: Optional[Tier] = None
    trace_id: Optional[str] = None

    def get(self, field: str) -> Any:
        """
        Read a context field.

        Raises:
            MissingContextField: If a required field was never set, or the
                field name is not part of the context.
        """
        if field not in _FIELDS:
            raise MissingContextField(field)
        value = getattr(self, field)
        if field in _REQUIRED_FIELDS and value is None:
            raise MissingContextField(field)
        return value

    @property
    def tenant_store(self) -> ExperienceStore:
        """The tenant-scoped store; fails loudly when absent."""
        return self.get("store")

    def __repr__(self) -> str:
        return (
            f"RequestContext(identity_id={self.identity_id!r}, locale={self.locale!r}, "
            f"tier={self.tier.value if self.tier else None!r}, trace_id={self.trace_id!r})"
        )


def create_context(
    store: Optional[ExperienceStore],
    identity_id: Optional[str],
    locale: Optional[str] = None,
    tier: Optional[Tier | str] = None,
    trace_id: Optional[str] = None,
) -> RequestContext:
    """
    Build a RequestContext, enforcing the store-binding invariant.

    Args:
        store: Store handle already bound to identity_id's tenant.
        identity_id: Non-empty identity string.
        locale: Language code; defaults to "en".
        tier: free | pro | enterprise, or None.
        trace_id: Optional trace identifier.

    Returns:
        RequestContext

    Raises:
        InvalidContext: Identity empty, store absent, tier unknown, or the
            store bound to another identity.
    """
    if identity_id is None or not identity_id.strip():
        raise InvalidContext("identity_id must be a non-empty string")
    if store is None:
        raise InvalidContext("a store handle is required")
    if store.identity_id != identity_id:
        raise InvalidContext(
            f"store handle is bound to identity '{store.identity_id}', not '{identity_id}'"
        )

    resolved_tier: Optional[Tier] = None
    if tier is not None:
        try:
            resolved_tier = Tier(tier)
        except ValueError as e:
            raise InvalidContext(f"unknown tier: {tier!r}") from e

    return RequestContext(
        store=store,
        identity_id=identity_id,
        locale=(locale or DEFAULT_LOCALE).strip().lower() or DEFAULT_LOCALE,
        tier=resolved_tier,
        trace_id=trace_id,
    )
