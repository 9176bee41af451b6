"""Tenant scoping for inventory search.

Every cache entry, vector index filter and candidate fetch is partitioned by a
``SearchScope``. The scope is resolved by the authorization layer before a
search call and never changes during a request.

Two kinds exist:
- ``household:<id>`` for shared multi-user inventories
- ``owner:<id>`` for single-owner legacy inventories; rows with no owner at
  all live under ``owner:__legacy__``
"""

from dataclasses import dataclass
from typing import Optional


HOUSEHOLD = "household"
OWNER = "owner"

LEGACY_OWNER_TOKEN = "__legacy__"
NO_HOUSEHOLD_TOKEN = "__none__"


@dataclass(frozen=True)
class SearchScope:
    """Immutable tenant partition key."""
    kind: str
    id: str

    def __post_init__(self):
        if self.kind not in (HOUSEHOLD, OWNER):
            raise ValueError(f"Unknown scope kind: {self.kind!r}")
        if not self.id or ":" in self.id or self.id != self.id.strip():
            raise ValueError(f"Invalid scope id: {self.id!r}")

    @classmethod
    def household(cls, household_id: str) -> "SearchScope":
        return cls(HOUSEHOLD, household_id)

    @classmethod
    def owner(cls, owner_user_id: Optional[str]) -> "SearchScope":
        return cls(OWNER, owner_user_id or LEGACY_OWNER_TOKEN)

    @classmethod
    def parse(cls, value: str) -> "SearchScope":
        """Parse ``household:<id>`` / ``owner:<id>``; raise ``ValueError`` otherwise."""
        if not isinstance(value, str) or ":" not in value:
            raise ValueError(f"Malformed search scope: {value!r}")
        kind, _, scope_id = value.strip().partition(":")
        return cls(kind, scope_id)

    @property
    def key(self) -> str:
        return f"{self.kind}:{self.id}"

    @property
    def household_id(self) -> Optional[str]:
        return self.id if self.kind == HOUSEHOLD else None

    @property
    def owner_user_id(self) -> Optional[str]:
        """Owner id for owner scopes; ``None`` for households and the legacy owner."""
        if self.kind != OWNER or self.id == LEGACY_OWNER_TOKEN:
            return None
        return self.id

    def __str__(self) -> str:
        return self.key


def require_scope(scope: Optional[SearchScope]) -> SearchScope:
    """Reject a missing scope; searches are never run unpartitioned."""
    if not isinstance(scope, SearchScope):
        raise ValueError("A resolved SearchScope is required")
    return scope
