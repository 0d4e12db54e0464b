"""
Storage abstraction layer.

All persistence goes through these interfaces. This allows swapping
implementations (in-memory -> PostgreSQL, in-memory cache -> Redis)
without changing application code.

Integration Points:
- MetadataStorage -> PostgreSQL tables (branches, staff, members, ...)
- CacheStorage -> Redis (revoked token ids)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel


class RecordNotFound(LookupError):
    """A requested row does not exist."""

    def __init__(self, collection: str, id: str):
        super().__init__(f"{collection} record not found: {id}")
        self.collection = collection
        self.id = id


# =============================================================================
# Storage Interfaces
# =============================================================================


class MetadataStorage(ABC):
    """
    Storage for structured rows.

    Filters passed to query() match by equality, except that a set, frozenset,
    list or tuple value matches when the row's value is one of its members
    (an IN filter). Branch scopes are applied this way.
    """

    @abstractmethod
    async def save(self, collection: str, id: str, data: dict[str, Any]) -> None:
        """Save a document to a collection."""
        pass

    @abstractmethod
    async def get(self, collection: str, id: str) -> dict[str, Any] | None:
        """Get a document by ID."""
        pass

    @abstractmethod
    async def delete(self, collection: str, id: str) -> bool:
        """Delete a document."""
        pass

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Query documents with optional filters."""
        pass

    @abstractmethod
    async def update(self, collection: str, id: str, updates: dict[str, Any]) -> bool:
        """Partial update of a document."""
        pass


class CacheStorage(ABC):
    """
    Fast key-value cache with TTL.

    Production Implementation: Redis
    Local Implementation: In-memory dict
    """

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Set a value with optional TTL in seconds."""
        pass

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Get a value."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a key."""
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check if key exists."""
        pass


# =============================================================================
# Storage Provider (dependency injection container)
# =============================================================================


class StorageProvider(BaseModel):
    """
    Container for all storage backends.

    Initialize once at app startup with appropriate implementations.
    Services receive this and use the interfaces without knowing
    the underlying implementation.
    """

    model_config = {"arbitrary_types_allowed": True}

    metadata: MetadataStorage
    cache: CacheStorage


# =============================================================================
# Collection Names (for MetadataStorage)
# =============================================================================


class Collections:
    """Standard collection/table names."""

    OWNERS = "owners"
    BRANCHES = "branches"
    BRANCH_SETTINGS = "branch_settings"

    STAFF = "staff"
    STAFF_PERMISSIONS = "staff_permissions"
    STAFF_BRANCH_ASSIGNMENTS = "staff_branch_assignments"
    STAFF_LOGIN_ATTEMPTS = "staff_login_attempts"

    MEMBERS = "members"
    PAYMENTS = "payments"
    LEDGER_ENTRIES = "ledger_entries"

    ACTIVITY_LOGS = "activity_logs"


# Collections whose rows each belong to exactly one branch
BRANCH_SCOPED_COLLECTIONS = frozenset({
    Collections.MEMBERS,
    Collections.PAYMENTS,
    Collections.LEDGER_ENTRIES,
    Collections.BRANCH_SETTINGS,
})
