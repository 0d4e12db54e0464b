"""
Storage abstractions.

Integration Points:
- MetadataStorage -> PostgreSQL tables
- CacheStorage -> Redis
"""

from gymdesk.storage.base import (
    BRANCH_SCOPED_COLLECTIONS,
    CacheStorage,
    Collections,
    MetadataStorage,
    RecordNotFound,
    StorageProvider,
)
from gymdesk.storage.local import create_local_storage

__all__ = [
    "BRANCH_SCOPED_COLLECTIONS",
    "CacheStorage",
    "Collections",
    "MetadataStorage",
    "RecordNotFound",
    "StorageProvider",
    "create_local_storage",
]
