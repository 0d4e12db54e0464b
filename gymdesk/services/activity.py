"""
Activity log service.

Records every mutation made by an owner or a staff member. Listing is an
owner-only affordance; the route guards that, not this service.
"""

from __future__ import annotations

import logging
from typing import Any

from gymdesk.auth.context import Actor
from gymdesk.core.models import ActivityLogEntry
from gymdesk.storage.base import Collections, StorageProvider

logger = logging.getLogger(__name__)


class ActivityLog:
    def __init__(self, storage: StorageProvider):
        self.storage = storage

    async def record(
        self,
        actor: Actor,
        category: str,
        activity_type: str,
        description: str,
        *,
        branch_id: str | None = None,
        entity_type: str | None = None,
        entity_id: str | None = None,
        entity_name: str | None = None,
        old_value: dict[str, Any] | None = None,
        new_value: dict[str, Any] | None = None,
    ) -> ActivityLogEntry:
        entry = ActivityLogEntry(
            actor_kind=actor.kind.value,
            actor_id=actor.actor_id,
            actor_name=actor.display_name,
            category=category,
            activity_type=activity_type,
            description=description,
            branch_id=branch_id,
            entity_type=entity_type,
            entity_id=entity_id,
            entity_name=entity_name,
            old_value=old_value,
            new_value=new_value,
        )
        await self.storage.metadata.save(Collections.ACTIVITY_LOGS, entry.id, entry.model_dump())
        logger.debug("Activity %s by %s %s", activity_type, entry.actor_kind, entry.actor_id)
        return entry

    async def list(
        self,
        branch_id: str | None = None,
        category: str | None = None,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """Newest first."""
        filters: dict[str, Any] = {}
        if branch_id:
            filters["branch_id"] = branch_id
        if category:
            filters["category"] = category

        rows = await self.storage.metadata.query(Collections.ACTIVITY_LOGS, filters, limit=10_000)
        rows.sort(key=lambda r: r["created_at"], reverse=True)
        return rows[:limit]
