"""
Branch service.

Branches are created by the owner; the first one becomes the default.
Listing goes through the caller's branch scope.
"""

from __future__ import annotations

import logging
from typing import Any

from gymdesk.auth.gateway import AuthorizationDecision
from gymdesk.core.models import Branch, BranchSettings
from gymdesk.services.activity import ActivityLog
from gymdesk.storage.base import Collections, StorageProvider

logger = logging.getLogger(__name__)


class BranchService:
    def __init__(self, storage: StorageProvider, activity: ActivityLog | None = None):
        self.storage = storage
        self.activity = activity or ActivityLog(storage)

    async def create(
        self,
        decision: AuthorizationDecision,
        name: str,
        address: str | None = None,
        phone: str | None = None,
    ) -> Branch:
        existing = await self.storage.metadata.query(Collections.BRANCHES, limit=1)
        branch = Branch(name=name, address=address, phone=phone, is_default=not existing)

        await self.storage.metadata.save(Collections.BRANCHES, branch.id, branch.model_dump())

        settings = BranchSettings(branch_id=branch.id, gym_name=name, gym_phone=phone, gym_address=address)
        await self.storage.metadata.save(
            Collections.BRANCH_SETTINGS, branch.id, settings.model_dump()
        )

        await self.activity.record(
            decision.actor,
            "branches",
            "branch_created",
            f"Created branch {name}",
            branch_id=branch.id,
            entity_type="branch",
            entity_id=branch.id,
            entity_name=name,
        )
        logger.info("Branch %s created (default=%s)", branch.id, branch.is_default)
        return branch

    async def list(self, decision: AuthorizationDecision) -> list[dict[str, Any]]:
        """Branches inside the decision's scope, default branch first."""
        rows = await self.storage.metadata.query(
            Collections.BRANCHES, decision.branch_filter("id"), limit=1000
        )
        rows.sort(key=lambda r: (not r.get("is_default"), r.get("name", "")))
        return rows
