"""
Branch-scoped record access.

Every read of a branch-scoped collection is filtered by the decision's
scope and every write must target a branch inside it. A row that exists
in another branch is refused with BranchAccessDenied, never returned.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel

from gymdesk.auth.gateway import AuthorizationDecision
from gymdesk.core.models import BranchSettings
from gymdesk.core.utils import utc_now
from gymdesk.services.activity import ActivityLog
from gymdesk.storage.base import (
    BRANCH_SCOPED_COLLECTIONS,
    Collections,
    RecordNotFound,
    StorageProvider,
)

logger = logging.getLogger(__name__)


class BranchScopedRecords:
    """
    CRUD over one branch-scoped collection.

    Usage:
        members = BranchScopedRecords(storage, Collections.MEMBERS, "members", "member")
        rows = await members.list(decision, {"is_active": True})
    """

    def __init__(
        self,
        storage: StorageProvider,
        collection: str,
        category: str,
        entity_type: str,
        activity: ActivityLog | None = None,
    ):
        if collection not in BRANCH_SCOPED_COLLECTIONS:
            raise ValueError(f"{collection} is not a branch-scoped collection")
        self.storage = storage
        self.collection = collection
        self.category = category
        self.entity_type = entity_type
        self.activity = activity or ActivityLog(storage)

    async def list(
        self,
        decision: AuthorizationDecision,
        filters: dict[str, Any] | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        query = dict(filters or {})
        # A caller filter on the scoped column can only narrow the scope
        for column, allowed in decision.branch_filter().items():
            if column in query:
                wanted = query[column]
                wanted = set(wanted) if isinstance(wanted, (set, frozenset, list, tuple)) else {wanted}
                query[column] = frozenset(wanted & allowed)
            else:
                query[column] = allowed
        return await self.storage.metadata.query(self.collection, query, limit=limit, offset=offset)

    async def get(self, decision: AuthorizationDecision, record_id: str) -> dict[str, Any]:
        row = await self.storage.metadata.get(self.collection, record_id)
        if row is None:
            raise RecordNotFound(self.collection, record_id)
        decision.ensure_branch(row.get("branch_id"))
        return row

    async def create(self, decision: AuthorizationDecision, record: BaseModel) -> dict[str, Any]:
        data = record.model_dump()
        decision.ensure_branch(data.get("branch_id"))
        await self._ensure_branch_exists(data["branch_id"])

        await self.storage.metadata.save(self.collection, data["id"], data)
        await self.activity.record(
            decision.actor,
            self.category,
            f"{self.entity_type}_created",
            f"Created {self.entity_type} {_label(data)}",
            branch_id=data["branch_id"],
            entity_type=self.entity_type,
            entity_id=data["id"],
            entity_name=_label(data),
            new_value=_public(data),
        )
        return data

    async def update(
        self,
        decision: AuthorizationDecision,
        record_id: str,
        updates: dict[str, Any],
    ) -> dict[str, Any]:
        row = await self.get(decision, record_id)
        if "branch_id" in updates:
            # Moving a row is a write into the target branch too
            decision.ensure_branch(updates["branch_id"])
            await self._ensure_branch_exists(updates["branch_id"])

        changes = {k: v for k, v in updates.items() if k not in ("id", "created_at")}
        if "updated_at" in row:
            changes["updated_at"] = utc_now()
        await self.storage.metadata.update(self.collection, record_id, changes)

        await self.activity.record(
            decision.actor,
            self.category,
            f"{self.entity_type}_updated",
            f"Updated {self.entity_type} {_label(row)}",
            branch_id=updates.get("branch_id", row["branch_id"]),
            entity_type=self.entity_type,
            entity_id=record_id,
            entity_name=_label(row),
            old_value={k: row.get(k) for k in changes},
            new_value=changes,
        )
        return {**row, **changes}

    async def _ensure_branch_exists(self, branch_id: str) -> None:
        # An owner's scope admits any id, so the target must be checked directly
        if await self.storage.metadata.get(Collections.BRANCHES, branch_id) is None:
            raise RecordNotFound(Collections.BRANCHES, branch_id)

    async def delete(self, decision: AuthorizationDecision, record_id: str) -> None:
        row = await self.get(decision, record_id)
        await self.storage.metadata.delete(self.collection, record_id)
        await self.activity.record(
            decision.actor,
            self.category,
            f"{self.entity_type}_deleted",
            f"Deleted {self.entity_type} {_label(row)}",
            branch_id=row["branch_id"],
            entity_type=self.entity_type,
            entity_id=record_id,
            entity_name=_label(row),
            old_value=_public(row),
        )


def _label(row: dict[str, Any]) -> str:
    return str(row.get("name") or row.get("category") or row.get("id"))


def _public(row: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in row.items() if not k.startswith("_")}


# =============================================================================
# Branch Settings
# =============================================================================


class BranchSettingsService:
    """
    One settings row per branch, keyed by branch id.

    Always addresses a single branch: the caller must have requested one.
    """

    def __init__(self, storage: StorageProvider, activity: ActivityLog | None = None):
        self.storage = storage
        self.activity = activity or ActivityLog(storage)

    async def get(self, decision: AuthorizationDecision, branch_id: str) -> dict[str, Any]:
        decision.ensure_branch(branch_id)
        row = await self.storage.metadata.get(Collections.BRANCH_SETTINGS, branch_id)
        if row is None:
            if await self.storage.metadata.get(Collections.BRANCHES, branch_id) is None:
                raise RecordNotFound(Collections.BRANCHES, branch_id)
            return BranchSettings(branch_id=branch_id).model_dump()
        return row

    async def update(
        self,
        decision: AuthorizationDecision,
        branch_id: str,
        updates: dict[str, Any],
    ) -> dict[str, Any]:
        current = await self.get(decision, branch_id)
        changes = {k: v for k, v in updates.items() if k not in ("branch_id", "updated_at")}
        merged = BranchSettings(**{**_public(current), **changes, "updated_at": utc_now()})

        await self.storage.metadata.save(Collections.BRANCH_SETTINGS, branch_id, merged.model_dump())
        await self.activity.record(
            decision.actor,
            "settings",
            "settings_updated",
            "Updated branch settings",
            branch_id=branch_id,
            entity_type="branch_settings",
            entity_id=branch_id,
            old_value={k: current.get(k) for k in changes},
            new_value=changes,
        )
        return merged.model_dump()


# =============================================================================
# Analytics
# =============================================================================


async def analytics_summary(
    storage: StorageProvider,
    decision: AuthorizationDecision,
) -> dict[str, Any]:
    """
    Per-branch totals over the decision's scope.

    Only rows the decision admits are counted, so a staff member's totals
    never include another branch.
    """
    scope = decision.branch_filter()
    members = await storage.metadata.query(Collections.MEMBERS, scope, limit=100_000)
    payments = await storage.metadata.query(Collections.PAYMENTS, scope, limit=100_000)
    ledger = await storage.metadata.query(Collections.LEDGER_ENTRIES, scope, limit=100_000)

    branches: dict[str, dict[str, Any]] = {}

    def bucket(branch_id: str) -> dict[str, Any]:
        return branches.setdefault(branch_id, {
            "member_count": 0,
            "active_members": 0,
            "revenue": 0.0,
            "income": 0.0,
            "expense": 0.0,
        })

    for m in members:
        b = bucket(m["branch_id"])
        b["member_count"] += 1
        if m.get("is_active"):
            b["active_members"] += 1

    for p in payments:
        bucket(p["branch_id"])["revenue"] += float(p.get("amount") or 0)

    for entry in ledger:
        key = "income" if entry.get("entry_type") == "income" else "expense"
        bucket(entry["branch_id"])[key] += float(entry.get("amount") or 0)

    totals = {
        key: sum(b[key] for b in branches.values())
        for key in ("member_count", "active_members", "revenue", "income", "expense")
    }
    return {"branches": branches, "totals": totals}
