"""
Staff management service.

Owner-only mutations of staff profiles, their permission rows and their
branch assignments. The routes admit the owner through the gateway; this
service only receives the admitted decision so it can log who did what.

Changes take effect on the staff member's next request, because the role
resolver reads current state every time.
"""

from __future__ import annotations

import logging
from typing import Any

from gymdesk.auth.capabilities import default_permissions
from gymdesk.auth.gateway import AuthorizationDecision
from gymdesk.auth.jwt import hash_password
from gymdesk.config import get_settings
from gymdesk.core.models import BranchAssignment, PermissionSet, StaffProfile, StaffRole
from gymdesk.core.utils import normalize_phone, utc_now
from gymdesk.services.activity import ActivityLog
from gymdesk.storage.base import Collections, RecordNotFound, StorageProvider

logger = logging.getLogger(__name__)


class StaffService:
    def __init__(self, storage: StorageProvider, activity: ActivityLog | None = None):
        self.storage = storage
        self.activity = activity or ActivityLog(storage)

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_profile(self, staff_id: str) -> dict[str, Any]:
        row = await self.storage.metadata.get(Collections.STAFF, staff_id)
        if row is None:
            raise RecordNotFound(Collections.STAFF, staff_id)
        return row

    async def get_permissions(self, staff_id: str) -> PermissionSet:
        row = await self.storage.metadata.get(Collections.STAFF_PERMISSIONS, staff_id)
        return PermissionSet.from_row(row)

    async def get_assignments(self, staff_id: str) -> list[dict[str, Any]]:
        return await self.storage.metadata.query(
            Collections.STAFF_BRANCH_ASSIGNMENTS, {"staff_id": staff_id}, limit=1000
        )

    async def describe(self, staff_id: str) -> dict[str, Any]:
        """Profile summary with permissions and branch assignments (no secrets)."""
        profile = await self.get_profile(staff_id)
        permissions = await self.get_permissions(staff_id)
        assignments = await self.get_assignments(staff_id)
        return {
            **summarize_profile(profile),
            "permissions": permissions.model_dump(),
            "branches": [
                {"branch_id": a["branch_id"], "is_primary": bool(a.get("is_primary"))}
                for a in assignments
            ],
        }

    async def list(self, branch_id: str | None = None) -> list[dict[str, Any]]:
        rows = await self.storage.metadata.query(Collections.STAFF, limit=10_000)
        if branch_id:
            assigned = await self.storage.metadata.query(
                Collections.STAFF_BRANCH_ASSIGNMENTS, {"branch_id": branch_id}, limit=10_000
            )
            ids = {a["staff_id"] for a in assigned}
            rows = [r for r in rows if r["id"] in ids]
        return [await self.describe(r["id"]) for r in rows]

    # =========================================================================
    # Create / Delete
    # =========================================================================

    async def create(
        self,
        decision: AuthorizationDecision,
        full_name: str,
        phone: str,
        role: StaffRole = StaffRole.RECEPTION,
        password: str | None = None,
        branch_ids: list[str] | None = None,
    ) -> dict[str, Any]:
        """
        Create a staff member.

        Initial permissions come from the configured default-permission
        policy for the role. Raises ValueError on a duplicate phone.
        """
        normalized = normalize_phone(phone)
        if not normalized:
            raise ValueError("Phone number is required")

        existing = await self.storage.metadata.query(Collections.STAFF, {"phone": normalized}, limit=1)
        if existing:
            raise ValueError("A staff member with this phone already exists")

        # Nothing is written until every branch is known to exist
        await self._ensure_branches_exist(branch_ids or [])

        role = StaffRole(role)
        profile = StaffProfile(
            full_name=full_name,
            phone=normalized,
            role=role,
            password_hash=hash_password(password) if password else None,
        )
        await self.storage.metadata.save(Collections.STAFF, profile.id, profile.model_dump())

        permissions = default_permissions(role, get_settings().default_permission_policy)
        await self._save_permissions(profile.id, permissions)

        await self.activity.record(
            decision.actor,
            "staff",
            "staff_created",
            f"Created staff member {full_name} ({role.value})",
            entity_type="staff",
            entity_id=profile.id,
            entity_name=full_name,
            new_value={"role": role.value, "permissions": permissions.granted()},
        )
        logger.info("Staff %s created with role %s", profile.id, role.value)

        if branch_ids:
            await self.assign_branches(decision, profile.id, branch_ids)

        return await self.describe(profile.id)

    async def delete(self, decision: AuthorizationDecision, staff_id: str) -> None:
        """Remove assignments and the permission row, then the profile."""
        profile = await self.get_profile(staff_id)

        for assignment in await self.get_assignments(staff_id):
            await self.storage.metadata.delete(Collections.STAFF_BRANCH_ASSIGNMENTS, assignment["id"])
        await self.storage.metadata.delete(Collections.STAFF_PERMISSIONS, staff_id)
        await self.storage.metadata.delete(Collections.STAFF, staff_id)

        await self.activity.record(
            decision.actor,
            "staff",
            "staff_deleted",
            f"Deleted staff member {profile['full_name']}",
            entity_type="staff",
            entity_id=staff_id,
            entity_name=profile["full_name"],
        )
        logger.info("Staff %s deleted", staff_id)

    async def update_profile(
        self,
        decision: AuthorizationDecision,
        staff_id: str,
        full_name: str | None = None,
        phone: str | None = None,
        role: StaffRole | None = None,
    ) -> dict[str, Any]:
        """
        Edit name, phone or role.

        A role change to or from admin changes what the staff member can do
        on their next request. Raises ValueError when the phone is empty or
        belongs to another staff member.
        """
        profile = await self.get_profile(staff_id)
        changes: dict[str, Any] = {}

        if full_name is not None and full_name != profile.get("full_name"):
            changes["full_name"] = full_name

        if phone is not None:
            normalized = normalize_phone(phone)
            if not normalized:
                raise ValueError("Phone number is required")
            if normalized != profile.get("phone"):
                existing = await self.storage.metadata.query(
                    Collections.STAFF, {"phone": normalized}, limit=1
                )
                if existing and existing[0]["id"] != staff_id:
                    raise ValueError("A staff member with this phone already exists")
                changes["phone"] = normalized

        if role is not None:
            role = StaffRole(role)
            if role != StaffRole(profile["role"]):
                changes["role"] = role

        if not changes:
            return await self.describe(staff_id)

        await self.storage.metadata.update(Collections.STAFF, staff_id, {**changes, "updated_at": utc_now()})

        logged = {k: getattr(v, "value", v) for k, v in changes.items()}
        await self.activity.record(
            decision.actor,
            "staff",
            "staff_updated",
            f"Updated staff member {changes.get('full_name', profile['full_name'])}",
            entity_type="staff",
            entity_id=staff_id,
            entity_name=profile["full_name"],
            old_value={k: getattr(profile.get(k), "value", profile.get(k)) for k in changes},
            new_value=logged,
        )
        if "role" in changes:
            logger.info("Staff %s role changed to %s", staff_id, changes["role"].value)
        return await self.describe(staff_id)

    # =========================================================================
    # Permissions
    # =========================================================================

    async def update_permissions(
        self,
        decision: AuthorizationDecision,
        staff_id: str,
        updates: dict[str, bool],
    ) -> PermissionSet:
        """Partial update: flags not named keep their current value."""
        unknown = set(updates) - set(PermissionSet.FLAGS)
        if unknown:
            raise ValueError(f"Unknown permission flags: {sorted(unknown)}")

        profile = await self.get_profile(staff_id)
        current = await self.get_permissions(staff_id)
        updated = current.model_copy(update={k: bool(v) for k, v in updates.items()})
        await self._save_permissions(staff_id, updated)

        await self.activity.record(
            decision.actor,
            "staff",
            "staff_permissions_updated",
            f"Updated permissions for {profile['full_name']}",
            entity_type="staff",
            entity_id=staff_id,
            entity_name=profile["full_name"],
            old_value={k: current.flag(k) for k in updates},
            new_value={k: updated.flag(k) for k in updates},
        )
        return updated

    async def _save_permissions(self, staff_id: str, permissions: PermissionSet) -> None:
        await self.storage.metadata.save(
            Collections.STAFF_PERMISSIONS,
            staff_id,
            {"staff_id": staff_id, **permissions.model_dump(), "updated_at": utc_now()},
        )

    # =========================================================================
    # Branch Assignments
    # =========================================================================

    async def assign_branches(
        self,
        decision: AuthorizationDecision,
        staff_id: str,
        branch_ids: list[str],
    ) -> list[dict[str, Any]]:
        """
        Assign branches. Already assigned branches are skipped.

        If the staff member has no primary branch yet, the first newly
        assigned one becomes primary.
        """
        profile = await self.get_profile(staff_id)
        await self._ensure_branches_exist(branch_ids)

        assignments = await self.get_assignments(staff_id)
        assigned = {a["branch_id"] for a in assignments}
        has_primary = any(a.get("is_primary") for a in assignments)

        added = []
        for branch_id in dict.fromkeys(branch_ids):
            if branch_id in assigned:
                continue
            assignment = BranchAssignment(
                staff_id=staff_id,
                branch_id=branch_id,
                is_primary=not has_primary,
            )
            has_primary = True
            await self.storage.metadata.save(
                Collections.STAFF_BRANCH_ASSIGNMENTS, assignment.id, assignment.model_dump()
            )
            added.append(branch_id)

            await self.activity.record(
                decision.actor,
                "staff",
                "staff_branch_assigned",
                f"Assigned {profile['full_name']} to branch",
                branch_id=branch_id,
                entity_type="staff",
                entity_id=staff_id,
                entity_name=profile["full_name"],
                new_value={"branch_id": branch_id, "is_primary": assignment.is_primary},
            )

        if added:
            logger.info("Staff %s assigned to %d new branch(es)", staff_id, len(added))
        return await self.get_assignments(staff_id)

    async def _ensure_branches_exist(self, branch_ids: list[str]) -> None:
        for branch_id in branch_ids:
            if await self.storage.metadata.get(Collections.BRANCHES, branch_id) is None:
                raise RecordNotFound(Collections.BRANCHES, branch_id)

    async def unassign_branch(
        self,
        decision: AuthorizationDecision,
        staff_id: str,
        branch_id: str,
    ) -> None:
        """Remove one assignment. No other branch is promoted to primary."""
        profile = await self.get_profile(staff_id)
        assignment = await self._find_assignment(staff_id, branch_id)
        await self.storage.metadata.delete(Collections.STAFF_BRANCH_ASSIGNMENTS, assignment["id"])

        await self.activity.record(
            decision.actor,
            "staff",
            "staff_branch_unassigned",
            f"Removed {profile['full_name']} from branch",
            branch_id=branch_id,
            entity_type="staff",
            entity_id=staff_id,
            entity_name=profile["full_name"],
            old_value={"branch_id": branch_id, "is_primary": bool(assignment.get("is_primary"))},
        )

    async def set_primary_branch(
        self,
        decision: AuthorizationDecision,
        staff_id: str,
        branch_id: str,
    ) -> None:
        profile = await self.get_profile(staff_id)
        target = await self._find_assignment(staff_id, branch_id)

        for assignment in await self.get_assignments(staff_id):
            is_primary = assignment["id"] == target["id"]
            if bool(assignment.get("is_primary")) != is_primary:
                await self.storage.metadata.update(
                    Collections.STAFF_BRANCH_ASSIGNMENTS, assignment["id"], {"is_primary": is_primary}
                )

        await self.activity.record(
            decision.actor,
            "staff",
            "staff_primary_branch_changed",
            f"Set primary branch for {profile['full_name']}",
            branch_id=branch_id,
            entity_type="staff",
            entity_id=staff_id,
            entity_name=profile["full_name"],
            new_value={"primary_branch_id": branch_id},
        )

    async def _find_assignment(self, staff_id: str, branch_id: str) -> dict[str, Any]:
        rows = await self.storage.metadata.query(
            Collections.STAFF_BRANCH_ASSIGNMENTS,
            {"staff_id": staff_id, "branch_id": branch_id},
            limit=1,
        )
        if not rows:
            raise RecordNotFound(Collections.STAFF_BRANCH_ASSIGNMENTS, f"{staff_id}/{branch_id}")
        return rows[0]

    # =========================================================================
    # Account State
    # =========================================================================

    async def set_active(self, decision: AuthorizationDecision, staff_id: str, active: bool) -> None:
        profile = await self.get_profile(staff_id)
        await self.storage.metadata.update(
            Collections.STAFF, staff_id, {"is_active": active, "updated_at": utc_now()}
        )
        await self.activity.record(
            decision.actor,
            "staff",
            "staff_activated" if active else "staff_deactivated",
            f"{'Activated' if active else 'Deactivated'} {profile['full_name']}",
            entity_type="staff",
            entity_id=staff_id,
            entity_name=profile["full_name"],
            old_value={"is_active": profile.get("is_active")},
            new_value={"is_active": active},
        )

    async def set_password(self, decision: AuthorizationDecision, staff_id: str, password: str) -> None:
        if not password:
            raise ValueError("Password is required")
        profile = await self.get_profile(staff_id)
        await self.storage.metadata.update(Collections.STAFF, staff_id, {
            "password_hash": hash_password(password),
            "failed_login_attempts": 0,
            "locked_until": None,
            "updated_at": utc_now(),
        })
        await self.activity.record(
            decision.actor,
            "staff",
            "staff_password_set",
            f"Set password for {profile['full_name']}",
            entity_type="staff",
            entity_id=staff_id,
            entity_name=profile["full_name"],
        )

    async def revoke_sessions(self, decision: AuthorizationDecision, staff_id: str) -> int:
        """Invalidate every token issued so far. Returns the new session version."""
        profile = await self.get_profile(staff_id)
        version = int(profile.get("session_version") or 1) + 1
        await self.storage.metadata.update(
            Collections.STAFF, staff_id, {"session_version": version, "updated_at": utc_now()}
        )
        await self.activity.record(
            decision.actor,
            "staff",
            "staff_sessions_revoked",
            f"Revoked all sessions for {profile['full_name']}",
            entity_type="staff",
            entity_id=staff_id,
            entity_name=profile["full_name"],
        )
        logger.info("Staff %s sessions revoked (version %d)", staff_id, version)
        return version


def summarize_profile(profile: dict[str, Any]) -> dict[str, Any]:
    """Public view of a staff row."""
    role = profile.get("role")
    return {
        "id": profile["id"],
        "full_name": profile.get("full_name"),
        "phone": profile.get("phone"),
        "role": getattr(role, "value", role),
        "is_active": bool(profile.get("is_active")),
        "last_login_at": profile.get("last_login_at"),
    }
