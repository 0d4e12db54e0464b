"""
Actor and role resolution - the "who is calling" for each request.

An Actor is built fresh for every request from current persisted state
and is never cached, so deactivation, permission edits and branch
unassignment take effect on the very next request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from gymdesk.auth.capabilities import Capability, has_capability
from gymdesk.auth.errors import Unauthenticated
from gymdesk.auth.jwt import Identity
from gymdesk.core.models import PermissionSet, StaffRole
from gymdesk.storage.base import Collections, StorageProvider

logger = logging.getLogger(__name__)


class ActorKind(str, Enum):
    OWNER = "owner"
    STAFF = "staff"


@dataclass(frozen=True)
class Actor:
    """
    The authenticated caller.

    Either {kind: OWNER} or {kind: STAFF, staff_id, role, permissions,
    branch_ids}. Owners carry no permission table and no branches.

    Usage in routes:
        async def route(decision: AuthorizationDecision = Depends(require(...))):
            actor = decision.actor
            if actor.can("can_manage_members"):
                ...
    """

    identity_id: str
    kind: ActorKind

    # Staff only
    staff_id: str | None = None
    role: StaffRole | None = None
    permissions: PermissionSet = field(default_factory=PermissionSet)
    branch_ids: frozenset[str] = frozenset()
    primary_branch_id: str | None = None

    display_name: str | None = None

    @property
    def is_owner(self) -> bool:
        return self.kind == ActorKind.OWNER

    @property
    def is_staff(self) -> bool:
        return self.kind == ActorKind.STAFF

    @property
    def actor_id(self) -> str:
        """Owner id for owners, staff id for staff."""
        return self.staff_id if self.is_staff and self.staff_id else self.identity_id

    def can(self, capability: Capability | str) -> bool:
        return has_capability(self, capability)

    @classmethod
    def owner(cls, identity_id: str, display_name: str | None = None) -> Actor:
        return cls(identity_id=identity_id, kind=ActorKind.OWNER, display_name=display_name)


# =============================================================================
# Role Resolution
# =============================================================================


class RoleResolver:
    """
    Resolves a verified identity to an Actor.

    1. Owner record for the identity -> Owner actor, nothing else loaded.
    2. Otherwise the staff profile; missing or inactive -> Unauthenticated.
    3. Permission row (missing -> all false) and branch assignments.

    A staff token whose session version no longer matches the profile
    (all sessions revoked) is Unauthenticated too.
    """

    def __init__(self, storage: StorageProvider):
        self.storage = storage

    async def resolve(self, identity: Identity) -> Actor:
        metadata = self.storage.metadata

        owner = await metadata.get(Collections.OWNERS, identity.identity_id)
        if owner and owner.get("role") == "admin":
            staff_rows = await metadata.query(
                Collections.STAFF, {"identity_id": identity.identity_id}, limit=1
            )
            if staff_rows:
                logger.warning(
                    "Identity %s has both owner and staff records - owner wins",
                    identity.identity_id,
                )
            return Actor.owner(identity.identity_id, owner.get("name"))

        staff_rows = await metadata.query(
            Collections.STAFF, {"identity_id": identity.identity_id}, limit=1
        )
        if not staff_rows:
            raise Unauthenticated("No account for this identity")

        staff = staff_rows[0]
        if staff.get("is_active") is not True:
            raise Unauthenticated("Account deactivated")

        if identity.session_version != staff.get("session_version"):
            raise Unauthenticated("Session has been revoked")

        staff_id = staff["id"]
        permission_row = await metadata.get(Collections.STAFF_PERMISSIONS, staff_id)
        assignments = await metadata.query(
            Collections.STAFF_BRANCH_ASSIGNMENTS, {"staff_id": staff_id}, limit=1000
        )

        primary = next((a["branch_id"] for a in assignments if a.get("is_primary")), None)

        return Actor(
            identity_id=identity.identity_id,
            kind=ActorKind.STAFF,
            staff_id=staff_id,
            role=StaffRole(staff["role"]),
            permissions=PermissionSet.from_row(permission_row),
            branch_ids=frozenset(a["branch_id"] for a in assignments),
            primary_branch_id=primary,
            display_name=staff.get("full_name"),
        )
