"""
Capabilities, staff roles, and the permission evaluator.

This defines WHAT actors can do. has_capability() is the one place that
answers "may this actor use this capability" - the gateway, the FastAPI
dependencies and the navigation mirror all call it.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING

from gymdesk.config_loader import get_permission_policies
from gymdesk.core.models import PermissionSet, StaffRole

if TYPE_CHECKING:
    from gymdesk.auth.context import Actor

logger = logging.getLogger(__name__)


class Capability(str, Enum):
    """
    The fixed capability taxonomy.

    The first six map 1:1 to PermissionSet flags. IS_OWNER is a
    meta-capability for owner-only affordances (branches, staff, logs).
    """

    VIEW_MEMBERS = "can_view_members"
    MANAGE_MEMBERS = "can_manage_members"
    ACCESS_LEDGER = "can_access_ledger"
    ACCESS_PAYMENTS = "can_access_payments"
    ACCESS_ANALYTICS = "can_access_analytics"
    CHANGE_SETTINGS = "can_change_settings"

    IS_OWNER = "is_owner"


# Capabilities backed by a stored permission flag
FLAG_CAPABILITIES: frozenset[Capability] = frozenset(
    c for c in Capability if c.value in PermissionSet.FLAGS
)

META_CAPABILITIES: frozenset[Capability] = frozenset({Capability.IS_OWNER})


def parse_capability(value: Capability | str) -> Capability | None:
    """Map a capability name onto the taxonomy. Unknown names give None."""
    if isinstance(value, Capability):
        return value
    try:
        return Capability(value)
    except ValueError:
        return None


# =============================================================================
# Permission Evaluator
# =============================================================================


def has_capability(actor: Actor, capability: Capability | str) -> bool:
    """
    Decide whether an actor holds a capability. Pure, total, never raises.

    Rules, first match wins:
        1. Owner                        -> every capability
        2. Staff whose role is admin    -> every flag capability
        3. Staff                        -> the stored flag

    IS_OWNER is true for owners only; a staff admin does not get it.
    Unrecognized capability names are denied and logged as a defect.
    """
    cap = parse_capability(capability)
    if cap is None:
        logger.error(
            "Unknown capability %r requested for actor %s - denying",
            capability,
            getattr(actor, "identity_id", None),
        )
        return False

    if actor.is_owner:
        return True

    if cap in META_CAPABILITIES:
        return False

    if actor.role == StaffRole.ADMIN:
        return True

    return actor.permissions.flag(cap.value)


def effective_permissions(actor: Actor) -> PermissionSet:
    """The flag set after the owner/admin rules are applied."""
    return PermissionSet(**{c.value: has_capability(actor, c) for c in FLAG_CAPABILITIES})


# =============================================================================
# Default permissions for new staff
# =============================================================================


def default_permissions(role: StaffRole, policy: str = "standard") -> PermissionSet:
    """
    Permissions a new staff member of `role` starts with.

    The tables come from the permission policy file (see config_loader).
    Raises ValueError for an unknown policy name.
    """
    policies = get_permission_policies()
    try:
        table = policies[policy]
    except KeyError:
        raise ValueError(f"Unknown default permission policy: {policy}")
    return table.get(StaffRole(role), PermissionSet()).model_copy()
