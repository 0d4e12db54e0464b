"""
Core data models for gymdesk.

These models represent the persisted entities: branches, owner accounts,
staff profiles with their permission rows and branch assignments, and the
branch-scoped operational rows (members, payments, ledger entries).

Every operational row carries exactly one branch_id.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, ClassVar

from pydantic import BaseModel, Field

from gymdesk.core.utils import generate_id, generate_uuid, utc_now


# =============================================================================
# Enums
# =============================================================================


class StaffRole(str, Enum):
    """Role a staff member holds inside their branches."""

    ADMIN = "admin"            # Permission-omnipotent, still branch-scoped
    MANAGER = "manager"
    TRAINER = "trainer"
    RECEPTION = "reception"
    ACCOUNTANT = "accountant"


class LedgerEntryType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class PaymentMethod(str, Enum):
    CASH = "cash"
    ONLINE = "online"


# =============================================================================
# Permission Set
# =============================================================================


class PermissionSet(BaseModel):
    """
    Six independent capability flags stored per staff member.

    Missing flags default to False. An Owner, or a staff member whose role
    is admin, bypasses these values entirely (see auth.capabilities).
    """

    FLAGS: ClassVar[tuple[str, ...]] = (
        "can_view_members",
        "can_manage_members",
        "can_access_ledger",
        "can_access_payments",
        "can_access_analytics",
        "can_change_settings",
    )

    can_view_members: bool = False
    can_manage_members: bool = False
    can_access_ledger: bool = False
    can_access_payments: bool = False
    can_access_analytics: bool = False
    can_change_settings: bool = False

    @classmethod
    def from_row(cls, row: dict[str, Any] | None) -> PermissionSet:
        """
        Build from a stored staff_permissions row.

        No row means no permissions. Only an explicit True grants a flag.
        """
        if not row:
            return cls()
        return cls(**{flag: row.get(flag) is True for flag in cls.FLAGS})

    @classmethod
    def all_granted(cls) -> PermissionSet:
        return cls(**{flag: True for flag in cls.FLAGS})

    def flag(self, name: str) -> bool:
        """Stored value of a flag; unknown names are False."""
        if name not in self.FLAGS:
            return False
        return bool(getattr(self, name))

    def granted(self) -> list[str]:
        return [flag for flag in self.FLAGS if getattr(self, flag)]


# =============================================================================
# Branch
# =============================================================================


class Branch(BaseModel):
    """
    A physical gym location - the data isolation partition.

    The first branch an owner creates becomes the default.
    """

    id: str = Field(default_factory=generate_uuid)
    name: str
    address: str | None = None
    phone: str | None = None
    is_default: bool = False
    is_active: bool = True

    created_at: datetime = Field(default_factory=utc_now)


class BranchSettings(BaseModel):
    """Per-branch gym settings (one row per branch)."""

    branch_id: str
    gym_name: str = ""
    gym_phone: str | None = None
    gym_address: str | None = None
    whatsapp_enabled: bool = False
    extra: dict[str, Any] = Field(default_factory=dict)

    updated_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# Accounts
# =============================================================================


class OwnerAccount(BaseModel):
    """
    The gym owner - global admin across every branch.

    The id is the identity carried in the owner's tokens.
    """

    id: str = Field(default_factory=lambda: generate_id("own"))
    email: str
    name: str
    password_hash: str
    role: str = "admin"

    created_at: datetime = Field(default_factory=utc_now)
    last_login_at: datetime | None = None


class StaffProfile(BaseModel):
    """
    A branch-scoped staff account.

    Permissions and branch assignments are separate rows
    (staff_permissions, staff_branch_assignments) keyed by staff id.
    """

    id: str = Field(default_factory=lambda: generate_id("stf"))

    # Identity carried in the staff member's tokens
    identity_id: str = Field(default_factory=lambda: generate_id("usr"))

    full_name: str
    phone: str  # normalized, see core.utils.normalize_phone
    role: StaffRole = StaffRole.RECEPTION
    is_active: bool = True

    # Credentials
    password_hash: str | None = None
    session_version: int = 1  # bumped to revoke every issued token

    # Lockout tracking
    failed_login_attempts: int = 0
    locked_until: datetime | None = None

    # Timestamps
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    last_login_at: datetime | None = None


class BranchAssignment(BaseModel):
    """Links a staff member to one branch. Unique per (staff, branch)."""

    id: str = Field(default_factory=lambda: generate_id("asg"))
    staff_id: str
    branch_id: str
    is_primary: bool = False

    created_at: datetime = Field(default_factory=utc_now)


class LoginAttempt(BaseModel):
    """One staff login attempt, successful or not."""

    id: str = Field(default_factory=lambda: generate_id("att"))
    phone: str
    success: bool = False
    failure_reason: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None

    created_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# Operational rows (all branch-scoped)
# =============================================================================


class Member(BaseModel):
    """A gym member with their current subscription window."""

    id: str = Field(default_factory=lambda: generate_id("mem"))
    branch_id: str

    name: str
    phone: str
    email: str | None = None
    is_active: bool = True

    subscription_start: date | None = None
    subscription_end: date | None = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class Payment(BaseModel):
    """A payment received from a member."""

    id: str = Field(default_factory=lambda: generate_id("pay"))
    branch_id: str
    member_id: str

    amount: float
    method: PaymentMethod = PaymentMethod.CASH
    notes: str | None = None

    created_at: datetime = Field(default_factory=utc_now)


class LedgerEntry(BaseModel):
    """An income or expense line in a branch ledger."""

    id: str = Field(default_factory=lambda: generate_id("led"))
    branch_id: str

    entry_type: LedgerEntryType
    amount: float
    category: str
    description: str | None = None
    entry_date: date = Field(default_factory=lambda: utc_now().date())

    created_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# Activity Log
# =============================================================================


class ActivityLogEntry(BaseModel):
    """
    A record of one mutation made by an owner or a staff member.

    actor_kind is "owner" or "staff"; actor_id is the owner id or staff id.
    """

    id: str = Field(default_factory=lambda: generate_id("act"))

    actor_kind: str
    actor_id: str
    actor_name: str | None = None

    category: str        # "staff", "members", "payments", "ledger", "settings", "branches"
    activity_type: str   # e.g. "staff_permissions_updated"
    description: str

    branch_id: str | None = None
    entity_type: str | None = None
    entity_id: str | None = None
    entity_name: str | None = None
    old_value: dict[str, Any] | None = None
    new_value: dict[str, Any] | None = None

    created_at: datetime = Field(default_factory=utc_now)
