"""
Core module - persisted entities and shared helpers.

This module contains:
- models: Branches, accounts, staff permission rows, operational rows
- utils: Shared utility functions
"""

from gymdesk.core.models import (
    ActivityLogEntry,
    Branch,
    BranchAssignment,
    BranchSettings,
    LedgerEntry,
    LedgerEntryType,
    LoginAttempt,
    Member,
    OwnerAccount,
    Payment,
    PaymentMethod,
    PermissionSet,
    StaffProfile,
    StaffRole,
)
from gymdesk.core.utils import generate_id, generate_uuid, normalize_phone, utc_now

__all__ = [
    # Models
    "ActivityLogEntry",
    "Branch",
    "BranchAssignment",
    "BranchSettings",
    "LedgerEntry",
    "LedgerEntryType",
    "LoginAttempt",
    "Member",
    "OwnerAccount",
    "Payment",
    "PaymentMethod",
    "PermissionSet",
    "StaffProfile",
    "StaffRole",
    # Utils
    "generate_id",
    "generate_uuid",
    "normalize_phone",
    "utc_now",
]
