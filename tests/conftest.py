"""
Shared fixtures: a seeded in-memory gym with three branches and staff
covering every shape the authorization core has to handle.
"""

import asyncio
import os
from dataclasses import dataclass, field

import pytest

# Cheap hashing for tests; must be set before settings are first read
os.environ.setdefault("PASSWORD_HASH_ITERATIONS", "1000")

from gymdesk.auth.jwt import hash_password, issue_owner_token, issue_staff_token  # noqa: E402
from gymdesk.config import get_settings  # noqa: E402
from gymdesk.core.models import (  # noqa: E402
    Branch,
    BranchAssignment,
    LedgerEntry,
    LedgerEntryType,
    Member,
    OwnerAccount,
    Payment,
    PermissionSet,
    StaffProfile,
    StaffRole,
)
from gymdesk.storage import Collections, StorageProvider, create_local_storage  # noqa: E402

get_settings.cache_clear()

PASSWORD = "correct-horse"


@dataclass
class World:
    storage: StorageProvider
    owner: OwnerAccount
    branches: dict[str, str] = field(default_factory=dict)   # label -> branch id
    staff: dict[str, StaffProfile] = field(default_factory=dict)
    members: dict[str, str] = field(default_factory=dict)    # branch label -> member id
    ledger: dict[str, str] = field(default_factory=dict)     # branch label -> entry id

    def token(self, label: str) -> str:
        if label == "owner":
            return issue_owner_token(self.owner.id).access_token
        profile = self.staff[label]
        return issue_staff_token(profile.identity_id, profile.session_version).access_token

    def headers(self, label: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token(label)}"}


# label: (role, permission flags or None for "no row", branch labels, active)
STAFF_FIXTURES = {
    "manager": (StaffRole.MANAGER, ["can_view_members", "can_manage_members"], ["A"], True),
    "multi": (StaffRole.ACCOUNTANT,
              ["can_view_members", "can_access_ledger", "can_access_payments"], ["A", "B"], True),
    "staff_admin": (StaffRole.ADMIN, [], ["B"], True),
    "no_branches": (StaffRole.RECEPTION, ["can_view_members"], [], True),
    "inactive": (StaffRole.RECEPTION, ["can_view_members"], ["A"], False),
    "no_row": (StaffRole.TRAINER, None, ["A"], True),
    "settings": (StaffRole.MANAGER, ["can_change_settings", "can_access_analytics"], ["A"], True),
}


async def build_world() -> World:
    storage = create_local_storage()
    metadata = storage.metadata

    owner = OwnerAccount(email="owner@example.com", name="Olivia Owner",
                         password_hash=hash_password(PASSWORD))
    await metadata.save(Collections.OWNERS, owner.id, owner.model_dump())
    world = World(storage=storage, owner=owner)

    for i, (label, name) in enumerate([("A", "Downtown"), ("B", "Uptown"), ("C", "Airport")]):
        branch = Branch(name=name, is_default=i == 0)
        await metadata.save(Collections.BRANCHES, branch.id, branch.model_dump())
        world.branches[label] = branch.id

    for i, (label, (role, flags, branch_labels, active)) in enumerate(STAFF_FIXTURES.items()):
        profile = StaffProfile(
            full_name=label.replace("_", " ").title(),
            phone=f"90000000{i:02d}",
            role=role,
            is_active=active,
            password_hash=hash_password(PASSWORD),
        )
        await metadata.save(Collections.STAFF, profile.id, profile.model_dump())
        if flags is not None:
            perms = PermissionSet(**{f: True for f in flags})
            await metadata.save(Collections.STAFF_PERMISSIONS, profile.id,
                                {"staff_id": profile.id, **perms.model_dump()})
        for j, branch_label in enumerate(branch_labels):
            assignment = BranchAssignment(staff_id=profile.id, branch_id=world.branches[branch_label],
                                          is_primary=j == 0)
            await metadata.save(Collections.STAFF_BRANCH_ASSIGNMENTS, assignment.id, assignment.model_dump())
        world.staff[label] = profile

    for label, branch_id in world.branches.items():
        member = Member(branch_id=branch_id, name=f"Member {label}", phone=f"80000000{label}")
        await metadata.save(Collections.MEMBERS, member.id, member.model_dump())
        world.members[label] = member.id

        payment = Payment(branch_id=branch_id, member_id=member.id, amount=100.0)
        await metadata.save(Collections.PAYMENTS, payment.id, payment.model_dump())

        entry = LedgerEntry(branch_id=branch_id, entry_type=LedgerEntryType.EXPENSE,
                            amount=40.0, category="rent")
        await metadata.save(Collections.LEDGER_ENTRIES, entry.id, entry.model_dump())
        world.ledger[label] = entry.id

    return world


@pytest.fixture
def world() -> World:
    """A freshly seeded world per test."""
    # Private loop, so the loop pytest-asyncio installs is left alone
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(build_world())
    finally:
        loop.close()


@pytest.fixture
def password() -> str:
    """Password every seeded account logs in with."""
    return PASSWORD
