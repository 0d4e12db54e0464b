"""
gymdesk - Main entry point.

Seeds an in-memory gym (an owner, two branches and staff of several
roles) and prints what the authorization gateway decides for each of
them. Run with:

    python -m gymdesk.main
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from gymdesk.auth import (
    ALL_BRANCHES,
    AuthorizationDecision,
    AuthorizationGateway,
    Capability,
    issue_owner_token,
    issue_staff_token,
)
from gymdesk.auth.context import Actor
from gymdesk.core.models import StaffRole
from gymdesk.services import AccountService, BranchService, StaffService
from gymdesk.storage import Collections, StorageProvider, create_local_storage


@dataclass
class DemoWorld:
    storage: StorageProvider
    owner_id: str
    branches: dict[str, str]        # name -> branch id
    staff: dict[str, dict]          # label -> {"id", "identity_id", "phone"}
    tokens: dict[str, str]          # label -> bearer token


DEMO_STAFF = (
    # label, name, phone, role, branches
    ("manager", "Meera Manager", "9000000001", StaffRole.MANAGER, ("Downtown",)),
    ("accountant", "Arjun Accounts", "9000000002", StaffRole.ACCOUNTANT, ("Downtown", "Uptown")),
    ("trainer", "Tara Trainer", "9000000003", StaffRole.TRAINER, ()),
    ("staff-admin", "Sam Admin", "9000000004", StaffRole.ADMIN, ("Uptown",)),
    ("inactive", "Ivan Inactive", "9000000005", StaffRole.RECEPTION, ("Downtown",)),
)

DEMO_PASSWORD = "demo-password"


async def build_demo_world() -> DemoWorld:
    """Seed storage through the same services the API uses."""
    storage = create_local_storage()
    accounts = AccountService(storage)

    owner = await accounts.create_owner("owner@gymdesk.local", "Olivia Owner", DEMO_PASSWORD)
    owner_decision = AuthorizationDecision(
        admitted=True,
        effective_branch_ids=ALL_BRANCHES,
        actor=Actor.owner(owner.id, owner.name),
    )

    branch_service = BranchService(storage)
    branches = {}
    for name in ("Downtown", "Uptown"):
        branch = await branch_service.create(owner_decision, name)
        branches[name] = branch.id

    staff_service = StaffService(storage)
    staff = {}
    tokens = {"owner": issue_owner_token(owner.id).access_token}
    for label, name, phone, role, branch_names in DEMO_STAFF:
        created = await staff_service.create(
            owner_decision,
            full_name=name,
            phone=phone,
            role=role,
            password=DEMO_PASSWORD,
            branch_ids=[branches[b] for b in branch_names],
        )
        profile = await staff_service.get_profile(created["id"])
        staff[label] = {"id": profile["id"], "identity_id": profile["identity_id"], "phone": phone}
        tokens[label] = issue_staff_token(profile["identity_id"], profile["session_version"]).access_token

    await staff_service.set_active(owner_decision, staff["inactive"]["id"], False)

    return DemoWorld(
        storage=storage,
        owner_id=owner.id,
        branches=branches,
        staff=staff,
        tokens=tokens,
    )


def describe(decision: AuthorizationDecision, branch_names: dict[str, str]) -> str:
    if not decision.admitted:
        return f"DENY ({decision.reason.value})"
    scope = decision.effective_branch_ids
    if scope == ALL_BRANCHES:
        return "allow: all"
    names = sorted(branch_names.get(b, b) for b in scope)
    return f"allow: {', '.join(names) if names else '(none)'}"


async def demo():
    print("=" * 72)
    print("GYMDESK AUTHORIZATION DEMO")
    print("=" * 72)
    print()

    world = await build_demo_world()
    gateway = AuthorizationGateway(world.storage)
    names_by_id = {v: k for k, v in world.branches.items()}

    staff_rows = await world.storage.metadata.query(Collections.STAFF, limit=100)
    print(f"Seeded {len(world.branches)} branches and {len(staff_rows)} staff members")
    print()

    requests = [
        (Capability.VIEW_MEMBERS, None),
        (Capability.VIEW_MEMBERS, world.branches["Uptown"]),
        (Capability.ACCESS_LEDGER, None),
        (Capability.CHANGE_SETTINGS, world.branches["Downtown"]),
        (Capability.IS_OWNER, None),
    ]

    for label, token in world.tokens.items():
        print(f"{label}:")
        for capability, branch in requests:
            decision = await gateway.authorize(token, capability, branch)
            where = names_by_id.get(branch, "-") if branch else "-"
            print(f"  {capability.value:<22} branch={where:<9} {describe(decision, names_by_id)}")
        print()

    print("=" * 72)


if __name__ == "__main__":
    asyncio.run(demo())
