"""
Tests for the branch scope filter.

A staff scope can never contain a branch outside the staff member's
assignments; owners are unrestricted.
"""

import pytest

from gymdesk.auth.context import Actor, ActorKind
from gymdesk.auth.errors import BranchAccessDenied
from gymdesk.auth.scope import (
    ALL_BRANCHES,
    ensure_in_scope,
    resolve_scope,
    scope_contains,
    scope_filter,
)
from gymdesk.core.models import StaffRole


@pytest.fixture
def owner():
    return Actor.owner("own_1")


@pytest.fixture
def staff_ab():
    return Actor(
        identity_id="usr_1",
        kind=ActorKind.STAFF,
        staff_id="stf_1",
        role=StaffRole.ADMIN,
        branch_ids=frozenset({"A", "B"}),
    )


# =============================================================================
# resolve_scope
# =============================================================================


class TestResolveScope:
    def test_owner_without_branch_gets_all(self, owner):
        assert resolve_scope(owner) == ALL_BRANCHES

    def test_owner_with_any_branch_gets_that_branch(self, owner):
        assert resolve_scope(owner, "Z") == frozenset({"Z"})

    def test_staff_without_branch_gets_assignments(self, staff_ab):
        assert resolve_scope(staff_ab) == frozenset({"A", "B"})

    def test_staff_with_assigned_branch(self, staff_ab):
        assert resolve_scope(staff_ab, "B") == frozenset({"B"})

    def test_staff_outside_assignments_denied(self, staff_ab):
        # role admin does not lift the branch restriction
        with pytest.raises(BranchAccessDenied) as exc:
            resolve_scope(staff_ab, "C")
        assert exc.value.message == "Access denied to this branch"

    def test_staff_without_branches_gets_empty_scope(self):
        actor = Actor(identity_id="usr_2", kind=ActorKind.STAFF, staff_id="stf_2",
                      role=StaffRole.RECEPTION)
        assert resolve_scope(actor) == frozenset()
        with pytest.raises(BranchAccessDenied):
            resolve_scope(actor, "A")


# =============================================================================
# Filters
# =============================================================================


class TestScopeFilter:
    def test_all_adds_no_filter(self):
        assert scope_filter(ALL_BRANCHES) == {}

    def test_set_becomes_in_filter(self):
        assert scope_filter(frozenset({"A"})) == {"branch_id": frozenset({"A"})}
        assert scope_filter(frozenset({"A"}), "id") == {"id": frozenset({"A"})}

    def test_contains(self):
        assert scope_contains(ALL_BRANCHES, "anything")
        assert scope_contains(frozenset({"A"}), "A")
        assert not scope_contains(frozenset({"A"}), "B")
        assert not scope_contains(frozenset({"A"}), None)

    def test_ensure_in_scope(self):
        ensure_in_scope(frozenset({"A"}), "A")
        with pytest.raises(BranchAccessDenied):
            ensure_in_scope(frozenset(), "A")

    @pytest.mark.asyncio
    async def test_empty_scope_matches_nothing(self):
        from gymdesk.storage import create_local_storage

        storage = create_local_storage()
        await storage.metadata.save("members", "m1", {"id": "m1", "branch_id": "A"})
        assert await storage.metadata.query("members", scope_filter(frozenset())) == []
        assert len(await storage.metadata.query("members", scope_filter(ALL_BRANCHES))) == 1
