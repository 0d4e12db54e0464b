"""
Tests for the authorization gateway: credential verification, role
resolution, capability check and branch scoping, end to end against a
seeded in-memory world.
"""

import asyncio
import logging
from datetime import timedelta

import pytest

from gymdesk.auth.capabilities import FLAG_CAPABILITIES, Capability
from gymdesk.auth.context import ActorKind
from gymdesk.auth.errors import (
    BranchAccessDenied,
    ErrorKind,
    PermissionDenied,
    Unauthenticated,
)
from gymdesk.auth.gateway import AuthorizationDecision, AuthorizationGateway
from gymdesk.auth.jwt import CredentialVerifier, create_access_token, issue_staff_token
from gymdesk.auth.scope import ALL_BRANCHES
from gymdesk.core.models import StaffProfile, StaffRole
from gymdesk.storage import Collections, StorageProvider
from gymdesk.storage.local import InMemoryCacheStorage, InMemoryMetadataStorage


@pytest.fixture
def gateway(world):
    return AuthorizationGateway(world.storage, lookup_timeout=2.0)


# =============================================================================
# Owner
# =============================================================================


class TestOwner:
    @pytest.mark.asyncio
    async def test_owner_admitted_everywhere(self, world, gateway):
        token = world.token("owner")
        branches = list(world.branches.values()) + ["no-such-branch"]
        for cap in Capability:
            decision = await gateway.admit(token, cap)
            assert decision.admitted
            assert decision.effective_branch_ids == ALL_BRANCHES
            for branch_id in branches:
                decision = await gateway.admit(token, cap, branch_id)
                assert decision.effective_branch_ids == frozenset({branch_id})

    @pytest.mark.asyncio
    async def test_owner_wins_over_staff_record(self, world, gateway, caplog):
        twin = StaffProfile(identity_id=world.owner.id, full_name="Twin", phone="123", is_active=False)
        await world.storage.metadata.save(Collections.STAFF, twin.id, twin.model_dump())

        with caplog.at_level(logging.WARNING):
            actor = await gateway.identify(world.token("owner"))
        assert actor.kind == ActorKind.OWNER
        assert "owner wins" in caplog.text


# =============================================================================
# Staff
# =============================================================================


class TestStaff:
    @pytest.mark.asyncio
    async def test_inactive_staff_unauthenticated(self, world, gateway):
        token = world.token("inactive")
        for cap in Capability:
            for branch in (None, world.branches["A"]):
                with pytest.raises(Unauthenticated):
                    await gateway.admit(token, cap, branch)

    @pytest.mark.asyncio
    async def test_staff_admin_omnipotent_within_scope(self, world, gateway):
        token = world.token("staff_admin")
        for cap in FLAG_CAPABILITIES:
            decision = await gateway.admit(token, cap, world.branches["B"])
            assert decision.effective_branch_ids == frozenset({world.branches["B"]})

        with pytest.raises(BranchAccessDenied):
            await gateway.admit(token, Capability.VIEW_MEMBERS, world.branches["A"])
        with pytest.raises(PermissionDenied):
            await gateway.admit(token, Capability.IS_OWNER)

    @pytest.mark.asyncio
    async def test_branch_containment(self, world, gateway):
        token = world.token("multi")
        allowed = {world.branches["A"], world.branches["B"]}

        with pytest.raises(BranchAccessDenied):
            await gateway.admit(token, Capability.VIEW_MEMBERS, world.branches["C"])
        with pytest.raises(BranchAccessDenied):
            await gateway.admit(token, Capability.VIEW_MEMBERS, "no-such-branch")

        decision = await gateway.admit(token, Capability.VIEW_MEMBERS)
        assert decision.effective_branch_ids == frozenset(allowed)

    @pytest.mark.asyncio
    async def test_capability_checked_before_branch(self, world, gateway):
        # multi lacks settings and branch C: the capability failure wins
        with pytest.raises(PermissionDenied):
            await gateway.admit(world.token("multi"), Capability.CHANGE_SETTINGS, world.branches["C"])

    @pytest.mark.asyncio
    async def test_missing_permission_row_denies(self, world, gateway):
        decision = await gateway.authorize(world.token("no_row"), Capability.ACCESS_LEDGER)
        assert not decision.admitted
        assert decision.reason == ErrorKind.PERMISSION_DENIED

    @pytest.mark.asyncio
    async def test_unknown_capability_denied(self, world, gateway, caplog):
        with caplog.at_level(logging.ERROR):
            decision = await gateway.authorize(
                world.token("staff_admin"), "can_launch_missiles", world.branches["B"]
            )
        assert decision.reason == ErrorKind.PERMISSION_DENIED
        assert "can_launch_missiles" in caplog.text

    @pytest.mark.asyncio
    async def test_staff_without_branches_sees_nothing(self, world, gateway):
        decision = await gateway.admit(world.token("no_branches"), Capability.VIEW_MEMBERS)
        assert decision.effective_branch_ids == frozenset()
        rows = await world.storage.metadata.query(Collections.MEMBERS, decision.branch_filter())
        assert rows == []


# =============================================================================
# Immediate Revocation
# =============================================================================


class TestNoCaching:
    @pytest.mark.asyncio
    async def test_permission_flip_takes_effect(self, world, gateway):
        token = world.token("manager")
        staff_id = world.staff["manager"].id

        before = {cap: (await gateway.authorize(token, cap)).admitted for cap in FLAG_CAPABILITIES}
        assert not before[Capability.ACCESS_LEDGER]

        await world.storage.metadata.update(
            Collections.STAFF_PERMISSIONS, staff_id, {"can_access_ledger": True}
        )
        after = {cap: (await gateway.authorize(token, cap)).admitted for cap in FLAG_CAPABILITIES}

        assert after[Capability.ACCESS_LEDGER]
        assert {c: v for c, v in after.items() if c != Capability.ACCESS_LEDGER} == \
               {c: v for c, v in before.items() if c != Capability.ACCESS_LEDGER}

    @pytest.mark.asyncio
    async def test_unassignment_takes_effect(self, world, gateway):
        token = world.token("multi")
        branch_b = world.branches["B"]
        assert (await gateway.authorize(token, Capability.VIEW_MEMBERS, branch_b)).admitted

        rows = await world.storage.metadata.query(
            Collections.STAFF_BRANCH_ASSIGNMENTS,
            {"staff_id": world.staff["multi"].id, "branch_id": branch_b},
        )
        await world.storage.metadata.delete(Collections.STAFF_BRANCH_ASSIGNMENTS, rows[0]["id"])

        decision = await gateway.authorize(token, Capability.VIEW_MEMBERS, branch_b)
        assert decision.reason == ErrorKind.BRANCH_ACCESS_DENIED
        decision = await gateway.authorize(token, Capability.VIEW_MEMBERS)
        assert decision.effective_branch_ids == frozenset({world.branches["A"]})

    @pytest.mark.asyncio
    async def test_deactivation_takes_effect(self, world, gateway):
        token = world.token("manager")
        assert (await gateway.authorize(token, Capability.VIEW_MEMBERS)).admitted

        await world.storage.metadata.update(
            Collections.STAFF, world.staff["manager"].id, {"is_active": False}
        )
        decision = await gateway.authorize(token, Capability.VIEW_MEMBERS)
        assert decision.reason == ErrorKind.UNAUTHENTICATED

    @pytest.mark.asyncio
    async def test_session_version_bump_revokes_tokens(self, world, gateway):
        profile = world.staff["manager"]
        old = issue_staff_token(profile.identity_id, profile.session_version).access_token
        await world.storage.metadata.update(
            Collections.STAFF, profile.id, {"session_version": profile.session_version + 1}
        )

        with pytest.raises(Unauthenticated):
            await gateway.identify(old)
        fresh = issue_staff_token(profile.identity_id, profile.session_version + 1).access_token
        assert (await gateway.identify(fresh)).staff_id == profile.id


# =============================================================================
# Credentials
# =============================================================================


class TestCredentials:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", [None, "", "   ", "not-a-jwt", "user_123"])
    async def test_bad_tokens(self, gateway, token):
        with pytest.raises(Unauthenticated):
            await gateway.admit(token, Capability.VIEW_MEMBERS)

    @pytest.mark.asyncio
    async def test_expired_token(self, world, gateway):
        token = create_access_token(world.owner.id, timedelta(seconds=-30))
        with pytest.raises(Unauthenticated, match="expired"):
            await gateway.identify(token)

    @pytest.mark.asyncio
    async def test_unknown_identity(self, gateway):
        token = create_access_token("usr_ghost", timedelta(minutes=5), session_version=1)
        with pytest.raises(Unauthenticated):
            await gateway.identify(token)

    @pytest.mark.asyncio
    async def test_revoked_token(self, world, gateway):
        token = world.token("owner")
        identity = await gateway.verifier.verify(token)
        await gateway.verifier.revoke(identity)

        with pytest.raises(Unauthenticated, match="revoked"):
            await gateway.identify(token)
        # other tokens for the same identity still work
        assert (await gateway.identify(world.token("owner"))).is_owner

    @pytest.mark.asyncio
    async def test_token_signed_with_other_key(self, world, gateway):
        import jwt

        forged = jwt.encode(
            {"sub": world.owner.id, "exp": 9999999999, "iat": 0, "type": "access", "jti": "x"},
            "some-other-secret",
            algorithm="HS256",
        )
        with pytest.raises(Unauthenticated):
            await gateway.identify(forged)


# =============================================================================
# Fail Closed on Faults
# =============================================================================


class BrokenMetadata(InMemoryMetadataStorage):
    async def get(self, collection, id):
        raise ConnectionError("database unreachable")


class SlowMetadata(InMemoryMetadataStorage):
    async def get(self, collection, id):
        await asyncio.sleep(1)
        return await super().get(collection, id)


class TestFaults:
    @pytest.mark.asyncio
    async def test_storage_failure_is_unauthenticated(self, world):
        storage = StorageProvider(metadata=BrokenMetadata(), cache=InMemoryCacheStorage())
        gateway = AuthorizationGateway(storage)

        decision = await gateway.authorize(world.token("owner"), Capability.VIEW_MEMBERS)
        assert not decision.admitted
        assert decision.reason == ErrorKind.UNAUTHENTICATED

    @pytest.mark.asyncio
    async def test_lookup_timeout_is_unauthenticated(self, world):
        storage = StorageProvider(metadata=SlowMetadata(), cache=InMemoryCacheStorage())
        gateway = AuthorizationGateway(storage, lookup_timeout=0.05)

        with pytest.raises(Unauthenticated):
            await gateway.admit(world.token("owner"), Capability.VIEW_MEMBERS)

    @pytest.mark.asyncio
    async def test_cache_failure_is_unauthenticated(self, world):
        class BrokenCache(InMemoryCacheStorage):
            async def exists(self, key):
                raise ConnectionError("redis down")

        storage = StorageProvider(metadata=world.storage.metadata, cache=BrokenCache())
        gateway = AuthorizationGateway(storage, verifier=CredentialVerifier(storage.cache))
        with pytest.raises(Unauthenticated):
            await gateway.identify(world.token("owner"))


# =============================================================================
# AuthorizationDecision
# =============================================================================


class TestDecision:
    @pytest.mark.asyncio
    async def test_authorize_never_raises(self, world, gateway):
        denied = await gateway.authorize("garbage", Capability.VIEW_MEMBERS)
        assert denied == AuthorizationDecision.denied(ErrorKind.UNAUTHENTICATED)
        assert denied.effective_branch_ids == frozenset()
        assert denied.actor is None

    def test_denied_decision_refuses_use(self):
        decision = AuthorizationDecision.denied(ErrorKind.BRANCH_ACCESS_DENIED)
        with pytest.raises(BranchAccessDenied):
            decision.branch_filter()
        assert not decision.allows_branch("A")

    @pytest.mark.asyncio
    async def test_ensure_branch(self, world, gateway):
        decision = await gateway.admit(world.token("manager"), Capability.VIEW_MEMBERS)
        decision.ensure_branch(world.branches["A"])
        assert decision.allows_branch(world.branches["A"])
        with pytest.raises(BranchAccessDenied):
            decision.ensure_branch(world.branches["B"])

    @pytest.mark.asyncio
    async def test_actor_carries_role_and_primary(self, world, gateway):
        decision = await gateway.admit(world.token("multi"), Capability.ACCESS_LEDGER)
        actor = decision.actor
        assert actor.role == StaffRole.ACCOUNTANT
        assert actor.primary_branch_id == world.branches["A"]
        assert actor.actor_id == world.staff["multi"].id
