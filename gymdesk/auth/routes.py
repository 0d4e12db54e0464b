# =============================================================================
# Auth API Routes
# =============================================================================
#
# Endpoints:
#   POST /auth/login                          - Owner login (email + password)
#   POST /auth/staff/login                    - Staff login (phone + password)
#   POST /auth/logout                         - Revoke the presented token
#   GET  /auth/me                             - Who am I, what may I do, where
#   POST /auth/staff/{staff_id}/revoke-sessions - Owner: invalidate all staff tokens
#
# =============================================================================

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from gymdesk.auth.capabilities import effective_permissions
from gymdesk.auth.context import Actor
from gymdesk.auth.gateway import AuthorizationDecision
from gymdesk.auth.jwt import TokenResponse
from gymdesk.auth.navigation import visible_sections
from gymdesk.auth.policies import get_bearer_token, get_gateway, require_auth, require_owner
from gymdesk.services.accounts import AccountService
from gymdesk.services.staff import StaffService, summarize_profile
from gymdesk.storage.base import Collections, StorageProvider

router = APIRouter(prefix="/auth", tags=["auth"])


def get_storage(request: Request) -> StorageProvider:
    return request.app.state.storage


# =============================================================================
# Request/Response Models
# =============================================================================

class OwnerLoginRequest(BaseModel):
    email: str
    password: str


class StaffLoginRequest(BaseModel):
    phone: str = Field(min_length=1)
    password: str


class BranchInfo(BaseModel):
    id: str
    name: str
    is_primary: bool = False


class NavItem(BaseModel):
    key: str
    label: str
    path: str


class SessionInfo(BaseModel):
    kind: str
    actor_id: str
    display_name: str | None
    is_owner: bool
    staff: dict[str, Any] | None = None
    permissions: dict[str, bool]
    branches: list[BranchInfo]
    navigation: list[NavItem]


# =============================================================================
# Public Endpoints
# =============================================================================

@router.post("/login", response_model=TokenResponse)
async def owner_login(data: OwnerLoginRequest, storage: StorageProvider = Depends(get_storage)):
    """Owner login."""
    return await AccountService(storage).owner_login(data.email, data.password)


@router.post("/staff/login", response_model=TokenResponse)
async def staff_login(
    data: StaffLoginRequest,
    request: Request,
    storage: StorageProvider = Depends(get_storage),
):
    """
    Staff login by phone number.

    Locked for a while after repeated failures.
    """
    return await AccountService(storage).staff_login(
        data.phone,
        data.password,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


# =============================================================================
# Protected Endpoints
# =============================================================================

@router.post("/logout")
async def logout(request: Request, token: str | None = Depends(get_bearer_token)):
    """Revoke the token used for this request."""
    verifier = get_gateway(request).verifier
    identity = await verifier.verify(token)
    await verifier.revoke(identity)
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=SessionInfo)
async def get_session(
    actor: Actor = Depends(require_auth()),
    storage: StorageProvider = Depends(get_storage),
):
    """
    Current actor, effective permissions, reachable branches and the
    navigation sections to show.
    """
    return await describe_session(storage, actor)


@router.post("/staff/{staff_id}/revoke-sessions")
async def revoke_staff_sessions(
    staff_id: str,
    decision: AuthorizationDecision = Depends(require_owner()),
    storage: StorageProvider = Depends(get_storage),
):
    version = await StaffService(storage).revoke_sessions(decision, staff_id)
    return {"staff_id": staff_id, "session_version": version}


# =============================================================================
# Helpers
# =============================================================================

async def describe_session(storage: StorageProvider, actor: Actor) -> SessionInfo:
    if actor.is_owner:
        rows = await storage.metadata.query(Collections.BRANCHES, limit=1000)
        branches = [BranchInfo(id=r["id"], name=r["name"], is_primary=bool(r.get("is_default"))) for r in rows]
        staff = None
    else:
        rows = await storage.metadata.query(
            Collections.BRANCHES, {"id": actor.branch_ids}, limit=1000
        )
        branches = [
            BranchInfo(id=r["id"], name=r["name"], is_primary=r["id"] == actor.primary_branch_id)
            for r in rows
        ]
        profile = await storage.metadata.get(Collections.STAFF, actor.staff_id)
        staff = summarize_profile(profile) if profile else None

    branches.sort(key=lambda b: (not b.is_primary, b.name))

    return SessionInfo(
        kind=actor.kind.value,
        actor_id=actor.actor_id,
        display_name=actor.display_name,
        is_owner=actor.is_owner,
        staff=staff,
        permissions=effective_permissions(actor).model_dump(),
        branches=branches,
        navigation=[NavItem(key=s.key, label=s.label, path=s.path) for s in visible_sections(actor)],
    )
