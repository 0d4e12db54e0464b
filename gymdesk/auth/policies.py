"""
Policies - the route-level interface to the authorization gateway.

Route handlers never check tokens, roles or branches themselves:

    @app.get("/members")
    async def list_members(
        decision: AuthorizationDecision = Depends(require(Capability.VIEW_MEMBERS)),
    ):
        rows = await storage.metadata.query("members", decision.branch_filter())

- `require()` returns a FastAPI dependency resolving to an AuthorizationDecision
- The requested branch is read from the `branch_id` path or query parameter
- Rejections raise AuthorizationError, turned into 401/403 by the app handlers
"""

from __future__ import annotations

from typing import Callable

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from gymdesk.auth.capabilities import Capability
from gymdesk.auth.context import Actor
from gymdesk.auth.errors import Unauthenticated
from gymdesk.auth.gateway import AuthorizationDecision, AuthorizationGateway


# =============================================================================
# Bearer Token Extraction
# =============================================================================


# Optional bearer (the gateway decides what a missing token means)
optional_bearer = HTTPBearer(auto_error=False)


async def get_bearer_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(optional_bearer),
) -> str | None:
    if not credentials:
        return None
    return credentials.credentials


def get_gateway(request: Request) -> AuthorizationGateway:
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        # No gateway configured means nothing can be verified
        raise Unauthenticated("Authentication unavailable")
    return gateway


def requested_branch(request: Request) -> str | None:
    """Branch the request targets: path parameter first, then query string."""
    branch_id = request.path_params.get("branch_id") or request.query_params.get("branch_id")
    return branch_id or None


# =============================================================================
# Main Interface
# =============================================================================


def require(capability: Capability | str) -> Callable:
    """
    Require a capability, scoped to the requested branch.

    Usage:
        @app.get("/ledger")
        async def list_ledger(
            decision: AuthorizationDecision = Depends(require(Capability.ACCESS_LEDGER)),
        ):
            ...

    Returns:
        FastAPI dependency resolving to an admitted AuthorizationDecision
    """

    async def dependency(
        request: Request,
        token: str | None = Depends(get_bearer_token),
    ) -> AuthorizationDecision:
        gateway = get_gateway(request)
        return await gateway.admit(token, capability, requested_branch(request))

    return dependency


def require_owner() -> Callable:
    """Owner-only affordances (branches, staff management, activity logs)."""
    return require(Capability.IS_OWNER)


def require_scope() -> Callable:
    """Any active identity, scoped to the requested branch (no capability)."""

    async def dependency(
        request: Request,
        token: str | None = Depends(get_bearer_token),
    ) -> AuthorizationDecision:
        return await get_gateway(request).admit_scope(token, requested_branch(request))

    return dependency


def require_auth() -> Callable:
    """Just require a valid, active identity; resolves to the Actor."""

    async def dependency(
        request: Request,
        token: str | None = Depends(get_bearer_token),
    ) -> Actor:
        return await get_gateway(request).identify(token)

    return dependency
