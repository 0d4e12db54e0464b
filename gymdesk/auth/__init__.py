"""
Authorization core - who is calling, what they may do, and where.

Every protected operation goes through one gateway:

    authenticate -> resolve role -> check capability -> check branch scope

Routes use the FastAPI dependencies in policies (require, require_owner,
require_auth); nothing else checks tokens or roles.
"""

from gymdesk.auth.capabilities import (
    Capability,
    default_permissions,
    effective_permissions,
    has_capability,
)
from gymdesk.auth.context import Actor, ActorKind, RoleResolver
from gymdesk.auth.errors import (
    AuthorizationError,
    BranchAccessDenied,
    ErrorKind,
    PermissionDenied,
    Unauthenticated,
)
from gymdesk.auth.gateway import AuthorizationDecision, AuthorizationGateway
from gymdesk.auth.jwt import (
    CredentialVerifier,
    Identity,
    TokenResponse,
    hash_password,
    issue_owner_token,
    issue_staff_token,
    verify_password,
)
from gymdesk.auth.navigation import visible_sections
from gymdesk.auth.policies import require, require_auth, require_owner, require_scope
from gymdesk.auth.scope import ALL_BRANCHES, resolve_scope, scope_filter

__all__ = [
    # Main interface
    "require",
    "require_owner",
    "require_auth",
    "require_scope",
    "AuthorizationGateway",
    "AuthorizationDecision",
    # Actors
    "Actor",
    "ActorKind",
    "RoleResolver",
    # Capabilities
    "Capability",
    "has_capability",
    "effective_permissions",
    "default_permissions",
    "visible_sections",
    # Scope
    "ALL_BRANCHES",
    "resolve_scope",
    "scope_filter",
    # Errors
    "AuthorizationError",
    "ErrorKind",
    "Unauthenticated",
    "PermissionDenied",
    "BranchAccessDenied",
    # Credentials
    "CredentialVerifier",
    "Identity",
    "TokenResponse",
    "hash_password",
    "verify_password",
    "issue_owner_token",
    "issue_staff_token",
]
