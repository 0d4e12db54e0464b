"""
Authorization error taxonomy.

Three kinds, all terminal for the request:

    Unauthenticated     401  no valid, active identity (re-login)
    PermissionDenied    403  identity lacks the capability
    BranchAccessDenied  403  branch outside the actor's assignments

Callers recover (re-login, reselect branch); the gateway never does.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    PERMISSION_DENIED = "permission_denied"
    BRANCH_ACCESS_DENIED = "branch_access_denied"


class AuthorizationError(Exception):
    """Base class - carries the kind and the HTTP status it maps to."""

    kind: ErrorKind
    status_code: int
    default_message: str = "Access denied"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        return {"error": self.message, "kind": self.kind.value}


class Unauthenticated(AuthorizationError):
    kind = ErrorKind.UNAUTHENTICATED
    status_code = 401
    default_message = "Authentication required"


class PermissionDenied(AuthorizationError):
    kind = ErrorKind.PERMISSION_DENIED
    status_code = 403
    default_message = "Permission denied"


class BranchAccessDenied(AuthorizationError):
    """
    Always the same message, whether or not the branch exists,
    so responses cannot be used to enumerate branches.
    """

    kind = ErrorKind.BRANCH_ACCESS_DENIED
    status_code = 403
    default_message = "Access denied to this branch"

    def __init__(self):
        super().__init__(self.default_message)


ERRORS_BY_KIND: dict[ErrorKind, type[AuthorizationError]] = {
    ErrorKind.UNAUTHENTICATED: Unauthenticated,
    ErrorKind.PERMISSION_DENIED: PermissionDenied,
    ErrorKind.BRANCH_ACCESS_DENIED: BranchAccessDenied,
}
