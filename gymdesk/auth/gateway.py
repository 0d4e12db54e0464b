"""
Authorization gateway - the single entry point for every protected operation.

    authenticate -> resolve role -> check capability -> check branch scope

in that order, stopping at the first failure. A request is either fully
admitted, with the branch scope every later query must apply, or fully
rejected before any data is touched.

Nothing is cached between calls. Lookup faults and timeouts are treated
as Unauthenticated rather than let through.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from gymdesk.auth.capabilities import Capability, has_capability
from gymdesk.auth.context import Actor, RoleResolver
from gymdesk.auth.errors import (
    ERRORS_BY_KIND,
    AuthorizationError,
    ErrorKind,
    PermissionDenied,
    Unauthenticated,
)
from gymdesk.auth.jwt import CredentialVerifier
from gymdesk.auth.scope import (
    BranchScope,
    ensure_in_scope,
    resolve_scope,
    scope_contains,
    scope_filter,
)
from gymdesk.config import get_settings
from gymdesk.storage.base import StorageProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthorizationDecision:
    """
    Outcome of one authorization call.

    effective_branch_ids is "all" (owner, no branch requested) or a
    frozenset of branch ids. Denied decisions carry an empty scope and
    no actor.
    """

    admitted: bool
    reason: ErrorKind | None = None
    effective_branch_ids: BranchScope = frozenset()
    actor: Actor | None = field(default=None, repr=False, compare=False)

    @classmethod
    def denied(cls, reason: ErrorKind) -> AuthorizationDecision:
        return cls(admitted=False, reason=reason)

    def allows_branch(self, branch_id: str | None) -> bool:
        return self.admitted and scope_contains(self.effective_branch_ids, branch_id)

    def ensure_branch(self, branch_id: str | None) -> None:
        """Raise BranchAccessDenied unless branch_id is in the admitted scope."""
        self.raise_for_denial()
        ensure_in_scope(self.effective_branch_ids, branch_id)

    def branch_filter(self, column: str = "branch_id") -> dict:
        """Mandatory query filter for branch-scoped collections."""
        self.raise_for_denial()
        return scope_filter(self.effective_branch_ids, column)

    def raise_for_denial(self) -> None:
        if not self.admitted:
            raise ERRORS_BY_KIND[self.reason or ErrorKind.UNAUTHENTICATED]()


class AuthorizationGateway:
    """
    Combines the credential verifier, role resolver, permission evaluator
    and branch scope filter.

    admit() raises the AuthorizationError for a rejection; authorize()
    never raises and returns a denied decision instead.
    """

    def __init__(
        self,
        storage: StorageProvider,
        verifier: CredentialVerifier | None = None,
        resolver: RoleResolver | None = None,
        lookup_timeout: float | None = None,
    ):
        self.storage = storage
        self.verifier = verifier or CredentialVerifier(storage.cache)
        self.resolver = resolver or RoleResolver(storage)
        self.lookup_timeout = (
            lookup_timeout if lookup_timeout is not None
            else get_settings().auth_lookup_timeout_seconds
        )

    async def identify(self, token: str | None) -> Actor:
        """
        Steps 1-2: verify the token and resolve the actor.

        Any failure, including storage errors and timeouts, is Unauthenticated.
        """
        try:
            return await asyncio.wait_for(self._identify(token), timeout=self.lookup_timeout)
        except AuthorizationError:
            raise
        except asyncio.TimeoutError:
            logger.error("Identity lookup timed out after %ss - denying", self.lookup_timeout)
            raise Unauthenticated("Authentication unavailable")
        except Exception:
            logger.exception("Identity lookup failed - denying")
            raise Unauthenticated("Authentication unavailable")

    async def _identify(self, token: str | None) -> Actor:
        identity = await self.verifier.verify(token)
        return await self.resolver.resolve(identity)

    async def admit(
        self,
        token: str | None,
        capability: Capability | str,
        requested_branch: str | None = None,
    ) -> AuthorizationDecision:
        """Authorize or raise Unauthenticated / PermissionDenied / BranchAccessDenied."""
        actor = await self.identify(token)
        return self.decide(actor, capability, requested_branch)

    def decide(
        self,
        actor: Actor,
        capability: Capability | str,
        requested_branch: str | None = None,
    ) -> AuthorizationDecision:
        """Steps 3-4 for an already resolved actor. Raises on rejection."""
        # has_capability denies (and logs) names outside the taxonomy
        if not has_capability(actor, capability):
            logger.info(
                "Permission denied: actor=%s kind=%s capability=%s",
                actor.actor_id, actor.kind.value, capability,
            )
            raise PermissionDenied(f"Permission denied: {capability}")

        try:
            scope = resolve_scope(actor, requested_branch)
        except AuthorizationError:
            logger.info(
                "Branch access denied: actor=%s requested_branch=%s",
                actor.actor_id, requested_branch,
            )
            raise

        return AuthorizationDecision(
            admitted=True,
            effective_branch_ids=scope,
            actor=actor,
        )

    async def admit_scope(
        self,
        token: str | None,
        requested_branch: str | None = None,
    ) -> AuthorizationDecision:
        """
        Authenticate and scope without a capability check.

        For reads every actor may make about their own reach, such as
        the list of branches they can switch between.
        """
        actor = await self.identify(token)
        return AuthorizationDecision(
            admitted=True,
            effective_branch_ids=resolve_scope(actor, requested_branch),
            actor=actor,
        )

    async def authorize(
        self,
        token: str | None,
        capability: Capability | str,
        requested_branch: str | None = None,
    ) -> AuthorizationDecision:
        """Like admit(), but a rejection comes back as a denied decision."""
        try:
            return await self.admit(token, capability, requested_branch)
        except AuthorizationError as e:
            return AuthorizationDecision.denied(e.kind)
