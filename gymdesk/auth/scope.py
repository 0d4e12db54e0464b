"""
Branch scope filter.

Turns (actor, requested branch) into the set of branches a request may
touch. Owners are unrestricted; staff never get a branch outside their
assignments, and "no branch requested" means "all of mine" for staff,
never "all of everyone's".
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Literal, Union

from gymdesk.auth.errors import BranchAccessDenied

if TYPE_CHECKING:
    from gymdesk.auth.context import Actor


ALL_BRANCHES: Literal["all"] = "all"

BranchScope = Union[frozenset[str], Literal["all"]]


def resolve_scope(actor: Actor, requested_branch: str | None = None) -> BranchScope:
    """
    Compute the branch scope for a request.

    Owner:
        no branch   -> "all"
        branch B    -> {B}  (owners have no assignment concept)
    Staff:
        no branch   -> the assigned branch ids (possibly empty)
        branch B    -> {B} if assigned, else BranchAccessDenied
    """
    if actor.is_owner:
        if requested_branch is None:
            return ALL_BRANCHES
        return frozenset({requested_branch})

    allowed = frozenset(actor.branch_ids)
    if requested_branch is None:
        return allowed
    if requested_branch not in allowed:
        raise BranchAccessDenied()
    return frozenset({requested_branch})


def scope_contains(scope: BranchScope, branch_id: str | None) -> bool:
    if scope == ALL_BRANCHES:
        return True
    return branch_id is not None and branch_id in scope


def ensure_in_scope(scope: BranchScope, branch_id: str | None) -> None:
    """Raise BranchAccessDenied unless branch_id lies inside the scope."""
    if not scope_contains(scope, branch_id):
        raise BranchAccessDenied()


def scope_filter(scope: BranchScope, column: str = "branch_id") -> dict[str, Any]:
    """
    Query filter enforcing the scope on a branch-scoped collection.

    "all" adds no filter. A set becomes an IN filter - an empty set
    matches nothing, which is what a staff member with no branches gets.
    """
    if scope == ALL_BRANCHES:
        return {}
    return {column: frozenset(scope)}
