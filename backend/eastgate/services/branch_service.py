"""
Branch Scoping Helpers

WHY: Centralize branch validation for reuse across routes. Every request acts
on exactly one branch (or, for admins listing across branches, on all of them),
and cross-branch access must be explicitly denied.

SECURITY INVARIANTS:
1. Every authenticated request has g.branch_id set (None for admins)
2. Branch ids from client input are validated against g.branch_id
3. Entities loaded by id are checked against the caller's branch before use
4. Cross-branch attempts are logged
"""

from flask import current_app, g, request

from ..errors import BranchAccessError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Branch
from ..validation import coerce_int


def get_current_branch_id() -> int | None:
    """Branch of the acting staff member; None for admins."""
    return getattr(g, "branch_id", None)


def require_branch(branch_id: int) -> Branch:
    branch = db.session.get(Branch, branch_id)
    if branch is None:
        raise NotFoundError("Branch not found", details={"branch_id": branch_id})
    if not branch.is_active:
        raise ValidationError("Branch is not active")
    return branch


def _log_cross_branch_attempt(requested: int) -> None:
    user = getattr(g, "current_user", None)
    current_app.logger.warning(
        "Cross-branch access denied: user=%s branch=%s requested=%s path=%s",
        user.id if user else None,
        get_current_branch_id(),
        requested,
        request.path,
    )


def resolve_branch_id(requested=None, *, required: bool = True) -> int | None:
    """
    Work out which branch a request acts on.

    Branch-bound staff always act on their own branch; passing another id is
    rejected. Admins must name a branch unless required=False, in which case
    None means "all branches".
    """
    own = get_current_branch_id()
    wanted = coerce_int(requested, "branch_id") if requested not in (None, "") else None

    if own is not None:
        if wanted is not None and wanted != own:
            _log_cross_branch_attempt(wanted)
            raise BranchAccessError("Access denied to this branch")
        return own

    if wanted is None:
        if required:
            raise ValidationError("branch_id is required")
        return None
    require_branch(wanted)
    return wanted


def ensure_branch_access(branch_id: int) -> None:
    """Reject when the acting staff member is bound to a different branch."""
    own = get_current_branch_id()
    if own is not None and own != branch_id:
        _log_cross_branch_attempt(branch_id)
        # Reported as not found so ids from other branches are not disclosed
        raise NotFoundError("Not found")
