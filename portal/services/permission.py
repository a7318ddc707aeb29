"""
Role gate for privileged lifecycle actions.

The portal's session layer resolves the caller's role; the engine only
receives it as a string.  Manager and Admin may lock, unlock and edit a
locked tech stack; every other role may not.

Usage:
    from portal.services.permission import check_role, is_privileged

    check_role(role, "lock the tech stack")   # raises PermissionDenied
"""

from portal.core.exceptions import PermissionDenied

PRIVILEGED_ROLES = frozenset({"manager", "admin"})


def normalize_role(role: str | None) -> str | None:
    if role is None:
        return None
    role = role.strip().lower()
    return role or None


def is_privileged(role: str | None) -> bool:
    """True if *role* may perform role-gated lifecycle actions."""
    return normalize_role(role) in PRIVILEGED_ROLES


def check_role(role: str | None, action: str) -> None:
    """
    Assert *role* is privileged; raise PermissionDenied if not.

    Args:
        role: Caller's role name (case-insensitive).
        action: Human-readable action, used in the error message.

    Raises:
        PermissionDenied: If the role is not Manager or Admin.
    """
    if not is_privileged(role):
        raise PermissionDenied(role, action)
