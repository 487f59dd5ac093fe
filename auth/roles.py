"""
auth/roles.py -- Role catalogue and authorization checks.

Three fixed roles ordered by privilege. Checks are pure functions over the
User dataclass (or anything with .id / .role) so routes, dependencies and
tests can call them without a database.
"""

from __future__ import annotations

from typing import Any, Iterable

ADMIN = "admin"
EDITOR = "editor"
CUSTOMER = "customer"

DEFAULT_ROLE = CUSTOMER

# Higher number = more privilege. has_minimum_role() compares these.
ROLE_HIERARCHY: dict[str, int] = {
    ADMIN: 100,
    EDITOR: 50,
    CUSTOMER: 10,
}

DEFAULT_ROLES: dict[str, str] = {
    "ADMIN": ADMIN,
    "EDITOR": EDITOR,
    "CUSTOMER": CUSTOMER,
}


def valid_roles() -> list[str]:
    return list(ROLE_HIERARCHY)


def is_valid_role(role: str | None) -> bool:
    return role in ROLE_HIERARCHY


def normalize_role(role: str | None) -> str:
    """Return role if valid, otherwise the default role."""
    return role if is_valid_role(role) else DEFAULT_ROLE


def has_role(user, roles: str | Iterable[str]) -> bool:
    """True if the user's role is one of roles."""
    wanted = {roles} if isinstance(roles, str) else set(roles)
    return getattr(user, "role", None) in wanted


def has_minimum_role(user, min_role: str) -> bool:
    """True if the user's role ranks at or above min_role.

    Unknown roles on either side rank zero, so an unknown user role never
    passes and an unknown min_role is satisfied by any known role.
    """
    user_level = ROLE_HIERARCHY.get(getattr(user, "role", None), 0)
    if user_level == 0:
        return False
    return user_level >= ROLE_HIERARCHY.get(min_role, 0)


def is_owner(user, resource: Any, owner_field: str = "user_id") -> bool:
    """True if resource[owner_field] (or resource.owner_field) equals user.id."""
    if isinstance(resource, dict):
        owner = resource.get(owner_field)
    else:
        owner = getattr(resource, owner_field, None)
    if owner is None or getattr(user, "id", None) is None:
        return False
    return str(owner) == str(user.id)


def has_access(user, roles: str | Iterable[str], resource: Any = None, owner_field: str = "user_id") -> bool:
    """Role grants access outright; otherwise fall back to ownership of resource."""
    if has_role(user, roles):
        return True
    if resource is not None:
        return is_owner(user, resource, owner_field)
    return False
