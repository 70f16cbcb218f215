"""Shared role and permission-context enum values."""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Membership roles, from most to least privileged."""

    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"


class Context(str, Enum):
    """Resource kinds a permission check is scoped to."""

    BOARD = "board"
    ORGANIZATION = "organization"


ROLE_RANK: dict[Role, int] = {
    Role.VIEWER: 0,
    Role.MEMBER: 1,
    Role.ADMIN: 2,
    Role.OWNER: 3,
}


def normalize_role(role: Role | str) -> Role:
    """Coerce a role name into `Role`.

    Raises ``ValueError`` for names outside the role set, blank included.
    """
    if isinstance(role, Role):
        return role
    return Role(role.strip().lower())


def normalize_context(context: Context | str) -> Context:
    """Coerce a context name into `Context`, raising ``ValueError`` if unknown."""
    if isinstance(context, Context):
        return context
    return Context(context.strip().lower())
