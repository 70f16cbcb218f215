"""Static role → permitted-action catalog for board and organization contexts.

Pure and storage-agnostic. Within each context the action sets are strictly
nested by privilege: viewer ⊂ member ⊂ admin ⊂ owner.
"""

from __future__ import annotations

from boardaccess.core.roles import ROLE_RANK, Context, Role, normalize_context, normalize_role

# Board actions
VIEW_BOARD = "view_board"
EDIT_BOARD = "edit_board"
DELETE_BOARD = "delete_board"
MANAGE_BOARD_MEMBERS = "manage_board_members"
CREATE_COLUMN = "create_column"
EDIT_COLUMN = "edit_column"
DELETE_COLUMN = "delete_column"
CREATE_CARD = "create_card"
EDIT_CARD = "edit_card"
DELETE_CARD = "delete_card"
MOVE_CARD = "move_card"
ASSIGN_CARD = "assign_card"
COMMENT_CARD = "comment_card"
EXPORT_DATA = "export_data"

# Organization actions
VIEW_ORGANIZATION = "view_organization"
EDIT_ORGANIZATION = "edit_organization"
DELETE_ORGANIZATION = "delete_organization"
MANAGE_ORG_MEMBERS = "manage_org_members"
CREATE_ORG_BOARD = "create_org_board"
TRANSFER_OWNERSHIP = "transfer_ownership"

# Shared by both contexts
INVITE_USERS = "invite_users"

ACTION_DESCRIPTIONS: dict[str, str] = {
    VIEW_BOARD: "View board content",
    EDIT_BOARD: "Edit board settings",
    DELETE_BOARD: "Delete the board",
    MANAGE_BOARD_MEMBERS: "Manage board members",
    CREATE_COLUMN: "Create columns",
    EDIT_COLUMN: "Edit columns",
    DELETE_COLUMN: "Delete columns",
    CREATE_CARD: "Create cards",
    EDIT_CARD: "Edit cards",
    DELETE_CARD: "Delete cards",
    MOVE_CARD: "Move cards",
    ASSIGN_CARD: "Assign cards to users",
    COMMENT_CARD: "Comment on cards",
    VIEW_ORGANIZATION: "View the organization",
    EDIT_ORGANIZATION: "Edit the organization",
    DELETE_ORGANIZATION: "Delete the organization",
    MANAGE_ORG_MEMBERS: "Manage organization members",
    CREATE_ORG_BOARD: "Create boards in the organization",
    TRANSFER_OWNERSHIP: "Transfer ownership",
    INVITE_USERS: "Invite users",
    EXPORT_DATA: "Export data",
}

_BOARD_VIEWER = frozenset({VIEW_BOARD, COMMENT_CARD})
_BOARD_MEMBER = _BOARD_VIEWER | {CREATE_CARD, EDIT_CARD, MOVE_CARD, ASSIGN_CARD}
_BOARD_ADMIN = _BOARD_MEMBER | {
    EDIT_BOARD,
    MANAGE_BOARD_MEMBERS,
    CREATE_COLUMN,
    EDIT_COLUMN,
    DELETE_COLUMN,
    DELETE_CARD,
    INVITE_USERS,
    EXPORT_DATA,
}
_BOARD_OWNER = _BOARD_ADMIN | {DELETE_BOARD}

_ORG_VIEWER = frozenset({VIEW_ORGANIZATION})
_ORG_MEMBER = _ORG_VIEWER | {CREATE_ORG_BOARD}
_ORG_ADMIN = _ORG_MEMBER | {EDIT_ORGANIZATION, MANAGE_ORG_MEMBERS, INVITE_USERS}
_ORG_OWNER = _ORG_ADMIN | {DELETE_ORGANIZATION, TRANSFER_OWNERSHIP}

ROLE_PERMISSIONS: dict[Context, dict[Role, frozenset[str]]] = {
    Context.BOARD: {
        Role.OWNER: _BOARD_OWNER,
        Role.ADMIN: _BOARD_ADMIN,
        Role.MEMBER: _BOARD_MEMBER,
        Role.VIEWER: _BOARD_VIEWER,
    },
    Context.ORGANIZATION: {
        Role.OWNER: _ORG_OWNER,
        Role.ADMIN: _ORG_ADMIN,
        Role.MEMBER: _ORG_MEMBER,
        Role.VIEWER: _ORG_VIEWER,
    },
}

CONTEXT_ACTIONS: dict[Context, frozenset[str]] = {
    context: frozenset().union(*by_role.values()) for context, by_role in ROLE_PERMISSIONS.items()
}


def permissions_for(role: Role | str, context: Context | str) -> frozenset[str]:
    """Return the actions *role* may perform in *context*.

    Raises ``ValueError`` for a role or context outside the catalog.
    """
    return ROLE_PERMISSIONS[normalize_context(context)][normalize_role(role)]


def role_rank(role: Role | str) -> int:
    return ROLE_RANK[normalize_role(role)]


def roles_by_privilege() -> list[Role]:
    """Roles ordered from least to most privileged."""
    return sorted(Role, key=ROLE_RANK.__getitem__)
