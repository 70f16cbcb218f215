"""Domain error kinds raised by the membership store and access services.

Every error is an expected, recoverable outcome. Callers branch on the class
(or on the stable ``code``) and translate it into a user-facing response; see
``boardaccess.core.error_handling`` for the HTTP translation.
"""

from __future__ import annotations

from typing import ClassVar


class AccessError(Exception):
    """Base class for membership, invitation and authorization outcomes."""

    code: ClassVar[str] = "access_error"
    default_message: ClassVar[str] = "Access operation failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(AccessError):
    """Referenced resource, user or membership does not exist."""

    code = "not_found"
    default_message = "Resource not found"

    def __init__(self, kind: str, identifier: object) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} not found")


class AlreadyMemberError(AccessError):
    """The (resource, user) membership pair already exists."""

    code = "already_member"
    default_message = "User is already a member"


class DuplicatePendingInvitationError(AccessError):
    """A pending, unexpired invitation already exists for (email, board)."""

    code = "duplicate_pending_invitation"
    default_message = "A pending invitation already exists for this email on this board"


class InvalidOrExpiredInvitationError(AccessError):
    """Token unknown, no longer pending, or past its expiry (acceptance)."""

    code = "invalid_or_expired_invitation"
    default_message = "Invitation is invalid or expired"


class InvitationNotFoundError(AccessError):
    """Token unknown or no longer pending (decline)."""

    code = "invitation_not_found"
    default_message = "Invitation not found or already processed"


class OwnerProtectedError(AccessError):
    """Attempt to remove, re-role, demote or duplicate the resource owner."""

    code = "owner_protected"
    default_message = "The owner membership cannot be changed"


class InsufficientPermissionsError(AccessError):
    """Acting user lacks the role required for the operation."""

    code = "insufficient_permissions"
    default_message = "Insufficient permissions"

    def __init__(self, action: str, message: str | None = None) -> None:
        self.action = action
        super().__init__(message or f"Insufficient permissions: {action} required")


class InvalidRoleError(AccessError):
    """Role name outside the closed role set."""

    code = "invalid_role"
    default_message = "Unknown role"


class EmailTakenError(AccessError):
    """A user with this email already exists."""

    code = "email_taken"
    default_message = "A user with this email already exists"
