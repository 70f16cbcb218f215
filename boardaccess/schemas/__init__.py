"""Public schema exports."""

from boardaccess.schemas.invitations import InvitationAcceptResult, InvitationRead
from boardaccess.schemas.memberships import MemberRead, MembershipListItem, UserPermissionRead

__all__ = [
    "InvitationAcceptResult",
    "InvitationRead",
    "MemberRead",
    "MembershipListItem",
    "UserPermissionRead",
]
