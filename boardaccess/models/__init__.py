"""Model exports for SQLModel metadata discovery."""

from boardaccess.models.board_members import BoardMember
from boardaccess.models.boards import Board
from boardaccess.models.invitations import Invitation
from boardaccess.models.organization_members import OrganizationMember
from boardaccess.models.organizations import Organization
from boardaccess.models.users import User

__all__ = [
    "Board",
    "BoardMember",
    "Invitation",
    "Organization",
    "OrganizationMember",
    "User",
]
