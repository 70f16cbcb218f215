"""Membership store contract shared by the durable and in-memory backends.

Both backends expose exactly the same behavior, including the error kinds
raised on conflicts; any contract test must pass unmodified against either.
The owner invariants and invitation predicates live here or on the models so
that the two implementations cannot drift.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeAlias, cast

from boardaccess.core.errors import OwnerProtectedError
from boardaccess.core.roles import Context, Role
from boardaccess.models.board_members import BoardMember
from boardaccess.models.boards import Board
from boardaccess.models.organization_members import OrganizationMember
from boardaccess.models.organizations import Organization

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from boardaccess.models.invitations import Invitation
    from boardaccess.models.users import User

Member: TypeAlias = OrganizationMember | BoardMember

MEMBER_MODELS: dict[Context, type[OrganizationMember] | type[BoardMember]] = {
    Context.ORGANIZATION: OrganizationMember,
    Context.BOARD: BoardMember,
}
RESOURCE_MODELS: dict[Context, type[Organization] | type[Board]] = {
    Context.ORGANIZATION: Organization,
    Context.BOARD: Board,
}


@dataclass(frozen=True)
class AcceptedInvitation:
    """Everything written by one atomic invitation acceptance."""

    invitation: Invitation
    user: User
    user_created: bool
    board_member: BoardMember
    organization_member: OrganizationMember | None


def reject_owner_grant(role: Role) -> None:
    """Owner rows are only created together with their resource."""
    if role == Role.OWNER:
        raise OwnerProtectedError("A resource has exactly one owner; ownership cannot be granted")


def guard_owner_change(current_role: str, new_role: Role | None = None) -> None:
    """Forbid removing, re-roling or demoting the owner, and promoting to owner."""
    if current_role == Role.OWNER.value:
        raise OwnerProtectedError()
    if new_role == Role.OWNER:
        reject_owner_grant(new_role)


def build_member(
    context: Context,
    *,
    resource_id: UUID,
    user_id: UUID,
    role: Role,
    added_by: UUID | None,
) -> Member:
    """Construct an unsaved membership row for *context*."""
    model = MEMBER_MODELS[context]
    return model(
        **{model.RESOURCE_FIELD: resource_id},
        user_id=user_id,
        role=role.value,
        added_by=added_by,
    )


class MembershipStore(ABC):
    """Storage for users, organizations, boards, memberships and invitations."""

    backend_name: str = "abstract"

    # Users

    @abstractmethod
    async def create_user(self, *, username: str, email: str, password: str) -> User:
        """Insert a user; raises `EmailTakenError` on a duplicate email."""

    @abstractmethod
    async def get_user(self, user_id: UUID) -> User | None: ...

    @abstractmethod
    async def get_user_by_email(self, email: str) -> User | None: ...

    # Organizations and boards

    @abstractmethod
    async def create_organization(
        self,
        *,
        name: str,
        description: str,
        owner_id: UUID,
    ) -> Organization:
        """Insert an organization and its owner membership atomically."""

    @abstractmethod
    async def get_organization(self, organization_id: UUID) -> Organization | None: ...

    @abstractmethod
    async def create_board(
        self,
        *,
        name: str,
        description: str,
        owner_id: UUID,
        organization_id: UUID | None = None,
    ) -> Board:
        """Insert a board and its owner membership atomically."""

    @abstractmethod
    async def get_board(self, board_id: UUID) -> Board | None: ...

    @abstractmethod
    async def list_organization_boards(self, organization_id: UUID) -> list[Board]:
        """Boards owned by an organization, oldest first."""

    # Memberships

    @abstractmethod
    async def add_member(
        self,
        context: Context,
        resource_id: UUID,
        user_id: UUID,
        role: Role,
        added_by: UUID | None,
    ) -> Member:
        """Insert a membership; raises `AlreadyMemberError` if the pair exists."""

    @abstractmethod
    async def get_member(
        self,
        context: Context,
        resource_id: UUID,
        user_id: UUID,
    ) -> Member | None: ...

    @abstractmethod
    async def list_members(self, context: Context, resource_id: UUID) -> list[Member]:
        """Members of a resource, oldest first."""

    @abstractmethod
    async def list_user_memberships(self, context: Context, user_id: UUID) -> list[Member]:
        """Direct memberships of a user, newest first."""

    @abstractmethod
    async def remove_member(
        self,
        context: Context,
        resource_id: UUID,
        user_id: UUID,
    ) -> Member:
        """Delete a membership; `NotFoundError` or `OwnerProtectedError`."""

    @abstractmethod
    async def update_member_role(
        self,
        context: Context,
        resource_id: UUID,
        user_id: UUID,
        role: Role,
    ) -> Member:
        """Change a member's role; `NotFoundError` or `OwnerProtectedError`."""

    async def add_organization_member(
        self,
        organization_id: UUID,
        user_id: UUID,
        role: Role,
        added_by: UUID | None,
    ) -> OrganizationMember:
        member = await self.add_member(
            Context.ORGANIZATION,
            organization_id,
            user_id,
            role,
            added_by,
        )
        return cast("OrganizationMember", member)

    async def add_board_member(
        self,
        board_id: UUID,
        user_id: UUID,
        role: Role,
        added_by: UUID | None,
    ) -> BoardMember:
        member = await self.add_member(Context.BOARD, board_id, user_id, role, added_by)
        return cast("BoardMember", member)

    async def get_role(
        self,
        user_id: UUID,
        context: Context,
        resource_id: UUID,
    ) -> str | None:
        """Direct role of *user_id* on the resource, without inheritance."""
        member = await self.get_member(context, resource_id, user_id)
        return member.role if member is not None else None

    # Invitations

    @abstractmethod
    async def create_invitation(self, invitation: Invitation, *, now: datetime) -> Invitation:
        """Insert a pending invitation.

        Raises `DuplicatePendingInvitationError` when an unexpired pending
        invitation exists for the same (email, board). Expired pending rows
        for the pair are deleted in the same atomic unit.
        """

    @abstractmethod
    async def get_invitation_by_token(self, token: str) -> Invitation | None: ...

    @abstractmethod
    async def list_invitations_for_email(self, email: str) -> list[Invitation]:
        """Invitations addressed to *email*, newest first."""

    @abstractmethod
    async def accept_invitation(
        self,
        token: str,
        *,
        now: datetime,
        provisional_user: User,
        role: Role,
    ) -> AcceptedInvitation:
        """Mark accepted and grant memberships as one atomic unit.

        *provisional_user* is inserted only when no user owns the invitation
        email. Existing memberships are kept as they are.
        """

    @abstractmethod
    async def decline_invitation(self, token: str, *, now: datetime) -> Invitation:
        """Mark a pending invitation declined; `InvitationNotFoundError` otherwise."""

    async def close(self) -> None:
        """Release backend resources."""
        return None
