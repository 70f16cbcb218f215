"""Process-local membership store used when no database is reachable at startup.

Records live in per-instance dictionaries keyed the same way the relational
unique constraints are, so duplicate writes fail exactly like the durable
backend instead of overwriting. Callers always receive copies.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, TypeVar, cast
from uuid import UUID

from sqlmodel import SQLModel

from boardaccess.core.errors import (
    AlreadyMemberError,
    DuplicatePendingInvitationError,
    EmailTakenError,
    InvalidOrExpiredInvitationError,
    InvitationNotFoundError,
    NotFoundError,
)
from boardaccess.core.roles import Context, Role
from boardaccess.db.store import (
    AcceptedInvitation,
    Member,
    MembershipStore,
    build_member,
    guard_owner_change,
    reject_owner_grant,
)
from boardaccess.models.boards import Board
from boardaccess.models.invitations import (
    INVITATION_ACCEPTED,
    INVITATION_DECLINED,
    INVITATION_PENDING,
    Invitation,
    is_acceptable,
    is_declinable,
    is_expired,
)
from boardaccess.models.organizations import Organization
from boardaccess.models.users import User, normalize_email

if TYPE_CHECKING:
    from datetime import datetime

    from boardaccess.models.board_members import BoardMember
    from boardaccess.models.organization_members import OrganizationMember

RecordT = TypeVar("RecordT", bound=SQLModel)
MemberKey = tuple[UUID, UUID]


def _copy(record: RecordT) -> RecordT:
    return type(record)(**record.model_dump())


class InMemoryMembershipStore(MembershipStore):
    """Dictionary-backed backend with the durable backend's failure modes."""

    backend_name = "memory"

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._users: dict[UUID, User] = {}
        self._user_ids_by_email: dict[str, UUID] = {}
        self._organizations: dict[UUID, Organization] = {}
        self._boards: dict[UUID, Board] = {}
        self._members: dict[Context, dict[MemberKey, Member]] = {
            Context.ORGANIZATION: {},
            Context.BOARD: {},
        }
        self._invitations: dict[UUID, Invitation] = {}
        self._invitation_ids_by_token: dict[str, UUID] = {}

    def _resource_exists(self, context: Context, resource_id: UUID) -> bool:
        if context == Context.BOARD:
            return resource_id in self._boards
        return resource_id in self._organizations

    def _insert_member(self, context: Context, member: Member) -> None:
        self._members[context][(member.resource_id, member.user_id)] = member

    # Users

    async def create_user(self, *, username: str, email: str, password: str) -> User:
        user = User(username=username, email=normalize_email(email), password=password)
        async with self._lock:
            if user.email in self._user_ids_by_email:
                raise EmailTakenError()
            self._users[user.id] = user
            self._user_ids_by_email[user.email] = user.id
        return _copy(user)

    async def get_user(self, user_id: UUID) -> User | None:
        user = self._users.get(user_id)
        return _copy(user) if user is not None else None

    async def get_user_by_email(self, email: str) -> User | None:
        user_id = self._user_ids_by_email.get(normalize_email(email))
        return await self.get_user(user_id) if user_id is not None else None

    # Organizations and boards

    async def create_organization(
        self,
        *,
        name: str,
        description: str,
        owner_id: UUID,
    ) -> Organization:
        organization = Organization(name=name, description=description, owner_id=owner_id)
        async with self._lock:
            if owner_id not in self._users:
                raise NotFoundError("user", owner_id)
            self._organizations[organization.id] = organization
            self._insert_member(
                Context.ORGANIZATION,
                build_member(
                    Context.ORGANIZATION,
                    resource_id=organization.id,
                    user_id=owner_id,
                    role=Role.OWNER,
                    added_by=owner_id,
                ),
            )
        return _copy(organization)

    async def get_organization(self, organization_id: UUID) -> Organization | None:
        organization = self._organizations.get(organization_id)
        return _copy(organization) if organization is not None else None

    async def create_board(
        self,
        *,
        name: str,
        description: str,
        owner_id: UUID,
        organization_id: UUID | None = None,
    ) -> Board:
        board = Board(
            name=name,
            description=description,
            owner_id=owner_id,
            organization_id=organization_id,
        )
        async with self._lock:
            if owner_id not in self._users:
                raise NotFoundError("user", owner_id)
            if organization_id is not None and organization_id not in self._organizations:
                raise NotFoundError("organization", organization_id)
            self._boards[board.id] = board
            self._insert_member(
                Context.BOARD,
                build_member(
                    Context.BOARD,
                    resource_id=board.id,
                    user_id=owner_id,
                    role=Role.OWNER,
                    added_by=owner_id,
                ),
            )
        return _copy(board)

    async def get_board(self, board_id: UUID) -> Board | None:
        board = self._boards.get(board_id)
        return _copy(board) if board is not None else None

    async def list_organization_boards(self, organization_id: UUID) -> list[Board]:
        rows = [b for b in self._boards.values() if b.organization_id == organization_id]
        rows.sort(key=lambda b: b.created_at)
        return [_copy(b) for b in rows]

    # Memberships

    async def add_member(
        self,
        context: Context,
        resource_id: UUID,
        user_id: UUID,
        role: Role,
        added_by: UUID | None,
    ) -> Member:
        reject_owner_grant(role)
        async with self._lock:
            if not self._resource_exists(context, resource_id):
                raise NotFoundError(context.value, resource_id)
            if user_id not in self._users:
                raise NotFoundError("user", user_id)
            if (resource_id, user_id) in self._members[context]:
                raise AlreadyMemberError(
                    f"User {user_id} is already a member of {context.value} {resource_id}",
                )
            member = build_member(
                context,
                resource_id=resource_id,
                user_id=user_id,
                role=role,
                added_by=added_by,
            )
            self._insert_member(context, member)
        return _copy(member)

    async def get_member(
        self,
        context: Context,
        resource_id: UUID,
        user_id: UUID,
    ) -> Member | None:
        member = self._members[context].get((resource_id, user_id))
        return _copy(member) if member is not None else None

    async def list_members(self, context: Context, resource_id: UUID) -> list[Member]:
        rows = [m for m in self._members[context].values() if m.resource_id == resource_id]
        rows.sort(key=lambda m: m.added_at)
        return [_copy(m) for m in rows]

    async def list_user_memberships(self, context: Context, user_id: UUID) -> list[Member]:
        rows = [m for m in self._members[context].values() if m.user_id == user_id]
        rows.sort(key=lambda m: m.added_at, reverse=True)
        return [_copy(m) for m in rows]

    async def remove_member(
        self,
        context: Context,
        resource_id: UUID,
        user_id: UUID,
    ) -> Member:
        async with self._lock:
            member = self._members[context].get((resource_id, user_id))
            if member is None:
                raise NotFoundError(f"{context.value} membership", user_id)
            guard_owner_change(member.role)
            del self._members[context][(resource_id, user_id)]
        return _copy(member)

    async def update_member_role(
        self,
        context: Context,
        resource_id: UUID,
        user_id: UUID,
        role: Role,
    ) -> Member:
        async with self._lock:
            member = self._members[context].get((resource_id, user_id))
            if member is None:
                raise NotFoundError(f"{context.value} membership", user_id)
            guard_owner_change(member.role, role)
            member.role = role.value
        return _copy(member)

    # Invitations

    def _pending_for(self, email: str, board_id: UUID) -> list[Invitation]:
        return [
            inv
            for inv in self._invitations.values()
            if inv.email == email
            and inv.board_id == board_id
            and inv.status == INVITATION_PENDING
        ]

    async def create_invitation(self, invitation: Invitation, *, now: datetime) -> Invitation:
        async with self._lock:
            pending = self._pending_for(invitation.email, invitation.board_id)
            if any(not is_expired(inv, now) for inv in pending):
                raise DuplicatePendingInvitationError()
            for stale in pending:
                del self._invitations[stale.id]
                del self._invitation_ids_by_token[stale.token]
            stored = _copy(invitation)
            self._invitations[stored.id] = stored
            self._invitation_ids_by_token[stored.token] = stored.id
        return _copy(stored)

    async def get_invitation_by_token(self, token: str) -> Invitation | None:
        invitation_id = self._invitation_ids_by_token.get(token)
        if invitation_id is None:
            return None
        return _copy(self._invitations[invitation_id])

    async def list_invitations_for_email(self, email: str) -> list[Invitation]:
        normalized = normalize_email(email)
        rows = [inv for inv in self._invitations.values() if inv.email == normalized]
        rows.sort(key=lambda inv: inv.created_at, reverse=True)
        return [_copy(inv) for inv in rows]

    async def accept_invitation(
        self,
        token: str,
        *,
        now: datetime,
        provisional_user: User,
        role: Role,
    ) -> AcceptedInvitation:
        async with self._lock:
            invitation_id = self._invitation_ids_by_token.get(token)
            invitation = self._invitations.get(invitation_id) if invitation_id else None
            if invitation is None or not is_acceptable(invitation, now):
                raise InvalidOrExpiredInvitationError()
            if invitation.board_id not in self._boards or (
                invitation.organization_id is not None
                and invitation.organization_id not in self._organizations
            ):
                raise InvalidOrExpiredInvitationError("Invitation target no longer exists")

            user_id = self._user_ids_by_email.get(invitation.email)
            user_created = user_id is None
            if user_created and provisional_user.id in self._users:
                raise AlreadyMemberError(
                    "Membership changed while accepting the invitation; retry",
                )

            # Nothing below can fail, so the writes apply as one unit.
            if user_id is None:
                user = _copy(provisional_user)
                user.email = invitation.email
                self._users[user.id] = user
                self._user_ids_by_email[user.email] = user.id
            else:
                user = self._users[user_id]

            board_member = self._members[Context.BOARD].get((invitation.board_id, user.id))
            if board_member is None:
                board_member = build_member(
                    Context.BOARD,
                    resource_id=invitation.board_id,
                    user_id=user.id,
                    role=role,
                    added_by=invitation.invited_by,
                )
                self._insert_member(Context.BOARD, board_member)

            organization_member = None
            if invitation.organization_id is not None:
                key = (invitation.organization_id, user.id)
                organization_member = self._members[Context.ORGANIZATION].get(key)
                if organization_member is None:
                    organization_member = build_member(
                        Context.ORGANIZATION,
                        resource_id=invitation.organization_id,
                        user_id=user.id,
                        role=role,
                        added_by=invitation.invited_by,
                    )
                    self._insert_member(Context.ORGANIZATION, organization_member)

            invitation.status = INVITATION_ACCEPTED
            invitation.updated_at = now
            return AcceptedInvitation(
                invitation=_copy(invitation),
                user=_copy(user),
                user_created=user_created,
                board_member=cast("BoardMember", _copy(board_member)),
                organization_member=cast(
                    "OrganizationMember | None",
                    _copy(organization_member) if organization_member is not None else None,
                ),
            )

    async def decline_invitation(self, token: str, *, now: datetime) -> Invitation:
        async with self._lock:
            invitation_id = self._invitation_ids_by_token.get(token)
            invitation = self._invitations.get(invitation_id) if invitation_id else None
            if invitation is None or not is_declinable(invitation):
                raise InvitationNotFoundError()
            invitation.status = INVITATION_DECLINED
            invitation.updated_at = now
            return _copy(invitation)
