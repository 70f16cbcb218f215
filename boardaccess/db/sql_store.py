"""Durable membership store backed by SQLModel over an async SQLAlchemy engine.

Uniqueness is enforced by table constraints (membership pairs, single owner,
single pending invitation per email and board); conflicting writes surface as
`IntegrityError` and are rolled back into the matching domain error.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, cast

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import col, select

from boardaccess.core.errors import (
    AlreadyMemberError,
    DuplicatePendingInvitationError,
    EmailTakenError,
    InvalidOrExpiredInvitationError,
    InvitationNotFoundError,
    NotFoundError,
)
from boardaccess.core.logging import get_logger
from boardaccess.core.roles import Context, Role
from boardaccess.db.store import (
    MEMBER_MODELS,
    RESOURCE_MODELS,
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
    transition_sources,
)
from boardaccess.models.organizations import Organization
from boardaccess.models.users import User, normalize_email

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker
    from sqlmodel.ext.asyncio.session import AsyncSession

    from boardaccess.models.board_members import BoardMember
    from boardaccess.models.organization_members import OrganizationMember

logger = get_logger(__name__)


async def _require(session: AsyncSession, model: type, key: UUID, kind: str) -> None:
    if await session.get(model, key) is None:
        raise NotFoundError(kind, key)


async def _fetch_member(
    session: AsyncSession,
    context: Context,
    resource_id: UUID,
    user_id: UUID,
) -> Member | None:
    model = MEMBER_MODELS[context]
    statement = select(model).where(
        col(getattr(model, model.RESOURCE_FIELD)) == resource_id,
        col(model.user_id) == user_id,
    )
    return (await session.exec(statement)).first()


async def _apply_acceptance(
    session: AsyncSession,
    invitation: Invitation,
    *,
    provisional_user: User,
    role: Role,
) -> tuple[User, bool, Member, Member | None]:
    """Stage the user and memberships granted by an accepted invitation."""
    user = (await session.exec(select(User).where(col(User.email) == invitation.email))).first()
    user_created = user is None
    if user is None:
        user = provisional_user
        user.email = invitation.email
        session.add(user)
        await session.flush()

    board_member = await _fetch_member(session, Context.BOARD, invitation.board_id, user.id)
    if board_member is None:
        board_member = build_member(
            Context.BOARD,
            resource_id=invitation.board_id,
            user_id=user.id,
            role=role,
            added_by=invitation.invited_by,
        )
        session.add(board_member)

    organization_member = None
    if invitation.organization_id is not None:
        organization_member = await _fetch_member(
            session,
            Context.ORGANIZATION,
            invitation.organization_id,
            user.id,
        )
        if organization_member is None:
            organization_member = build_member(
                Context.ORGANIZATION,
                resource_id=invitation.organization_id,
                user_id=user.id,
                role=role,
                added_by=invitation.invited_by,
            )
            session.add(organization_member)
    return user, user_created, board_member, organization_member


class SqlMembershipStore(MembershipStore):
    """Relational backend; each operation runs in its own session/transaction."""

    backend_name = "database"

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        *,
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_maker = session_maker
        self._engine = engine

    # Users

    async def create_user(self, *, username: str, email: str, password: str) -> User:
        user = User(username=username, email=normalize_email(email), password=password)
        async with self._session_maker() as session:
            session.add(user)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise EmailTakenError() from exc
        return user

    async def get_user(self, user_id: UUID) -> User | None:
        async with self._session_maker() as session:
            return await session.get(User, user_id)

    async def get_user_by_email(self, email: str) -> User | None:
        async with self._session_maker() as session:
            statement = select(User).where(col(User.email) == normalize_email(email))
            return (await session.exec(statement)).first()

    # Organizations and boards

    async def create_organization(
        self,
        *,
        name: str,
        description: str,
        owner_id: UUID,
    ) -> Organization:
        organization = Organization(name=name, description=description, owner_id=owner_id)
        async with self._session_maker() as session:
            await _require(session, User, owner_id, "user")
            session.add(organization)
            await session.flush()
            session.add(
                build_member(
                    Context.ORGANIZATION,
                    resource_id=organization.id,
                    user_id=owner_id,
                    role=Role.OWNER,
                    added_by=owner_id,
                ),
            )
            await session.commit()
        return organization

    async def get_organization(self, organization_id: UUID) -> Organization | None:
        async with self._session_maker() as session:
            return await session.get(Organization, organization_id)

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
        async with self._session_maker() as session:
            await _require(session, User, owner_id, "user")
            if organization_id is not None:
                await _require(session, Organization, organization_id, "organization")
            session.add(board)
            await session.flush()
            session.add(
                build_member(
                    Context.BOARD,
                    resource_id=board.id,
                    user_id=owner_id,
                    role=Role.OWNER,
                    added_by=owner_id,
                ),
            )
            await session.commit()
        return board

    async def get_board(self, board_id: UUID) -> Board | None:
        async with self._session_maker() as session:
            return await session.get(Board, board_id)

    async def list_organization_boards(self, organization_id: UUID) -> list[Board]:
        statement = (
            select(Board)
            .where(col(Board.organization_id) == organization_id)
            .order_by(col(Board.created_at))
        )
        async with self._session_maker() as session:
            return list(await session.exec(statement))

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
        member = build_member(
            context,
            resource_id=resource_id,
            user_id=user_id,
            role=role,
            added_by=added_by,
        )
        async with self._session_maker() as session:
            await _require(session, RESOURCE_MODELS[context], resource_id, context.value)
            await _require(session, User, user_id, "user")
            session.add(member)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise AlreadyMemberError(
                    f"User {user_id} is already a member of {context.value} {resource_id}",
                ) from exc
        return member

    async def get_member(
        self,
        context: Context,
        resource_id: UUID,
        user_id: UUID,
    ) -> Member | None:
        async with self._session_maker() as session:
            return await _fetch_member(session, context, resource_id, user_id)

    async def list_members(self, context: Context, resource_id: UUID) -> list[Member]:
        model = MEMBER_MODELS[context]
        statement = (
            select(model)
            .where(col(getattr(model, model.RESOURCE_FIELD)) == resource_id)
            .order_by(col(model.added_at).asc())
        )
        async with self._session_maker() as session:
            return list(await session.exec(statement))

    async def list_user_memberships(self, context: Context, user_id: UUID) -> list[Member]:
        model = MEMBER_MODELS[context]
        statement = (
            select(model)
            .where(col(model.user_id) == user_id)
            .order_by(col(model.added_at).desc())
        )
        async with self._session_maker() as session:
            return list(await session.exec(statement))

    async def remove_member(
        self,
        context: Context,
        resource_id: UUID,
        user_id: UUID,
    ) -> Member:
        async with self._session_maker() as session:
            member = await _fetch_member(session, context, resource_id, user_id)
            if member is None:
                raise NotFoundError(f"{context.value} membership", user_id)
            guard_owner_change(member.role)
            await session.delete(member)
            await session.commit()
        return member

    async def update_member_role(
        self,
        context: Context,
        resource_id: UUID,
        user_id: UUID,
        role: Role,
    ) -> Member:
        async with self._session_maker() as session:
            member = await _fetch_member(session, context, resource_id, user_id)
            if member is None:
                raise NotFoundError(f"{context.value} membership", user_id)
            guard_owner_change(member.role, role)
            member.role = role.value
            session.add(member)
            await session.commit()
        return member

    # Invitations

    async def create_invitation(self, invitation: Invitation, *, now: datetime) -> Invitation:
        # Write first so concurrent creates for the same pair serialize on the
        # partial unique index instead of racing a read-then-insert.
        stale = delete(Invitation).where(
            col(Invitation.email) == invitation.email,
            col(Invitation.board_id) == invitation.board_id,
            col(Invitation.status) == INVITATION_PENDING,
            col(Invitation.expires_at) <= now,
        )
        async with self._session_maker() as session:
            await session.exec(stale)
            session.add(invitation)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise DuplicatePendingInvitationError() from exc
        return invitation

    async def get_invitation_by_token(self, token: str) -> Invitation | None:
        async with self._session_maker() as session:
            statement = select(Invitation).where(col(Invitation.token) == token)
            return (await session.exec(statement)).first()

    async def list_invitations_for_email(self, email: str) -> list[Invitation]:
        statement = (
            select(Invitation)
            .where(col(Invitation.email) == normalize_email(email))
            .order_by(col(Invitation.created_at).desc())
        )
        async with self._session_maker() as session:
            return list(await session.exec(statement))

    async def accept_invitation(
        self,
        token: str,
        *,
        now: datetime,
        provisional_user: User,
        role: Role,
    ) -> AcceptedInvitation:
        claim = (
            update(Invitation)
            .where(
                col(Invitation.token) == token,
                col(Invitation.status).in_(sorted(transition_sources(INVITATION_ACCEPTED))),
                col(Invitation.expires_at) > now,
            )
            .values(status=INVITATION_ACCEPTED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        async with self._session_maker() as session:
            claimed = await session.exec(claim)
            if claimed.rowcount != 1:
                await session.rollback()
                raise InvalidOrExpiredInvitationError()
            invitation = (
                await session.exec(select(Invitation).where(col(Invitation.token) == token))
            ).one()
            if await session.get(Board, invitation.board_id) is None or (
                invitation.organization_id is not None
                and await session.get(Organization, invitation.organization_id) is None
            ):
                await session.rollback()
                raise InvalidOrExpiredInvitationError("Invitation target no longer exists")

            invitation_id = invitation.id
            try:
                user, user_created, board_member, organization_member = await _apply_acceptance(
                    session,
                    invitation,
                    provisional_user=provisional_user,
                    role=role,
                )
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                logger.warning("invitation.accept.conflict invitation_id=%s", invitation_id)
                raise AlreadyMemberError(
                    "Membership changed while accepting the invitation; retry",
                ) from exc
        return AcceptedInvitation(
            invitation=invitation,
            user=user,
            user_created=user_created,
            board_member=cast("BoardMember", board_member),
            organization_member=cast("OrganizationMember | None", organization_member),
        )

    async def decline_invitation(self, token: str, *, now: datetime) -> Invitation:
        claim = (
            update(Invitation)
            .where(
                col(Invitation.token) == token,
                col(Invitation.status).in_(sorted(transition_sources(INVITATION_DECLINED))),
            )
            .values(status=INVITATION_DECLINED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        async with self._session_maker() as session:
            claimed = await session.exec(claim)
            if claimed.rowcount != 1:
                await session.rollback()
                raise InvitationNotFoundError()
            invitation = (
                await session.exec(select(Invitation).where(col(Invitation.token) == token))
            ).one()
            await session.commit()
        return invitation

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()

