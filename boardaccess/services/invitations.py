"""Invitation engine: issue, look up, accept and decline board invitations."""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from boardaccess.core.config import settings
from boardaccess.core.errors import (
    InsufficientPermissionsError,
    InvalidOrExpiredInvitationError,
    NotFoundError,
)
from boardaccess.core.logging import get_logger
from boardaccess.core.roles import Context, Role
from boardaccess.core.time import utcnow
from boardaccess.models.invitations import Invitation, is_expired
from boardaccess.models.users import User, normalize_email
from boardaccess.schemas.invitations import (
    UNKNOWN_BOARD_NAME,
    UNKNOWN_USERNAME,
    InvitationAcceptResult,
    InvitationRead,
)
from boardaccess.services.role_catalog import INVITE_USERS

if TYPE_CHECKING:
    from collections.abc import Callable
    from uuid import UUID

    from boardaccess.db.store import MembershipStore
    from boardaccess.services.permission_resolver import PermissionResolver

logger = get_logger(__name__)

# Placeholder credential for provisioned users; real credentials are set elsewhere.
PROVISIONAL_PASSWORD_BYTES = 16
FALLBACK_USERNAME = "user"


def username_from_email(email: str) -> str:
    """Derive a temporary username from the email local-part."""
    local_part = normalize_email(email).split("@", 1)[0]
    return local_part or FALLBACK_USERNAME


def generate_token(nbytes: int) -> str:
    """Return an unguessable URL-safe token carrying *nbytes* of entropy."""
    return secrets.token_urlsafe(nbytes)


class InvitationService:
    """Lifecycle of an email invitation to a board.

    `pending → accepted` and `pending → declined` are the only transitions.
    Expiry is derived from `expires_at` at the moment of each operation.
    """

    def __init__(
        self,
        store: MembershipStore,
        resolver: PermissionResolver,
        *,
        ttl: timedelta | None = None,
        token_bytes: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._ttl = ttl or timedelta(days=settings.invitation_ttl_days)
        self._token_bytes = token_bytes or settings.invitation_token_bytes
        self._clock = clock

    async def _to_read(self, invitation: Invitation, now: datetime) -> InvitationRead:
        board = await self._store.get_board(invitation.board_id)
        inviter = await self._store.get_user(invitation.invited_by)
        return InvitationRead(
            **invitation.model_dump(),
            is_expired=is_expired(invitation, now),
            board_name=board.name if board is not None else UNKNOWN_BOARD_NAME,
            invited_by_username=inviter.username if inviter is not None else UNKNOWN_USERNAME,
        )

    async def create(
        self,
        email: str,
        board_id: UUID,
        invited_by: UUID,
        organization_id: UUID | None = None,
    ) -> InvitationRead:
        """Issue a pending invitation; does not grant any membership by itself.

        The organization defaults to the board's organization; an explicit one
        must match it. Raises `DuplicatePendingInvitationError` while an
        unexpired pending invitation for the same email and board exists.
        """
        board = await self._store.get_board(board_id)
        if board is None:
            raise NotFoundError("board", board_id)
        await self._resolver.require_permission(
            invited_by,
            INVITE_USERS,
            Context.BOARD,
            board_id,
        )
        if organization_id is None:
            organization_id = board.organization_id
        elif organization_id != board.organization_id:
            logger.info(
                "invitation.organization_mismatch board_id=%s organization_id=%s invited_by=%s",
                board_id,
                organization_id,
                invited_by,
            )
            raise InsufficientPermissionsError(
                INVITE_USERS,
                "Invitation organization must be the board's organization",
            )

        now = self._clock()
        invitation = Invitation(
            email=normalize_email(email),
            board_id=board_id,
            organization_id=organization_id,
            invited_by=invited_by,
            token=generate_token(self._token_bytes),
            expires_at=now + self._ttl,
            created_at=now,
            updated_at=now,
        )
        stored = await self._store.create_invitation(invitation, now=now)
        logger.info(
            "invitation.created invitation_id=%s board_id=%s organization_id=%s invited_by=%s",
            stored.id,
            board_id,
            organization_id,
            invited_by,
        )
        return await self._to_read(stored, now)

    async def get_by_token(self, token: str) -> InvitationRead | None:
        """Return the invitation with display fields, or None for an unknown token."""
        invitation = await self._store.get_invitation_by_token(token)
        if invitation is None:
            return None
        return await self._to_read(invitation, self._clock())

    async def list_for_email(self, email: str) -> list[InvitationRead]:
        """All invitations addressed to *email*, newest first."""
        now = self._clock()
        invitations = await self._store.list_invitations_for_email(email)
        return [await self._to_read(invitation, now) for invitation in invitations]

    async def accept(self, token: str) -> InvitationAcceptResult:
        """Accept a pending, unexpired invitation.

        Provisions a user for the invitation email when none exists and grants
        `member` on the board (and its organization, if any). The status change
        and all grants are applied as one atomic unit.
        """
        now = self._clock()
        invitation = await self._store.get_invitation_by_token(token)
        if invitation is None:
            raise InvalidOrExpiredInvitationError()
        provisional_user = User(
            username=username_from_email(invitation.email),
            email=invitation.email,
            password=secrets.token_hex(PROVISIONAL_PASSWORD_BYTES),
        )
        accepted = await self._store.accept_invitation(
            token,
            now=now,
            provisional_user=provisional_user,
            role=Role.MEMBER,
        )
        if accepted.user_created:
            logger.info(
                "invitation.user.provisioned user_id=%s invitation_id=%s",
                accepted.user.id,
                accepted.invitation.id,
            )
        logger.info(
            "invitation.accepted invitation_id=%s user_id=%s board_id=%s board_role=%s",
            accepted.invitation.id,
            accepted.user.id,
            accepted.invitation.board_id,
            accepted.board_member.role,
        )
        organization_member = accepted.organization_member
        return InvitationAcceptResult(
            invitation=await self._to_read(accepted.invitation, now),
            user_id=accepted.user.id,
            user_created=accepted.user_created,
            board_role=accepted.board_member.role,
            organization_role=organization_member.role if organization_member else None,
        )

    async def decline(self, token: str) -> InvitationRead:
        """Decline a pending invitation; expiry is not checked."""
        now = self._clock()
        invitation = await self._store.decline_invitation(token, now=now)
        logger.info(
            "invitation.declined invitation_id=%s board_id=%s",
            invitation.id,
            invitation.board_id,
        )
        return await self._to_read(invitation, now)
