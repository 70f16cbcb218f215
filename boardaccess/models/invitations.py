"""Board invitation model and its lifecycle rules."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Index, text
from sqlmodel import Field, SQLModel

from boardaccess.core.time import as_utc, utcnow
from boardaccess.models.columns import UTCDateTime

RUNTIME_ANNOTATION_TYPES = (datetime,)

INVITATION_PENDING = "pending"
INVITATION_ACCEPTED = "accepted"
INVITATION_DECLINED = "declined"
# Accepted and declined are terminal; expiry is derived from `expires_at`.
INVITATION_STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    INVITATION_PENDING: frozenset({INVITATION_ACCEPTED, INVITATION_DECLINED}),
    INVITATION_ACCEPTED: frozenset(),
    INVITATION_DECLINED: frozenset(),
}

_PENDING_ONLY = text(f"status = '{INVITATION_PENDING}'")


class Invitation(SQLModel, table=True):
    """Email invitation to a board, optionally scoped to an organization."""

    __tablename__ = "invitations"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (
        Index(
            "uq_invitations_pending_email_board",
            "email",
            "board_id",
            unique=True,
            postgresql_where=_PENDING_ONLY,
            sqlite_where=_PENDING_ONLY,
        ),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    email: str = Field(index=True)
    board_id: UUID = Field(foreign_key="boards.id", index=True)
    organization_id: UUID | None = Field(
        default=None,
        foreign_key="organizations.id",
        index=True,
    )
    invited_by: UUID = Field(foreign_key="users.id", index=True)
    token: str = Field(unique=True, index=True)
    status: str = Field(default=INVITATION_PENDING, index=True)
    expires_at: datetime = Field(sa_type=UTCDateTime)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


def can_transition(current: str, target: str) -> bool:
    """Return whether *current* → *target* is an allowed status change."""
    return target in INVITATION_STATUS_TRANSITIONS.get(current, frozenset())


def transition_sources(target: str) -> frozenset[str]:
    """Statuses from which *target* can be reached."""
    return frozenset(
        status for status, targets in INVITATION_STATUS_TRANSITIONS.items() if target in targets
    )


def is_expired(invitation: Invitation, now: datetime) -> bool:
    """Expiry is derived state: past `expires_at`, whatever the stored status."""
    return as_utc(now) >= as_utc(invitation.expires_at)


def is_acceptable(invitation: Invitation, now: datetime) -> bool:
    """Can move to accepted and is not yet expired."""
    return can_transition(invitation.status, INVITATION_ACCEPTED) and not is_expired(
        invitation, now
    )


def is_declinable(invitation: Invitation) -> bool:
    """Can move to declined; expiry is deliberately not checked for decline."""
    return can_transition(invitation.status, INVITATION_DECLINED)
