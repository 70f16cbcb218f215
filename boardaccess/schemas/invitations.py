"""Schemas for invitation read payloads and acceptance results."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlmodel import SQLModel

RUNTIME_ANNOTATION_TYPES = (datetime, UUID)

UNKNOWN_BOARD_NAME = "Unknown board"
UNKNOWN_USERNAME = "Unknown user"


class InvitationRead(SQLModel):
    """Invitation payload with denormalized board and inviter display names."""

    id: UUID
    email: str
    board_id: UUID
    organization_id: UUID | None = None
    invited_by: UUID
    token: str
    status: str
    expires_at: datetime
    created_at: datetime
    updated_at: datetime
    is_expired: bool = False
    board_name: str = UNKNOWN_BOARD_NAME
    invited_by_username: str = UNKNOWN_USERNAME


class InvitationAcceptResult(SQLModel):
    """Outcome of accepting an invitation."""

    invitation: InvitationRead
    user_id: UUID
    user_created: bool
    board_role: str
    organization_role: str | None = None
