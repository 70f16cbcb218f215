"""Schemas for membership listing payloads."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlmodel import SQLModel

from boardaccess.core.roles import Context

RUNTIME_ANNOTATION_TYPES = (datetime, UUID)


class MemberRead(SQLModel):
    """Member row with embedded user fields for display."""

    id: UUID
    context: Context
    resource_id: UUID
    user_id: UUID
    role: str
    added_at: datetime
    added_by: UUID | None = None
    username: str | None = None
    email: str | None = None
    added_by_username: str | None = None


class MembershipListItem(SQLModel):
    """A resource the user belongs to directly, with their role."""

    context: Context
    resource_id: UUID
    name: str
    role: str
    member_since: datetime


class UserPermissionRead(SQLModel):
    """One action a user holds on one resource, and the role that grants it."""

    permission: str
    description: str
    context: Context
    resource_id: UUID
    role: str
    inherited: bool = False
