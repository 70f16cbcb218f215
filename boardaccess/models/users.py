"""User model storing identity fields referenced by memberships and invitations."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from boardaccess.core.time import utcnow
from boardaccess.models.columns import UTCDateTime

RUNTIME_ANNOTATION_TYPES = (datetime,)


class User(SQLModel, table=True):
    """Application user; the password credential is opaque to this package."""

    __tablename__ = "users"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    username: str = Field(index=True)
    email: str = Field(unique=True, index=True)
    password: str
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


def normalize_email(email: str) -> str:
    """Normalize an email address for storage/comparison."""
    return email.strip().lower()
