"""Board model; personal when `organization_id` is null."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from boardaccess.core.time import utcnow
from boardaccess.models.columns import UTCDateTime

RUNTIME_ANNOTATION_TYPES = (datetime,)


class Board(SQLModel, table=True):
    """Kanban board, optionally owned by an organization."""

    __tablename__ = "boards"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str
    description: str = Field(default="")
    owner_id: UUID = Field(foreign_key="users.id", index=True)
    organization_id: UUID | None = Field(
        default=None,
        foreign_key="organizations.id",
        index=True,
    )
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
