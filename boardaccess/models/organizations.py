"""Organization model grouping boards and members under one owner."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from boardaccess.core.time import utcnow
from boardaccess.models.columns import UTCDateTime

RUNTIME_ANNOTATION_TYPES = (datetime,)


class Organization(SQLModel, table=True):
    """Top-level tenant; `owner_id` always has an owner membership row."""

    __tablename__ = "organizations"  # pyright: ignore[reportAssignmentType]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str
    description: str = Field(default="")
    owner_id: UUID = Field(foreign_key="users.id", index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
