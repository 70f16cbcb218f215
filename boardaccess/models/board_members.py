"""Board membership model with role and single-owner constraint."""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import Index, UniqueConstraint, text
from sqlmodel import Field, SQLModel

from boardaccess.core.roles import Role
from boardaccess.core.time import utcnow
from boardaccess.models.columns import UTCDateTime

RUNTIME_ANNOTATION_TYPES = (datetime,)

_OWNER_ONLY = text(f"role = '{Role.OWNER.value}'")


class BoardMember(SQLModel, table=True):
    """Direct board membership; shadows any organization-inherited role."""

    __tablename__ = "board_members"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (
        UniqueConstraint("board_id", "user_id", name="uq_board_members_board_user"),
        Index(
            "uq_board_members_single_owner",
            "board_id",
            unique=True,
            postgresql_where=_OWNER_ONLY,
            sqlite_where=_OWNER_ONLY,
        ),
    )

    RESOURCE_FIELD: ClassVar[str] = "board_id"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    board_id: UUID = Field(foreign_key="boards.id", index=True)
    user_id: UUID = Field(foreign_key="users.id", index=True)
    role: str = Field(default=Role.MEMBER.value, index=True)
    added_by: UUID | None = Field(default=None, foreign_key="users.id")
    added_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)

    @property
    def resource_id(self) -> UUID:
        return self.board_id
