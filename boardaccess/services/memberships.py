"""Organization and board membership managers.

Direct add/remove/re-role of members outside the invitation flow. Every
authorization decision goes through the `PermissionResolver`; the owner
invariants are enforced by the store.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

from boardaccess.core.errors import InvalidRoleError, NotFoundError
from boardaccess.core.logging import get_logger
from boardaccess.core.roles import Context, Role, normalize_role
from boardaccess.schemas.memberships import MemberRead, MembershipListItem
from boardaccess.services.role_catalog import (
    MANAGE_BOARD_MEMBERS,
    MANAGE_ORG_MEMBERS,
    VIEW_BOARD,
    VIEW_ORGANIZATION,
)

if TYPE_CHECKING:
    from uuid import UUID

    from boardaccess.db.store import Member, MembershipStore
    from boardaccess.models.boards import Board
    from boardaccess.models.organizations import Organization
    from boardaccess.services.permission_resolver import PermissionResolver

logger = get_logger(__name__)


def parse_role(role: Role | str) -> Role:
    """Normalize a requested role; blank means `member`.

    Raises `InvalidRoleError` for unknown names.
    """
    if isinstance(role, str) and not role.strip():
        return Role.MEMBER
    try:
        return normalize_role(role)
    except ValueError as exc:
        raise InvalidRoleError(f"Unknown role: {role}") from exc


class MembershipManager:
    """Shared add/remove/re-role/list logic for one membership context."""

    context: ClassVar[Context]
    manage_action: ClassVar[str]
    view_action: ClassVar[str]

    def __init__(self, store: MembershipStore, resolver: PermissionResolver) -> None:
        self._store = store
        self._resolver = resolver

    async def _get_resource(self, resource_id: UUID) -> Organization | Board | None:
        if self.context == Context.BOARD:
            return await self._store.get_board(resource_id)
        return await self._store.get_organization(resource_id)

    async def _require_resource(self, resource_id: UUID) -> Organization | Board:
        resource = await self._get_resource(resource_id)
        if resource is None:
            raise NotFoundError(self.context.value, resource_id)
        return resource

    async def _authorize(self, acting_user_id: UUID, action: str, resource_id: UUID) -> None:
        await self._require_resource(resource_id)
        await self._resolver.require_permission(
            acting_user_id,
            action,
            self.context,
            resource_id,
        )

    async def _to_read(self, member: Member) -> MemberRead:
        user = await self._store.get_user(member.user_id)
        adder = await self._store.get_user(member.added_by) if member.added_by else None
        return MemberRead(
            id=member.id,
            context=self.context,
            resource_id=member.resource_id,
            user_id=member.user_id,
            role=member.role,
            added_at=member.added_at,
            added_by=member.added_by,
            username=user.username if user is not None else None,
            email=user.email if user is not None else None,
            added_by_username=adder.username if adder is not None else None,
        )

    async def add_member(
        self,
        acting_user_id: UUID,
        resource_id: UUID,
        user_id: UUID,
        role: Role | str = Role.MEMBER,
    ) -> MemberRead:
        """Add a known user; `AlreadyMemberError` if the pair already exists."""
        parsed = parse_role(role)
        await self._authorize(acting_user_id, self.manage_action, resource_id)
        member = await self._store.add_member(
            self.context,
            resource_id,
            user_id,
            parsed,
            acting_user_id,
        )
        logger.info(
            "membership.added context=%s resource_id=%s user_id=%s role=%s added_by=%s",
            self.context.value,
            resource_id,
            user_id,
            member.role,
            acting_user_id,
        )
        return await self._to_read(member)

    async def remove_member(
        self,
        acting_user_id: UUID,
        resource_id: UUID,
        user_id: UUID,
    ) -> MemberRead:
        """Remove a member; the owner is protected."""
        await self._authorize(acting_user_id, self.manage_action, resource_id)
        member = await self._store.remove_member(self.context, resource_id, user_id)
        logger.info(
            "membership.removed context=%s resource_id=%s user_id=%s removed_by=%s",
            self.context.value,
            resource_id,
            user_id,
            acting_user_id,
        )
        return await self._to_read(member)

    async def update_member_role(
        self,
        acting_user_id: UUID,
        resource_id: UUID,
        user_id: UUID,
        role: Role | str,
    ) -> MemberRead:
        """Change a member's role; the owner can be neither re-roled nor created."""
        parsed = parse_role(role)
        await self._authorize(acting_user_id, self.manage_action, resource_id)
        member = await self._store.update_member_role(self.context, resource_id, user_id, parsed)
        logger.info(
            "membership.role_updated context=%s resource_id=%s user_id=%s role=%s updated_by=%s",
            self.context.value,
            resource_id,
            user_id,
            member.role,
            acting_user_id,
        )
        return await self._to_read(member)

    async def leave(self, user_id: UUID, resource_id: UUID) -> MemberRead:
        """Remove the caller's own membership. The owner cannot leave."""
        await self._require_resource(resource_id)
        member = await self._store.remove_member(self.context, resource_id, user_id)
        logger.info(
            "membership.left context=%s resource_id=%s user_id=%s",
            self.context.value,
            resource_id,
            user_id,
        )
        return await self._to_read(member)

    async def list_members(self, acting_user_id: UUID, resource_id: UUID) -> list[MemberRead]:
        """Members of the resource, oldest first; requires the view action."""
        await self._authorize(acting_user_id, self.view_action, resource_id)
        members = await self._store.list_members(self.context, resource_id)
        return [await self._to_read(member) for member in members]

    async def list_user_resources(self, user_id: UUID) -> list[MembershipListItem]:
        """Resources *user_id* belongs to directly, newest membership first."""
        items: list[MembershipListItem] = []
        for member in await self._store.list_user_memberships(self.context, user_id):
            resource = await self._get_resource(member.resource_id)
            if resource is None:
                continue
            items.append(
                MembershipListItem(
                    context=self.context,
                    resource_id=member.resource_id,
                    name=resource.name,
                    role=member.role,
                    member_since=member.added_at,
                ),
            )
        return items


class OrganizationMembershipManager(MembershipManager):
    """Organization members, managed by organization owners and admins."""

    context = Context.ORGANIZATION
    manage_action = MANAGE_ORG_MEMBERS
    view_action = VIEW_ORGANIZATION


class BoardMembershipManager(MembershipManager):
    """Board members; organization roles count through the resolver."""

    context = Context.BOARD
    manage_action = MANAGE_BOARD_MEMBERS
    view_action = VIEW_BOARD
