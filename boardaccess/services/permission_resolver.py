"""Permission resolver for board and organization RBAC with org inheritance."""

from __future__ import annotations

from typing import TYPE_CHECKING

from boardaccess.core.errors import InsufficientPermissionsError
from boardaccess.core.logging import get_logger
from boardaccess.core.roles import Context, normalize_context
from boardaccess.schemas.memberships import UserPermissionRead
from boardaccess.services.role_catalog import ACTION_DESCRIPTIONS, permissions_for

if TYPE_CHECKING:
    from uuid import UUID

    from boardaccess.db.store import MembershipStore

logger = get_logger(__name__)


class PermissionResolver:
    """Decide whether a user may perform an action on a board or organization.

    Algorithm (board context):
    1. Direct board membership role, if any.
    2. Otherwise the user's role on the board's organization, reused verbatim.
    3. Otherwise no role: deny.

    The first match wins. A direct board role is never upgraded by a more
    privileged organization role. The organization context uses step 1 only.
    """

    def __init__(self, store: MembershipStore) -> None:
        self._store = store

    async def effective_role(
        self,
        user_id: UUID,
        context: Context | str,
        resource_id: UUID,
    ) -> str | None:
        """Return the role that governs *user_id* on the resource, or None."""
        ctx = normalize_context(context)
        direct = await self._store.get_role(user_id, ctx, resource_id)
        if direct is not None or ctx == Context.ORGANIZATION:
            return direct

        board = await self._store.get_board(resource_id)
        if board is None or board.organization_id is None:
            return None
        return await self._store.get_role(user_id, Context.ORGANIZATION, board.organization_id)

    async def effective_permissions(
        self,
        user_id: UUID,
        context: Context | str,
        resource_id: UUID,
    ) -> frozenset[str]:
        """Compute the full set of actions the effective role grants."""
        try:
            role = await self.effective_role(user_id, context, resource_id)
            if role is None:
                return frozenset()
            return permissions_for(role, context)
        except ValueError:
            logger.error(
                "permission.resolve.invalid user_id=%s context=%s resource_id=%s",
                user_id,
                context,
                resource_id,
            )
            return frozenset()

    async def has_permission(
        self,
        user_id: UUID,
        action: str,
        context: Context | str,
        resource_id: UUID,
    ) -> bool:
        """Return whether *user_id* may perform *action* on the resource.

        No membership is a plain ``False``. An unknown role or context is
        logged as a defect and also denied.
        """
        return action in await self.effective_permissions(user_id, context, resource_id)

    async def require_permission(
        self,
        user_id: UUID,
        action: str,
        context: Context | str,
        resource_id: UUID,
    ) -> None:
        """Raise `InsufficientPermissionsError` unless the action is allowed."""
        if not await self.has_permission(user_id, action, context, resource_id):
            logger.info(
                "permission.denied user_id=%s action=%s context=%s resource_id=%s",
                user_id,
                action,
                context,
                resource_id,
            )
            raise InsufficientPermissionsError(action)

    async def user_permissions(self, user_id: UUID) -> list[UserPermissionRead]:
        """List every action *user_id* holds, across boards and organizations.

        Applies the same first-match rule as `effective_role`: an organization
        role covers the organization and each of its boards the user has no
        direct role on. Rows are ordered by context, permission, resource id.
        """
        grants: list[tuple[Context, UUID, str, bool]] = []
        direct_boards: set[UUID] = set()
        for member in await self._store.list_user_memberships(Context.BOARD, user_id):
            direct_boards.add(member.resource_id)
            grants.append((Context.BOARD, member.resource_id, member.role, False))
        for member in await self._store.list_user_memberships(Context.ORGANIZATION, user_id):
            grants.append((Context.ORGANIZATION, member.resource_id, member.role, False))
            for board in await self._store.list_organization_boards(member.resource_id):
                if board.id not in direct_boards:
                    grants.append((Context.BOARD, board.id, member.role, True))

        rows: list[UserPermissionRead] = []
        for context, resource_id, role, inherited in grants:
            try:
                actions = permissions_for(role, context)
            except ValueError:
                logger.error(
                    "permission.resolve.invalid user_id=%s context=%s resource_id=%s",
                    user_id,
                    context.value,
                    resource_id,
                )
                continue
            rows.extend(
                UserPermissionRead(
                    permission=action,
                    description=ACTION_DESCRIPTIONS[action],
                    context=context,
                    resource_id=resource_id,
                    role=role,
                    inherited=inherited,
                )
                for action in actions
            )
        rows.sort(key=lambda row: (row.context.value, row.permission, str(row.resource_id)))
        return rows
