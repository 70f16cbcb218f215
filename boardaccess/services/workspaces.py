"""Organization and board creation with the implicit owner membership."""

from __future__ import annotations

from typing import TYPE_CHECKING

from boardaccess.core.errors import NotFoundError
from boardaccess.core.logging import get_logger
from boardaccess.core.roles import Context
from boardaccess.services.role_catalog import CREATE_ORG_BOARD

if TYPE_CHECKING:
    from uuid import UUID

    from boardaccess.db.store import MembershipStore
    from boardaccess.models.boards import Board
    from boardaccess.models.organizations import Organization
    from boardaccess.services.permission_resolver import PermissionResolver

logger = get_logger(__name__)


class WorkspaceService:
    def __init__(self, store: MembershipStore, resolver: PermissionResolver) -> None:
        self._store = store
        self._resolver = resolver

    async def create_organization(
        self,
        owner_id: UUID,
        name: str,
        description: str = "",
    ) -> Organization:
        organization = await self._store.create_organization(
            name=name.strip(),
            description=description,
            owner_id=owner_id,
        )
        logger.info(
            "organization.created organization_id=%s owner_id=%s",
            organization.id,
            owner_id,
        )
        return organization

    async def create_board(
        self,
        owner_id: UUID,
        name: str,
        description: str = "",
        organization_id: UUID | None = None,
    ) -> Board:
        """Create a personal board, or an organization board when permitted."""
        if organization_id is not None:
            if await self._store.get_organization(organization_id) is None:
                raise NotFoundError("organization", organization_id)
            await self._resolver.require_permission(
                owner_id,
                CREATE_ORG_BOARD,
                Context.ORGANIZATION,
                organization_id,
            )
        board = await self._store.create_board(
            name=name.strip(),
            description=description,
            owner_id=owner_id,
            organization_id=organization_id,
        )
        logger.info(
            "board.created board_id=%s owner_id=%s organization_id=%s",
            board.id,
            owner_id,
            organization_id,
        )
        return board
