"""Startup wiring: select the store backend once and build the access services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from boardaccess.core.config import Settings, settings
from boardaccess.core.logging import get_logger
from boardaccess.core.time import utcnow
from boardaccess.db.session import open_store
from boardaccess.services.invitations import InvitationService
from boardaccess.services.memberships import (
    BoardMembershipManager,
    OrganizationMembershipManager,
)
from boardaccess.services.permission_resolver import PermissionResolver
from boardaccess.services.workspaces import WorkspaceService

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from boardaccess.db.store import MembershipStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class AccessServices:
    """Components sharing one membership store instance."""

    store: MembershipStore
    resolver: PermissionResolver
    invitations: InvitationService
    organization_members: OrganizationMembershipManager
    board_members: BoardMembershipManager
    workspaces: WorkspaceService

    async def close(self) -> None:
        await self.store.close()


def build_services(
    store: MembershipStore,
    config: Settings | None = None,
    *,
    clock: Callable[[], datetime] = utcnow,
) -> AccessServices:
    """Wire every service around an already-selected *store*."""
    config = config or settings
    resolver = PermissionResolver(store)
    return AccessServices(
        store=store,
        resolver=resolver,
        invitations=InvitationService(
            store,
            resolver,
            ttl=timedelta(days=config.invitation_ttl_days),
            token_bytes=config.invitation_token_bytes,
            clock=clock,
        ),
        organization_members=OrganizationMembershipManager(store, resolver),
        board_members=BoardMembershipManager(store, resolver),
        workspaces=WorkspaceService(store, resolver),
    )


async def bootstrap(config: Settings | None = None) -> AccessServices:
    """Open the configured backend and return the wired services."""
    config = config or settings
    store = await open_store(config)
    logger.info(
        "access.bootstrap.ready environment=%s backend=%s",
        config.environment,
        store.backend_name,
    )
    return build_services(store, config)
