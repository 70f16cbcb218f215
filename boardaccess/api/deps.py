"""Reusable FastAPI dependencies for access checks.

Outer handlers supply a caller-asserted user id (authentication happens
upstream) and compose these dependencies instead of re-implementing
permission checks in the router. Failures surface as `AccessError`s and are
translated by `install_error_handling`.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from uuid import UUID

from fastapi import Depends, FastAPI, Header, Request

from boardaccess.core.config import settings
from boardaccess.core.logging import get_logger
from boardaccess.core.roles import Context
from boardaccess.services.container import AccessServices, bootstrap

logger = get_logger(__name__)

USER_ID_HEADER = "X-User-Id"


@asynccontextmanager
async def access_lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Select the store backend once and expose the services on `app.state`."""
    logger.info("app.lifecycle.starting environment=%s", settings.environment)
    services = await bootstrap(settings)
    app.state.access_services = services
    logger.info("app.lifecycle.started backend=%s", services.store.backend_name)
    try:
        yield
    finally:
        await services.close()
        logger.info("app.lifecycle.stopped")


def get_access_services(request: Request) -> AccessServices:
    services = getattr(request.app.state, "access_services", None)
    if not isinstance(services, AccessServices):
        raise RuntimeError("Access services are not initialized")
    return services


def get_actor_id(x_user_id: UUID = Header(alias=USER_ID_HEADER)) -> UUID:
    """Return the caller-asserted acting user id."""
    return x_user_id


SERVICES_DEP = Depends(get_access_services)
ACTOR_DEP = Depends(get_actor_id)


def require_permission(
    action: str,
    context: Context,
) -> Callable[..., Awaitable[UUID]]:
    """Dependency factory checking *action* on the `resource_id` path parameter.

    Returns the acting user id when the resolver allows the action.
    """

    async def check_permission(
        resource_id: UUID,
        actor_id: UUID = ACTOR_DEP,
        services: AccessServices = SERVICES_DEP,
    ) -> UUID:
        await services.resolver.require_permission(actor_id, action, context, resource_id)
        return actor_id

    return check_permission
