# ruff: noqa

from __future__ import annotations

from uuid import uuid4

import pytest

from boardaccess.core.errors import (
    AlreadyMemberError,
    InsufficientPermissionsError,
    InvalidRoleError,
    NotFoundError,
    OwnerProtectedError,
)
from boardaccess.core.roles import Context, Role
from boardaccess.services.container import AccessServices
from boardaccess.services.memberships import parse_role


async def _people(services: AccessServices, *names: str):
    return [
        await services.store.create_user(username=name, email=f"{name}@example.com", password="pw")
        for name in names
    ]


def test_parse_role() -> None:
    assert parse_role("ADMIN") is Role.ADMIN
    assert parse_role("") is Role.MEMBER
    with pytest.raises(InvalidRoleError):
        parse_role("superuser")


@pytest.mark.asyncio
async def test_owner_adds_and_lists_board_members(services: AccessServices) -> None:
    owner, bob = await _people(services, "owner", "bob")
    board = await services.workspaces.create_board(owner.id, "Board")

    added = await services.board_members.add_member(owner.id, board.id, bob.id, "viewer")
    assert added.role == "viewer"
    assert added.username == "bob"
    assert added.added_by_username == "owner"
    assert added.context == Context.BOARD

    with pytest.raises(AlreadyMemberError):
        await services.board_members.add_member(owner.id, board.id, bob.id, "admin")

    listed = await services.board_members.list_members(bob.id, board.id)
    assert {(m.email, m.role) for m in listed} == {
        ("owner@example.com", "owner"),
        ("bob@example.com", "viewer"),
    }


@pytest.mark.asyncio
async def test_management_requires_manage_permission(services: AccessServices) -> None:
    owner, bob, carol = await _people(services, "owner", "bob", "carol")
    board = await services.workspaces.create_board(owner.id, "Board")
    await services.board_members.add_member(owner.id, board.id, bob.id, Role.MEMBER)
    await services.board_members.add_member(owner.id, board.id, carol.id, Role.VIEWER)

    with pytest.raises(InsufficientPermissionsError):
        await services.board_members.add_member(bob.id, board.id, uuid4(), Role.VIEWER)
    with pytest.raises(InsufficientPermissionsError):
        await services.board_members.remove_member(bob.id, board.id, carol.id)
    with pytest.raises(InsufficientPermissionsError):
        await services.board_members.update_member_role(bob.id, board.id, carol.id, "admin")

    await services.board_members.update_member_role(owner.id, board.id, bob.id, "admin")
    removed = await services.board_members.remove_member(bob.id, board.id, carol.id)
    assert removed.user_id == carol.id
    assert await services.store.get_role(carol.id, Context.BOARD, board.id) is None


@pytest.mark.asyncio
async def test_owner_is_protected(services: AccessServices) -> None:
    owner, admin = await _people(services, "owner", "admin")
    org = await services.workspaces.create_organization(owner.id, "Acme")
    await services.organization_members.add_member(owner.id, org.id, admin.id, "admin")

    with pytest.raises(OwnerProtectedError):
        await services.organization_members.remove_member(admin.id, org.id, owner.id)
    with pytest.raises(OwnerProtectedError):
        await services.organization_members.update_member_role(admin.id, org.id, owner.id, "member")
    with pytest.raises(OwnerProtectedError):
        await services.organization_members.update_member_role(owner.id, org.id, admin.id, "owner")
    with pytest.raises(OwnerProtectedError):
        await services.organization_members.leave(owner.id, org.id)
    with pytest.raises(OwnerProtectedError):
        await services.organization_members.add_member(owner.id, org.id, uuid4(), "owner")

    members = await services.store.list_members(Context.ORGANIZATION, org.id)
    assert [m.user_id for m in members if m.role == "owner"] == [owner.id]


@pytest.mark.asyncio
async def test_invalid_role_is_rejected_before_any_write(services: AccessServices) -> None:
    owner, bob = await _people(services, "owner", "bob")
    board = await services.workspaces.create_board(owner.id, "Board")

    with pytest.raises(InvalidRoleError):
        await services.board_members.add_member(owner.id, board.id, bob.id, "superuser")
    assert await services.store.get_role(bob.id, Context.BOARD, board.id) is None


@pytest.mark.asyncio
async def test_org_admin_manages_board_members_through_inheritance(
    services: AccessServices,
) -> None:
    owner, admin, bob = await _people(services, "owner", "admin", "bob")
    org = await services.workspaces.create_organization(owner.id, "Acme")
    board = await services.workspaces.create_board(owner.id, "Ops", organization_id=org.id)
    await services.organization_members.add_member(owner.id, org.id, admin.id, Role.ADMIN)

    added = await services.board_members.add_member(admin.id, board.id, bob.id, Role.MEMBER)
    assert added.added_by == admin.id


@pytest.mark.asyncio
async def test_leave_removes_own_membership(services: AccessServices) -> None:
    owner, bob = await _people(services, "owner", "bob")
    org = await services.workspaces.create_organization(owner.id, "Acme")
    await services.organization_members.add_member(owner.id, org.id, bob.id, Role.MEMBER)

    left = await services.organization_members.leave(bob.id, org.id)
    assert left.user_id == bob.id
    assert await services.store.get_role(bob.id, Context.ORGANIZATION, org.id) is None
    with pytest.raises(NotFoundError):
        await services.organization_members.leave(bob.id, org.id)


@pytest.mark.asyncio
async def test_unknown_resource_is_not_found(services: AccessServices) -> None:
    (owner,) = await _people(services, "owner")

    with pytest.raises(NotFoundError):
        await services.board_members.list_members(owner.id, uuid4())
    with pytest.raises(NotFoundError):
        await services.organization_members.add_member(owner.id, uuid4(), owner.id, "member")


@pytest.mark.asyncio
async def test_list_members_requires_view_permission(services: AccessServices) -> None:
    owner, stranger = await _people(services, "owner", "stranger")
    org = await services.workspaces.create_organization(owner.id, "Acme")

    with pytest.raises(InsufficientPermissionsError):
        await services.organization_members.list_members(stranger.id, org.id)


@pytest.mark.asyncio
async def test_list_user_resources(services: AccessServices) -> None:
    owner, bob = await _people(services, "owner", "bob")
    org = await services.workspaces.create_organization(owner.id, "Acme")
    board = await services.workspaces.create_board(owner.id, "Ops", organization_id=org.id)
    await services.board_members.add_member(owner.id, board.id, bob.id, Role.VIEWER)

    boards = await services.board_members.list_user_resources(bob.id)
    assert [(item.name, item.role) for item in boards] == [("Ops", "viewer")]
    orgs = await services.organization_members.list_user_resources(owner.id)
    assert [(item.name, item.role, item.context) for item in orgs] == [
        ("Acme", "owner", Context.ORGANIZATION)
    ]
    assert await services.organization_members.list_user_resources(bob.id) == []


@pytest.mark.asyncio
async def test_create_org_board_requires_membership(services: AccessServices) -> None:
    owner, viewer, stranger = await _people(services, "owner", "viewer", "stranger")
    org = await services.workspaces.create_organization(owner.id, "Acme")
    await services.organization_members.add_member(owner.id, org.id, viewer.id, Role.VIEWER)

    with pytest.raises(InsufficientPermissionsError):
        await services.workspaces.create_board(viewer.id, "Nope", organization_id=org.id)
    with pytest.raises(InsufficientPermissionsError):
        await services.workspaces.create_board(stranger.id, "Nope", organization_id=org.id)
    with pytest.raises(NotFoundError):
        await services.workspaces.create_board(owner.id, "Nope", organization_id=uuid4())

    personal = await services.workspaces.create_board(stranger.id, " Mine ")
    assert personal.name == "Mine"
    assert await services.store.get_role(stranger.id, Context.BOARD, personal.id) == "owner"
