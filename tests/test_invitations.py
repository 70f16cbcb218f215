# ruff: noqa

from __future__ import annotations

import asyncio
from datetime import timedelta
from uuid import uuid4

import pytest

from boardaccess.core.errors import (
    AlreadyMemberError,
    DuplicatePendingInvitationError,
    InsufficientPermissionsError,
    InvalidOrExpiredInvitationError,
    InvitationNotFoundError,
    NotFoundError,
)
from boardaccess.core.roles import Context, Role
from boardaccess.models.invitations import INVITATION_ACCEPTED, INVITATION_DECLINED, INVITATION_PENDING
from boardaccess.models.users import User
from boardaccess.services.container import AccessServices
from boardaccess.services.invitations import username_from_email


async def _seed(services: AccessServices, *, in_org: bool = False):
    owner = await services.store.create_user(
        username="olivia",
        email="olivia@example.com",
        password="pw",
    )
    org = None
    if in_org:
        org = await services.workspaces.create_organization(owner.id, "Acme")
    board = await services.workspaces.create_board(
        owner.id,
        "Launch",
        organization_id=org.id if org else None,
    )
    return owner, org, board


def test_username_from_email_uses_local_part() -> None:
    assert username_from_email(" Alice.Smith@Example.com ") == "alice.smith"
    assert username_from_email("@example.com") == "user"


@pytest.mark.asyncio
async def test_invitation_round_trip(services: AccessServices) -> None:
    owner, _, board = await _seed(services)

    created = await services.invitations.create("a@x.com", board.id, owner.id)
    assert created.status == INVITATION_PENDING
    assert created.expires_at - created.created_at == timedelta(days=7)
    assert len(created.token) >= 43

    fetched = await services.invitations.get_by_token(created.token)
    assert fetched is not None
    assert fetched.status == INVITATION_PENDING
    assert fetched.board_name == "Launch"
    assert fetched.invited_by_username == "olivia"
    assert fetched.is_expired is False

    result = await services.invitations.accept(created.token)
    assert result.invitation.status == INVITATION_ACCEPTED
    assert result.user_created is True
    assert result.board_role == "member"
    assert result.organization_role is None
    assert await services.store.get_role(result.user_id, Context.BOARD, board.id) is not None

    provisioned = await services.store.get_user(result.user_id)
    assert provisioned is not None
    assert provisioned.username == "a"
    assert provisioned.email == "a@x.com"

    with pytest.raises(InvalidOrExpiredInvitationError):
        await services.invitations.accept(created.token)


@pytest.mark.asyncio
async def test_accept_grants_organization_membership(services: AccessServices) -> None:
    owner, org, board = await _seed(services, in_org=True)

    created = await services.invitations.create("b@x.com", board.id, owner.id)
    assert created.organization_id == org.id

    result = await services.invitations.accept(created.token)
    assert result.organization_role == "member"
    assert await services.store.get_role(result.user_id, Context.ORGANIZATION, org.id) == "member"
    assert await services.resolver.has_permission(
        result.user_id, "create_card", Context.BOARD, board.id
    )


@pytest.mark.asyncio
async def test_accept_for_existing_user_keeps_existing_membership(
    services: AccessServices,
) -> None:
    owner, _, board = await _seed(services)
    bob = await services.store.create_user(username="bob", email="bob@x.com", password="pw")
    await services.store.add_board_member(board.id, bob.id, Role.ADMIN, owner.id)

    created = await services.invitations.create("BOB@x.com", board.id, owner.id)
    result = await services.invitations.accept(created.token)

    assert result.user_created is False
    assert result.user_id == bob.id
    assert result.board_role == "admin"


@pytest.mark.asyncio
async def test_expired_invitation_cannot_be_accepted_but_can_be_declined(
    services: AccessServices, clock
) -> None:
    owner, _, board = await _seed(services)
    created = await services.invitations.create("c@x.com", board.id, owner.id)

    clock.advance(timedelta(days=8))
    fetched = await services.invitations.get_by_token(created.token)
    assert fetched is not None
    assert fetched.status == INVITATION_PENDING
    assert fetched.is_expired is True

    with pytest.raises(InvalidOrExpiredInvitationError):
        await services.invitations.accept(created.token)
    assert await services.store.get_user_by_email("c@x.com") is None

    declined = await services.invitations.decline(created.token)
    assert declined.status == INVITATION_DECLINED


@pytest.mark.asyncio
async def test_invitation_expires_exactly_at_expiry(services: AccessServices, clock) -> None:
    owner, _, board = await _seed(services)
    created = await services.invitations.create("d@x.com", board.id, owner.id)

    clock.advance(timedelta(days=7))
    with pytest.raises(InvalidOrExpiredInvitationError):
        await services.invitations.accept(created.token)


@pytest.mark.asyncio
async def test_duplicate_pending_invitation_is_rejected(services: AccessServices) -> None:
    owner, _, board = await _seed(services)
    first = await services.invitations.create(" E@X.com ", board.id, owner.id)
    assert first.email == "e@x.com"

    with pytest.raises(DuplicatePendingInvitationError):
        await services.invitations.create("e@x.com", board.id, owner.id)

    await services.invitations.accept(first.token)
    second = await services.invitations.create("e@x.com", board.id, owner.id)
    assert second.token != first.token

    await services.invitations.decline(second.token)
    third = await services.invitations.create("e@x.com", board.id, owner.id)
    assert third.status == INVITATION_PENDING


@pytest.mark.asyncio
async def test_same_email_may_be_invited_to_different_boards(services: AccessServices) -> None:
    owner, _, board = await _seed(services)
    other = await services.workspaces.create_board(owner.id, "Other")

    await services.invitations.create("f@x.com", board.id, owner.id)
    await services.invitations.create("f@x.com", other.id, owner.id)

    assert len(await services.invitations.list_for_email("f@x.com")) == 2


@pytest.mark.asyncio
async def test_expired_pending_invitation_is_replaced(services: AccessServices, clock) -> None:
    owner, _, board = await _seed(services)
    stale = await services.invitations.create("g@x.com", board.id, owner.id)

    clock.advance(timedelta(days=10))
    fresh = await services.invitations.create("g@x.com", board.id, owner.id)

    listed = await services.invitations.list_for_email("g@x.com")
    assert [inv.id for inv in listed] == [fresh.id]
    assert await services.invitations.get_by_token(stale.token) is None


@pytest.mark.asyncio
async def test_concurrent_creates_for_same_pair_only_one_succeeds(
    services: AccessServices,
) -> None:
    owner, _, board = await _seed(services)

    results = await asyncio.gather(
        *(services.invitations.create("h@x.com", board.id, owner.id) for _ in range(3)),
        return_exceptions=True,
    )

    failures = [r for r in results if isinstance(r, BaseException)]
    assert len(failures) == 2
    assert all(isinstance(r, DuplicatePendingInvitationError) for r in failures)
    assert len(await services.invitations.list_for_email("h@x.com")) == 1


@pytest.mark.asyncio
async def test_create_requires_invite_permission(services: AccessServices) -> None:
    owner, _, board = await _seed(services)
    member = await services.store.create_user(username="m", email="m@x.com", password="pw")
    await services.store.add_board_member(board.id, member.id, Role.MEMBER, owner.id)

    with pytest.raises(InsufficientPermissionsError):
        await services.invitations.create("i@x.com", board.id, member.id)
    with pytest.raises(NotFoundError):
        await services.invitations.create("i@x.com", uuid4(), owner.id)


@pytest.mark.asyncio
async def test_decline_and_accept_unknown_tokens(services: AccessServices) -> None:
    owner, _, board = await _seed(services)

    with pytest.raises(InvitationNotFoundError):
        await services.invitations.decline("missing")
    with pytest.raises(InvalidOrExpiredInvitationError):
        await services.invitations.accept("missing")
    assert await services.invitations.get_by_token("missing") is None

    created = await services.invitations.create("j@x.com", board.id, owner.id)
    await services.invitations.decline(created.token)
    with pytest.raises(InvitationNotFoundError):
        await services.invitations.decline(created.token)
    with pytest.raises(InvalidOrExpiredInvitationError):
        await services.invitations.accept(created.token)


@pytest.mark.asyncio
async def test_list_for_email_is_newest_first(services: AccessServices, clock) -> None:
    owner, _, board = await _seed(services)
    other = await services.workspaces.create_board(owner.id, "Other")

    older = await services.invitations.create("k@x.com", board.id, owner.id)
    clock.advance(timedelta(hours=1))
    newer = await services.invitations.create("K@x.com", other.id, owner.id)

    listed = await services.invitations.list_for_email(" k@X.com")
    assert [inv.id for inv in listed] == [newer.id, older.id]
    assert [inv.board_name for inv in listed] == ["Other", "Launch"]


@pytest.mark.asyncio
async def test_explicit_organization_must_be_the_boards_organization(
    services: AccessServices,
) -> None:
    owner, _, personal = await _seed(services)
    vera = await services.store.create_user(username="vera", email="vera@x.com", password="pw")
    other_org = await services.workspaces.create_organization(vera.id, "Elsewhere")
    mallory = await services.store.create_user(username="mal", email="mal@x.com", password="pw")

    with pytest.raises(InsufficientPermissionsError):
        await services.invitations.create(
            "mal@x.com",
            personal.id,
            owner.id,
            organization_id=other_org.id,
        )
    with pytest.raises(InsufficientPermissionsError):
        await services.invitations.create("mal@x.com", personal.id, owner.id, organization_id=uuid4())

    assert await services.invitations.list_for_email("mal@x.com") == []
    assert await services.store.get_role(mallory.id, Context.ORGANIZATION, other_org.id) is None
    assert await services.store.get_role(mallory.id, Context.BOARD, personal.id) is None


@pytest.mark.asyncio
async def test_explicit_organization_matching_the_board_is_accepted(
    services: AccessServices,
) -> None:
    owner, org, board = await _seed(services, in_org=True)

    created = await services.invitations.create("n@x.com", board.id, owner.id, organization_id=org.id)
    assert created.organization_id == org.id

    result = await services.invitations.accept(created.token)
    assert result.organization_role == "member"


@pytest.mark.asyncio
async def test_failed_grant_during_accept_leaves_no_partial_state(
    services: AccessServices, clock
) -> None:
    owner, org, board = await _seed(services, in_org=True)
    created = await services.invitations.create("p@x.com", board.id, owner.id)
    # Reusing an existing user's id makes the provisioning write conflict.
    clashing = User(id=owner.id, username="p", email="p@x.com", password="pw")

    with pytest.raises(AlreadyMemberError):
        await services.store.accept_invitation(
            created.token,
            now=clock(),
            provisional_user=clashing,
            role=Role.MEMBER,
        )

    fetched = await services.invitations.get_by_token(created.token)
    assert fetched is not None
    assert fetched.status == INVITATION_PENDING
    assert await services.store.get_user_by_email("p@x.com") is None
    owner_after = await services.store.get_user(owner.id)
    assert owner_after is not None
    assert owner_after.email == "olivia@example.com"
    assert len(await services.store.list_members(Context.BOARD, board.id)) == 1
    assert len(await services.store.list_members(Context.ORGANIZATION, org.id)) == 1

    result = await services.invitations.accept(created.token)
    assert result.user_created is True
    assert await services.store.get_role(result.user_id, Context.BOARD, board.id) == "member"
    assert await services.store.get_role(result.user_id, Context.ORGANIZATION, org.id) == "member"
