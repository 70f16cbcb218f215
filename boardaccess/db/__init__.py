"""Membership store backends and startup selection."""

from boardaccess.db.memory_store import InMemoryMembershipStore
from boardaccess.db.sql_store import SqlMembershipStore
from boardaccess.db.store import AcceptedInvitation, Member, MembershipStore

__all__ = [
    "AcceptedInvitation",
    "InMemoryMembershipStore",
    "Member",
    "MembershipStore",
    "SqlMembershipStore",
]
