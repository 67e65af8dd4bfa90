"""Contract between the reconciliation engine and the chat platform."""
from __future__ import annotations

from typing import Protocol

from .models import ParentMembership, RosterEntry


class RosterGateway(Protocol):
    """Network-bound lookups and mutations the engine depends on.

    Every method is awaited exactly once per use; the engine never issues two
    calls for the same group concurrently.
    """

    async def ensure_group(self, group_id: int) -> None:
        """Raise FetchError if the thread cannot currently be reached."""

    async def fetch_roster(self, group_id: int) -> list[RosterEntry]:
        """Return the thread's current members. Raises FetchError."""

    async def resolve_parent_membership(self, member_id: int) -> ParentMembership | None:
        """Return the member's guild standing, or None if they left the guild.

        Raises FetchError when the lookup itself failed.
        """

    async def fetch_authority_level(self, member_id: int) -> int:
        """Return the position of the member's highest role. Raises FetchError."""

    async def fetch_enforcing_authority(self) -> int | None:
        """Return the bot's own authority level, or None if unknown."""

    async def remove_member(self, group_id: int, member_id: int) -> bool:
        """Remove a member from the thread; True on success.

        May raise RemovalError instead of returning False.
        """
