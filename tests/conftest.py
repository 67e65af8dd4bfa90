from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from threadwarden.infra.config import ReconcileConfig, reset_config
from threadwarden.reconcile import (
    FetchError,
    ParentMembership,
    RemovalError,
    RoleGroupDirectory,
    RosterEntry,
    TierConfig,
)

GROUP = 500
OTHER_GROUP = 600
ROLE = 50
OTHER_ROLE = 60
IGNORED = 99


class FakeGateway:
    """In-memory stand-in for the Discord roster gateway."""

    def __init__(
        self,
        rosters: dict[int, list[RosterEntry]] | None = None,
        members: dict[int, ParentMembership] | None = None,
        authority: dict[int, int] | None = None,
        enforcing: int | None = 10,
    ) -> None:
        self.rosters = rosters or {}
        self.members = members or {}
        self.authority = authority or {}
        self.enforcing = enforcing
        self.removed: list[tuple[int, int]] = []
        self.fail_removal: set[int] = set()
        self.unreachable: set[int] = set()
        self.lookup_errors: set[int] = set()
        self.roster_calls = 0

    async def ensure_group(self, group_id: int) -> None:
        if group_id in self.unreachable:
            raise FetchError(group_id, "thread unavailable")

    async def fetch_roster(self, group_id: int) -> list[RosterEntry]:
        self.roster_calls += 1
        await self.ensure_group(group_id)
        return list(self.rosters.get(group_id, []))

    async def resolve_parent_membership(self, member_id: int) -> ParentMembership | None:
        if member_id in self.lookup_errors:
            raise FetchError(0, "lookup failed")
        return self.members.get(member_id)

    async def fetch_authority_level(self, member_id: int) -> int:
        return self.authority.get(member_id, 0)

    async def fetch_enforcing_authority(self) -> int | None:
        return self.enforcing

    async def remove_member(self, group_id: int, member_id: int) -> bool:
        if member_id in self.fail_removal:
            raise RemovalError(group_id, member_id, "Missing Permissions")
        self.removed.append((group_id, member_id))
        self.rosters[group_id] = [
            e for e in self.rosters.get(group_id, []) if e.member_id != member_id
        ]
        return True


def member(*roles: int, name: str = "member", bot: bool = False) -> ParentMembership:
    return ParentMembership(role_ids=frozenset(roles), display_name=name, is_bot=bot)


@pytest.fixture(autouse=True)
def _fresh_config():
    reset_config()
    yield
    reset_config()


@pytest.fixture
def directory() -> RoleGroupDirectory:
    return RoleGroupDirectory.from_tiers(
        [TierConfig(0, ROLE, GROUP), TierConfig(1, OTHER_ROLE, OTHER_GROUP)],
        ignored_roles=[IGNORED],
    )


@pytest.fixture
def scenario_gateway() -> FakeGateway:
    """A(has R), B(no R, authority 3), C(left, joined 100), D(no R, authority 7)."""
    return FakeGateway(
        rosters={
            GROUP: [
                RosterEntry(1, 200.0),
                RosterEntry(2, 300.0),
                RosterEntry(3, 100.0),
                RosterEntry(4, 400.0),
            ]
        },
        members={
            1: member(ROLE, name="A"),
            2: member(OTHER_ROLE, name="B"),
            4: member(name="D"),
        },
        authority={1: 5, 2: 3, 4: 7},
        enforcing=10,
    )


@pytest.fixture
def fast_config() -> ReconcileConfig:
    return ReconcileConfig(batch_size=2, removal_delay_ms=0)
