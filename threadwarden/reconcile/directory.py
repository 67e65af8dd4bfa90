"""Role-tier ↔ thread directory built once at startup."""
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Iterable, Mapping

from .errors import ConfigError
from ..infra.logging import get_logger

log = get_logger(__name__)

_TIER_KEY = re.compile(r"^(ROLE|THREAD)_(\d+)_ID$")


@dataclass(frozen=True)
class TierConfig:
    """One configured tier: members of ``group_id`` must hold ``role_id``."""

    index: int
    role_id: int | None
    group_id: int | None


def _parse_id(key: str, value: str | None) -> int | None:
    if value is None or not value.strip():
        return None
    try:
        parsed = int(value.strip())
    except ValueError as exc:
        raise ConfigError(f"Invalid Discord ID format for {key}: {value}") from exc
    return parsed or None


def load_tiers_from_env(
    environ: Mapping[str, str] | None = None,
) -> tuple[list[TierConfig], list[int]]:
    """Read ``ROLE_<n>_ID``/``THREAD_<n>_ID`` pairs and ``IGNORED_ROLES``.

    Returns the tiers ordered by index and the ignored role IDs. A tier with
    only one half configured is returned as-is so :meth:`from_tiers` can
    reject it with a useful message.
    """
    env = os.environ if environ is None else environ
    halves: dict[int, dict[str, int | None]] = {}
    for key, value in env.items():
        match = _TIER_KEY.match(key)
        if not match:
            continue
        kind, idx = match.group(1), int(match.group(2))
        halves.setdefault(idx, {})[kind] = _parse_id(key, value)

    tiers = [
        TierConfig(index=idx, role_id=parts.get("ROLE"), group_id=parts.get("THREAD"))
        for idx, parts in sorted(halves.items())
    ]

    ignored: list[int] = []
    for part in env.get("IGNORED_ROLES", "").split(","):
        role_id = _parse_id("IGNORED_ROLES", part)
        if role_id is not None:
            ignored.append(role_id)
    return tiers, ignored


class RoleGroupDirectory:
    """Bidirectional, read-only mapping between role tiers and threads."""

    def __init__(
        self,
        role_to_group: Mapping[int, int],
        ignored_roles: Iterable[int] = (),
        tier_index: Mapping[int, int] | None = None,
    ) -> None:
        self._role_to_group = dict(role_to_group)
        self._group_to_role = {g: r for r, g in self._role_to_group.items()}
        self._ignored = frozenset(ignored_roles)
        self._tier_index = dict(tier_index or {})

    @classmethod
    def from_tiers(
        cls, tiers: Iterable[TierConfig], ignored_roles: Iterable[int] = ()
    ) -> "RoleGroupDirectory":
        """Build the directory, rejecting incomplete or overlapping tiers."""
        role_to_group: dict[int, int] = {}
        groups_seen: dict[int, int] = {}
        tier_index: dict[int, int] = {}
        for tier in tiers:
            if not tier.role_id:
                raise ConfigError(f"Tier {tier.index} has THREAD_{tier.index}_ID but no ROLE_{tier.index}_ID")
            if not tier.group_id:
                raise ConfigError(f"Tier {tier.index} has ROLE_{tier.index}_ID but no THREAD_{tier.index}_ID")
            if tier.role_id in role_to_group:
                raise ConfigError(f"Role {tier.role_id} is mapped to more than one thread")
            if tier.group_id in groups_seen:
                raise ConfigError(
                    f"Thread {tier.group_id} is mapped to tiers {groups_seen[tier.group_id]} and {tier.index}"
                )
            role_to_group[tier.role_id] = tier.group_id
            groups_seen[tier.group_id] = tier.index
            tier_index[tier.group_id] = tier.index
        if not role_to_group:
            raise ConfigError("No ROLE_<n>_ID/THREAD_<n>_ID tiers configured")
        directory = cls(role_to_group, ignored_roles, tier_index)
        log.info(
            "Role directory built with %d tiers, %d ignored roles",
            len(role_to_group),
            len(directory._ignored),
        )
        return directory

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "RoleGroupDirectory":
        tiers, ignored = load_tiers_from_env(environ)
        return cls.from_tiers(tiers, ignored)

    @property
    def group_ids(self) -> list[int]:
        """Managed thread IDs in tier order."""
        return sorted(self._group_to_role, key=lambda g: self._tier_index.get(g, 0))

    @property
    def ignored_roles(self) -> frozenset[int]:
        return self._ignored

    def resolve_required_role(self, group_id: int) -> int | None:
        return self._group_to_role.get(group_id)

    def resolve_group(self, role_id: int) -> int | None:
        return self._role_to_group.get(role_id)

    def is_ignored(self, role_id: int) -> bool:
        return role_id in self._ignored

    def is_managed(self, group_id: int) -> bool:
        return group_id in self._group_to_role

    def validate_against(self, role_ids: Iterable[int], group_ids: Iterable[int]) -> None:
        """Raise ConfigError if a tier names a role or thread the guild lacks."""
        known_roles = set(role_ids)
        known_groups = set(group_ids)
        missing_roles = sorted(r for r in self._role_to_group if r not in known_roles)
        missing_groups = sorted(g for g in self._group_to_role if g not in known_groups)
        if missing_roles:
            raise ConfigError(f"Configured roles not found in guild: {missing_roles}")
        if missing_groups:
            raise ConfigError(f"Configured threads not found in guild: {missing_groups}")
        unknown_ignored = sorted(r for r in self._ignored if r not in known_roles)
        if unknown_ignored:
            log.warning("IGNORED_ROLES contains unknown roles: %s", unknown_ignored)
