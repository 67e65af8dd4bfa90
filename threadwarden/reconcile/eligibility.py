"""Decide whether a member's roles entitle them to stay in a thread."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from ..infra.logging import get_logger, structured_log
from .directory import RoleGroupDirectory
from .models import RemovalReason

log = get_logger(__name__)


@dataclass(frozen=True)
class Eligibility:
    eligible: bool
    reason: RemovalReason | None = None


ELIGIBLE = Eligibility(True)


def evaluate(
    member_roles: Iterable[int],
    group_id: int,
    directory: RoleGroupDirectory,
) -> Eligibility:
    """Return whether ``member_roles`` may stay in ``group_id``.

    Ignored roles always pass. A thread without a mapped role lets everyone
    stay, which points at a configuration mistake and is logged as such.
    """
    roles = set(member_roles)
    if any(directory.is_ignored(r) for r in roles):
        return ELIGIBLE
    required = directory.resolve_required_role(group_id)
    if required is None:
        structured_log(
            log,
            logging.WARNING,
            "No required role mapped for thread; permitting member",
            group_id=group_id,
        )
        return ELIGIBLE
    if required in roles:
        return ELIGIBLE
    return Eligibility(False, RemovalReason.ROLE_MISMATCH)
