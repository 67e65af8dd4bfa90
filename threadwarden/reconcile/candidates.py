"""Build the ordered removal queue for a fresh reconciliation pass."""
from __future__ import annotations

import logging
from typing import Iterable

from ..infra.logging import get_logger, structured_log
from .directory import RoleGroupDirectory
from .eligibility import evaluate
from .errors import FetchError
from .gateway import RosterGateway
from .models import LEFT_GUILD_NAME, RemovalCandidate, RemovalReason, RosterEntry

log = get_logger(__name__)


def order_candidates(candidates: Iterable[RemovalCandidate]) -> list[RemovalCandidate]:
    """Return candidates in removal order.

    Members who left the guild go first, earliest joiners first. Role
    mismatches follow, highest authority first, then earliest joiners.
    Member ID breaks any remaining tie.
    """
    left: list[RemovalCandidate] = []
    mismatched: list[RemovalCandidate] = []
    for cand in candidates:
        if cand.reason is RemovalReason.LEFT_PARENT_SCOPE:
            left.append(cand)
        else:
            mismatched.append(cand)
    left.sort(key=lambda c: (c.joined_at, c.member_id))
    mismatched.sort(key=lambda c: (-(c.authority or 0), c.joined_at, c.member_id))
    return left + mismatched


async def build_candidates(
    group_id: int,
    roster: Iterable[RosterEntry],
    gateway: RosterGateway,
    directory: RoleGroupDirectory,
) -> list[RemovalCandidate]:
    """Classify roster entries and return the ordered removal queue.

    Bots are left out entirely. A member whose guild lookup fails is skipped
    for this pass and picked up again by the next one; if every lookup fails
    the roster cannot be judged and FetchError is raised.
    """
    candidates: list[RemovalCandidate] = []
    bots = 0
    skipped = 0
    total = 0
    for entry in roster:
        total += 1
        joined_at = entry.joined_at or 0.0
        try:
            membership = await gateway.resolve_parent_membership(entry.member_id)
        except FetchError as exc:
            structured_log(
                log,
                logging.WARNING,
                f"Could not resolve guild member: {exc}",
                group_id=group_id,
                candidate_id=entry.member_id,
            )
            skipped += 1
            continue

        if membership is None:
            candidates.append(
                RemovalCandidate(
                    member_id=entry.member_id,
                    display_name=LEFT_GUILD_NAME,
                    reason=RemovalReason.LEFT_PARENT_SCOPE,
                    joined_at=joined_at,
                )
            )
            continue

        if membership.is_bot:
            bots += 1
            continue

        verdict = evaluate(membership.role_ids, group_id, directory)
        if verdict.eligible:
            continue

        try:
            authority = await gateway.fetch_authority_level(entry.member_id)
        except FetchError as exc:
            structured_log(
                log,
                logging.WARNING,
                f"Could not read authority level: {exc}",
                group_id=group_id,
                candidate_id=entry.member_id,
            )
            skipped += 1
            continue

        log.debug("Adding member to removal list: %s (%s)", membership.display_name, entry.member_id)
        candidates.append(
            RemovalCandidate(
                member_id=entry.member_id,
                display_name=membership.display_name,
                reason=verdict.reason or RemovalReason.ROLE_MISMATCH,
                joined_at=joined_at,
                authority=authority,
            )
        )

    if total and skipped == total:
        raise FetchError(group_id, f"could not resolve any of {total} roster members")

    ordered = order_candidates(candidates)
    left_count = sum(1 for c in ordered if c.reason is RemovalReason.LEFT_PARENT_SCOPE)
    structured_log(
        log,
        logging.INFO,
        "Roster classified",
        group_id=group_id,
        members=total,
        left_guild=left_count,
        role_mismatch=len(ordered) - left_count,
        bots=bots,
        skipped=skipped,
    )
    return ordered
