"""Resumable, rate-limited consumer of a removal queue."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

from ..infra.logging import get_logger, structured_log
from ..util import ts_label
from .authority import check
from .errors import RemovalError, RemovalPermissionError
from .gateway import RosterGateway
from .models import BatchReport, ReconciliationState, RemovalCandidate, RemovalReason

log = get_logger(__name__)

RemovalHook = Callable[[int, RemovalCandidate], Awaitable[None]]


async def _remove_one(
    gateway: RosterGateway, group_id: int, cand: RemovalCandidate
) -> bool:
    try:
        if await gateway.remove_member(group_id, cand.member_id):
            return True
        detail = "removal call reported failure"
    except RemovalError as exc:
        detail = str(exc)
    except Exception as exc:
        # transport faults count as a failed removal
        log.exception("Unexpected error removing %s from %s", cand.member_id, group_id)
        detail = repr(exc)
    structured_log(
        log,
        logging.ERROR,
        f"Failed to remove member {cand.display_name}: {detail}",
        group_id=group_id,
        candidate_id=cand.member_id,
    )
    return False


async def apply_batch(
    group_id: int,
    state: ReconciliationState,
    gateway: RosterGateway,
    *,
    batch_size: int = 50,
    delay: float = 0.2,
    enforcing_authority: int | None = None,
    on_removed: RemovalHook | None = None,
    clock: Callable[[], float] = time.time,
) -> tuple[ReconciliationState | None, BatchReport]:
    """Process up to ``batch_size`` candidates from the front of the queue.

    Returns the updated state, or None once the queue is exhausted, together
    with a report of what happened to each candidate. Removals are issued one
    at a time with ``delay`` seconds between calls; a failed removal is not
    retried within the pass.
    """
    batch = state.remaining[:batch_size]
    rest = state.remaining[batch_size:]
    processed = state.processed_count
    report = BatchReport()

    structured_log(
        log,
        logging.INFO,
        "Processing removal batch",
        group_id=group_id,
        batch=len(batch),
        processed=processed,
        target=state.target_count,
    )

    issued = 0
    for cand in batch:
        try:
            check(cand.member_id, enforcing_authority, cand.authority)
        except RemovalPermissionError as exc:
            structured_log(
                log,
                logging.WARNING,
                f"Cannot remove member {cand.display_name}",
                group_id=group_id,
                candidate_id=cand.member_id,
                reason=exc.reason,
            )
            processed += 1
            report.denied.append(cand.member_id)
            continue

        if issued and delay > 0:
            await asyncio.sleep(delay)
        issued += 1

        if await _remove_one(gateway, group_id, cand):
            processed += 1
            report.removed.append(cand.member_id)
            kind = (
                "non-guild member"
                if cand.reason is RemovalReason.LEFT_PARENT_SCOPE
                else "member"
            )
            structured_log(
                log,
                logging.INFO,
                f"Removed {kind} {cand.display_name} (joined: {ts_label(cand.joined_at)})",
                group_id=group_id,
                candidate_id=cand.member_id,
            )
            if on_removed is not None:
                try:
                    await on_removed(group_id, cand)
                except Exception:
                    log.exception("Removal hook failed for %s in %s", cand.member_id, group_id)
        else:
            report.failed.append(cand.member_id)

    if not rest:
        report.completed = True
        structured_log(
            log,
            logging.INFO,
            "Completed member removal",
            group_id=group_id,
            processed=processed,
            target=state.target_count,
        )
        return None, report

    updated = ReconciliationState(
        processed_count=processed,
        target_count=state.target_count,
        remaining=tuple(rest),
        last_batch_at=clock(),
    )
    structured_log(
        log,
        logging.INFO,
        "Batch completed",
        group_id=group_id,
        removed=len(report.removed),
        remaining=len(rest),
    )
    return updated, report
