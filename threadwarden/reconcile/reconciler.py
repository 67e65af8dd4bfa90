"""Per-thread reconciliation entry point and trigger handlers."""
from __future__ import annotations

import logging
import time
from typing import Callable

from ..infra.config import ReconcileConfig
from ..infra.logging import get_logger, structured_log
from .candidates import build_candidates
from .directory import RoleGroupDirectory
from .errors import FetchError, StateCorruption
from .gateway import RosterGateway
from .guard import ConcurrencyGuard
from .models import BatchReport, Group, Phase, ReconciliationState
from .remover import RemovalHook, apply_batch
from .store import StateStore

log = get_logger(__name__)


class Reconciler:
    """Keeps managed thread rosters in line with the role directory.

    Each call to :meth:`reconcile` runs at most one batch for one thread:

    * no stored state → the roster is classified and, if anything is
      ineligible, a queue is stored (``BATCH_ACTIVE``);
    * stored state → the next batch of that queue is consumed;
    * the queue running dry clears the state (``IDLE``).

    The reconciler owns the per-thread state store and the concurrency guard;
    nothing about a pass lives in module globals.
    """

    def __init__(
        self,
        directory: RoleGroupDirectory,
        gateway: RosterGateway,
        config: ReconcileConfig | None = None,
        *,
        store: StateStore | None = None,
        guard: ConcurrencyGuard | None = None,
        on_removed: RemovalHook | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.directory = directory
        self.gateway = gateway
        self.config = config or ReconcileConfig()
        self.store = store or StateStore()
        self.guard = guard or ConcurrencyGuard()
        self.on_removed = on_removed
        self.clock = clock
        self._closed = False
        self.groups: dict[int, Group] = {
            gid: Group(gid, directory.resolve_required_role(gid))
            for gid in directory.group_ids
        }

    # ── Triggers ──────────────────────────────────────────────────────────
    async def on_timer_tick(self) -> dict[int, BatchReport | None]:
        """Run one batch for every managed thread, one thread at a time."""
        results: dict[int, BatchReport | None] = {}
        for group_id in self.groups:
            try:
                results[group_id] = await self.reconcile(group_id)
            except Exception:
                log.exception("Error checking thread %s", group_id)
                results[group_id] = None
        return results

    async def on_membership_changed(self, group_id: int) -> BatchReport | None:
        if group_id not in self.groups:
            return None
        structured_log(log, logging.INFO, "Thread members updated", group_id=group_id)
        return await self.reconcile(group_id)

    # ── Entry point ───────────────────────────────────────────────────────
    async def reconcile(self, group_id: int) -> BatchReport | None:
        """Run one pass step for ``group_id``.

        Returns None when nothing ran: unknown thread, pass already in
        progress, fetch failure, discarded state, or the reconciler was shut
        down. Otherwise returns the
        batch report; a consistent roster yields an empty, completed report.
        """
        if self._closed:
            return None
        group = self.groups.get(group_id)
        if group is None:
            structured_log(log, logging.WARNING, "Thread is not configured for tracking", group_id=group_id)
            return None

        async with self.guard.hold(group_id) as acquired:
            if not acquired:
                structured_log(
                    log,
                    logging.INFO,
                    "Thread is already being processed, skipping duplicate check",
                    group_id=group_id,
                )
                return None
            return await self._run(group)

    async def _run(self, group: Group) -> BatchReport | None:
        group_id = group.group_id
        try:
            state = self.store.get(group_id)
        except StateCorruption as exc:
            structured_log(
                log,
                logging.ERROR,
                f"Discarding reconciliation state: {exc}",
                group_id=group_id,
            )
            self.store.delete(group_id)
            return None

        try:
            await self.gateway.ensure_group(group_id)
            if state is None:
                state = await self._build(group_id)
                if state is None:
                    group.last_check = self.clock()
                    return BatchReport(completed=True)
            else:
                structured_log(
                    log,
                    logging.INFO,
                    "Continuing batch removal",
                    group_id=group_id,
                    remaining=len(state.remaining),
                )
        except FetchError as exc:
            structured_log(
                log,
                logging.ERROR,
                f"Aborting pass: {exc}",
                group_id=group_id,
            )
            return None

        if self._closed:
            return None
        enforcing = await self._enforcing_authority(group_id)
        updated, report = await apply_batch(
            group_id,
            state,
            self.gateway,
            batch_size=self.config.batch_size,
            delay=self.config.removal_delay,
            enforcing_authority=enforcing,
            on_removed=self.on_removed,
            clock=self.clock,
        )
        if self._closed:
            return report
        if updated is None:
            self.store.delete(group_id)
        else:
            self.store.put(group_id, updated)
        group.last_check = self.clock()
        return report

    async def _build(self, group_id: int) -> ReconciliationState | None:
        roster = await self.gateway.fetch_roster(group_id)
        structured_log(
            log,
            logging.INFO,
            "Checking thread roster",
            group_id=group_id,
            members=len(roster),
        )
        candidates = await build_candidates(group_id, roster, self.gateway, self.directory)
        if not candidates:
            structured_log(log, logging.INFO, "Thread roster is consistent", group_id=group_id)
            return None
        state = ReconciliationState(
            processed_count=0,
            target_count=len(candidates),
            remaining=tuple(candidates),
            last_batch_at=self.clock(),
        )
        if not self._closed:
            self.store.put(group_id, state)
        structured_log(
            log,
            logging.INFO,
            "Prepared members for batch removal",
            group_id=group_id,
            candidates=len(candidates),
        )
        return state

    async def _enforcing_authority(self, group_id: int) -> int | None:
        try:
            return await self.gateway.fetch_enforcing_authority()
        except FetchError as exc:
            structured_log(
                log,
                logging.ERROR,
                f"Could not determine bot authority: {exc}",
                group_id=group_id,
            )
            return None

    # ── Introspection ─────────────────────────────────────────────────────
    def phase(self, group_id: int) -> Phase:
        if group_id in self.store:
            return Phase.BATCH_ACTIVE
        if self.guard.is_held(group_id):
            return Phase.BUILDING
        return Phase.IDLE

    def status(self, group_id: int) -> ReconciliationState | None:
        """Return the stored state for ``group_id``, discarding it if corrupt."""
        try:
            return self.store.get(group_id)
        except StateCorruption as exc:
            structured_log(log, logging.ERROR, f"Discarding reconciliation state: {exc}", group_id=group_id)
            self.store.delete(group_id)
            return None

    def shutdown(self) -> None:
        """Drop all stored state and refuse further passes.

        Passes already running finish their current call but store nothing;
        their guards are released as they unwind. A restart begins with
        fresh passes.
        """
        self._closed = True
        self.store.clear()
        log.info("Reconciler shutting down")
