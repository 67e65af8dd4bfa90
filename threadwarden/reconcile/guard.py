"""Per-thread exclusive execution marker."""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator


class ConcurrencyGuard:
    """Allow at most one reconciliation pass per group at a time.

    Acquisition never awaits, so under asyncio the check-and-set is atomic.
    A caller that loses the race is told so and does not queue.
    """

    def __init__(self) -> None:
        self._held: set[int] = set()

    def try_acquire(self, group_id: int) -> bool:
        if group_id in self._held:
            return False
        self._held.add(group_id)
        return True

    def release(self, group_id: int) -> None:
        self._held.discard(group_id)

    def is_held(self, group_id: int) -> bool:
        return group_id in self._held

    @asynccontextmanager
    async def hold(self, group_id: int) -> AsyncIterator[bool]:
        """Yield True if the guard was acquired; release it on any exit."""
        acquired = self.try_acquire(group_id)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(group_id)
