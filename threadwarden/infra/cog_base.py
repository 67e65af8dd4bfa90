"""Cog base class and decorators shared by Threadwarden cogs."""
from __future__ import annotations

import functools
from typing import TYPE_CHECKING, Any, Callable, TypeVar

import asyncpg
from discord.ext import commands

from ..db import get_pool
from .logging import get_logger

if TYPE_CHECKING:
    from discord.ext.commands import Bot

log = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class PoolAwareCog(commands.Cog):
    """Cog with an optional asyncpg pool.

    ``self.pool`` is filled in by ``cog_load()`` when a database URL is
    configured and stays ``None`` otherwise; methods that need it are wrapped
    in :func:`require_pool`.
    """

    pool: asyncpg.Pool | None = None

    def __init__(self, bot: "Bot") -> None:
        self.bot = bot
        self.pool = None

    async def cog_load(self) -> None:
        """Attach the shared pool. Overrides should ``await super().cog_load()``."""
        try:
            self.pool = await get_pool()
        except RuntimeError:
            self.pool = None
            log.warning(
                "%s: database pool unavailable (PG_DSN missing)",
                self.__class__.__name__,
            )

    async def cog_unload(self) -> None:
        self.pool = None


def require_pool(func: F) -> F:
    """Skip the wrapped coroutine, returning None, when the cog has no pool."""

    @functools.wraps(func)
    async def wrapper(self: PoolAwareCog, *args: Any, **kwargs: Any) -> Any:
        if not getattr(self, "pool", None):
            return None
        return await func(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]


def log_errors(message: str = "Operation failed", *, return_value: Any = None) -> Callable[[F], F]:
    """Log any exception from the wrapped coroutine and return ``return_value``.

    Trigger handlers use this so one faulty pass never stops the task loop
    or the scheduler::

        @log_errors("Roster sweep failed")
        async def sweep(self):
            ...
    """

    def decorator(func: F) -> F:
        func_log = get_logger(func.__module__)

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return await func(*args, **kwargs)
            except Exception:
                func_log.exception("%s in %s", message, func.__name__)
                return return_value

        return wrapper  # type: ignore[return-value]

    return decorator
