"""Shared asyncpg pool for the removal audit table."""
from __future__ import annotations

import asyncpg

from .util import build_db_url

_pool: asyncpg.Pool | None = None


async def _init(conn: asyncpg.Connection) -> None:
    await conn.execute("SET search_path=discord,public")


async def get_pool() -> asyncpg.Pool:
    """Return the process-wide pool, creating it on first use.

    Raises RuntimeError when no database URL is configured.
    """
    global _pool
    if _pool is not None and not _pool.is_closing():
        return _pool
    url = build_db_url()
    if not url:
        raise RuntimeError("PG_DSN is missing")
    _pool = await asyncpg.create_pool(url.replace("postgresql+asyncpg://", "postgresql://"), init=_init)
    return _pool


async def close_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
