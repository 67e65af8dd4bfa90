import asyncio

import asyncpg
import pytest

from threadwarden import db


class DummyPool:
    def __init__(self):
        self.closed = False

    def is_closing(self):
        return self.closed

    async def close(self):
        self.closed = True


def test_get_pool_requires_url(monkeypatch):
    for var in ("PG_DSN", "DATABASE_URL", "PG_USER"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr(db, "_pool", None)
    with pytest.raises(RuntimeError):
        asyncio.run(db.get_pool())


def test_pool_is_shared_until_closed(monkeypatch):
    created: list[str] = []

    async def fake_create_pool(url, *args, **kwargs):
        created.append(url)
        return DummyPool()

    async def run_test():
        monkeypatch.setenv("PG_DSN", "postgresql+asyncpg://u:p@localhost/warden")
        monkeypatch.setattr(db, "_pool", None)
        monkeypatch.setattr(asyncpg, "create_pool", fake_create_pool)
        first = await db.get_pool()
        assert await db.get_pool() is first
        await db.close_pool()
        assert first.closed
        second = await db.get_pool()
        assert second is not first
        assert created == ["postgresql://u:p@localhost/warden"] * 2
        await db.close_pool()

    asyncio.run(run_test())
