"""Tests for the discord.py roster gateway and cog wiring."""
from __future__ import annotations

import asyncio
import os
from datetime import datetime, timezone
from types import SimpleNamespace

import aiohttp
import discord
import pytest
from discord.ext import commands

from conftest import GROUP, FakeGateway, member
from threadwarden import bot_config as cfg
from threadwarden.cogs import thread_roster_cog
from threadwarden.cogs.thread_roster_cog import DiscordRosterGateway, ThreadRosterCog
from threadwarden.infra.config import (
    AuditConfig,
    CogConfig,
    ReconcileConfig,
    ScheduleConfig,
)
from threadwarden.reconcile import (
    ConfigError,
    FetchError,
    Reconciler,
    RemovalError,
    RosterEntry,
)


def _http_error(cls, status: int, text: str):
    return cls(SimpleNamespace(status=status, reason=text), text)


def _role(rid: int, position: int = 0):
    return SimpleNamespace(id=rid, position=position)


def _make_discord(members: dict[int, object], me=None):
    removed: list[int] = []

    async def fetch_members():
        return [
            SimpleNamespace(id=1, joined_at=datetime(2024, 1, 1, tzinfo=timezone.utc)),
            SimpleNamespace(id=2, joined_at=None),
        ]

    async def remove_user(user):
        removed.append(user.id)

    thread = SimpleNamespace(id=GROUP, name="tier-0", fetch_members=fetch_members, remove_user=remove_user)

    async def fetch_member(member_id):
        raise _http_error(discord.NotFound, 404, "Unknown Member")

    guild = SimpleNamespace(
        id=1,
        name="Guild",
        me=me,
        roles=[_role(50), _role(60), _role(99)],
        get_member=lambda mid: members.get(mid),
        fetch_member=fetch_member,
    )

    async def fetch_channel(cid):
        raise _http_error(discord.NotFound, 404, "Unknown Channel")

    bot = SimpleNamespace(
        get_guild=lambda gid: guild,
        get_channel=lambda cid: thread if cid == GROUP else None,
        fetch_channel=fetch_channel,
    )
    return bot, guild, thread, removed


def test_gateway_roster_and_membership():
    async def run_test():
        present = SimpleNamespace(
            id=1, display_name="Alice", bot=False, roles=[_role(50, 3)], top_role=_role(50, 3)
        )
        bot, guild, thread, removed = _make_discord({1: present}, me=SimpleNamespace(top_role=_role(7, 9)))
        gateway = DiscordRosterGateway(bot, 1)

        roster = await gateway.fetch_roster(GROUP)
        assert roster[0] == RosterEntry(1, datetime(2024, 1, 1, tzinfo=timezone.utc).timestamp())
        assert roster[1] == RosterEntry(2, None)

        membership = await gateway.resolve_parent_membership(1)
        assert membership.role_ids == frozenset({50})
        assert membership.display_name == "Alice"
        assert await gateway.resolve_parent_membership(2) is None
        assert await gateway.fetch_authority_level(1) == 3
        assert await gateway.fetch_enforcing_authority() == 9

        assert await gateway.remove_member(GROUP, 2) is True
        assert removed == [2]

    asyncio.run(run_test())


def test_gateway_translates_errors():
    async def run_test():
        bot, guild, thread, _ = _make_discord({}, me=None)
        gateway = DiscordRosterGateway(bot, 1)

        with pytest.raises(FetchError):
            await gateway.ensure_group(777)

        async def broken_members():
            raise _http_error(discord.HTTPException, 500, "Server Error")

        thread.fetch_members = broken_members
        with pytest.raises(FetchError):
            await gateway.fetch_roster(GROUP)

        async def forbidden(user):
            raise _http_error(discord.Forbidden, 403, "Missing Permissions")

        thread.remove_user = forbidden
        with pytest.raises(RemovalError):
            await gateway.remove_member(GROUP, 5)
        with pytest.raises(RemovalError):
            await gateway.remove_member(777, 5)

        async def flaky_member(member_id):
            raise _http_error(discord.HTTPException, 502, "Bad Gateway")

        guild.fetch_member = flaky_member
        with pytest.raises(FetchError):
            await gateway.resolve_parent_membership(3)
        assert await gateway.fetch_enforcing_authority() is None

    asyncio.run(run_test())


def test_gateway_unavailable_guild_fails_whole_thread():
    async def run_test():
        bot, _, _, _ = _make_discord({})
        bot.get_guild = lambda gid: None
        gateway = DiscordRosterGateway(bot, 1)
        with pytest.raises(FetchError) as info:
            await gateway.ensure_group(GROUP)
        assert info.value.group_id == GROUP
        with pytest.raises(FetchError):
            await gateway.fetch_roster(GROUP)

    asyncio.run(run_test())


def test_gateway_translates_transport_faults():
    async def run_test():
        bot, _, thread, _ = _make_discord({})
        gateway = DiscordRosterGateway(bot, 1)

        async def dropped(user):
            raise aiohttp.ClientConnectionError("connection reset")

        thread.remove_user = dropped
        with pytest.raises(RemovalError):
            await gateway.remove_member(GROUP, 5)

        async def slow_members():
            raise asyncio.TimeoutError()

        thread.fetch_members = slow_members
        with pytest.raises(FetchError):
            await gateway.fetch_roster(GROUP)

    asyncio.run(run_test())


def test_gateway_rejects_non_thread_channel():
    async def run_test():
        bot, _, _, _ = _make_discord({})
        bot.get_channel = lambda cid: SimpleNamespace(id=cid, name="general")
        with pytest.raises(FetchError, match="not a thread"):
            await DiscordRosterGateway(bot, 1).ensure_group(GROUP)

    asyncio.run(run_test())


def _config() -> CogConfig:
    return CogConfig(
        reconcile=ReconcileConfig(batch_size=2, removal_delay_ms=0, check_frequency_seconds=60),
        schedule=ScheduleConfig(),
        audit=AuditConfig(enabled=False),
    )


def _clear_tier_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith(("ROLE_", "THREAD_")) or key == "IGNORED_ROLES":
            monkeypatch.delenv(key, raising=False)


def _bot() -> commands.Bot:
    return commands.Bot(command_prefix="!", intents=discord.Intents.none())


def test_cog_load_builds_reconciler(monkeypatch):
    async def run_test():
        _clear_tier_env(monkeypatch)
        monkeypatch.setenv("ROLE_0_ID", "50")
        monkeypatch.setenv("THREAD_0_ID", str(GROUP))
        monkeypatch.setenv("IGNORED_ROLES", "99")
        cog = ThreadRosterCog(_bot(), _config())
        started: list[bool] = []
        monkeypatch.setattr(cog.member_check, "start", lambda: started.append(True))
        await cog.cog_load()
        assert started == [True]
        assert cog.member_check.seconds == 60
        assert cog.directory.group_ids == [GROUP]
        assert cog.reconciler.config.batch_size == 2
        assert cog.scheduler is None
        await cog.cog_unload()

    asyncio.run(run_test())


def test_cog_load_without_tiers_is_fatal(monkeypatch):
    async def run_test():
        _clear_tier_env(monkeypatch)
        cog = ThreadRosterCog(_bot(), _config())
        with pytest.raises(ConfigError):
            await cog.cog_load()

    asyncio.run(run_test())


def test_invalid_cron_is_logged_not_fatal(monkeypatch, caplog):
    async def run_test():
        config = _config()
        config.schedule = ScheduleConfig(cron="not a cron")
        cog = ThreadRosterCog(_bot(), config)
        cog._start_scheduler()
        assert cog.scheduler is None
        assert "Invalid CLEANUP_CRON" in caplog.text

    asyncio.run(run_test())


def _wired_cog(directory, gateway) -> ThreadRosterCog:
    cog = ThreadRosterCog(_bot(), _config())
    cog.directory = directory
    cog.reconciler = Reconciler(directory, gateway, cog.config.reconcile)
    return cog


def test_sweep_waits_for_validation(directory, scenario_gateway):
    async def run_test():
        cog = _wired_cog(directory, scenario_gateway)
        assert await cog.sweep() == {}
        assert scenario_gateway.roster_calls == 0
        cog._validated = True
        results = await cog.sweep()
        assert results[GROUP].removed == [3, 4]

    asyncio.run(run_test())


def test_thread_member_join_triggers_managed_thread(directory, scenario_gateway):
    async def run_test():
        cog = _wired_cog(directory, scenario_gateway)
        cog._validated = True
        await cog.on_thread_member_join(SimpleNamespace(id=9, thread_id=4242))
        assert scenario_gateway.roster_calls == 0
        await cog.on_thread_member_join(SimpleNamespace(id=9, thread_id=GROUP))
        assert scenario_gateway.roster_calls == 1
        assert cog.reconciler.status(GROUP) is not None

    asyncio.run(run_test())


def test_on_ready_rejects_unknown_roles(monkeypatch, directory):
    async def run_test():
        bot, guild, _, _ = _make_discord({})
        guild.roles = [_role(50)]
        gateway = DiscordRosterGateway(bot, 1)
        cog = _wired_cog(directory, gateway)
        cog.bot = bot
        closed: list[bool] = []

        async def close():
            closed.append(True)

        bot.close = close
        monkeypatch.setattr(cfg, "GUILD_ID", 1)
        await cog.on_ready()
        assert closed == [True]
        assert isinstance(bot.fatal_error, ConfigError)
        assert not cog._validated

    asyncio.run(run_test())


def test_on_ready_validates_configuration(monkeypatch):
    async def run_test():
        from threadwarden.reconcile import RoleGroupDirectory, TierConfig

        bot, guild, _, _ = _make_discord({})
        directory = RoleGroupDirectory.from_tiers([TierConfig(0, 50, GROUP)], [99])
        cog = _wired_cog(directory, DiscordRosterGateway(bot, 1))
        cog.bot = bot
        monkeypatch.setattr(cfg, "GUILD_ID", 1)
        await cog.on_ready()
        assert cog._validated

    asyncio.run(run_test())


def test_describe_reports_queue(directory, scenario_gateway):
    async def run_test():
        cog = _wired_cog(directory, scenario_gateway)
        await cog.reconciler.reconcile(GROUP)
        line = cog._describe(GROUP)
        assert line == f"<#{GROUP}>: batch_active (2/3 processed, 1 queued)"
        assert cog._describe(600) == "<#600>: idle"

    asyncio.run(run_test())


def test_removal_audit_insert():
    async def run_test():
        executed: list[tuple] = []

        class DummyPool:
            async def execute(self, query, *args):
                executed.append((query, args))

        gateway = FakeGateway(rosters={GROUP: [RosterEntry(5, 1.0)]})
        from threadwarden.reconcile import RoleGroupDirectory, TierConfig

        directory = RoleGroupDirectory.from_tiers([TierConfig(0, 50, GROUP)])
        cog = _wired_cog(directory, gateway)
        cog.pool = DummyPool()
        cog.reconciler.on_removed = cog._record_removal
        await cog.reconciler.reconcile(GROUP)
        assert len(executed) == 1
        query, args = executed[0]
        assert "INSERT INTO discord.thread_removal" in query
        assert args == (GROUP, 5, "left_parent_scope", None)

    asyncio.run(run_test())


def test_setup_adds_cog(monkeypatch):
    async def run_test():
        async def no_load(self):
            return None

        monkeypatch.setattr(ThreadRosterCog, "cog_load", no_load)
        bot = _bot()
        await thread_roster_cog.setup(bot)
        assert isinstance(bot.get_cog("ThreadRosterCog"), ThreadRosterCog)

    asyncio.run(run_test())
