"""Thread roster enforcement for Threadwarden.
================================================
Keeps each managed thread's members in line with the role tiers.

A thread is "managed" when ``THREAD_<n>_ID`` is paired with ``ROLE_<n>_ID``.
Members who left the guild, or who no longer hold the thread's role (and hold
none of ``IGNORED_ROLES``), are removed in paced batches:

  - every ``MEMBER_CHECK_FREQUENCY`` seconds for every managed thread
  - on the optional ``CLEANUP_CRON`` sweep
  - whenever someone joins a managed thread
  - on demand through ``/rostercheck``

Large rosters are worked off across several triggers; ``/rosterstatus``
shows what is still queued.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import aiohttp
import discord
import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from discord import app_commands
from discord.ext import commands, tasks

from .. import bot_config as cfg
from ..infra.cog_base import PoolAwareCog, log_errors, require_pool
from ..infra.config import CogConfig, get_config
from ..infra.logging import get_cog_logger
from ..reconcile import (
    BatchReport,
    ConfigError,
    FetchError,
    ParentMembership,
    Reconciler,
    RemovalCandidate,
    RemovalError,
    RoleGroupDirectory,
    RosterEntry,
)
from ..util import chan_name, guild_name, user_name

log = get_cog_logger("ThreadRosterCog")

# Failures a discord.py REST call can surface.
_TRANSPORT_ERRORS = (discord.HTTPException, aiohttp.ClientError, asyncio.TimeoutError)


def _epoch(ts: datetime | None) -> float | None:
    if ts is None:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.timestamp()


class DiscordRosterGateway:
    """discord.py implementation of the roster lookups and removals."""

    def __init__(self, bot: commands.Bot, guild_id: int) -> None:
        self.bot = bot
        self.guild_id = guild_id

    def _guild(self, group_id: int = 0) -> discord.Guild:
        guild = self.bot.get_guild(self.guild_id)
        if guild is None:
            raise FetchError(group_id, f"guild {self.guild_id} is not available")
        return guild

    async def _thread(self, group_id: int) -> discord.Thread:
        channel = self.bot.get_channel(group_id)
        if channel is None:
            try:
                channel = await self.bot.fetch_channel(group_id)
            except _TRANSPORT_ERRORS as exc:
                raise FetchError(group_id, f"could not fetch thread: {exc}") from exc
        if not hasattr(channel, "fetch_members") or not hasattr(channel, "remove_user"):
            raise FetchError(group_id, f"channel {chan_name(channel)} is not a thread")
        return channel

    async def _member(self, member_id: int) -> discord.Member | None:
        guild = self._guild()
        member = guild.get_member(member_id)
        if member is not None:
            return member
        try:
            return await guild.fetch_member(member_id)
        except discord.NotFound:
            return None
        except _TRANSPORT_ERRORS as exc:
            raise FetchError(0, f"could not fetch guild member {member_id}: {exc}") from exc

    async def ensure_group(self, group_id: int) -> None:
        self._guild(group_id)
        await self._thread(group_id)

    async def fetch_roster(self, group_id: int) -> list[RosterEntry]:
        self._guild(group_id)
        thread = await self._thread(group_id)
        try:
            members = await thread.fetch_members()
        except _TRANSPORT_ERRORS as exc:
            raise FetchError(group_id, f"could not fetch members of {chan_name(thread)}: {exc}") from exc
        return [RosterEntry(m.id, _epoch(getattr(m, "joined_at", None))) for m in members]

    async def resolve_parent_membership(self, member_id: int) -> ParentMembership | None:
        member = await self._member(member_id)
        if member is None:
            return None
        return ParentMembership(
            role_ids=frozenset(r.id for r in member.roles),
            display_name=user_name(member),
            is_bot=bool(getattr(member, "bot", False)),
        )

    async def fetch_authority_level(self, member_id: int) -> int:
        member = await self._member(member_id)
        if member is None:
            raise FetchError(0, f"member {member_id} left the guild")
        top = getattr(member, "top_role", None)
        return top.position if top is not None else 0

    async def fetch_enforcing_authority(self) -> int | None:
        me = self._guild().me
        if me is None:
            return None
        top = getattr(me, "top_role", None)
        return top.position if top is not None else None

    async def remove_member(self, group_id: int, member_id: int) -> bool:
        try:
            thread = await self._thread(group_id)
        except FetchError as exc:
            raise RemovalError(group_id, member_id, str(exc)) from exc
        try:
            await thread.remove_user(discord.Object(id=member_id))
        except _TRANSPORT_ERRORS as exc:
            raise RemovalError(group_id, member_id, str(exc)) from exc
        return True


class ThreadRosterCog(PoolAwareCog):
    """Removes members who no longer belong in role-tier threads."""

    def __init__(self, bot: commands.Bot, config: CogConfig | None = None) -> None:
        super().__init__(bot)
        self.config = config or get_config()
        self.directory: RoleGroupDirectory | None = None
        self.reconciler: Reconciler | None = None
        self.scheduler: AsyncIOScheduler | None = None
        self._validated = False

    async def cog_load(self) -> None:
        if self.config.audit.enabled:
            await super().cog_load()
            await self._ensure_audit_table()
        # ConfigError propagates so the bot refuses to start.
        self.directory = RoleGroupDirectory.from_env()
        gateway = DiscordRosterGateway(self.bot, cfg.GUILD_ID)
        self.reconciler = Reconciler(
            self.directory,
            gateway,
            self.config.reconcile,
            on_removed=self._record_removal,
        )
        self.member_check.change_interval(seconds=self.config.reconcile.check_frequency_seconds)
        self.member_check.start()
        self._start_scheduler()
        log.info(
            "Thread roster cog loaded with %d threads (every %ss)",
            len(self.directory.group_ids),
            self.config.reconcile.check_frequency_seconds,
        )

    async def cog_unload(self) -> None:
        self.member_check.cancel()
        if self.scheduler:
            self.scheduler.shutdown(wait=False)
            self.scheduler = None
        if self.reconciler:
            self.reconciler.shutdown()
        await super().cog_unload()

    def _start_scheduler(self) -> None:
        schedule = self.config.schedule
        if not schedule.enabled:
            return
        try:
            tz = pytz.timezone(schedule.timezone)
            trigger = CronTrigger.from_crontab(schedule.cron, timezone=tz)
        except (ValueError, pytz.UnknownTimeZoneError) as exc:
            log.error("Invalid CLEANUP_CRON %r (%s): %s", schedule.cron, schedule.timezone, exc)
            return
        self.scheduler = AsyncIOScheduler(timezone=tz)
        self.scheduler.add_job(self.sweep, trigger)
        self.scheduler.start()
        log.info("Roster sweep scheduled with cron %s", schedule.cron)

    # ── Startup validation ────────────────────────────────────────────────
    @commands.Cog.listener()
    async def on_ready(self) -> None:
        if self._validated or self.directory is None:
            return
        try:
            await self._validate_directory()
        except ConfigError as exc:
            log.critical("Invalid tier configuration: %s", exc)
            self.bot.fatal_error = exc
            await self.bot.close()
            return
        self._validated = True

    async def _validate_directory(self) -> None:
        guild = self.bot.get_guild(cfg.GUILD_ID)
        if guild is None:
            raise ConfigError(f"Guild {cfg.GUILD_ID} is not available to the bot")
        assert self.directory is not None and self.reconciler is not None
        reachable: list[int] = []
        for group_id in self.directory.group_ids:
            try:
                await self.reconciler.gateway.ensure_group(group_id)
            except FetchError as exc:
                log.error("Thread %s failed validation: %s", group_id, exc)
                continue
            reachable.append(group_id)
        self.directory.validate_against((r.id for r in guild.roles), reachable)
        log.info("Tier configuration validated for guild %s", guild_name(guild))

    # ── Triggers ──────────────────────────────────────────────────────────
    @tasks.loop(seconds=300)
    async def member_check(self) -> None:
        await self.bot.wait_until_ready()
        await self.sweep()

    @log_errors("Roster sweep failed")
    async def sweep(self) -> dict[int, BatchReport | None]:
        if not self._validated or self.reconciler is None:
            return {}
        return await self.reconciler.on_timer_tick()

    @commands.Cog.listener()
    @log_errors("Thread member join handling failed")
    async def on_thread_member_join(self, member: discord.ThreadMember) -> None:
        if not self._validated or self.reconciler is None:
            return
        thread_id = getattr(member, "thread_id", None)
        if thread_id is None or not self.directory.is_managed(thread_id):
            return
        await self.reconciler.on_membership_changed(thread_id)

    # ── Audit ─────────────────────────────────────────────────────────────
    @require_pool
    async def _ensure_audit_table(self) -> None:
        await self.pool.execute(
            """
            CREATE TABLE IF NOT EXISTS discord.thread_removal (
                id SERIAL PRIMARY KEY,
                thread_id BIGINT NOT NULL,
                user_id BIGINT NOT NULL,
                reason TEXT NOT NULL,
                authority INT,
                removed_at TIMESTAMPTZ NOT NULL DEFAULT now()
            )
            """
        )

    @require_pool
    async def _record_removal(self, group_id: int, cand: RemovalCandidate) -> None:
        await self.pool.execute(
            """
            INSERT INTO discord.thread_removal (thread_id, user_id, reason, authority)
            VALUES ($1,$2,$3,$4)
            """,
            group_id,
            cand.member_id,
            cand.reason.value,
            cand.authority,
        )

    # ── Admin commands ────────────────────────────────────────────────────
    def _describe(self, group_id: int) -> str:
        assert self.reconciler is not None
        phase = self.reconciler.phase(group_id)
        state = self.reconciler.status(group_id)
        line = f"<#{group_id}>: {phase.value}"
        if state is not None:
            line += (
                f" ({state.processed_count}/{state.target_count} processed,"
                f" {len(state.remaining)} queued)"
            )
        return line

    @app_commands.command(name="rostercheck", description="Run a roster check on managed threads")
    @app_commands.describe(thread="Managed thread to check (defaults to all)")
    @app_commands.checks.has_permissions(administrator=True)
    @app_commands.default_permissions(administrator=True)
    async def rostercheck(
        self, interaction: discord.Interaction, thread: discord.Thread | None = None
    ) -> None:
        """Admins can trigger a reconciliation batch without waiting for the timer."""
        log.info(
            "/rostercheck invoked by %s for %s",
            user_name(interaction.user),
            chan_name(thread) if thread else "all threads",
        )
        if self.reconciler is None or self.directory is None:
            await interaction.response.send_message("Roster checks are not configured.", ephemeral=True)
            return
        if thread is not None and not self.directory.is_managed(thread.id):
            await interaction.response.send_message(
                f"{chan_name(thread)} is not a managed thread.", ephemeral=True
            )
            return
        await interaction.response.defer(thinking=True, ephemeral=True)
        targets = [thread.id] if thread is not None else self.directory.group_ids
        lines = []
        for group_id in targets:
            try:
                report = await self.reconciler.reconcile(group_id)
            except Exception as exc:
                log.exception("rostercheck failed for %s: %s", group_id, exc)
                lines.append(f"<#{group_id}>: check failed")
                continue
            if report is None:
                lines.append(f"<#{group_id}>: skipped (busy or unreachable)")
                continue
            lines.append(
                self._describe(group_id)
                + f" | removed {len(report.removed)}, denied {len(report.denied)},"
                f" failed {len(report.failed)}"
            )
        await interaction.followup.send("\n".join(lines)[:1900], ephemeral=True)

    @app_commands.command(name="rosterstatus", description="Show queued roster removals")
    @app_commands.checks.has_permissions(administrator=True)
    @app_commands.default_permissions(administrator=True)
    async def rosterstatus(self, interaction: discord.Interaction) -> None:
        if self.reconciler is None or self.directory is None:
            await interaction.response.send_message("Roster checks are not configured.", ephemeral=True)
            return
        lines = [self._describe(gid) for gid in self.directory.group_ids]
        await interaction.response.send_message("\n".join(lines)[:1900], ephemeral=True)


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(ThreadRosterCog(bot))
