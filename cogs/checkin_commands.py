# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""
Discord slash commands for check-in, points and rankings.

Every ledger call runs in a worker thread (``asyncio.to_thread``) because the
services take thread locks and do blocking file IO.  Discord guilds map to
ledger groups; in direct messages only the global check-in is available.
"""

from __future__ import annotations

import asyncio
import io
import logging
import time
from typing import Dict, Optional, Tuple

import discord
from discord.ext import commands, tasks

from services.checkin.checkin_service import CheckinResult
from services.checkin.cycle_clock import cycle_label
from services.checkin.leaderboard_service import PERIODS, Leaderboard, format_leaderboard_text
from services.checkin.levels import get_title
from services.checkin.points_requests import BalanceInfo
from services.checkin.runtime import CheckinRuntime
from services.exceptions import LedgerPersistenceError, LedgerValidationError, TitleError, get_user_friendly_message

logger = logging.getLogger('dck.cogs.checkin_commands')

SUCCESS_COLOR = 0x2ECC71
WARNING_COLOR = 0xF1C40F
ERROR_COLOR = 0xE74C3C
INFO_COLOR = 0x3498DB


def _group_of(ctx) -> Tuple[Optional[str], Optional[str]]:
    guild = getattr(ctx, 'guild', None)
    if guild is None:
        return None, None
    return str(guild.id), guild.name


def build_checkin_embed(result: CheckinResult) -> discord.Embed:
    """Text fallback for a check-in answer."""
    if not result.success:
        embed = discord.Embed(title="⏳ Check-in", description=result.error_message or "Check-in failed",
                              color=WARNING_COLOR if result.error_code == "CYCLE_LIMIT_EXCEEDED" else ERROR_COLOR)
        if result.entry is not None:
            embed.add_field(name="Last check-in", value=f"{result.entry.date} {result.entry.time}", inline=True)
        return embed

    record = result.group_record or result.global_record
    if result.already_checked_in:
        embed = discord.Embed(
            title="✅ Already checked in today",
            description=f"You are still counted {cycle_label(result.cycle_type)} "
                        f"({result.checkins_in_cycle}/{result.max_checkins_per_cycle}).",
            color=INFO_COLOR,
        )
    else:
        embed = discord.Embed(title="✅ Check-in successful", color=SUCCESS_COLOR)
        embed.add_field(name="Points", value=f"+{result.points_awarded}", inline=True)
        embed.add_field(name="Rank", value=f"#{result.rank}", inline=True)
        embed.add_field(name="Streak", value=f"{result.consecutive_days}", inline=True)
        if result.breakdown is not None and result.breakdown.lines:
            embed.add_field(name="Breakdown", value="\n".join(result.breakdown.lines), inline=False)

    if record is not None:
        embed.add_field(name="Level", value=f"{record.level_icon} {record.level_name} (Lv.{record.level})", inline=True)
        embed.add_field(name="Balance", value=str(record.balance), inline=True)
        embed.add_field(name="Experience", value=str(record.total_exp), inline=True)
    if result.level_up:
        embed.add_field(name="🎉 Level up!", value=f"You reached level {record.level if record else '?'}", inline=False)
    if result.new_titles:
        names = []
        for title_id in result.new_titles:
            definition = get_title(title_id)
            names.append(f"{definition.icon} {definition.name}" if definition else title_id)
        embed.add_field(name="New titles", value=", ".join(names), inline=False)
    embed.set_footer(text=f"Cycle {result.cycle_id}")
    return embed


def build_balance_embed(info: BalanceInfo) -> discord.Embed:
    embed = discord.Embed(title=f"💎 Points of {info.nickname or info.user_id}", color=INFO_COLOR)
    embed.add_field(name="Balance", value=str(info.balance), inline=True)
    embed.add_field(name="Experience", value=str(info.total_exp), inline=True)
    embed.add_field(name="Level", value=f"{info.level_icon} {info.level_name or '-'} (Lv.{info.level})", inline=True)
    if info.exp_to_next_level is not None:
        embed.set_footer(text=f"{info.exp_to_next_level} exp to the next level")
    else:
        embed.set_footer(text="Maximum level reached")
    return embed


class CheckinCommandsCog(commands.Cog):
    """Check-in, balance, leaderboard and title commands."""

    def __init__(self, bot, runtime: CheckinRuntime):
        self.bot = bot
        self.runtime = runtime
        self._cooldowns: Dict[str, float] = {}
        logger.info("CheckinCommandsCog initialized (data dir %s)", runtime.paths.data_dir)

    def cog_unload(self):
        self.purge_task.cancel()

    @commands.Cog.listener()
    async def on_ready(self):
        if not self.purge_task.is_running():
            self.purge_task.start()

    @commands.Cog.listener()
    async def on_guild_update(self, before, after):
        """Keep the ledger's group name in step with the guild name."""
        if before.name == after.name:
            return
        try:
            await asyncio.to_thread(self.runtime.store.set_group_name, str(after.id), after.name)
        except LedgerPersistenceError as e:
            logger.error("Could not rename ledger of guild %s: %s", after.id, e)

    @tasks.loop(hours=24)
    async def purge_task(self):
        """Drop ledger data older than the configured retention window."""
        try:
            summary = await asyncio.to_thread(self.runtime.checkin.purge_old_data)
        except LedgerPersistenceError as e:
            logger.error("Retention purge failed: %s", e, exc_info=True)
            return
        logger.info("Retention purge finished: %s", summary)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _check_cooldown(self, user_id: str, command: str) -> float:
        """Remaining cooldown seconds for ``user_id`` (0 when the command may run)."""
        cooldown = self.runtime.config.cooldown_seconds
        now = time.monotonic()
        self._prune_cooldowns(now, cooldown)
        if cooldown <= 0:
            return 0.0
        key = f"{command}:{user_id}"
        last = self._cooldowns.get(key)
        if last is not None and now - last < cooldown:
            return cooldown - (now - last)
        self._cooldowns[key] = now
        return 0.0

    def _prune_cooldowns(self, now: float, cooldown: float) -> None:
        """Forget every key whose cooldown has run out."""
        expired = [key for key, last in self._cooldowns.items() if now - last >= cooldown]
        for key in expired:
            del self._cooldowns[key]

    async def _respond_with_card(self, ctx, template: str, payload: dict,
                                 fallback_embed: Optional[discord.Embed] = None,
                                 fallback_text: Optional[str] = None) -> None:
        image = None
        if self.runtime.config.checkin_reply_mode != "text":
            image = await self.runtime.render_client().try_render(template, payload)
        if image is not None:
            await ctx.respond(file=discord.File(io.BytesIO(image), filename=f"{template}.png"))
        elif fallback_embed is not None:
            await ctx.respond(embed=fallback_embed)
        else:
            await ctx.respond(fallback_text or "")

    # ------------------------------------------------------------------
    # Command bodies
    # ------------------------------------------------------------------
    async def run_checkin(self, ctx) -> None:
        user = ctx.author
        user_id = str(user.id)
        remaining = self._check_cooldown(user_id, "checkin")
        if remaining:
            await ctx.respond(f"⏱️ Please wait {remaining:.0f}s before checking in again.", ephemeral=True)
            return

        group_id, group_name = _group_of(ctx)
        await ctx.defer()
        result = await asyncio.to_thread(
            self.runtime.checkin.perform_checkin,
            user_id, user.display_name, group_id, group_name,
        )
        if not result.success:
            await ctx.respond(embed=build_checkin_embed(result))
            return
        await self._respond_with_card(ctx, "checkin", result.to_dict(), fallback_embed=build_checkin_embed(result))

    async def run_points(self, ctx) -> None:
        group_id, _ = _group_of(ctx)
        if group_id is None:
            await ctx.respond("Points are kept per server; use this command inside a server.", ephemeral=True)
            return
        info = await asyncio.to_thread(self.runtime.points.check_balance, group_id, str(ctx.author.id))
        await ctx.respond(embed=build_balance_embed(info), ephemeral=True)

    async def run_ranking(self, ctx, period: str) -> None:
        group_id, _ = _group_of(ctx)
        if group_id is None:
            await ctx.respond("Rankings are kept per server; use this command inside a server.", ephemeral=True)
            return
        await ctx.defer()
        try:
            board: Leaderboard = await asyncio.to_thread(
                self.runtime.leaderboard.get_period_leaderboard,
                group_id, period, str(ctx.author.id),
            )
        except LedgerValidationError as exc:
            await ctx.respond(get_user_friendly_message(exc), ephemeral=True)
            return
        await self._respond_with_card(ctx, "leaderboard", board.to_dict(),
                                      fallback_text=format_leaderboard_text(board))

    async def run_transactions(self, ctx, limit: int = 10) -> None:
        group_id, _ = _group_of(ctx)
        if group_id is None:
            await ctx.respond("Transactions are kept per server.", ephemeral=True)
            return
        entries, total = await asyncio.to_thread(
            self.runtime.points.get_transactions, group_id, str(ctx.author.id), limit,
        )
        if not entries:
            await ctx.respond("No transactions yet.", ephemeral=True)
            return
        embed = discord.Embed(title="📜 Recent transactions", color=INFO_COLOR)
        lines = []
        for tx in entries:
            sign = "+" if tx.amount >= 0 else ""
            lines.append(f"`{tx.timestamp[:19]}` {sign}{tx.amount} → {tx.resulting_balance} {tx.description}")
        embed.description = "\n".join(lines)
        embed.set_footer(text=f"Showing {len(entries)} of {total}")
        await ctx.respond(embed=embed, ephemeral=True)

    async def run_equip_title(self, ctx, title_id: Optional[str]) -> None:
        group_id, _ = _group_of(ctx)
        if group_id is None:
            await ctx.respond("Titles are kept per server.", ephemeral=True)
            return
        try:
            await asyncio.to_thread(self.runtime.points.equip_title, group_id, str(ctx.author.id), title_id)
        except TitleError as exc:
            await ctx.respond(f"❌ {exc.message}", ephemeral=True)
            return
        if title_id:
            definition = get_title(title_id)
            name = f"{definition.icon} {definition.name}" if definition else title_id
            await ctx.respond(f"✅ Equipped title {name}", ephemeral=True)
        else:
            await ctx.respond("✅ Title removed", ephemeral=True)

    # ------------------------------------------------------------------
    # Slash commands
    # ------------------------------------------------------------------
    @commands.slash_command(name="checkin", description="Check in for the current cycle")
    async def checkin(self, ctx: discord.ApplicationContext):
        await self.run_checkin(ctx)

    @commands.slash_command(name="points", description="Show your balance, experience and level")
    async def points(self, ctx: discord.ApplicationContext):
        await self.run_points(ctx)

    @commands.slash_command(name="ranking", description="Show the check-in leaderboard")
    async def ranking(self, ctx: discord.ApplicationContext,
                      period: str = discord.Option(str, description="Ranking period",
                                                   choices=list(PERIODS), default="week")):
        await self.run_ranking(ctx, period)

    @commands.slash_command(name="transactions", description="Show your recent point transactions")
    async def transactions(self, ctx: discord.ApplicationContext,
                           limit: int = discord.Option(int, description="Number of entries",
                                                       min_value=1, max_value=25, default=10)):
        await self.run_transactions(ctx, limit)

    @commands.slash_command(name="title", description="Equip one of your titles (leave empty to unequip)")
    async def title(self, ctx: discord.ApplicationContext,
                    title_id: str = discord.Option(str, description="Title id", required=False, default=None)):
        await self.run_equip_title(ctx, title_id)


def setup(bot):
    runtime = getattr(bot, 'checkin_runtime', None)
    if runtime is None:
        raise RuntimeError("bot.checkin_runtime must be set before loading the check-in cog")
    bot.add_cog(CheckinCommandsCog(bot, runtime))
