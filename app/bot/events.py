# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""Event wiring for the Discord bot."""

from __future__ import annotations

import traceback
from typing import Any

import discord

from services.exceptions import DCKBaseException, get_user_friendly_message

from .runtime import BotRuntime


def register_event_handlers(bot: discord.Bot, runtime: BotRuntime) -> None:
    """Attach the core event handlers to the bot instance."""

    logger = runtime.logger

    @bot.event
    async def on_ready():
        logger.info("-" * 50)
        user = getattr(bot, "user", None)
        if user is not None:
            logger.info("Logged in as %s (ID: %s)", user.name, user.id)
        else:
            logger.info("Logged in (user unavailable during startup)")
        logger.info("py-cord Version: %s", discord.__version__)
        logger.info("-" * 50)

    @bot.event
    async def on_error(event: str, *args: Any, **kwargs: Any) -> None:
        logger.error("Error in event %s: %s", event, traceback.format_exc())

    @bot.event
    async def on_application_command_error(ctx: discord.ApplicationContext, error: Exception) -> None:
        original = getattr(error, "original", error)
        if isinstance(original, DCKBaseException):
            logger.warning("Command '%s' failed: %s", ctx.command, original)
        else:
            logger.error("Unexpected Command Error in '%s': %s", ctx.command, error, exc_info=original)
        try:
            await ctx.respond(get_user_friendly_message(original), ephemeral=True)
        except discord.HTTPException:
            pass
