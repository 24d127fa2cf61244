# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""Factory helpers for creating the Discord bot client."""

from __future__ import annotations

import discord

from .runtime import BotRuntime


def _build_intents() -> discord.Intents:
    intents = discord.Intents.default()
    intents.members = False
    intents.presences = False
    intents.typing = False
    return intents


def create_bot(runtime: BotRuntime) -> discord.Bot:
    """Create the py-cord client and load the check-in extensions."""
    logger = runtime.logger
    bot = discord.Bot(intents=_build_intents())
    bot.checkin_runtime = runtime.ledger

    for extension in runtime.extensions:
        bot.load_extension(extension)
        logger.info("Loaded extension %s", extension)
    return bot
