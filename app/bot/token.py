# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""Token retrieval helpers for the Discord bot."""

from __future__ import annotations

import os
from typing import Mapping, Optional

from .runtime import BotRuntime


def get_bot_token(runtime: BotRuntime, env: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """Resolve the Discord bot token from ``DCK_BOT_TOKEN`` (or ``DISCORD_BOT_TOKEN``)."""
    env = os.environ if env is None else env
    for name in ("DCK_BOT_TOKEN", "DISCORD_BOT_TOKEN"):
        token = (env.get(name) or "").strip()
        if token:
            runtime.logger.info("Using bot token from environment variable %s", name)
            return token
    runtime.logger.warning("Neither DCK_BOT_TOKEN nor DISCORD_BOT_TOKEN is set")
    return None
