# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #

"""Entry point for the DailyCheckin Discord bot."""

from __future__ import annotations

import asyncio
import os
import sys
import time
from typing import Optional

from app.bot import BotRuntime, build_runtime, create_bot, get_bot_token, register_event_handlers


def _prepare_event_loop() -> asyncio.AbstractEventLoop:
    """Create a dedicated asyncio loop for the bot runtime."""

    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    return loop


def main(runtime: Optional[BotRuntime] = None) -> None:
    """Main entry point for the Discord bot.

    ``runtime`` is passed by ``run.py`` so the bot and the web API share one ledger.
    """

    # py-cord needs an event loop before the client is created
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        _prepare_event_loop()

    if runtime is None:
        runtime = build_runtime()

    retry_interval = int(os.getenv("DCK_TOKEN_RETRY_INTERVAL", "60"))
    max_retries = int(os.getenv("DCK_TOKEN_MAX_RETRIES", "0"))  # 0 = infinite
    retry_count = 0

    while True:
        token = get_bot_token(runtime)
        if token:
            break

        retry_count += 1
        runtime.logger.error("FATAL: Bot token not found. Set DCK_BOT_TOKEN.")
        if max_retries > 0 and retry_count >= max_retries:
            runtime.logger.error("Maximum retries (%d) reached. Exiting.", max_retries)
            sys.exit(1)

        runtime.logger.warning("Retry %d: Waiting %d seconds before next attempt...", retry_count, retry_interval)
        time.sleep(retry_interval)

    bot = create_bot(runtime)
    register_event_handlers(bot, runtime)

    runtime.logger.info("Starting bot with token ending in: ...%s", token[-4:])
    bot.run(token)
    runtime.logger.info("Bot has stopped gracefully.")


if __name__ == "__main__":
    main()
