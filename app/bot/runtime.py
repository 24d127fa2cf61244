# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""Runtime state helpers for the Discord bot."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from services.checkin.runtime import CheckinRuntime, build_checkin_runtime
from utils.logging_utils import set_debug_mode, set_log_timezone, setup_all_loggers


@dataclass(frozen=True)
class BotRuntime:
    """Aggregated state required by the bot entrypoint and event handlers."""

    logger: logging.Logger
    ledger: CheckinRuntime
    extensions: tuple = ("cogs.checkin_commands",)


def build_runtime(env: Optional[Mapping[str, str]] = None) -> BotRuntime:
    """Configure logging and build the ledger runtime from the environment."""
    env = os.environ if env is None else env
    ledger = build_checkin_runtime(env.get("DCK_DATA_DIR") or None)
    config = ledger.config

    set_log_timezone(config.timezone)
    if config.debug:
        set_debug_mode(True)
    log_level = logging.DEBUG if config.debug else logging.INFO
    setup_all_loggers(log_level, log_to_file=env.get("DCK_LOG_TO_FILE", "false").lower() == "true")

    logger = logging.getLogger("dck.bot")
    logger.info("Ledger data directory: %s", ledger.paths.data_dir)
    logger.info("Cycle: %s, limit %d, reset %02d:%02d (%s)",
                config.cycle.cycle_type, config.cycle.max_checkins_per_cycle,
                config.cycle.reset_hour, config.cycle.reset_minute, config.timezone)
    return BotRuntime(logger=logger, ledger=ledger)
