# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #

"""Runtime wiring for the check-in services.

The runtime bundles the pieces the ledger needs (paths, config store, locks,
ledger store and services) so the bot, the web API and the tests build one
explicit object graph instead of reaching into module globals.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from services.checkin.checkin_log import CheckinLogService
from services.checkin.checkin_service import CheckinService
from services.checkin.cycle_clock import local_now
from services.checkin.key_locks import KeyedLocks
from services.checkin.leaderboard_service import LeaderboardService
from services.checkin.ledger_paths import LedgerPaths, get_ledger_paths
from services.checkin.ledger_store import LedgerStore
from services.checkin.points_service import PointsService
from services.checkin.render_client import RenderClient
from services.config.checkin_config import CheckinConfig, CheckinConfigStore

logger = logging.getLogger("dck.checkin.runtime")


@dataclass
class CheckinRuntime:
    """Container for the shared check-in runtime state."""

    paths: LedgerPaths
    config_store: CheckinConfigStore
    locks: KeyedLocks
    store: LedgerStore
    points: PointsService
    checkin: CheckinService
    leaderboard: LeaderboardService
    checkin_log: CheckinLogService

    @property
    def config(self) -> CheckinConfig:
        return self.config_store.load()

    def now(self) -> datetime:
        """Current time in the configured timezone."""
        return local_now(self.config.tzinfo)

    def reload_config(self) -> CheckinConfig:
        config = self.config_store.load(refresh=True)
        logger.info("Check-in configuration reloaded (cycle=%s, limit=%d, reset=%02d:%02d)",
                    config.cycle.cycle_type, config.cycle.max_checkins_per_cycle,
                    config.cycle.reset_hour, config.cycle.reset_minute)
        return config

    def render_client(self) -> RenderClient:
        config = self.config
        return RenderClient(config.render_service_url, config.render_timeout_seconds)


def build_checkin_runtime(data_dir: Optional[Union[str, Path]] = None,
                          rng: Optional[random.Random] = None) -> CheckinRuntime:
    """Build a fully wired runtime rooted at ``data_dir`` (``DCK_DATA_DIR`` when omitted)."""
    paths = LedgerPaths.from_base_dir(Path(data_dir)) if data_dir else get_ledger_paths()
    config_store = CheckinConfigStore(paths.config_file)
    config_store.ensure_layout()

    def now_fn() -> datetime:
        return local_now(config_store.load().tzinfo)

    locks = KeyedLocks()
    store = LedgerStore(paths)
    points = PointsService(store, locks, now_fn=now_fn)
    checkin_log = CheckinLogService(paths.checkin_log_file, config_store.load, now_fn=now_fn)
    checkin = CheckinService(store, points, locks, config_store.load, rng=rng, checkin_log=checkin_log)
    leaderboard = LeaderboardService(store, config_store.load)

    logger.debug("Check-in runtime ready at %s", paths.data_dir)
    return CheckinRuntime(
        paths=paths,
        config_store=config_store,
        locks=locks,
        store=store,
        points=points,
        checkin=checkin,
        leaderboard=leaderboard,
        checkin_log=checkin_log,
    )
