# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""Check-in and points ledger services."""

from .checkin_log import CheckinLogEntry, CheckinLogService
from .checkin_service import CheckinResult, CheckinService
from .leaderboard_service import Leaderboard, LeaderboardService, RankingEntry
from .ledger_store import LedgerStore
from .points_requests import AwardRequest, AwardResult, BalanceInfo, ConsumeRequest, ConsumeResult
from .points_service import PointsService
from .runtime import CheckinRuntime, build_checkin_runtime

__all__ = [
    'CheckinLogEntry', 'CheckinLogService',
    'CheckinResult', 'CheckinService',
    'Leaderboard', 'LeaderboardService', 'RankingEntry',
    'LedgerStore',
    'AwardRequest', 'AwardResult', 'BalanceInfo', 'ConsumeRequest', 'ConsumeResult',
    'PointsService',
    'CheckinRuntime', 'build_checkin_runtime',
]
