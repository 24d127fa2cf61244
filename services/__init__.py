# -*- coding: utf-8 -*-
"""
Services Package - Business logic of the DailyCheckin ledger

This package contains the service layer organized by domain:
- checkin: cycle clock, points calculator, level/title rules, ledger store,
  points core service, check-in orchestration and leaderboards
- config: check-in configuration store and sanitizing
- exceptions: the error hierarchy shared by all services

Services are wired explicitly through ``build_checkin_runtime``; there are no
module level singletons.
"""

from .checkin.runtime import CheckinRuntime, build_checkin_runtime
from .config.checkin_config import CheckinConfig, CheckinConfigStore

__all__ = [
    'CheckinRuntime', 'build_checkin_runtime',
    'CheckinConfig', 'CheckinConfigStore',
]
