# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""
Config Services Package - Check-in configuration
"""

from .checkin_config import (
    CheckinConfig,
    CheckinConfigStore,
    CycleConfig,
    PointsConfig,
    build_checkin_config,
    sanitize_config,
)

__all__ = [
    'CheckinConfig', 'CheckinConfigStore', 'CycleConfig', 'PointsConfig',
    'build_checkin_config', 'sanitize_config',
]
