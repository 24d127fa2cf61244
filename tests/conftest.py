# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK) - Pytest Configuration & Fixtures                         #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""
Global pytest configuration and fixtures for all test suites.
"""

import os
import random
import sys
from datetime import datetime
from pathlib import Path
from unittest.mock import AsyncMock, Mock
from zoneinfo import ZoneInfo

import pytest

# Add project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

# Test environment setup
os.environ["TESTING"] = "true"

from services.checkin.runtime import build_checkin_runtime  # noqa: E402
from utils.observability import metrics  # noqa: E402

TZ = ZoneInfo("Asia/Shanghai")


def _at(year, month, day, hour=12, minute=0, second=0):
    return datetime(year, month, day, hour, minute, second, tzinfo=TZ)


@pytest.fixture
def at():
    """Builder for aware datetimes in the default ledger timezone."""
    return _at


@pytest.fixture
def data_dir(tmp_path):
    """Empty ledger data directory."""
    path = tmp_path / "checkin"
    path.mkdir()
    return path


@pytest.fixture
def make_runtime(data_dir):
    """Factory building a runtime in the temp data dir with optional config changes."""

    def _make(config=None, seed=1234):
        runtime = build_checkin_runtime(data_dir, rng=random.Random(seed))
        if config:
            runtime.config_store.update(config)
        return runtime

    return _make


@pytest.fixture
def runtime(make_runtime):
    """Runtime with deterministic points (10 base, +2/day streak bonus capped at 20)."""
    return make_runtime({
        "checkin_points": {
            "min_points": 10,
            "max_points": 10,
            "consecutive_bonus_per_day": 2,
            "max_consecutive_bonus": 20,
            "enable_weekend_bonus": False,
        },
    })


@pytest.fixture
def mock_discord_ctx():
    """Mock Discord application context for testing slash command bodies."""
    ctx = AsyncMock()
    ctx.guild = Mock()
    ctx.guild.id = 123456789
    ctx.guild.name = "Test Guild"
    ctx.author = Mock()
    ctx.author.id = 111222333
    ctx.author.display_name = "alice"
    ctx.respond = AsyncMock()
    ctx.defer = AsyncMock()
    return ctx


@pytest.fixture(autouse=True)
def reset_metrics():
    """Start every test with empty in-process metrics."""
    metrics.reset()
    yield


# Markers for test categorization
pytestmark = [
    pytest.mark.filterwarnings("ignore:.*unclosed.*:ResourceWarning"),
    pytest.mark.filterwarnings("ignore::DeprecationWarning"),
]
