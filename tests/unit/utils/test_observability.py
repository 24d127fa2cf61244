# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""Tests for the in-process metrics and logging helpers."""

import logging

import pytz

from utils import logging_utils
from utils.observability import MetricsCollector, get_structured_logger, timed


class TestMetricsCollector:

    def test_counters_and_histograms(self):
        collector = MetricsCollector()
        collector.increment("checkin.total")
        collector.increment("checkin.total", 2)
        for value in (10, 20, 30):
            collector.histogram("checkin.points", value)

        stats = collector.get_stats()
        assert stats["counters"]["checkin.total"] == 3
        summary = stats["histograms"]["checkin.points"]
        assert summary["count"] == 3
        assert summary["mean"] == 20
        assert (summary["min"], summary["max"]) == (10, 30)

    def test_reset(self):
        collector = MetricsCollector()
        collector.increment("a")
        collector.reset()
        assert collector.get_counter("a") == 0
        assert collector.get_stats()["histograms"] == {}

    def test_timed_decorator_records_duration(self):
        from utils.observability import metrics

        @timed("unit.work")
        def work():
            return 42

        assert work() == 42
        assert metrics.get_stats()["histograms"]["unit.work.duration_ms"]["count"] == 1


def test_structured_logger_adds_context(caplog):
    logger = get_structured_logger("dck.test.structured", context={"service": "UnitTest"})
    logger.logger.propagate = True
    with caplog.at_level(logging.INFO, logger="dck.test.structured"):
        logger.info("something_happened", extra={"user_id": "1"})
    record = caplog.records[-1]
    assert record.service == "UnitTest"
    assert record.user_id == "1"


def test_timezone_formatter_uses_configured_zone():
    record = logging.LogRecord("dck", logging.INFO, __file__, 1, "msg", (), None)
    formatter = logging_utils.TimezoneFormatter(tz=pytz.timezone("UTC"))
    assert formatter.formatTime(record).endswith(" UTC")


def test_unknown_log_timezone_falls_back(monkeypatch):
    monkeypatch.setattr(logging_utils, "_log_timezone", None)
    logging_utils.set_log_timezone("Nowhere/Land")
    assert logging_utils._log_timezone is None
    logging_utils.set_log_timezone("Europe/Berlin")
    assert logging_utils._log_timezone.zone == "Europe/Berlin"


def test_debug_filter(monkeypatch):
    monkeypatch.setattr(logging_utils, "_debug_mode_enabled", False)
    debug = logging.LogRecord("dck", logging.DEBUG, __file__, 1, "msg", (), None)
    info = logging.LogRecord("dck", logging.INFO, __file__, 1, "msg", (), None)
    assert not logging_utils.DebugModeFilter().filter(debug)
    assert logging_utils.DebugModeFilter().filter(info)
