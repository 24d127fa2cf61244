# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK) - Observability Utilities                                 #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""
Observability utilities for DCK.

Provides structured logging and lightweight in-process metrics. The metrics
snapshot is served by ``GET /api/metrics``.

Example:
    >>> from utils.observability import get_structured_logger, metrics
    >>>
    >>> logger = get_structured_logger("dck.checkin", context={"service": "CheckinService"})
    >>> logger.info("checkin_completed", extra={"user_id": "10001", "points": 23})
    >>>
    >>> metrics.increment("checkin.total")
    >>> metrics.histogram("checkin.points", 23)
"""

import logging
import sys
import threading
import time
from collections import defaultdict
from contextlib import contextmanager
from functools import wraps
from typing import Any, Dict, List, Optional


# ============================================================================ #
# Structured Logging                                                           #
# ============================================================================ #

class StructuredLogger(logging.LoggerAdapter):
    """
    Logger adapter that adds structured context to all log messages.

    Example:
        >>> logger = StructuredLogger(logging.getLogger(__name__), {
        ...     "service": "PointsService",
        ... })
        >>> logger.info("award_committed", extra={"amount": 20})
    """

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        """Add context to log message."""
        extra = dict(kwargs.get('extra') or {})
        extra.update(self.extra)
        kwargs['extra'] = extra
        return msg, kwargs


def get_structured_logger(name: str, context: Optional[Dict[str, Any]] = None) -> StructuredLogger:
    """
    Get a structured logger writing through the project's timezone-aware formatter.

    Args:
        name: Logger name (e.g., 'dck.points')
        context: Default context to add to all log messages

    Returns:
        StructuredLogger instance
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        from utils.logging_utils import DEFAULT_LOG_FORMAT, TimezoneFormatter
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(TimezoneFormatter(DEFAULT_LOG_FORMAT))
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        logger.propagate = False

    return StructuredLogger(logger, context or {})


# ============================================================================ #
# Metrics Collection                                                           #
# ============================================================================ #

class MetricsCollector:
    """
    Lightweight metrics collector for DCK.

    Collects counters and histograms in memory.
    Safe to call from the bot event loop and from worker threads.

    Example:
        >>> metrics = MetricsCollector()
        >>> metrics.increment("checkin.total")
        >>> metrics.histogram("checkin.points", 23)
        >>> stats = metrics.get_stats()
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = defaultdict(int)
        self._histograms: Dict[str, List[float]] = defaultdict(list)
        self._start_time = time.time()

    def increment(self, name: str, value: int = 1) -> None:
        """Increment a counter metric."""
        with self._lock:
            self._counters[name] += value

    def histogram(self, name: str, value: float) -> None:
        """
        Record a value in a histogram.

        Args:
            name: Metric name (e.g., "points.award.amount")
            value: Value to record
        """
        with self._lock:
            self._histograms[name].append(value)

    @contextmanager
    def timer(self, name: str):
        """
        Context manager for timing operations.

        Records the duration as the histogram ``<name>.duration_ms``.

        Example:
            >>> with metrics.timer("checkin.perform"):
            ...     service.perform_checkin("10001", "alice", group_id="42")
        """
        start = time.time()
        try:
            yield
        finally:
            duration_ms = (time.time() - start) * 1000
            self.histogram(f"{name}.duration_ms", duration_ms)

    def get_counter(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics for all metrics.

        Returns:
            Dictionary with counters, histogram summaries and uptime
        """
        with self._lock:
            counters = dict(self._counters)
            histograms = {name: list(values) for name, values in self._histograms.items()}

        stats = {
            "counters": counters,
            "histograms": {},
            "uptime_seconds": time.time() - self._start_time
        }

        for name, values in histograms.items():
            if values:
                sorted_values = sorted(values)
                count = len(values)
                stats["histograms"][name] = {
                    "count": count,
                    "sum": sum(values),
                    "min": sorted_values[0],
                    "max": sorted_values[-1],
                    "mean": sum(values) / count,
                    "p50": sorted_values[int(count * 0.5)],
                    "p95": sorted_values[int(count * 0.95)] if count > 1 else sorted_values[0],
                    "p99": sorted_values[int(count * 0.99)] if count > 1 else sorted_values[0],
                }

        return stats


    def reset(self) -> None:
        """Reset all metrics."""
        with self._lock:
            self._counters.clear()
            self._histograms.clear()
            self._start_time = time.time()


# Global metrics instance
metrics = MetricsCollector()


# ============================================================================ #
# Decorators                                                                   #
# ============================================================================ #

def timed(metric_name: Optional[str] = None):
    """
    Decorator to time a function and record the duration as a metric.

    Example:
        >>> @timed("ledger.save_group")
        ... def save_group(...):
        ...     pass
    """
    def decorator(func):
        name = metric_name or f"{func.__module__}.{func.__name__}"

        @wraps(func)
        def wrapper(*args, **kwargs):
            with metrics.timer(name):
                return func(*args, **kwargs)

        return wrapper
    return decorator
