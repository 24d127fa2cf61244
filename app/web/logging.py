# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""Logging configuration utilities for the web application."""

from __future__ import annotations

import logging


class HealthCheckLogFilter(logging.Filter):
    """Filter access log lines of the health endpoint when not in debug mode."""

    def __init__(self, debug_mode: bool) -> None:
        super().__init__()
        self._debug_mode = debug_mode

    def filter(self, record: logging.LogRecord) -> bool:
        if self._debug_mode:
            return True
        if "/health" in record.getMessage() and record.levelno <= logging.INFO:
            return False
        return True


def configure_logging(app) -> HealthCheckLogFilter:
    """Configure the Flask logger and install the noise filter on the access loggers."""
    log_level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    app.logger.setLevel(log_level)

    if not app.logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(log_level)
        formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s [in %(pathname)s:%(lineno)d]")
        handler.setFormatter(formatter)
        app.logger.addHandler(handler)

    filter_instance = HealthCheckLogFilter(debug_mode=log_level == logging.DEBUG)
    for logger_name in ["werkzeug", "waitress"]:
        logging.getLogger(logger_name).addFilter(filter_instance)
    return filter_instance
