# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""Extension initialisation for the web app."""

from __future__ import annotations

from flask import Flask
from werkzeug.middleware.proxy_fix import ProxyFix

from app.auth import init_limiter
from services.checkin.runtime import build_checkin_runtime


def configure_proxy(app: Flask) -> None:
    """Wrap the WSGI app with :class:`ProxyFix` for reverse proxy deployments."""
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)  # type: ignore[assignment]


def init_rate_limiting(app: Flask) -> None:
    """Initialise the authentication rate limiter."""
    init_limiter(app)
    app.logger.info("Rate limiting initialized for authentication")


def init_ledger_runtime(app: Flask) -> None:
    """Attach the check-in runtime unless the caller already injected one."""
    if "checkin_runtime" not in app.extensions:
        app.extensions["checkin_runtime"] = build_checkin_runtime(app.config.get("DATA_DIR"))
    app.logger.info("Check-in ledger at %s", app.extensions["checkin_runtime"].paths.data_dir)
