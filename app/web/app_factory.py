# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""Application factory orchestration for the Flask ledger API."""

from __future__ import annotations

import os
from typing import Mapping, Optional

from flask import Flask

from .blueprints import register_blueprints
from .config import build_config
from .extensions import configure_proxy, init_ledger_runtime, init_rate_limiting
from .logging import configure_logging
from .routes import register_routes
from .security import install_security_handlers


def create_app(test_config: Optional[Mapping[str, object]] = None, runtime=None) -> Flask:
    """Create and configure the Flask application instance.

    ``runtime`` lets the caller share one :class:`CheckinRuntime` between the
    bot and the API (and lets tests inject one rooted at a temp dir).
    """
    app = Flask("app")
    config = build_config(os.environ, test_config)
    app.config.update(config)
    if runtime is not None:
        app.extensions["checkin_runtime"] = runtime

    configure_logging(app)
    configure_proxy(app)
    init_rate_limiting(app)
    init_ledger_runtime(app)
    register_blueprints(app)
    install_security_handlers(app)
    register_routes(app)

    return app
