# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""Blueprint registration helpers."""

from __future__ import annotations

from flask import Flask

from app.blueprints.ledger_routes import ledger_bp


def register_blueprints(app: Flask) -> None:
    """Attach all blueprints with their configured prefixes."""
    app.register_blueprint(ledger_bp, url_prefix="/api")
