# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""Inline routes registered directly on the Flask app."""

from __future__ import annotations

from datetime import datetime, timezone

from flask import Flask, current_app, jsonify

from services.exceptions import ConfigServiceError
from utils.observability import metrics

SERVICE_NAME = "DailyCheckin"
VERSION = "2.0.0"


def register_routes(app: Flask) -> None:
    """Attach the health route."""

    @app.route("/health")
    def health_check():
        health_data = {
            "status": "healthy",
            "service": SERVICE_NAME,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": VERSION,
            "api_enabled": current_app.config.get("API_TOKEN_HASH") is not None,
        }
        runtime = current_app.extensions["checkin_runtime"]
        try:
            config = runtime.config
            health_data["config_loaded"] = True
            health_data["cycle_type"] = config.cycle.cycle_type
            health_data["groups"] = len(runtime.store.list_group_ids())
        except (OSError, ConfigServiceError) as e:
            app.logger.error("Health check could not read the ledger: %s", e, exc_info=True)
            health_data["status"] = "degraded"
            health_data["config_loaded"] = False
            return jsonify(health_data), 500
        health_data["checkins_total"] = metrics.get_counter("checkin.total")
        return jsonify(health_data), 200
