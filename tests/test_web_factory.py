# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #

from __future__ import annotations

from flask import Flask

from app.web import create_app


def test_create_app_returns_flask_instance(make_runtime):
    app = create_app({"TESTING": True, "API_TOKEN_HASH": None}, runtime=make_runtime())
    assert isinstance(app, Flask)

    client = app.test_client()
    response = client.get("/health")

    assert response.status_code == 200
    assert "Content-Security-Policy" in response.headers
    body = response.get_json()
    assert body["service"] == "DailyCheckin"
    assert body["config_loaded"] is True
    assert body["cycle_type"] == "daily"
    assert body["api_enabled"] is False


def test_create_app_builds_runtime_from_data_dir(tmp_path):
    app = create_app({"TESTING": True, "DATA_DIR": str(tmp_path / "ledger")})
    runtime = app.extensions["checkin_runtime"]

    assert runtime.paths.data_dir == tmp_path / "ledger"
    assert runtime.paths.config_file.exists()


def test_api_locked_without_token(make_runtime):
    app = create_app({"TESTING": True, "API_TOKEN_HASH": None}, runtime=make_runtime())
    response = app.test_client().get("/api/rankings", headers={"Authorization": "Bearer anything"})

    assert response.status_code == 401
    assert response.get_json()["error_code"] == "API_DISABLED"
