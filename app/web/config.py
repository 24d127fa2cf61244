# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""Configuration helpers for the Flask web application."""

from __future__ import annotations

import secrets
from typing import Mapping, MutableMapping, Optional

from werkzeug.security import generate_password_hash

DEFAULTS = {
    "JSON_AS_ASCII": False,
    "LOG_LEVEL": "INFO",
    "API_TOKEN_HASH": None,
    "DATA_DIR": None,
    "RATE_LIMIT_PER_MINUTE": 100,
}


def resolve_secret_key(env: Mapping[str, str]) -> str:
    """Return a robust Flask secret key, generating one when absent."""
    candidate = env.get("FLASK_SECRET_KEY", "").strip()
    if not candidate:
        return secrets.token_hex(32)
    return candidate


def resolve_api_token_hash(env: Mapping[str, str]) -> Optional[str]:
    """Hash of the API bearer token (``DCK_API_TOKEN``), or None when the API is locked."""
    token = env.get("DCK_API_TOKEN", "").strip()
    if not token:
        return None
    return generate_password_hash(token)


def build_config(env: Mapping[str, str], overrides: Optional[Mapping[str, object]] = None) -> MutableMapping[str, object]:
    """Construct the Flask configuration dictionary."""
    config: MutableMapping[str, object] = dict(DEFAULTS)
    config.update(
        SECRET_KEY=resolve_secret_key(env),
        LOG_LEVEL=env.get("LOG_LEVEL", DEFAULTS["LOG_LEVEL"]),
        API_TOKEN_HASH=resolve_api_token_hash(env),
        DATA_DIR=env.get("DCK_DATA_DIR") or None,
    )

    if overrides:
        config.update(overrides)

    return config
