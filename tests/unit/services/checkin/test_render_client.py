# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""Tests for the card render client fallbacks."""

from unittest.mock import AsyncMock, patch

import pytest

from services.checkin.render_client import RenderClient
from services.exceptions import RenderServiceError
from utils.observability import metrics


@pytest.mark.asyncio
async def test_disabled_client_returns_none():
    client = RenderClient("")
    assert not client.enabled
    assert await client.try_render("checkin", {}) is None
    with pytest.raises(RenderServiceError) as excinfo:
        await client.render("checkin", {})
    assert excinfo.value.error_code == "RENDER_DISABLED"


@pytest.mark.asyncio
async def test_failure_falls_back_to_none():
    client = RenderClient("http://render.local/", timeout_seconds=1)
    assert client.base_url == "http://render.local"
    with patch.object(client, "render", AsyncMock(side_effect=RenderServiceError("boom"))):
        assert await client.try_render("leaderboard", {"entries": []}) is None
    assert metrics.get_counter("render.failures") == 1


@pytest.mark.asyncio
async def test_success_returns_bytes():
    client = RenderClient("http://render.local")
    with patch.object(client, "render", AsyncMock(return_value=b"PNG")) as render:
        assert await client.try_render("checkin", {"a": 1}) == b"PNG"
    render.assert_awaited_once_with("checkin", {"a": 1})
    assert metrics.get_counter("render.total") == 1
