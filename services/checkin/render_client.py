# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""
Client for the external card render service.

The service receives a JSON payload and answers with a PNG image.  Rendering
happens after the ledger committed; any failure or timeout makes the caller
fall back to a text reply.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from services.exceptions import RenderServiceError
from utils.observability import metrics

logger = logging.getLogger("dck.render")


class RenderClient:
    def __init__(self, base_url: str, timeout_seconds: float = 5.0):
        self.base_url = (base_url or "").rstrip("/")
        self.timeout_seconds = timeout_seconds

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    async def render(self, template: str, payload: Dict[str, Any]) -> bytes:
        """POST ``payload`` to ``<base_url>/render/<template>`` and return the image bytes.

        Raises:
            RenderServiceError: On timeouts, connection errors or non-200 answers.
        """
        if not self.enabled:
            raise RenderServiceError("Render service is not configured", error_code="RENDER_DISABLED")

        url = f"{self.base_url}/render/{template}"
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(url, json=payload) as response:
                    if response.status != 200:
                        raise RenderServiceError(
                            f"Render service answered HTTP {response.status}",
                            details={"url": url, "status": response.status},
                        )
                    return await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise RenderServiceError(f"Render service unreachable: {exc}", details={"url": url}) from exc

    async def try_render(self, template: str, payload: Dict[str, Any]) -> Optional[bytes]:
        """Like :meth:`render` but returns None on failure, logging the reason."""
        if not self.enabled:
            return None
        try:
            image = await self.render(template, payload)
        except RenderServiceError as exc:
            metrics.increment("render.failures")
            logger.warning("Card rendering failed, using text reply: %s", exc.message)
            return None
        metrics.increment("render.total")
        return image
