# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #

"""
Single Entry Point for DailyCheckin (DCK).
Starts both the ledger API (via Waitress) and the Discord Bot in a single
process, sharing one check-in runtime.
"""

import os
import sys
import threading
import time

from waitress import serve

from app.bot import build_runtime
from app.web import create_app
from bot import main as run_bot
from utils.logging_utils import get_module_logger

logger = get_module_logger("main")

WEB_HOST = os.getenv("DCK_WEB_HOST", "0.0.0.0")
WEB_PORT = int(os.getenv("DCK_WEB_PORT", "9374"))


def start_web_server(ledger_runtime):
    """Starts the Flask API using Waitress in a separate thread."""
    try:
        logger.info("Starting ledger API via Waitress on %s:%d...", WEB_HOST, WEB_PORT)
        app = create_app(runtime=ledger_runtime)
        serve(
            app,
            host=WEB_HOST,
            port=WEB_PORT,
            threads=4,
            ident="DCK-API",
            _quiet=True
        )
    except OSError as e:
        logger.critical(f"Web Server failed to start: {e}", exc_info=True)
        sys.exit(1)


def main():
    """Main execution flow."""
    logger.info("==================================================")
    logger.info("      DailyCheckin (DCK) - Startup Sequence       ")
    logger.info("==================================================")

    runtime = build_runtime()

    # Daemon thread: killed automatically when the bot (main thread) exits
    web_thread = threading.Thread(target=start_web_server, args=(runtime.ledger,), daemon=True, name="Web-API")
    web_thread.start()

    time.sleep(1)

    # py-cord handles signals (SIGINT/SIGTERM) well in the main thread
    logger.info("Starting Discord Bot...")
    try:
        run_bot(runtime)
    except KeyboardInterrupt:
        logger.info("Received KeyboardInterrupt, shutting down...")


if __name__ == "__main__":
    main()
