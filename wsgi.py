#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK) - WSGI Entry Point                                        #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #

"""
WSGI entry point for the DailyCheckin ledger API
Serve with: waitress-serve --port=9374 wsgi:application
"""

import sys
import os

# Add project root to Python path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from app.web import create_app  # pylint: disable=wrong-import-position

application = create_app()

# For development server
if __name__ == '__main__':
    application.run(host='127.0.0.1', port=5001, debug=False)
