# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""DailyCheckin application layer: Discord bot wiring and the ledger web API."""
