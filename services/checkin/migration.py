# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""
Upgrade stored user records to the current data version.

Version 1 records carried a single ``total_points`` counter.  Version 2 splits
it into ``total_exp`` (the full old total) and a spendable ``balance`` seeded
with 20% of the old total; an ``admin`` transaction documents the grant.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from services.checkin.levels import level_for
from services.checkin.models import (
    DATA_VERSION,
    TX_ADMIN,
    new_transaction_id,
    now_utc_iso,
)

logger = logging.getLogger("dck.ledger.migration")

STARTING_BALANCE_RATE = 0.2


def needs_migration(raw: Dict[str, Any]) -> bool:
    return int(raw.get("data_version") or 1) < DATA_VERSION


def migrate_user_payload(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Return a version-2 copy of the stored user dict ``raw``."""
    if not needs_migration(raw):
        return raw

    data = dict(raw)
    total_points = int(data.pop("total_points", 0) or 0)
    total_exp = max(int(data.get("total_exp") or 0), total_points)
    balance = int(total_exp * STARTING_BALANCE_RATE)
    tier = level_for(total_exp)

    data["total_exp"] = total_exp
    data["balance"] = balance
    data["level"] = tier.level
    data["level_name"] = tier.name
    data["level_icon"] = tier.icon
    data.setdefault("titles", [])
    data.setdefault("active_days", int(data.get("total_checkin_days") or 0))
    log = list(data.get("transaction_log") or [])
    log.insert(0, {
        "id": new_transaction_id(),
        "timestamp": now_utc_iso(),
        "type": TX_ADMIN,
        "amount": balance,
        "resulting_balance": balance,
        "resulting_exp": total_exp,
        "description": f"Starting balance after upgrade (20% of {total_points} points)",
        "source": "migration",
        "details": {"from_version": int(raw.get("data_version") or 1)},
    })
    data["transaction_log"] = log
    data["data_version"] = DATA_VERSION

    logger.info("Migrated user %s to data version %d (exp=%d, balance=%d)",
                data.get("user_id"), DATA_VERSION, total_exp, balance)
    return data
