# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""
Cycle arithmetic for check-ins.

A "day" ends at the configured reset time instead of midnight: an instant
before today's ``reset_hour:reset_minute`` belongs to the previous effective
date.  Cycle ids are derived from that effective date:

* daily   -> ``YYYY-MM-DD``
* weekly  -> ``YYYY-Www`` (ISO year and week, weeks start on Monday)
* monthly -> ``YYYY-MM``

All ids of one cycle type sort lexicographically in chronological order, so
comparisons are plain string comparisons.  Every function here is pure; the
caller passes ``now`` already converted to the configured timezone.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, tzinfo
from typing import Optional

from services.config.checkin_config import CycleConfig

CYCLE_LABELS = {
    "daily": "today",
    "weekly": "this week",
    "monthly": "this month",
}


def local_now(tz: Optional[tzinfo] = None) -> datetime:
    """Current wall-clock time in ``tz`` (system local time when ``tz`` is None)."""
    return datetime.now(tz) if tz is not None else datetime.now()


def effective_date(now: datetime, config: CycleConfig) -> date:
    """Calendar date the instant ``now`` is booked on."""
    reset_at = time(config.reset_hour, config.reset_minute)
    if now.time().replace(tzinfo=None) < reset_at:
        return now.date() - timedelta(days=1)
    return now.date()


def cycle_id_for_date(day: date, cycle_type: str) -> str:
    if cycle_type == "weekly":
        iso_year, iso_week, _ = day.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if cycle_type == "monthly":
        return f"{day.year}-{day.month:02d}"
    return day.isoformat()


def cycle_start_date(day: date, cycle_type: str) -> date:
    """First effective date of the cycle containing ``day``."""
    if cycle_type == "weekly":
        return day - timedelta(days=day.weekday())
    if cycle_type == "monthly":
        return day.replace(day=1)
    return day


def current_cycle_id(now: datetime, config: CycleConfig) -> str:
    return cycle_id_for_date(effective_date(now, config), config.cycle_type)


def previous_cycle_id(now: datetime, config: CycleConfig) -> str:
    """Id of the cycle that ended right before the current one started."""
    start = cycle_start_date(effective_date(now, config), config.cycle_type)
    return cycle_id_for_date(start - timedelta(days=1), config.cycle_type)


def is_same_or_later_cycle(a: str, b: str) -> bool:
    """True when cycle ``a`` is ``b`` or comes after it (same cycle type)."""
    return a >= b


def cycle_label(cycle_type: str) -> str:
    return CYCLE_LABELS.get(cycle_type, "today")


def cycle_id_of_entry_date(entry_date: str, cycle_type: str) -> str:
    """Cycle id of a stored ``YYYY-MM-DD`` effective date."""
    return cycle_id_for_date(date.fromisoformat(entry_date), cycle_type)
