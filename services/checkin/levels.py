# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""
Level tiers and titles.

Levels are derived from ``total_exp`` only and never go down for a stored
record. Titles are granted by level, total check-in days, total exp, or a
named special predicate that the check-in flow evaluates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Union

from services.checkin.models import UserLedgerRecord, UserTitle
from services.exceptions import TitleError

logger = logging.getLogger("dck.checkin.levels")


@dataclass(frozen=True)
class LevelTier:
    level: int
    name: str
    min_exp: int
    icon: str
    color: str
    signin_bonus: float  # fraction added to the award multiplier


# Level definitions with exp thresholds
LEVEL_TIERS: List[LevelTier] = [
    LevelTier(1, "初来乍到", 0, "🌱", "#8B4513", 0.0),
    LevelTier(2, "活跃分子", 100, "🌿", "#228B22", 0.10),
    LevelTier(3, "群友达人", 500, "🌳", "#32CD32", 0.15),
    LevelTier(4, "资深群友", 2000, "⭐", "#FFD700", 0.20),
    LevelTier(5, "名动全群", 5000, "👑", "#FF1493", 0.25),
    LevelTier(6, "传说大佬", 10000, "💎", "#00CED1", 0.30),
    LevelTier(7, "神话存在", 50000, "🌟", "#FF4500", 0.35),
]

MAX_LEVEL = LEVEL_TIERS[-1].level

ACQUIRE_LEVEL = "level"
ACQUIRE_DAYS = "days"
ACQUIRE_EXP = "exp"
ACQUIRE_SPECIAL = "special"


@dataclass(frozen=True)
class TitleDefinition:
    id: str
    name: str
    description: str
    icon: str
    color: str
    acquire_type: str
    acquire_condition: Union[int, str]
    expire_days: int = 0  # 0 = permanent


TITLES: List[TitleDefinition] = [
    TitleDefinition(f"level_{tier.level}", tier.name, f"Reached level {tier.level}",
                    tier.icon, tier.color, ACQUIRE_LEVEL, tier.level)
    for tier in LEVEL_TIERS
] + [
    TitleDefinition("early_bird", "早起的鸟儿", "Checked in before 08:00 seven cycles in a row",
                    "🐦", "#FFA500", ACQUIRE_SPECIAL, "early_checkin_7", 30),
    TitleDefinition("night_owl", "夜猫子", "Checked in after 23:00 seven cycles in a row",
                    "🦉", "#4B0082", ACQUIRE_SPECIAL, "late_checkin_7", 30),
    TitleDefinition("checkin_master", "签到达人", "Checked in on 30 days",
                    "📅", "#FF6347", ACQUIRE_DAYS, 30),
    TitleDefinition("wealthy", "小富翁", "Collected 1000 exp",
                    "💰", "#FFD700", ACQUIRE_EXP, 1000),
]

_TITLES_BY_ID: Dict[str, TitleDefinition] = {t.id: t for t in TITLES}


def level_for(total_exp: int) -> LevelTier:
    """Highest tier whose threshold ``total_exp`` reaches."""
    for tier in reversed(LEVEL_TIERS):
        if total_exp >= tier.min_exp:
            return tier
    return LEVEL_TIERS[0]


def tier_for_level(level: int) -> LevelTier:
    for tier in LEVEL_TIERS:
        if tier.level == level:
            return tier
    return LEVEL_TIERS[0] if level < 1 else LEVEL_TIERS[-1]


def exp_to_next_level(total_exp: int) -> Optional[int]:
    """Exp still missing for the next tier, or None at max level."""
    current = level_for(total_exp)
    if current.level >= MAX_LEVEL:
        return None
    return tier_for_level(current.level + 1).min_exp - total_exp


def signin_bonus_for(level: int) -> float:
    return tier_for_level(level).signin_bonus


def apply_level(record: UserLedgerRecord) -> bool:
    """Raise ``record``'s level to match its exp. Returns True on level-up."""
    tier = level_for(record.total_exp)
    if tier.level > record.level:
        record.level = tier.level
        record.level_name = tier.name
        record.level_icon = tier.icon
        return True
    if not record.level_name:
        current = tier_for_level(record.level)
        record.level_name = current.name
        record.level_icon = current.icon
    return False


# ---------------------
# Titles
# ---------------------

def get_title(title_id: str) -> Optional[TitleDefinition]:
    return _TITLES_BY_ID.get(title_id)


def is_title_active(title: UserTitle, today: date) -> bool:
    return not title.expires_at or today.isoformat() <= title.expires_at


def meets_title_condition(record: UserLedgerRecord, title: TitleDefinition,
                          special_flags: Iterable[str] = ()) -> bool:
    if title.acquire_type == ACQUIRE_LEVEL:
        return record.level >= int(title.acquire_condition)
    if title.acquire_type == ACQUIRE_DAYS:
        return record.total_checkin_days >= int(title.acquire_condition)
    if title.acquire_type == ACQUIRE_EXP:
        return record.total_exp >= int(title.acquire_condition)
    if title.acquire_type == ACQUIRE_SPECIAL:
        return title.acquire_condition in set(special_flags)
    return False


def grant_eligible_titles(record: UserLedgerRecord, today: date,
                          special_flags: Iterable[str] = ()) -> List[str]:
    """Grant every title ``record`` now qualifies for.

    An expired title whose condition holds again is renewed in place.
    Returns the ids of newly granted or renewed titles.
    """
    flags = set(special_flags)
    owned = {t.title_id: t for t in record.titles}
    granted: List[str] = []
    for definition in TITLES:
        if not meets_title_condition(record, definition, flags):
            continue
        expires_at = None
        if definition.expire_days > 0:
            expires_at = (today + timedelta(days=definition.expire_days)).isoformat()
        existing = owned.get(definition.id)
        if existing is None:
            record.titles.append(UserTitle(definition.id, today.isoformat(), expires_at))
            granted.append(definition.id)
        elif not is_title_active(existing, today):
            existing.acquired_at = today.isoformat()
            existing.expires_at = expires_at
            granted.append(definition.id)
    if granted:
        logger.debug("User %s granted titles %s", record.user_id, granted)
    return granted


def equip_title(record: UserLedgerRecord, title_id: Optional[str], today: date) -> None:
    """Equip ``title_id`` (or unequip everything when None)."""
    if title_id is None:
        for title in record.titles:
            title.equipped = False
        record.equipped_title_id = None
        return

    owned = next((t for t in record.titles if t.title_id == title_id), None)
    if owned is None:
        raise TitleError(f"Title {title_id} is not owned", error_code="TITLE_NOT_OWNED")
    if not is_title_active(owned, today):
        raise TitleError(f"Title {title_id} has expired", error_code="TITLE_EXPIRED")
    for title in record.titles:
        title.equipped = title.title_id == title_id
    record.equipped_title_id = title_id


def equipped_title(record: UserLedgerRecord, today: date) -> Optional[TitleDefinition]:
    """Definition of the equipped title while it is still active."""
    if not record.equipped_title_id:
        return None
    for title in record.titles:
        if title.title_id == record.equipped_title_id and is_title_active(title, today):
            return get_title(title.title_id)
    return None
