# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""Points earned by a single check-in."""

from __future__ import annotations

import random
from dataclasses import dataclass, field, asdict
from datetime import date
from typing import Any, Dict, List, Optional

from services.config.checkin_config import PointsConfig

_system_rng = random.SystemRandom()


@dataclass(frozen=True)
class PointsBreakdown:
    base_points: int
    consecutive_bonus: int = 0
    weekend_bonus: int = 0
    special_bonus: int = 0
    special_day_name: str = ""
    lines: List[str] = field(default_factory=list)

    @property
    def bonus_points(self) -> int:
        return self.consecutive_bonus + self.weekend_bonus + self.special_bonus

    @property
    def total_points(self) -> int:
        return self.base_points + self.bonus_points

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["bonus_points"] = self.bonus_points
        data["total_points"] = self.total_points
        return data


def calculate_points(
    config: PointsConfig,
    consecutive_days: int,
    day: Optional[date] = None,
    rng: Optional[random.Random] = None,
) -> PointsBreakdown:
    """Roll the base points and add every bonus that applies on ``day``.

    ``consecutive_days`` is the streak including this check-in.  ``day`` is the
    effective date of the check-in (today when omitted); ``rng`` can be seeded
    for reproducible results.
    """
    rng = rng or _system_rng
    day = day or date.today()
    low, high = sorted((config.min_points, config.max_points))

    base = rng.randint(low, high)
    lines = [f"Base points: {base}"]

    consecutive = 0
    if config.enable_consecutive_bonus and consecutive_days > 1:
        consecutive = min((consecutive_days - 1) * config.consecutive_bonus_per_day,
                          config.max_consecutive_bonus)
        if consecutive > 0:
            lines.append(f"Streak bonus: +{consecutive} ({consecutive_days} in a row)")

    weekend = 0
    if config.enable_weekend_bonus and day.weekday() >= 5:
        weekend = config.weekend_bonus
        lines.append(f"Weekend bonus: +{weekend}")

    special = 0
    special_name = ""
    today_str = day.isoformat()
    for special_day in config.special_days:
        if special_day.date == today_str:
            special = special_day.bonus
            special_name = special_day.name
            lines.append(f"{special_day.name or 'Special day'} bonus: +{special}")
            break

    return PointsBreakdown(
        base_points=base,
        consecutive_bonus=consecutive,
        weekend_bonus=weekend,
        special_bonus=special,
        special_day_name=special_name,
        lines=lines,
    )
