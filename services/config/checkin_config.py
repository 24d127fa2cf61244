# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""
Check-in configuration: typed settings, sanitising and JSON persistence.

The on-disk file is ``config.json`` inside the ledger data directory.  It is
seeded from :data:`DEFAULT_CONFIG` on first run; invalid JSON is logged and
replaced by the defaults so a broken file never stops the bot.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from threading import RLock
from typing import Any, Dict, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from services.exceptions import ConfigSaveError

logger = logging.getLogger("dck.config")

CYCLE_TYPES = ("daily", "weekly", "monthly")
REPLY_MODES = ("auto", "text", "image")
DEFAULT_TIMEZONE = "Asia/Shanghai"

DEFAULT_CONFIG: Dict[str, Any] = {
    "enabled": True,
    "debug": False,
    "timezone": DEFAULT_TIMEZONE,
    "cooldown_seconds": 5,
    "group_configs": {},
    "checkin_reply_mode": "auto",
    "checkin_log_enabled": True,
    "checkin_points": {
        "min_points": 10,
        "max_points": 50,
        "enable_consecutive_bonus": True,
        "consecutive_bonus_per_day": 2,
        "max_consecutive_bonus": 20,
        "enable_weekend_bonus": False,
        "weekend_bonus": 5,
        "special_days": [],
    },
    "checkin_refresh_time": {
        "hour": 0,
        "minute": 0,
        "cycle_type": "daily",
        "cycle_count": 1,
    },
    "history_limit": 365,
    "retention_days": 90,
    "leaderboard_top_count": 10,
    "render_service_url": "",
    "render_timeout_seconds": 5.0,
}


@dataclass(frozen=True)
class CycleConfig:
    """Where the day ends and how many check-ins a cycle allows."""

    reset_hour: int = 0
    reset_minute: int = 0
    cycle_type: str = "daily"
    max_checkins_per_cycle: int = 1


@dataclass(frozen=True)
class SpecialDay:
    date: str
    bonus: int
    name: str = ""


@dataclass(frozen=True)
class PointsConfig:
    """Inputs of the points calculator."""

    min_points: int = 10
    max_points: int = 50
    enable_consecutive_bonus: bool = True
    consecutive_bonus_per_day: int = 2
    max_consecutive_bonus: int = 20
    enable_weekend_bonus: bool = False
    weekend_bonus: int = 5
    special_days: Tuple[SpecialDay, ...] = ()


@dataclass(frozen=True)
class CheckinConfig:
    """Fully sanitised check-in configuration."""

    enabled: bool = True
    debug: bool = False
    timezone: str = DEFAULT_TIMEZONE
    cooldown_seconds: int = 5
    cycle: CycleConfig = field(default_factory=CycleConfig)
    points: PointsConfig = field(default_factory=PointsConfig)
    history_limit: int = 365
    retention_days: int = 90
    leaderboard_top_count: int = 10
    checkin_reply_mode: str = "auto"
    render_service_url: str = ""
    render_timeout_seconds: float = 5.0
    checkin_log_enabled: bool = True
    group_configs: Dict[str, Dict[str, bool]] = field(default_factory=dict)

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def is_group_enabled(self, group_id: Optional[str]) -> bool:
        """Global switch plus the per-group ``enabled``/``enable_checkin`` flags."""
        if not self.enabled:
            return False
        if group_id is None:
            return True
        group_cfg = self.group_configs.get(str(group_id)) or {}
        return group_cfg.get("enabled", True) and group_cfg.get("enable_checkin", True)

    def is_logging_enabled(self, group_id: Optional[str]) -> bool:
        """Whether check-in attempts in ``group_id`` go to the check-in log."""
        if not self.checkin_log_enabled:
            return False
        if group_id is None:
            return True
        return bool((self.group_configs.get(str(group_id)) or {}).get("enable_logging", True))


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def sanitize_config(raw: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Merge ``raw`` over the defaults and clamp every field into its valid range."""

    merged = copy.deepcopy(DEFAULT_CONFIG)
    if not isinstance(raw, dict):
        return merged

    for key, value in raw.items():
        if key in ("checkin_points", "checkin_refresh_time") and isinstance(value, dict):
            merged[key].update(value)
        elif key in merged:
            merged[key] = value

    refresh = merged["checkin_refresh_time"]
    refresh["hour"] = _clamp(_as_int(refresh.get("hour"), 0), 0, 23)
    refresh["minute"] = _clamp(_as_int(refresh.get("minute"), 0), 0, 59)
    if refresh.get("cycle_type") not in CYCLE_TYPES:
        logger.warning("Unknown cycle_type %r, using daily", refresh.get("cycle_type"))
        refresh["cycle_type"] = "daily"
    refresh["cycle_count"] = max(1, _as_int(refresh.get("cycle_count"), 1))

    points = merged["checkin_points"]
    points["min_points"] = max(0, _as_int(points.get("min_points"), 10))
    points["max_points"] = max(0, _as_int(points.get("max_points"), 50))
    if points["min_points"] > points["max_points"]:
        points["min_points"], points["max_points"] = points["max_points"], points["min_points"]
    points["consecutive_bonus_per_day"] = max(0, _as_int(points.get("consecutive_bonus_per_day"), 2))
    points["max_consecutive_bonus"] = max(0, _as_int(points.get("max_consecutive_bonus"), 20))
    points["weekend_bonus"] = max(0, _as_int(points.get("weekend_bonus"), 5))
    points["enable_consecutive_bonus"] = bool(points.get("enable_consecutive_bonus"))
    points["enable_weekend_bonus"] = bool(points.get("enable_weekend_bonus"))
    special_days = []
    for day in points.get("special_days") or []:
        if isinstance(day, dict) and day.get("date"):
            special_days.append({
                "date": str(day["date"]),
                "bonus": _as_int(day.get("bonus"), 0),
                "name": str(day.get("name", "")),
            })
    points["special_days"] = special_days

    merged["leaderboard_top_count"] = _clamp(_as_int(merged.get("leaderboard_top_count"), 10), 1, 50)
    merged["history_limit"] = _clamp(_as_int(merged.get("history_limit"), 365), 1, 365)
    merged["retention_days"] = max(1, _as_int(merged.get("retention_days"), 90))
    merged["cooldown_seconds"] = max(0, _as_int(merged.get("cooldown_seconds"), 5))
    if merged.get("checkin_reply_mode") not in REPLY_MODES:
        merged["checkin_reply_mode"] = "auto"
    try:
        merged["render_timeout_seconds"] = max(0.5, float(merged.get("render_timeout_seconds")))
    except (TypeError, ValueError):
        merged["render_timeout_seconds"] = 5.0

    try:
        ZoneInfo(str(merged.get("timezone")))
    except (ZoneInfoNotFoundError, ValueError, TypeError):
        logger.warning("Unknown timezone '%s'; falling back to %s", merged.get("timezone"), DEFAULT_TIMEZONE)
        merged["timezone"] = DEFAULT_TIMEZONE

    if not isinstance(merged.get("group_configs"), dict):
        merged["group_configs"] = {}
    merged["enabled"] = bool(merged.get("enabled"))
    merged["debug"] = bool(merged.get("debug"))
    merged["checkin_log_enabled"] = bool(merged.get("checkin_log_enabled"))
    return merged


def build_checkin_config(raw: Optional[Dict[str, Any]] = None) -> CheckinConfig:
    """Build a typed :class:`CheckinConfig` from a raw (possibly partial) dict."""

    data = sanitize_config(raw)
    refresh = data["checkin_refresh_time"]
    points = data["checkin_points"]
    return CheckinConfig(
        enabled=data["enabled"],
        debug=data["debug"],
        timezone=data["timezone"],
        cooldown_seconds=data["cooldown_seconds"],
        cycle=CycleConfig(
            reset_hour=refresh["hour"],
            reset_minute=refresh["minute"],
            cycle_type=refresh["cycle_type"],
            max_checkins_per_cycle=refresh["cycle_count"],
        ),
        points=PointsConfig(
            min_points=points["min_points"],
            max_points=points["max_points"],
            enable_consecutive_bonus=points["enable_consecutive_bonus"],
            consecutive_bonus_per_day=points["consecutive_bonus_per_day"],
            max_consecutive_bonus=points["max_consecutive_bonus"],
            enable_weekend_bonus=points["enable_weekend_bonus"],
            weekend_bonus=points["weekend_bonus"],
            special_days=tuple(SpecialDay(**day) for day in points["special_days"]),
        ),
        history_limit=data["history_limit"],
        retention_days=data["retention_days"],
        leaderboard_top_count=data["leaderboard_top_count"],
        checkin_reply_mode=data["checkin_reply_mode"],
        render_service_url=str(data.get("render_service_url") or ""),
        render_timeout_seconds=data["render_timeout_seconds"],
        checkin_log_enabled=data["checkin_log_enabled"],
        group_configs={str(k): dict(v) for k, v in data["group_configs"].items() if isinstance(v, dict)},
    )


class CheckinConfigStore:
    """Loads and saves ``config.json``, caching the sanitised result."""

    def __init__(self, config_file: Path):
        self.config_file = Path(config_file)
        self._lock = RLock()
        self._cache: Optional[CheckinConfig] = None
        self._raw: Optional[Dict[str, Any]] = None

    def ensure_layout(self) -> None:
        """Seed the config file with defaults when missing."""
        if not self.config_file.exists():
            logger.debug("Seeding check-in config with defaults at %s", self.config_file)
            self._write(DEFAULT_CONFIG)

    def invalidate_cache(self) -> None:
        with self._lock:
            self._cache = None
            self._raw = None

    def load(self, *, refresh: bool = False) -> CheckinConfig:
        """Return the cached config, re-reading the file on ``refresh``."""
        with self._lock:
            if refresh:
                self.invalidate_cache()
            if self._cache is None:
                self.ensure_layout()
                self._raw = self._read()
                self._cache = build_checkin_config(self._raw)
            return self._cache

    def load_raw(self) -> Dict[str, Any]:
        """Sanitised dict form, as served to the admin API."""
        with self._lock:
            self.load()
            return copy.deepcopy(self._raw)

    def update(self, changes: Dict[str, Any]) -> CheckinConfig:
        """Merge ``changes`` into the stored config, persist and return the new config."""
        with self._lock:
            current = self.load_raw()
            for key, value in (changes or {}).items():
                if isinstance(value, dict) and isinstance(current.get(key), dict):
                    current[key].update(value)
                else:
                    current[key] = value
            sanitized = sanitize_config(current)
            self._write(sanitized)
            self._raw = sanitized
            self._cache = build_checkin_config(sanitized)
            logger.info("Check-in configuration updated: %s", sorted((changes or {}).keys()))
            return self._cache

    def _read(self) -> Dict[str, Any]:
        try:
            with self.config_file.open("r", encoding="utf-8") as fh:
                return sanitize_config(json.load(fh))
        except FileNotFoundError:
            logger.warning("Check-in config file disappeared; recreating")
            self._write(DEFAULT_CONFIG)
            return sanitize_config(DEFAULT_CONFIG)
        except json.JSONDecodeError as exc:
            logger.error("Invalid JSON in check-in config (%s); resetting to defaults", exc)
            self._write(DEFAULT_CONFIG)
            return sanitize_config(DEFAULT_CONFIG)

    def _write(self, data: Dict[str, Any]) -> None:
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.config_file.parent, prefix=".config_", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, ensure_ascii=False)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.config_file)
        except OSError as exc:
            raise ConfigSaveError(f"Could not write {self.config_file}: {exc}",
                                  details={"path": str(self.config_file)}) from exc

