# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK) - Check-in Log                                            #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""
Append-only log of check-in attempts.

Every attempt (awarded, refused, repeated) becomes one entry in
``checkin_logs.json``. The file is written with the same atomic
temp-file/backup discipline as the ledger and read back through the same
corruption fallback. Logging can be switched off globally or per group.
"""

from __future__ import annotations

import copy
import math
import uuid
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from threading import RLock
from typing import Any, Callable, Dict, List, Optional

from services.checkin.ledger_store import read_json_with_fallback, write_json_atomic
from services.config.checkin_config import CheckinConfig
from services.exceptions import LedgerPersistenceError, LedgerValidationError
from utils.logging_utils import get_module_logger
from utils.observability import metrics

logger = get_module_logger("checkin_log")

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"
STATUS_REPEAT = "repeat"
STATUSES = (STATUS_SUCCESS, STATUS_FAILED, STATUS_REPEAT)
TIME_RANGES = ("today", "week", "month", "year", "all")
RANGE_DAYS = {"week": 7, "month": 30, "year": 365}
TOP_COUNT = 10
MAX_PAGE_SIZE = 200
MAX_TREND_DAYS = 365


@dataclass
class CheckinLogEntry:
    id: str
    timestamp: float
    date: str
    time: str
    user_id: str
    status: str
    nickname: str = ""
    group_id: Optional[str] = None
    group_name: str = ""
    points: int = 0
    consecutive_days: int = 0
    rank: int = 0
    cycle_id: str = ""
    reply_mode: str = "auto"
    breakdown: Dict[str, Any] = field(default_factory=dict)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_json(cls, raw: Dict[str, Any]) -> "CheckinLogEntry":
        known = {k: raw[k] for k in cls.__dataclass_fields__ if k in raw}
        known.setdefault("id", uuid.uuid4().hex)
        known.setdefault("timestamp", 0.0)
        known.setdefault("date", "")
        known.setdefault("time", "")
        known.setdefault("user_id", "")
        known.setdefault("status", STATUS_FAILED)
        return cls(**known)


class CheckinLogService:
    """File-backed check-in log with paged queries, statistics and a daily trend."""

    def __init__(self, path: Path, config_provider: Callable[[], CheckinConfig],
                 now_fn: Optional[Callable[[], datetime]] = None):
        self.path = Path(path)
        self.config_provider = config_provider
        self.now_fn = now_fn
        self._lock = RLock()
        self._entries: Optional[List[CheckinLogEntry]] = None

    def _now(self, now: Optional[datetime]) -> datetime:
        if now is not None:
            return now
        if self.now_fn is not None:
            return self.now_fn()
        return datetime.now(self.config_provider().tzinfo)

    def _cached(self) -> List[CheckinLogEntry]:
        with self._lock:
            if self._entries is None:
                raw = read_json_with_fallback(self.path) or {}
                logs = raw.get("logs") if isinstance(raw.get("logs"), list) else []
                self._entries = [CheckinLogEntry.from_json(item) for item in logs if isinstance(item, dict)]
            return self._entries

    def _write(self, entries: List[CheckinLogEntry]) -> None:
        write_json_atomic(self.path, {"logs": [entry.to_json() for entry in entries]})
        self._entries = entries

    def _snapshot(self) -> List[CheckinLogEntry]:
        with self._lock:
            return copy.deepcopy(self._cached())

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------
    def record(self, user_id: str, status: str, *, nickname: str = "", group_id: Optional[str] = None,
               group_name: Optional[str] = None, points: int = 0, consecutive_days: int = 0,
               rank: int = 0, cycle_id: str = "", reply_mode: str = "auto",
               breakdown: Optional[Dict[str, Any]] = None, error_code: Optional[str] = None,
               error_message: Optional[str] = None,
               now: Optional[datetime] = None) -> Optional[CheckinLogEntry]:
        """Append one attempt; returns None when logging is off for the group or the write failed."""
        if status not in STATUSES:
            raise LedgerValidationError(f"Unknown log status '{status}'")
        group_id = str(group_id) if group_id is not None else None
        if not self.config_provider().is_logging_enabled(group_id):
            return None

        now = self._now(now)
        entry = CheckinLogEntry(
            id=f"log_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:9]}",
            timestamp=now.timestamp(),
            date=now.date().isoformat(),
            time=now.strftime("%H:%M:%S"),
            user_id=str(user_id),
            status=status,
            nickname=nickname or "",
            group_id=group_id,
            group_name=group_name or "",
            points=int(points),
            consecutive_days=int(consecutive_days),
            rank=int(rank),
            cycle_id=cycle_id,
            reply_mode=reply_mode,
            breakdown=dict(breakdown or {}),
            error_code=error_code,
            error_message=error_message,
        )
        with self._lock:
            entries = self._cached() + [entry]
            try:
                self._write(entries)
            except LedgerPersistenceError as exc:
                metrics.increment("checkin_log.write_failures")
                logger.error("Could not append check-in log entry for %s (group=%s): %s",
                             user_id, group_id, exc)
                return None
        metrics.increment(f"checkin_log.{status}")
        logger.debug("Logged %s check-in of %s in %s (%d points)", status, user_id, group_id, entry.points)
        return copy.deepcopy(entry)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def query_logs(self, *, group_id: Optional[str] = None, user_id: Optional[str] = None,
                   status: str = "all", start_date: Optional[str] = None,
                   end_date: Optional[str] = None, page: int = 1, page_size: int = 50,
                   order: str = "desc") -> Dict[str, Any]:
        """Filtered page of entries, newest first unless ``order`` is ``asc``."""
        if status != "all" and status not in STATUSES:
            raise LedgerValidationError(f"Unknown log status '{status}'", error_code="INVALID_STATUS")
        page = max(1, int(page))
        page_size = max(1, min(int(page_size), MAX_PAGE_SIZE))

        entries = self._snapshot()
        if user_id:
            entries = [e for e in entries if e.user_id == str(user_id)]
        if group_id:
            entries = [e for e in entries if e.group_id == str(group_id)]
        if start_date:
            entries = [e for e in entries if e.date >= start_date]
        if end_date:
            entries = [e for e in entries if e.date <= end_date]
        if status != "all":
            entries = [e for e in entries if e.status == status]
        entries = [e for _, e in sorted(enumerate(entries), key=lambda pair: (pair[1].timestamp, pair[0]),
                                        reverse=(order != "asc"))]

        total = len(entries)
        start = (page - 1) * page_size
        return {
            "page": page,
            "page_size": page_size,
            "total": total,
            "total_pages": math.ceil(total / page_size),
            "logs": [e.to_json() for e in entries[start:start + page_size]],
        }

    def get_log(self, log_id: str) -> Optional[CheckinLogEntry]:
        return next((e for e in self._snapshot() if e.id == log_id), None)

    def _in_range(self, time_range: str, group_id: Optional[str],
                  now: datetime) -> List[CheckinLogEntry]:
        if time_range not in TIME_RANGES:
            raise LedgerValidationError(f"Unknown time range '{time_range}'", error_code="INVALID_TIME_RANGE")
        entries = self._snapshot()
        if group_id:
            entries = [e for e in entries if e.group_id == str(group_id)]
        if time_range == "today":
            today = now.date().isoformat()
            entries = [e for e in entries if e.date == today]
        elif time_range in RANGE_DAYS:
            cutoff = (now - timedelta(days=RANGE_DAYS[time_range])).timestamp()
            entries = [e for e in entries if e.timestamp >= cutoff]
        return entries

    def get_log_stats(self, time_range: str = "all", group_id: Optional[str] = None,
                      now: Optional[datetime] = None) -> Dict[str, Any]:
        """Totals, per-day figures and top users/groups over ``time_range``.

        Only awarded check-ins count towards check-in and point totals;
        ``total_logs`` and ``failed`` cover every attempt in the range.
        """
        entries = self._in_range(time_range, group_id, self._now(now))
        awarded = [e for e in entries if e.status == STATUS_SUCCESS]

        days = 1
        if entries:
            stamps = [e.timestamp for e in entries]
            days = max(1, math.ceil((max(stamps) - min(stamps)) / 86400))

        daily: Dict[str, Dict[str, Any]] = {}
        daily_users: Dict[str, set] = defaultdict(set)
        users: Dict[str, Dict[str, Any]] = {}
        groups: Dict[str, Dict[str, Any]] = {}
        for e in awarded:
            day = daily.setdefault(e.date, {"date": e.date, "checkin_count": 0, "total_points": 0, "user_count": 0})
            day["checkin_count"] += 1
            day["total_points"] += e.points
            daily_users[e.date].add(e.user_id)

            user = users.setdefault(e.user_id, {"user_id": e.user_id, "nickname": e.nickname,
                                                "checkin_count": 0, "total_points": 0,
                                                "last_checkin_time": 0.0})
            user["checkin_count"] += 1
            user["total_points"] += e.points
            user["last_checkin_time"] = max(user["last_checkin_time"], e.timestamp)

            gid = e.group_id or ""
            group = groups.setdefault(gid, {"group_id": e.group_id, "group_name": e.group_name,
                                            "checkin_count": 0, "total_points": 0, "users": set()})
            group["checkin_count"] += 1
            group["total_points"] += e.points
            group["users"].add(e.user_id)

        for day_key, day in daily.items():
            day["user_count"] = len(daily_users[day_key])
        top_groups = sorted(groups.values(), key=lambda g: g["checkin_count"], reverse=True)[:TOP_COUNT]

        return {
            "time_range": time_range,
            "total_checkins": len(awarded),
            "total_points": sum(e.points for e in awarded),
            "total_users": len({e.user_id for e in entries}),
            "total_groups": len({e.group_id for e in entries if e.group_id}),
            "daily_average": round(len(awarded) / days, 2),
            "total_logs": len(entries),
            "failed": sum(1 for e in entries if e.status == STATUS_FAILED),
            "daily_stats": sorted(daily.values(), key=lambda d: d["date"], reverse=True),
            "top_users": sorted(users.values(), key=lambda u: u["total_points"], reverse=True)[:TOP_COUNT],
            "top_groups": [{k: (len(v) if k == "users" else v) for k, v in g.items()} for g in top_groups],
        }

    def get_daily_trend(self, days: int = 30, group_id: Optional[str] = None,
                        now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Awarded check-ins and points per day for the last ``days`` days, today included."""
        days = max(1, min(int(days), MAX_TREND_DAYS))
        today = self._now(now).date()
        trend = {(today - timedelta(days=offset)).isoformat(): {"count": 0, "points": 0}
                 for offset in range(days - 1, -1, -1)}
        for e in self._snapshot():
            if e.status != STATUS_SUCCESS or (group_id and e.group_id != str(group_id)):
                continue
            bucket = trend.get(e.date)
            if bucket is not None:
                bucket["count"] += 1
                bucket["points"] += e.points
        return [{"date": day, **bucket} for day, bucket in trend.items()]

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------
    def delete_logs_older_than(self, days: int, now: Optional[datetime] = None) -> int:
        """Drop entries older than ``days`` days; returns how many were removed."""
        cutoff = (self._now(now) - timedelta(days=max(0, int(days)))).timestamp()
        with self._lock:
            entries = self._cached()
            kept = [e for e in entries if e.timestamp >= cutoff]
            removed = len(entries) - len(kept)
            if removed:
                self._write(kept)
                logger.info("Deleted %d check-in log entries older than %d days", removed, days)
            return removed

