# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""
Read-only ranking queries.

Rankings read the store's copies without taking user locks; they may trail an
in-flight check-in by one write.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from services.checkin.cycle_clock import current_cycle_id, effective_date, local_now
from services.checkin.ledger_store import LedgerStore
from services.checkin.models import UserLedgerRecord
from services.config.checkin_config import CheckinConfig
from services.exceptions import LedgerValidationError

SORT_FIELDS = ("total_exp", "balance", "active_days", "total_checkin_days", "consecutive_days")
PERIODS = ("week", "month", "year", "all")

PERIOD_TITLES = {
    "week": "Weekly leaderboard",
    "month": "Monthly leaderboard",
    "year": "Yearly leaderboard",
    "all": "All-time leaderboard",
}


@dataclass(frozen=True)
class RankingEntry:
    rank: int
    user_id: str
    nickname: str
    total_exp: int
    balance: int
    level: int
    level_name: str
    level_icon: str
    active_days: int
    total_checkin_days: int
    consecutive_days: int
    period_points: int = 0
    period_checkins: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Leaderboard:
    period: str
    title: str
    group_id: Optional[str]
    group_name: str
    updated_at: str
    entries: List[RankingEntry] = field(default_factory=list)
    my_rank: Optional[RankingEntry] = None
    total: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period,
            "title": self.title,
            "group_id": self.group_id,
            "group_name": self.group_name,
            "updated_at": self.updated_at,
            "entries": [e.to_dict() for e in self.entries],
            "my_rank": self.my_rank.to_dict() if self.my_rank else None,
            "total": self.total,
        }


def _entry(rank: int, record: UserLedgerRecord, period_points: int = 0, period_checkins: int = 0) -> RankingEntry:
    return RankingEntry(
        rank=rank,
        user_id=record.user_id,
        nickname=record.nickname or record.user_id,
        total_exp=record.total_exp,
        balance=record.balance,
        level=record.level,
        level_name=record.level_name,
        level_icon=record.level_icon,
        active_days=record.active_days,
        total_checkin_days=record.total_checkin_days,
        consecutive_days=record.consecutive_days,
        period_points=period_points,
        period_checkins=period_checkins,
    )


def period_start(period: str, today: date) -> Optional[date]:
    """First effective date included in ``period`` (None = all time)."""
    if period == "week":
        return today - timedelta(days=today.weekday())
    if period == "month":
        return today.replace(day=1)
    if period == "year":
        return today.replace(month=1, day=1)
    return None


def rank_records(records: Iterable[UserLedgerRecord], sort_by: str) -> List[UserLedgerRecord]:
    """Sort descending by ``sort_by``; ties keep the lower user id first."""
    if sort_by not in SORT_FIELDS:
        raise LedgerValidationError(f"Unknown sort field '{sort_by}'", error_code="INVALID_SORT")
    return sorted(records, key=lambda r: (-getattr(r, sort_by), r.user_id))


class LeaderboardService:
    def __init__(self, store: LedgerStore, config_provider: Callable[[], CheckinConfig]):
        self.store = store
        self.config_provider = config_provider

    def _today(self, now: Optional[datetime]) -> Tuple[datetime, date]:
        config = self.config_provider()
        now = now or local_now(config.tzinfo)
        return now, effective_date(now, config.cycle)

    def get_group_ranking(self, group_id: str, sort_by: str = "total_exp", limit: int = 10,
                          offset: int = 0) -> Tuple[List[RankingEntry], int]:
        """Page of group members ordered by ``sort_by`` plus the member count."""
        ranked = rank_records(self.store.load_group(group_id).users.values(), sort_by)
        offset = max(0, offset)
        page = ranked[offset:offset + max(1, limit)]
        return [_entry(offset + i + 1, r) for i, r in enumerate(page)], len(ranked)

    def get_global_ranking(self, sort_by: str = "total_exp", limit: int = 10,
                           offset: int = 0) -> Tuple[List[RankingEntry], int]:
        ranked = rank_records(self.store.list_global_users().values(), sort_by)
        offset = max(0, offset)
        page = ranked[offset:offset + max(1, limit)]
        return [_entry(offset + i + 1, r) for i, r in enumerate(page)], len(ranked)

    def get_active_ranking(self, limit: int = 10) -> List[RankingEntry]:
        entries, _ = self.get_global_ranking(sort_by="active_days", limit=limit)
        return entries

    def get_period_leaderboard(self, group_id: str, period: str = "week",
                               current_user_id: Optional[str] = None,
                               now: Optional[datetime] = None,
                               limit: Optional[int] = None) -> Leaderboard:
        """Points collected in the current week/month/year (or all time) within one group."""
        if period not in PERIODS:
            raise LedgerValidationError(f"Unknown leaderboard period '{period}'", error_code="INVALID_PERIOD")
        now, today = self._today(now)
        start = period_start(period, today)
        start_str = start.isoformat() if start else ""
        today_str = today.isoformat()
        ledger = self.store.load_group(group_id)

        scored = []
        for record in ledger.users.values():
            if start is None:
                points, checkins = record.total_exp, record.total_checkin_days
            else:
                window = [e for e in record.checkin_history if start_str <= e.date <= today_str]
                points, checkins = sum(e.points for e in window), len(window)
                if points <= 0:
                    continue
            scored.append((points, checkins, record))
        scored.sort(key=lambda item: (-item[0], item[2].user_id))

        top = limit or self.config_provider().leaderboard_top_count
        entries = [_entry(i + 1, rec, pts, cnt) for i, (pts, cnt, rec) in enumerate(scored[:top])]
        my_rank = None
        if current_user_id is not None:
            for i, (pts, cnt, rec) in enumerate(scored):
                if rec.user_id == str(current_user_id):
                    my_rank = _entry(i + 1, rec, pts, cnt)
                    break

        return Leaderboard(
            period=period,
            title=PERIOD_TITLES[period],
            group_id=str(group_id),
            group_name=ledger.group_name or f"Group {group_id}",
            updated_at=now.isoformat(),
            entries=entries,
            my_rank=my_rank,
            total=len(scored),
        )

    def get_group_stats(self, group_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Headline numbers of one group for the current cycle."""
        config = self.config_provider()
        now, today = self._today(now)
        cycle_id = current_cycle_id(now, config.cycle)
        ledger = self.store.load_group(group_id)
        stats = ledger.daily_stats.get(cycle_id)
        users = list(ledger.users.values())
        return {
            "group_id": str(group_id),
            "group_name": ledger.group_name,
            "cycle_id": cycle_id,
            "member_count": len(users),
            "checkins_this_cycle": stats.total_checkins if stats else 0,
            "checked_in_today": sum(1 for u in users if u.last_checkin_date == today.isoformat()),
            "total_exp": sum(u.total_exp for u in users),
            "total_balance": sum(u.balance for u in users),
        }


def format_leaderboard_text(board: Leaderboard) -> str:
    """Plain-text rendering used when no card renderer is available."""
    lines = [f"🏆 {board.title}", ""]
    if not board.entries:
        lines.append("No check-ins yet. Be the first!")
    medals = ["🥇", "🥈", "🥉"]
    for entry in board.entries:
        prefix = medals[entry.rank - 1] if entry.rank <= 3 else f"{entry.rank}."
        lines.append(f"{prefix} {entry.nickname}")
        lines.append(f"   💎 {entry.period_points} points  📅 {entry.period_checkins} days")
    if board.my_rank:
        lines.append("")
        lines.append(f"👤 Your rank: #{board.my_rank.rank}")
        lines.append(f"💎 {board.my_rank.period_points} points  📅 {board.my_rank.period_checkins} days")
    return "\n".join(lines)
