# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK) - Check-in Service                                        #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""
Check-in orchestration.

``perform_checkin`` resolves the cycle, enforces the per-cycle limit, advances
the streak, rolls the points, claims an arrival rank and commits the global
aggregate plus the group record.  The global and group user locks are held for
the whole read -> compute -> persist section, and a commit that fails half way
is rolled back.  Every attempt is handed to the check-in log when one is wired.
"""

from __future__ import annotations

import random
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from services.checkin.checkin_log import STATUS_FAILED, STATUS_REPEAT, STATUS_SUCCESS, CheckinLogService
from services.checkin.cycle_clock import (
    current_cycle_id,
    cycle_id_for_date,
    cycle_id_of_entry_date,
    cycle_label,
    effective_date,
    local_now,
    previous_cycle_id,
)
from services.checkin.key_locks import KeyedLocks, global_user_key, group_user_key
from services.checkin.ledger_store import LedgerStore
from services.checkin.levels import apply_level
from services.checkin.models import CheckinEntry, UserLedgerRecord
from services.checkin.points_calculator import PointsBreakdown, calculate_points
from services.checkin.points_requests import AwardRequest, AwardResult
from services.checkin.points_service import PointsService
from services.config.checkin_config import CheckinConfig, CycleConfig
from services.exceptions import CycleLimitExceededError, LedgerPersistenceError
from utils.logging_utils import get_module_logger
from utils.observability import get_structured_logger, metrics

logger = get_module_logger("checkin")
structured_logger = get_structured_logger("dck.checkin.events", context={"service": "CheckinService"})

SIGNIN_SOURCE = "signin"
SPECIAL_STREAK_LENGTH = 7
EARLY_BEFORE = "08:00:00"
LATE_AFTER = "23:00:00"


@dataclass
class CheckinResult:
    success: bool
    user_id: str
    group_id: Optional[str] = None
    already_checked_in: bool = False
    cycle_id: str = ""
    cycle_type: str = "daily"
    entry: Optional[CheckinEntry] = None
    breakdown: Optional[PointsBreakdown] = None
    points_awarded: int = 0
    consecutive_days: int = 0
    group_consecutive_days: int = 0
    rank: int = 0
    checkins_in_cycle: int = 0
    max_checkins_per_cycle: int = 1
    global_record: Optional[UserLedgerRecord] = None
    group_record: Optional[UserLedgerRecord] = None
    level_up: bool = False
    new_titles: List[str] = field(default_factory=list)
    error_message: Optional[str] = None
    error_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        record = self.group_record or self.global_record
        return {
            "success": self.success,
            "user_id": self.user_id,
            "group_id": self.group_id,
            "already_checked_in": self.already_checked_in,
            "cycle_id": self.cycle_id,
            "cycle_type": self.cycle_type,
            "entry": self.entry.to_json() if self.entry else None,
            "breakdown": self.breakdown.to_dict() if self.breakdown else None,
            "points_awarded": self.points_awarded,
            "consecutive_days": self.consecutive_days,
            "group_consecutive_days": self.group_consecutive_days,
            "rank": self.rank,
            "checkins_in_cycle": self.checkins_in_cycle,
            "max_checkins_per_cycle": self.max_checkins_per_cycle,
            "total_exp": record.total_exp if record else 0,
            "balance": record.balance if record else 0,
            "level": record.level if record else 1,
            "level_up": self.level_up,
            "new_titles": list(self.new_titles),
            "error_message": self.error_message,
            "error_code": self.error_code,
        }


def next_streak(record: UserLedgerRecord, cycle_id: str, prev_cycle_id: str, cycle_type: str) -> int:
    """Streak after a check-in in ``cycle_id``: keep, extend by one, or restart at 1."""
    last_cycle = record.last_checkin_cycle
    if not last_cycle and record.last_checkin_date:
        last_cycle = cycle_id_of_entry_date(record.last_checkin_date, cycle_type)
    if last_cycle == cycle_id:
        return max(record.consecutive_days, 1)
    if last_cycle == prev_cycle_id:
        return record.consecutive_days + 1
    return 1


def special_flags(history: List[CheckinEntry], streak: int) -> List[str]:
    """Named predicates for the special titles (evaluated on the group history)."""
    if streak < SPECIAL_STREAK_LENGTH or len(history) < SPECIAL_STREAK_LENGTH:
        return []
    recent = history[-SPECIAL_STREAK_LENGTH:]
    flags = []
    if all(entry.time < EARLY_BEFORE for entry in recent):
        flags.append("early_checkin_7")
    if all(entry.time >= LATE_AFTER for entry in recent):
        flags.append("late_checkin_7")
    return flags


def _record_checkin(record: UserLedgerRecord, entry: CheckinEntry, streak: int,
                    history_limit: int) -> None:
    """Apply the counters of one committed check-in to ``record``."""
    if record.last_checkin_date != entry.date:
        record.total_checkin_days += 1
    if record.last_active_date != entry.date:
        record.active_days += 1
        record.last_active_date = entry.date
    record.consecutive_days = streak
    record.last_checkin_date = entry.date
    record.last_checkin_cycle = entry.cycle_id
    record.append_history(entry, history_limit)


class CheckinService:
    """Orchestrates a check-in across the cycle clock, calculator, ledger and points service."""

    def __init__(self, store: LedgerStore, points: PointsService, locks: KeyedLocks,
                 config_provider: Callable[[], CheckinConfig],
                 rng: Optional[random.Random] = None,
                 checkin_log: Optional[CheckinLogService] = None):
        self.store = store
        self.points = points
        self.locks = locks
        self.config_provider = config_provider
        self.rng = rng
        self.checkin_log = checkin_log

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _now(self, config: CheckinConfig, now: Optional[datetime]) -> datetime:
        return now or local_now(config.tzinfo)

    def _claim_rank(self, group_id: Optional[str], cycle_id: str, user_id: str) -> int:
        if group_id:
            return self.store.update_group_cycle_stats(group_id, cycle_id, lambda s: s.register_arrival(user_id))
        return self.store.update_global_cycle_stats(cycle_id, lambda s: s.register_arrival(user_id))

    @staticmethod
    def _scope_entries(record: UserLedgerRecord, cycle_id: str, group_id: Optional[str]) -> List[CheckinEntry]:
        return [e for e in record.entries_in_cycle(cycle_id) if group_id is None or e.group_id == group_id]

    # ------------------------------------------------------------------
    # Check-in
    # ------------------------------------------------------------------
    def perform_checkin(self, user_id: str, nickname: str = "", group_id: Optional[str] = None,
                        group_name: Optional[str] = None, now: Optional[datetime] = None) -> CheckinResult:
        user_id = str(user_id)
        group_id = str(group_id) if group_id is not None else None
        config = self.config_provider()
        now = self._now(config, now)
        metrics.increment("checkin.attempts")
        result = self._attempt_checkin(config, now, user_id, nickname, group_id, group_name)
        self._log_attempt(config, now, result, nickname, group_name)
        return result

    def _attempt_checkin(self, config: CheckinConfig, now: datetime, user_id: str, nickname: str,
                         group_id: Optional[str], group_name: Optional[str]) -> CheckinResult:
        cycle_cfg = config.cycle
        if not config.is_group_enabled(group_id):
            return CheckinResult(success=False, user_id=user_id, group_id=group_id,
                                 cycle_type=cycle_cfg.cycle_type,
                                 error_message="Check-in is disabled here", error_code="CHECKIN_DISABLED")

        cycle_id = current_cycle_id(now, cycle_cfg)
        prev_cycle = previous_cycle_id(now, cycle_cfg)
        today = effective_date(now, cycle_cfg).isoformat()
        start_time = time.time()

        keys = [global_user_key(user_id)]
        if group_id:
            keys.append(group_user_key(group_id, user_id))

        with self.locks.hold(*keys):
            global_rec = self.store.get_or_new_global_user(user_id, nickname)
            group_rec = self.store.get_or_new_group_user(group_id, user_id, nickname) if group_id else None
            scope_rec = group_rec if group_id else global_rec
            in_cycle = self._scope_entries(scope_rec, cycle_id, group_id)

            try:
                self._check_cycle_limit(cycle_cfg, cycle_id, len(in_cycle))
            except CycleLimitExceededError as exc:
                metrics.increment("checkin.cycle_limit")
                logger.info("Check-in refused for %s (group=%s): %s", user_id, group_id, exc.message)
                return CheckinResult(
                    success=False, user_id=user_id, group_id=group_id, cycle_id=cycle_id,
                    cycle_type=cycle_cfg.cycle_type, entry=in_cycle[-1] if in_cycle else None,
                    consecutive_days=global_rec.consecutive_days,
                    group_consecutive_days=group_rec.consecutive_days if group_rec else 0,
                    checkins_in_cycle=len(in_cycle), max_checkins_per_cycle=cycle_cfg.max_checkins_per_cycle,
                    global_record=global_rec, group_record=group_rec,
                    error_message=exc.message, error_code=exc.error_code,
                )

            if cycle_cfg.cycle_type != "daily":
                earlier_today = scope_rec.entry_on_date(today, group_id)
                if earlier_today is not None:
                    metrics.increment("checkin.repeat_same_day")
                    return CheckinResult(
                        success=True, user_id=user_id, group_id=group_id, already_checked_in=True,
                        cycle_id=cycle_id, cycle_type=cycle_cfg.cycle_type, entry=earlier_today,
                        points_awarded=0, consecutive_days=global_rec.consecutive_days,
                        group_consecutive_days=group_rec.consecutive_days if group_rec else 0,
                        rank=earlier_today.rank, checkins_in_cycle=len(in_cycle),
                        max_checkins_per_cycle=cycle_cfg.max_checkins_per_cycle,
                        global_record=global_rec, group_record=group_rec,
                    )

            try:
                return self._commit_checkin(
                    config, now, today, cycle_id, prev_cycle, user_id, nickname, group_id, group_name,
                    global_rec, group_rec, len(in_cycle), start_time,
                )
            except LedgerPersistenceError as exc:
                metrics.increment("checkin.persistence_failed")
                logger.error("Check-in persistence failed (group=%s, user=%s, operation=checkin): %s",
                             group_id, user_id, exc, exc_info=True)
                return CheckinResult(success=False, user_id=user_id, group_id=group_id, cycle_id=cycle_id,
                                     cycle_type=cycle_cfg.cycle_type,
                                     error_message=exc.message, error_code=exc.error_code)
            except Exception:
                logger.error("Unexpected error during check-in (group=%s, user=%s, operation=checkin)",
                             group_id, user_id, exc_info=True)
                raise

    def _log_attempt(self, config: CheckinConfig, now: datetime, result: CheckinResult,
                     nickname: str, group_name: Optional[str]) -> None:
        if self.checkin_log is None:
            return
        if not result.success:
            status = STATUS_FAILED
        elif result.already_checked_in:
            status = STATUS_REPEAT
        else:
            status = STATUS_SUCCESS
        self.checkin_log.record(
            result.user_id, status,
            nickname=nickname,
            group_id=result.group_id,
            group_name=group_name,
            points=result.points_awarded,
            consecutive_days=result.consecutive_days,
            rank=result.rank,
            cycle_id=result.cycle_id,
            reply_mode=config.checkin_reply_mode,
            breakdown=result.breakdown.to_dict() if result.breakdown else None,
            error_code=result.error_code,
            error_message=result.error_message,
            now=now,
        )

    @staticmethod
    def _check_cycle_limit(cycle_cfg: CycleConfig, cycle_id: str, count: int) -> None:
        limit = cycle_cfg.max_checkins_per_cycle
        if count >= limit:
            label = cycle_label(cycle_cfg.cycle_type)
            times = "once" if count == 1 else f"{count} times"
            raise CycleLimitExceededError(
                f"Already checked in {times} {label} (limit {limit})",
                cycle_id=cycle_id, limit=limit, count=count,
            )

    def _release_rank(self, group_id: Optional[str], cycle_id: str, user_id: str) -> None:
        try:
            if group_id:
                self.store.update_group_cycle_stats(group_id, cycle_id, lambda s: s.withdraw_arrival(user_id))
            else:
                self.store.update_global_cycle_stats(cycle_id, lambda s: s.withdraw_arrival(user_id))
        except LedgerPersistenceError as exc:
            metrics.increment("checkin.rollback_failed")
            logger.error("Could not release rank of %s in %s (group=%s): %s", user_id, cycle_id, group_id, exc)

    def _restore_global(self, user_id: str, previous: Optional[UserLedgerRecord]) -> None:
        try:
            self.store.restore_global_user(user_id, previous)
        except LedgerPersistenceError as exc:
            metrics.increment("checkin.rollback_failed")
            logger.critical("Could not roll back the global record of %s: %s", user_id, exc)

    def _commit_checkin(self, config: CheckinConfig, now: datetime, today: str, cycle_id: str,
                        prev_cycle: str, user_id: str, nickname: str, group_id: Optional[str],
                        group_name: Optional[str], global_rec: UserLedgerRecord,
                        group_rec: Optional[UserLedgerRecord], count_before: int,
                        start_time: float) -> CheckinResult:
        """Write the global record, then the group award; a failed group write undoes the global one.

        The arrival rank is claimed before either write and released again
        when the commit fails.
        """
        cycle_type = config.cycle.cycle_type
        global_streak = next_streak(global_rec, cycle_id, prev_cycle, cycle_type)
        breakdown = calculate_points(config.points, global_streak, effective_date(now, config.cycle), self.rng)
        rank = self._claim_rank(group_id, cycle_id, user_id)
        time_str = now.strftime("%H:%M:%S")
        previous_global = self.store.get_global_user(user_id)

        global_entry = CheckinEntry(date=today, cycle_id=cycle_id, time=time_str,
                                    points=breakdown.total_points, rank=rank, group_id=group_id,
                                    breakdown=breakdown.to_dict())
        if nickname:
            global_rec.nickname = nickname
        global_rec.total_exp += breakdown.total_points
        global_rec.balance += breakdown.total_points
        apply_level(global_rec)
        _record_checkin(global_rec, global_entry, global_streak, config.history_limit)
        try:
            self.store.save_global_users(global_rec)
        except Exception:
            self._release_rank(group_id, cycle_id, user_id)
            raise

        award: Optional[AwardResult] = None
        group_entry: Optional[CheckinEntry] = None
        group_streak = 0
        if group_id and group_rec is not None:
            group_streak = next_streak(group_rec, cycle_id, prev_cycle, cycle_type)
            flags = special_flags(
                group_rec.checkin_history + [CheckinEntry(today, cycle_id, time_str, 0, rank, group_id)],
                group_streak,
            )
            holder: Dict[str, CheckinEntry] = {}

            def add_group_entry(record: UserLedgerRecord, amount: int) -> None:
                entry = CheckinEntry(date=today, cycle_id=cycle_id, time=time_str, points=amount,
                                     rank=rank, group_id=group_id, breakdown=breakdown.to_dict())
                _record_checkin(record, entry, group_streak, config.history_limit)
                holder["entry"] = entry

            try:
                award = self.points.award_locked(
                    group_id, user_id,
                    AwardRequest(
                        amount=breakdown.total_points,
                        description=f"Check-in {today}",
                        source=SIGNIN_SOURCE,
                        idempotency_key=f"{SIGNIN_SOURCE}:{group_id}:{user_id}:{cycle_id}:{count_before + 1}",
                        apply_level_bonus=True,
                        nickname=nickname,
                        details={"cycle_id": cycle_id, "rank": rank},
                    ),
                    before_persist=add_group_entry,
                    special_flags=flags,
                    group_name=group_name,
                )
            except Exception:
                self._restore_global(user_id, previous_global)
                self._release_rank(group_id, cycle_id, user_id)
                raise
            group_entry = holder.get("entry")
            group_rec = self.store.get_group_user(group_id, user_id)

        points_awarded = award.amount_awarded if award else breakdown.total_points
        duration_ms = (time.time() - start_time) * 1000
        metrics.increment("checkin.total")
        metrics.histogram("checkin.points", points_awarded)
        metrics.histogram("checkin.duration_ms", duration_ms)
        structured_logger.info("checkin_completed", extra={
            "group_id": group_id,
            "user_id": user_id,
            "cycle_id": cycle_id,
            "points": points_awarded,
            "rank": rank,
            "streak": global_streak,
            "group_streak": group_streak,
            "duration_ms": duration_ms,
        })

        return CheckinResult(
            success=True,
            user_id=user_id,
            group_id=group_id,
            cycle_id=cycle_id,
            cycle_type=cycle_type,
            entry=group_entry or global_entry,
            breakdown=breakdown,
            points_awarded=points_awarded,
            consecutive_days=global_streak,
            group_consecutive_days=group_streak,
            rank=rank,
            checkins_in_cycle=count_before + 1,
            max_checkins_per_cycle=config.cycle.max_checkins_per_cycle,
            global_record=global_rec,
            group_record=group_rec,
            level_up=bool(award and award.level_up),
            new_titles=list(award.new_titles) if award else [],
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_user_checkin_data(self, user_id: str) -> Optional[UserLedgerRecord]:
        return self.store.get_global_user(user_id)

    def get_group_user_data(self, group_id: str, user_id: str) -> Optional[UserLedgerRecord]:
        return self.store.get_group_user(group_id, user_id)

    def get_cycle_checkin_count(self, user_id: str, group_id: Optional[str] = None,
                                now: Optional[datetime] = None) -> Tuple[int, int]:
        """(check-ins in the current cycle, allowed per cycle)."""
        config = self.config_provider()
        cycle_id = current_cycle_id(self._now(config, now), config.cycle)
        record = self.store.get_group_user(group_id, user_id) if group_id else self.store.get_global_user(user_id)
        count = len(self._scope_entries(record, cycle_id, group_id)) if record else 0
        return count, config.cycle.max_checkins_per_cycle

    def get_user_cycle_rank(self, user_id: str, group_id: Optional[str] = None,
                            now: Optional[datetime] = None) -> Optional[int]:
        """Arrival rank of the user's first check-in in the current cycle."""
        config = self.config_provider()
        cycle_id = current_cycle_id(self._now(config, now), config.cycle)
        if group_id:
            stats = self.store.get_group_cycle_stats(group_id, cycle_id)
        else:
            stats = self.store.get_global_cycle_stats(cycle_id)
        return stats.rank_of(str(user_id))

    def purge_old_data(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Drop history, transactions, cycle stats and log entries older than ``retention_days``.

        Purging holds the per-user locks, so it never interleaves with a check-in
        of the same user.
        """
        config = self.config_provider()
        now = self._now(config, now)
        today = effective_date(now, config.cycle)
        horizon = today - timedelta(days=config.retention_days)
        summary = self.store.purge_before(horizon, cycle_id_for_date(horizon, config.cycle.cycle_type),
                                          user_locks=self.locks)
        if self.checkin_log is not None:
            summary["logs"] = self.checkin_log.delete_logs_older_than(config.retention_days, now=now)
        return summary
