# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #

"""
Ledger record models.

Data layout (inside the ledger data dir):
  groups/{group_id}.json   # {group_name, users: {user_id: record}, daily_stats: {cycle_id: stats}}
  global_users.json        # {user_id: record}
  cycle_stats.json         # {cycle_id: stats} for check-ins without a group
  config.json              # check-in configuration

Every model round-trips through ``to_json``/``from_json``; unknown keys in
stored files are ignored so older and newer files load side by side.
"""
from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

DATA_VERSION = 2
HISTORY_LIMIT = 365

TX_AWARD = "award"
TX_CONSUME = "consume"
TX_RESET = "reset"
TX_ADMIN = "admin"
TRANSACTION_TYPES = (TX_AWARD, TX_CONSUME, TX_RESET, TX_ADMIN)


def _known_fields(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in (data or {}).items() if k in names}


def now_utc_iso() -> str:
    return datetime.now(ZoneInfo("UTC")).isoformat()


def new_transaction_id() -> str:
    return uuid.uuid4().hex


# ---------------------
# Models
# ---------------------

@dataclass
class CheckinEntry:
    date: str  # effective date YYYY-MM-DD
    cycle_id: str
    time: str  # local HH:MM:SS
    points: int
    rank: int
    group_id: Optional[str] = None
    breakdown: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_json(d: Dict[str, Any]) -> "CheckinEntry":
        return CheckinEntry(**_known_fields(CheckinEntry, d))


@dataclass
class TransactionRecord:
    id: str
    timestamp: str  # ISO, UTC
    type: str
    amount: int  # signed
    resulting_balance: int
    resulting_exp: int
    description: str = ""
    idempotency_key: Optional[str] = None
    operator_id: Optional[str] = None
    source: Optional[str] = None
    source_plugin: Optional[str] = None
    order_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_json(d: Dict[str, Any]) -> "TransactionRecord":
        return TransactionRecord(**_known_fields(TransactionRecord, d))


@dataclass
class UserTitle:
    title_id: str
    acquired_at: str  # YYYY-MM-DD
    expires_at: Optional[str] = None  # YYYY-MM-DD, None = permanent
    equipped: bool = False

    def to_json(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_json(d: Dict[str, Any]) -> "UserTitle":
        return UserTitle(**_known_fields(UserTitle, d))


@dataclass
class UserLedgerRecord:
    user_id: str
    nickname: str = ""
    total_exp: int = 0
    balance: int = 0
    level: int = 1
    level_name: str = ""
    level_icon: str = ""
    consecutive_days: int = 0
    total_checkin_days: int = 0
    active_days: int = 0
    last_checkin_date: str = ""  # effective date of the latest check-in
    last_checkin_cycle: str = ""  # cycle id of the latest check-in
    last_active_date: str = ""
    created_at: str = ""
    checkin_history: List[CheckinEntry] = field(default_factory=list)
    transaction_log: List[TransactionRecord] = field(default_factory=list)
    titles: List[UserTitle] = field(default_factory=list)
    equipped_title_id: Optional[str] = None
    data_version: int = DATA_VERSION

    def to_json(self) -> Dict[str, Any]:
        data = asdict(self)
        data["checkin_history"] = [e.to_json() for e in self.checkin_history]
        data["transaction_log"] = [t.to_json() for t in self.transaction_log]
        data["titles"] = [t.to_json() for t in self.titles]
        return data

    @staticmethod
    def from_json(d: Dict[str, Any]) -> "UserLedgerRecord":
        data = _known_fields(UserLedgerRecord, d)
        data["checkin_history"] = [CheckinEntry.from_json(e) for e in data.get("checkin_history") or []]
        data["transaction_log"] = [TransactionRecord.from_json(t) for t in data.get("transaction_log") or []]
        data["titles"] = [UserTitle.from_json(t) for t in data.get("titles") or []]
        return UserLedgerRecord(**data)

    def find_transaction(self, idempotency_key: Optional[str]) -> Optional[TransactionRecord]:
        if not idempotency_key:
            return None
        for tx in reversed(self.transaction_log):
            if tx.idempotency_key == idempotency_key:
                return tx
        return None

    def append_history(self, entry: CheckinEntry, limit: int = HISTORY_LIMIT) -> None:
        self.checkin_history.append(entry)
        if len(self.checkin_history) > limit:
            del self.checkin_history[: len(self.checkin_history) - limit]

    def entries_in_cycle(self, cycle_id: str) -> List[CheckinEntry]:
        return [e for e in self.checkin_history if e.cycle_id == cycle_id]

    def entry_on_date(self, day: str, group_id: Optional[str] = None) -> Optional[CheckinEntry]:
        for entry in reversed(self.checkin_history):
            if entry.date == day and (group_id is None or entry.group_id == group_id):
                return entry
        return None


@dataclass
class DailyCycleStats:
    cycle_id: str
    total_checkins: int = 0
    arrival_order: List[str] = field(default_factory=list)

    def to_json(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_json(d: Dict[str, Any]) -> "DailyCycleStats":
        return DailyCycleStats(**_known_fields(DailyCycleStats, d))

    def register_arrival(self, user_id: str) -> int:
        """Append ``user_id`` to the arrival order and return its 1-based rank."""
        rank = len(self.arrival_order) + 1
        self.arrival_order.append(user_id)
        self.total_checkins += 1
        return rank

    def withdraw_arrival(self, user_id: str) -> None:
        """Undo the latest arrival of ``user_id`` (a check-in that was not committed)."""
        for index in range(len(self.arrival_order) - 1, -1, -1):
            if self.arrival_order[index] == user_id:
                del self.arrival_order[index]
                self.total_checkins = max(0, self.total_checkins - 1)
                return

    def rank_of(self, user_id: str) -> Optional[int]:
        try:
            return self.arrival_order.index(user_id) + 1
        except ValueError:
            return None


@dataclass
class GroupLedger:
    group_id: str
    group_name: str = ""
    users: Dict[str, UserLedgerRecord] = field(default_factory=dict)
    daily_stats: Dict[str, DailyCycleStats] = field(default_factory=dict)

    def to_json(self) -> Dict[str, Any]:
        return {
            "group_id": self.group_id,
            "group_name": self.group_name,
            "users": {uid: rec.to_json() for uid, rec in self.users.items()},
            "daily_stats": {cid: st.to_json() for cid, st in self.daily_stats.items()},
        }

    @staticmethod
    def from_json(group_id: str, d: Dict[str, Any]) -> "GroupLedger":
        d = d or {}
        return GroupLedger(
            group_id=str(d.get("group_id") or group_id),
            group_name=str(d.get("group_name") or ""),
            users={str(uid): UserLedgerRecord.from_json(rec) for uid, rec in (d.get("users") or {}).items()},
            daily_stats={str(cid): DailyCycleStats.from_json(st) for cid, st in (d.get("daily_stats") or {}).items()},
        )
