# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK) - Ledger Store                                            #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #

"""
Ledger Store: owns every user record and cycle statistic on disk.

- Per-process cache of group ledgers and the global aggregate
- Reads always hand out deep copies; callers mutate their copy and save it
- Writes are merge-before-write: the file is re-read under a per-file lock and
  only the changed users (or only ``daily_stats``) are replaced, so concurrent
  writers of different users or of stats never drop each other's updates
- Atomic writes (temp file + fsync + rename) keeping the previous version as
  ``<file>.bak``
- Corrupt files fall back to the backup, then to an empty ledger; both cases
  are logged, never raised
- The cache is updated only after the file write succeeded, so a failed save
  leaves the in-memory state as it was before the operation
"""

from __future__ import annotations

import contextlib
import copy
import json
import logging
import os
import shutil
import tempfile
from datetime import date
from pathlib import Path
from threading import RLock
from typing import Any, Callable, Dict, List, Optional, TypeVar

from services.checkin.key_locks import KeyedLocks, global_user_key, group_user_key
from services.checkin.ledger_paths import LedgerPaths, backup_path
from services.checkin.migration import migrate_user_payload, needs_migration
from services.checkin.models import (
    DailyCycleStats,
    GroupLedger,
    UserLedgerRecord,
    now_utc_iso,
)
from services.exceptions import LedgerPersistenceError
from utils.observability import metrics, timed

logger = logging.getLogger("dck.ledger.store")

T = TypeVar("T")


# ---------------------
# File helpers
# ---------------------

def _load_json_file(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as fh:
        return json.load(fh)


def read_json_with_fallback(path: Path) -> Optional[Dict[str, Any]]:
    """Read ``path``; on corruption try its backup; return None when neither is usable."""
    if not path.exists():
        return None
    try:
        data = _load_json_file(path)
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        return data
    except (json.JSONDecodeError, ValueError, UnicodeDecodeError) as exc:
        logger.error("Corrupted ledger file %s (%s); trying backup", path, exc)
        metrics.increment("ledger.corrupt_files")

    bak = backup_path(path)
    if bak.exists():
        try:
            data = _load_json_file(bak)
            if isinstance(data, dict):
                logger.warning("Restored %s from backup %s", path, bak)
                return data
        except (json.JSONDecodeError, ValueError, UnicodeDecodeError) as exc:
            logger.error("Backup %s is corrupted as well (%s); starting empty", bak, exc)
    else:
        logger.warning("No backup for %s; starting empty", path)
    return None


def write_json_atomic(path: Path, payload: Dict[str, Any]) -> None:
    """
    Persist ``payload`` to ``path`` using an atomic write.

    The current file (if any) is copied to ``<file>.bak`` first. If the write
    fails mid-operation the original file remains intact.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = None
    try:
        if path.exists():
            shutil.copy2(path, backup_path(path))

        temp_fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        with os.fdopen(temp_fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())

        shutil.move(temp_path, path)
        temp_path = None
    except (OSError, TypeError, ValueError) as exc:
        metrics.increment("ledger.write_failures")
        raise LedgerPersistenceError(
            f"Failed to write ledger file {path}: {exc}",
            details={"path": str(path)},
        ) from exc
    finally:
        if temp_path is not None:
            try:
                os.unlink(temp_path)
            except OSError:
                logger.debug("Temp file %s already gone", temp_path)


def _migrate_users(raw_users: Dict[str, Any]) -> bool:
    """Upgrade stored user dicts in place; True when anything changed."""
    changed = False
    for uid, raw in list(raw_users.items()):
        if isinstance(raw, dict) and needs_migration(raw):
            raw_users[uid] = migrate_user_payload(raw)
            changed = True
    return changed


class LedgerStore:
    """File-backed store for group ledgers, the global aggregate and cycle stats."""

    def __init__(self, paths: LedgerPaths):
        self.paths = paths
        self._file_locks = KeyedLocks()
        self._cache_lock = RLock()
        self._groups: Dict[str, GroupLedger] = {}
        self._global_users: Optional[Dict[str, UserLedgerRecord]] = None
        self._global_stats: Optional[Dict[str, DailyCycleStats]] = None

    # ------------------------------------------------------------------
    # Raw disk access (always under the file lock of the path)
    # ------------------------------------------------------------------
    def _read_group_raw(self, group_id: str) -> Dict[str, Any]:
        path = self.paths.group_file(group_id)
        raw = read_json_with_fallback(path) or {}
        raw.setdefault("group_id", str(group_id))
        raw.setdefault("group_name", "")
        if not isinstance(raw.get("users"), dict):
            raw["users"] = {}
        if not isinstance(raw.get("daily_stats"), dict):
            raw["daily_stats"] = {}
        return raw

    def _read_global_users_raw(self) -> Dict[str, Any]:
        return read_json_with_fallback(self.paths.global_users_file) or {}

    def _read_global_stats_raw(self) -> Dict[str, Any]:
        return read_json_with_fallback(self.paths.cycle_stats_file) or {}

    @staticmethod
    def _persist_migration(path: Path, raw: Dict[str, Any]) -> None:
        # Reads must not fail on a write error; the next save retries the upgrade
        try:
            write_json_atomic(path, raw)
        except LedgerPersistenceError as exc:
            logger.error("Could not persist migrated ledger %s: %s", path, exc)

    # ------------------------------------------------------------------
    # Group ledgers
    # ------------------------------------------------------------------
    def _cached_group(self, group_id: str) -> GroupLedger:
        group_id = str(group_id)
        with self._cache_lock:
            ledger = self._groups.get(group_id)
            if ledger is not None:
                return ledger

        path = self.paths.group_file(group_id)
        with self._file_locks.hold(path):
            raw = self._read_group_raw(group_id)
            if _migrate_users(raw["users"]):
                self._persist_migration(path, raw)
            ledger = GroupLedger.from_json(group_id, raw)
        with self._cache_lock:
            self._groups.setdefault(group_id, ledger)
            return self._groups[group_id]

    def load_group(self, group_id: str) -> GroupLedger:
        """Deep copy of the cached group ledger (loaded from disk on first use)."""
        ledger = self._cached_group(group_id)
        with self._cache_lock:
            return copy.deepcopy(ledger)

    def get_group_user(self, group_id: str, user_id: str) -> Optional[UserLedgerRecord]:
        ledger = self._cached_group(group_id)
        with self._cache_lock:
            record = ledger.users.get(str(user_id))
            return copy.deepcopy(record) if record is not None else None

    def get_or_new_group_user(self, group_id: str, user_id: str, nickname: str = "") -> UserLedgerRecord:
        """Copy of the stored record, or a fresh unsaved record for a new user."""
        record = self.get_group_user(group_id, user_id)
        if record is None:
            record = UserLedgerRecord(user_id=str(user_id), nickname=nickname, created_at=now_utc_iso())
        elif nickname:
            record.nickname = nickname
        return record

    @timed("ledger.save_group_users")
    def save_group_users(self, group_id: str, *records: UserLedgerRecord,
                         group_name: Optional[str] = None) -> None:
        """Merge ``records`` into the group file and, on success, into the cache."""
        group_id = str(group_id)
        path = self.paths.group_file(group_id)
        with self._file_locks.hold(path):
            raw = self._read_group_raw(group_id)
            _migrate_users(raw["users"])
            for record in records:
                raw["users"][record.user_id] = record.to_json()
            if group_name:
                raw["group_name"] = group_name
            write_json_atomic(path, raw)

            fresh = GroupLedger.from_json(group_id, raw)
            with self._cache_lock:
                self._groups[group_id] = fresh

    def mutate_group_user(self, group_id: str, user_id: str,
                          mutator: Callable[[UserLedgerRecord], T], nickname: str = "") -> T:
        """Copy the record, apply ``mutator`` and save; the cache keeps the old record on failure."""
        path = self.paths.group_file(group_id)
        with self._file_locks.hold(path):
            record = self.get_or_new_group_user(group_id, user_id, nickname)
            result = mutator(record)
            self.save_group_users(group_id, record)
            return result

    def update_group_cycle_stats(self, group_id: str, cycle_id: str,
                                 mutator: Callable[[DailyCycleStats], T]) -> T:
        """Re-read the group file and rewrite only ``daily_stats[cycle_id]``."""
        group_id = str(group_id)
        path = self.paths.group_file(group_id)
        with self._file_locks.hold(path):
            raw = self._read_group_raw(group_id)
            stats = DailyCycleStats.from_json(raw["daily_stats"].get(cycle_id) or {"cycle_id": cycle_id})
            result = mutator(stats)
            raw["daily_stats"][cycle_id] = stats.to_json()
            write_json_atomic(path, raw)

            with self._cache_lock:
                cached = self._groups.get(group_id)
                if cached is not None:
                    cached.daily_stats[cycle_id] = copy.deepcopy(stats)
            return result

    def get_group_cycle_stats(self, group_id: str, cycle_id: str) -> DailyCycleStats:
        ledger = self._cached_group(group_id)
        with self._cache_lock:
            stats = ledger.daily_stats.get(cycle_id)
            return copy.deepcopy(stats) if stats else DailyCycleStats(cycle_id=cycle_id)

    def set_group_name(self, group_id: str, group_name: str) -> bool:
        """Rename an existing group ledger; groups without a ledger file are left alone."""
        if not group_name or not self.paths.group_file(group_id).exists():
            return False
        if self._cached_group(group_id).group_name == group_name:
            return False
        self.save_group_users(group_id, group_name=group_name)
        logger.info("Group %s renamed to %s", group_id, group_name)
        return True

    def list_group_ids(self) -> List[str]:
        """Ids of every group that has a ledger file."""
        ids = []
        for path in sorted(self.paths.groups_dir.glob("*.json")):
            raw = read_json_with_fallback(path)
            ids.append(str((raw or {}).get("group_id") or path.stem))
        return ids

    # ------------------------------------------------------------------
    # Global aggregate
    # ------------------------------------------------------------------
    def _cached_global_users(self) -> Dict[str, UserLedgerRecord]:
        with self._cache_lock:
            if self._global_users is not None:
                return self._global_users

        path = self.paths.global_users_file
        with self._file_locks.hold(path):
            raw = self._read_global_users_raw()
            if _migrate_users(raw):
                self._persist_migration(path, raw)
            users = {str(uid): UserLedgerRecord.from_json(rec)
                     for uid, rec in raw.items() if isinstance(rec, dict)}
        with self._cache_lock:
            if self._global_users is None:
                self._global_users = users
            return self._global_users

    def get_global_user(self, user_id: str) -> Optional[UserLedgerRecord]:
        users = self._cached_global_users()
        with self._cache_lock:
            record = users.get(str(user_id))
            return copy.deepcopy(record) if record is not None else None

    def get_or_new_global_user(self, user_id: str, nickname: str = "") -> UserLedgerRecord:
        record = self.get_global_user(user_id)
        if record is None:
            record = UserLedgerRecord(user_id=str(user_id), nickname=nickname, created_at=now_utc_iso())
        elif nickname:
            record.nickname = nickname
        return record

    def list_global_users(self) -> Dict[str, UserLedgerRecord]:
        users = self._cached_global_users()
        with self._cache_lock:
            return copy.deepcopy(users)

    def _write_global_users(self, raw: Dict[str, Any]) -> None:
        """Write the global file and swap in a cache built from what was written."""
        write_json_atomic(self.paths.global_users_file, raw)
        fresh = {str(uid): UserLedgerRecord.from_json(rec)
                 for uid, rec in raw.items() if isinstance(rec, dict)}
        with self._cache_lock:
            self._global_users = fresh

    @timed("ledger.save_global_users")
    def save_global_users(self, *records: UserLedgerRecord) -> None:
        path = self.paths.global_users_file
        with self._file_locks.hold(path):
            raw = self._read_global_users_raw()
            _migrate_users(raw)
            for record in records:
                raw[record.user_id] = record.to_json()
            self._write_global_users(raw)

    def restore_global_user(self, user_id: str, record: Optional[UserLedgerRecord]) -> None:
        """Put ``record`` back as the stored global record; ``None`` removes the user."""
        path = self.paths.global_users_file
        with self._file_locks.hold(path):
            raw = self._read_global_users_raw()
            _migrate_users(raw)
            if record is None:
                raw.pop(str(user_id), None)
            else:
                raw[str(user_id)] = record.to_json()
            self._write_global_users(raw)

    def mutate_global_user(self, user_id: str, mutator: Callable[[UserLedgerRecord], T],
                           nickname: str = "") -> T:
        with self._file_locks.hold(self.paths.global_users_file):
            record = self.get_or_new_global_user(user_id, nickname)
            result = mutator(record)
            self.save_global_users(record)
            return result

    def _cached_global_stats(self) -> Dict[str, DailyCycleStats]:
        with self._cache_lock:
            if self._global_stats is not None:
                return self._global_stats
        with self._file_locks.hold(self.paths.cycle_stats_file):
            raw = self._read_global_stats_raw()
            stats = {str(cid): DailyCycleStats.from_json(st) for cid, st in raw.items() if isinstance(st, dict)}
        with self._cache_lock:
            if self._global_stats is None:
                self._global_stats = stats
            return self._global_stats

    def get_global_cycle_stats(self, cycle_id: str) -> DailyCycleStats:
        stats = self._cached_global_stats()
        with self._cache_lock:
            found = stats.get(cycle_id)
            return copy.deepcopy(found) if found else DailyCycleStats(cycle_id=cycle_id)

    def update_global_cycle_stats(self, cycle_id: str, mutator: Callable[[DailyCycleStats], T]) -> T:
        path = self.paths.cycle_stats_file
        with self._file_locks.hold(path):
            raw = self._read_global_stats_raw()
            stats = DailyCycleStats.from_json(raw.get(cycle_id) or {"cycle_id": cycle_id})
            result = mutator(stats)
            raw[cycle_id] = stats.to_json()
            write_json_atomic(path, raw)

            with self._cache_lock:
                if self._global_stats is not None:
                    self._global_stats[cycle_id] = copy.deepcopy(stats)
            return result

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------
    def invalidate_cache(self) -> None:
        """Drop every cached ledger so the next read goes to disk."""
        with self._cache_lock:
            self._groups.clear()
            self._global_users = None
            self._global_stats = None

    def purge_before(self, horizon: date, stats_cutoff: Optional[str] = None,
                     user_locks: Optional[KeyedLocks] = None) -> Dict[str, int]:
        """Drop history and transaction entries dated before ``horizon``.

        Cycle statistics whose id sorts before ``stats_cutoff`` are dropped too.
        Balances, exp and counters are left untouched.

        With ``user_locks`` every user of a file is locked (in key order) while
        that file is purged and its cache entry refreshed, so a check-in that
        read a record before the purge cannot write the old entries back.
        """
        horizon_str = horizon.isoformat()
        summary = {"history": 0, "transactions": 0, "cycle_stats": 0}

        def purge_user(raw: Dict[str, Any]) -> None:
            history = raw.get("checkin_history") or []
            kept = [e for e in history if str(e.get("date", "")) >= horizon_str]
            summary["history"] += len(history) - len(kept)
            raw["checkin_history"] = kept
            log = raw.get("transaction_log") or []
            kept_tx = [t for t in log if str(t.get("timestamp", ""))[:10] >= horizon_str]
            summary["transactions"] += len(log) - len(kept_tx)
            raw["transaction_log"] = kept_tx

        def purge_stats(stats: Dict[str, Any]) -> None:
            if not stats_cutoff:
                return
            for cycle_id in [cid for cid in stats if cid < stats_cutoff]:
                del stats[cycle_id]
                summary["cycle_stats"] += 1

        def hold_users(keys: List[Any]):
            return user_locks.hold(*sorted(keys)) if user_locks is not None else contextlib.nullcontext()

        for path in sorted(self.paths.groups_dir.glob("*.json")):
            peek = read_json_with_fallback(path)
            if peek is None:
                continue
            group_id = str(peek.get("group_id") or path.stem)
            user_ids = list((peek.get("users") or {}).keys())
            with hold_users([group_user_key(group_id, uid) for uid in user_ids]), self._file_locks.hold(path):
                raw = self._read_group_raw(group_id)
                _migrate_users(raw["users"])
                for user_raw in raw["users"].values():
                    purge_user(user_raw)
                purge_stats(raw["daily_stats"])
                write_json_atomic(path, raw)
                fresh = GroupLedger.from_json(group_id, raw)
                with self._cache_lock:
                    self._groups[group_id] = fresh

        global_path = self.paths.global_users_file
        global_ids = list((read_json_with_fallback(global_path) or {}).keys())
        with hold_users([global_user_key(uid) for uid in global_ids]), self._file_locks.hold(global_path):
            raw_users = self._read_global_users_raw()
            if raw_users:
                _migrate_users(raw_users)
                for user_raw in raw_users.values():
                    if isinstance(user_raw, dict):
                        purge_user(user_raw)
                self._write_global_users(raw_users)

        with self._file_locks.hold(self.paths.cycle_stats_file):
            raw_stats = self._read_global_stats_raw()
            if raw_stats and stats_cutoff:
                purge_stats(raw_stats)
                write_json_atomic(self.paths.cycle_stats_file, raw_stats)
            with self._cache_lock:
                self._global_stats = None

        logger.info("Purged ledger entries before %s: %s", horizon_str, summary)
        return summary
