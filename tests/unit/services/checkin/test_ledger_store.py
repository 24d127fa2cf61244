# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""Unit tests for the file-backed ledger store."""

from datetime import date
from unittest.mock import patch

import pytest

from services.checkin.key_locks import KeyedLocks
from services.checkin.ledger_paths import LedgerPaths, backup_path
from services.checkin.ledger_store import LedgerStore
from services.checkin.models import CheckinEntry, TransactionRecord, UserLedgerRecord
from services.exceptions import LedgerPersistenceError


@pytest.fixture
def paths(tmp_path):
    return LedgerPaths.from_base_dir(tmp_path)


@pytest.fixture
def store(paths):
    return LedgerStore(paths)


def test_saved_records_survive_a_new_store(paths, store):
    store.save_group_users("42", UserLedgerRecord(user_id="u1", nickname="alice", total_exp=30, balance=30),
                           group_name="Guild")

    fresh = LedgerStore(paths)
    record = fresh.get_group_user("42", "u1")
    assert record.nickname == "alice"
    assert record.balance == 30
    assert fresh.load_group("42").group_name == "Guild"
    assert fresh.list_group_ids() == ["42"]


def test_save_merges_with_users_written_elsewhere(paths):
    first = LedgerStore(paths)
    second = LedgerStore(paths)
    second.get_group_user("42", "u2")  # warm the second store's cache

    first.save_group_users("42", UserLedgerRecord(user_id="u1", balance=5))
    second.save_group_users("42", UserLedgerRecord(user_id="u2", balance=7))

    merged = LedgerStore(paths).load_group("42")
    assert set(merged.users) == {"u1", "u2"}


def test_reads_return_copies(store):
    store.save_group_users("42", UserLedgerRecord(user_id="u1", balance=10))
    record = store.get_group_user("42", "u1")
    record.balance = 999
    assert store.get_group_user("42", "u1").balance == 10


def test_unknown_user_gets_fresh_unsaved_record(store):
    record = store.get_or_new_group_user("42", "u9", "zoe")
    assert record.balance == 0
    assert record.nickname == "zoe"
    assert store.get_group_user("42", "u9") is None


def test_corrupted_file_falls_back_to_backup(paths, store):
    store.save_group_users("42", UserLedgerRecord(user_id="u1", balance=10))
    store.save_group_users("42", UserLedgerRecord(user_id="u1", balance=20))
    path = paths.group_file("42")
    assert backup_path(path).exists()

    path.write_text("{not json", encoding="utf-8")
    record = LedgerStore(paths).get_group_user("42", "u1")
    assert record is not None
    assert record.balance == 10


def test_corrupted_file_without_backup_starts_empty(paths):
    paths.global_users_file.write_text("[1, 2", encoding="utf-8")
    store = LedgerStore(paths)
    assert store.list_global_users() == {}


def test_failed_write_raises_and_keeps_cache(store):
    store.save_group_users("42", UserLedgerRecord(user_id="u1", balance=10))
    with patch("services.checkin.ledger_store.tempfile.mkstemp", side_effect=OSError("disk full")):
        with pytest.raises(LedgerPersistenceError) as excinfo:
            store.save_group_users("42", UserLedgerRecord(user_id="u1", balance=50))
    assert excinfo.value.error_code == "PERSISTENCE_FAILED"
    assert store.get_group_user("42", "u1").balance == 10


def test_cycle_stats_ranks_in_arrival_order(store):
    ranks = [store.update_group_cycle_stats("42", "2025-03-12", lambda s, u=u: s.register_arrival(u))
             for u in ("a", "b", "c")]
    assert ranks == [1, 2, 3]
    stats = store.get_group_cycle_stats("42", "2025-03-12")
    assert stats.total_checkins == 3
    assert stats.rank_of("b") == 2
    assert store.update_global_cycle_stats("2025-03-12", lambda s: s.register_arrival("a")) == 1


def test_global_users_roundtrip(paths, store):
    store.save_global_users(UserLedgerRecord(user_id="u1", total_exp=5), UserLedgerRecord(user_id="u2"))
    assert set(LedgerStore(paths).list_global_users()) == {"u1", "u2"}


def test_purge_before_drops_old_entries_only(paths, store):
    record = UserLedgerRecord(user_id="u1", balance=40, total_exp=40)
    record.checkin_history = [
        CheckinEntry("2024-01-01", "2024-01-01", "09:00:00", 20, 1, "42"),
        CheckinEntry("2025-03-10", "2025-03-10", "09:00:00", 20, 1, "42"),
    ]
    record.transaction_log = [
        TransactionRecord("t1", "2024-01-01T01:00:00+00:00", "award", 20, 20, 20),
        TransactionRecord("t2", "2025-03-10T01:00:00+00:00", "award", 20, 40, 40),
    ]
    store.save_group_users("42", record)
    store.update_group_cycle_stats("42", "2024-01-01", lambda s: s.register_arrival("u1"))

    summary = store.purge_before(date(2025, 1, 1), "2025-01-01")

    assert summary == {"history": 1, "transactions": 1, "cycle_stats": 1}
    kept = store.get_group_user("42", "u1")
    assert [e.date for e in kept.checkin_history] == ["2025-03-10"]
    assert [t.id for t in kept.transaction_log] == ["t2"]
    assert kept.balance == 40


def test_mutate_group_user_creates_and_saves(paths, store):
    def _add(record):
        record.balance += 5
        return record.balance

    assert store.mutate_group_user("42", "u9", _add, nickname="zed") == 5
    assert store.mutate_group_user("42", "u9", _add) == 10
    assert LedgerStore(paths).get_group_user("42", "u9").nickname == "zed"


def test_mutate_failure_leaves_file_untouched(store):
    store.save_group_users("42", UserLedgerRecord(user_id="u1", balance=10))

    def _boom(record):
        record.balance = 999
        raise ValueError("rejected")

    with pytest.raises(ValueError):
        store.mutate_group_user("42", "u1", _boom)
    assert store.get_group_user("42", "u1").balance == 10


def test_mutate_global_user(paths, store):
    store.mutate_global_user("u1", lambda r: setattr(r, "total_exp", r.total_exp + 7))
    store.mutate_global_user("u1", lambda r: setattr(r, "total_exp", r.total_exp + 7))
    assert LedgerStore(paths).get_global_user("u1").total_exp == 14


def test_set_group_name_renames_existing_ledger_only(paths, store):
    assert store.set_group_name("42", "Guild") is False
    assert not paths.group_file("42").exists()

    store.save_group_users("42", UserLedgerRecord(user_id="u1", balance=3), group_name="Guild")
    assert store.set_group_name("42", "Guild") is False
    assert store.set_group_name("42", "New Guild") is True
    reloaded = LedgerStore(paths).load_group("42")
    assert reloaded.group_name == "New Guild"
    assert reloaded.users["u1"].balance == 3


def test_restore_global_user_puts_back_or_removes(paths, store):
    store.save_global_users(UserLedgerRecord(user_id="u1", total_exp=5, balance=5))
    original = store.get_global_user("u1")

    store.save_global_users(UserLedgerRecord(user_id="u1", total_exp=15, balance=15),
                            UserLedgerRecord(user_id="u2", total_exp=1))
    store.restore_global_user("u1", original)
    store.restore_global_user("u2", None)

    fresh = LedgerStore(paths)
    assert fresh.get_global_user("u1").total_exp == 5
    assert fresh.get_global_user("u2") is None
    assert store.get_global_user("u2") is None


def test_purge_refreshes_cache_under_user_locks(paths, store):
    record = UserLedgerRecord(user_id="u1")
    record.checkin_history = [CheckinEntry("2024-01-01", "2024-01-01", "09:00:00", 20, 1, "42")]
    store.save_group_users("42", record)
    store.save_global_users(record)

    locks = KeyedLocks()
    with patch.object(locks, "hold", wraps=locks.hold) as hold:
        store.purge_before(date(2025, 1, 1), user_locks=locks)

    held = [key for call in hold.call_args_list for key in call.args]
    assert ("group", "42", "u1") in held
    assert ("global", "u1") in held
    assert store.get_group_user("42", "u1").checkin_history == []
    assert store.get_global_user("u1").checkin_history == []
