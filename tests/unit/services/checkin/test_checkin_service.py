# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""Unit tests for the check-in orchestrator."""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from unittest.mock import patch

import pytest

from services.exceptions import LedgerPersistenceError


@pytest.fixture
def checkin(runtime):
    return runtime.checkin


def test_first_checkin_books_points_everywhere(checkin, at):
    result = checkin.perform_checkin("u1", "alice", "42", "Guild", now=at(2025, 3, 10, 9))

    assert result.success
    assert result.points_awarded == 10
    assert result.rank == 1
    assert result.consecutive_days == 1
    assert result.cycle_id == "2025-03-10"
    assert result.group_record.balance == 10
    assert result.group_record.total_exp == 10
    assert result.group_record.checkin_history[-1].group_id == "42"
    assert result.global_record.total_exp == 10
    assert result.global_record.balance == 10
    assert len(result.global_record.checkin_history) == 1
    assert result.to_dict()["balance"] == 10


def test_second_checkin_in_daily_cycle_is_refused(checkin, at):
    checkin.perform_checkin("u1", "alice", "42", now=at(2025, 3, 10, 9))
    again = checkin.perform_checkin("u1", "alice", "42", now=at(2025, 3, 10, 18))

    assert not again.success
    assert again.error_code == "CYCLE_LIMIT_EXCEEDED"
    assert "today" in again.error_message
    record = checkin.get_group_user_data("42", "u1")
    assert len(record.checkin_history) == 1
    assert record.balance == 10
    assert len(checkin.get_user_checkin_data("u1").checkin_history) == 1


def test_streak_bonus_on_third_day(checkin, at):
    start = at(2025, 3, 10, 9)
    results = [checkin.perform_checkin("u1", "alice", "42", now=start + timedelta(days=i)) for i in range(3)]

    assert [r.consecutive_days for r in results] == [1, 2, 3]
    assert results[-1].breakdown.total_points == 14
    assert results[-1].points_awarded == 14
    assert checkin.get_group_user_data("42", "u1").total_exp == 36


def test_missed_day_restarts_streak(checkin, at):
    checkin.perform_checkin("u1", "alice", "42", now=at(2025, 3, 10, 9))
    result = checkin.perform_checkin("u1", "alice", "42", now=at(2025, 3, 12, 9))
    assert result.consecutive_days == 1
    assert result.points_awarded == 10


def test_ranks_follow_arrival_order(checkin, at):
    ranks = [checkin.perform_checkin(user, user, "42", now=at(2025, 3, 10, 8, i)).rank
             for i, user in enumerate(["A", "B", "C"])]
    assert ranks == [1, 2, 3]
    assert checkin.get_user_cycle_rank("B", "42", now=at(2025, 3, 10, 20)) == 2


def test_reset_hour_splits_the_calendar_day(make_runtime, at):
    checkin = make_runtime({"checkin_refresh_time": {"hour": 4}}).checkin

    early = checkin.perform_checkin("u1", "alice", "42", now=at(2025, 3, 10, 3, 30))
    late = checkin.perform_checkin("u1", "alice", "42", now=at(2025, 3, 10, 4, 30))

    assert early.success and late.success
    assert early.cycle_id == "2025-03-09"
    assert late.cycle_id == "2025-03-10"
    assert late.consecutive_days == 2


def test_weekly_cycle_with_two_checkins(make_runtime, at):
    checkin = make_runtime({"checkin_refresh_time": {"cycle_type": "weekly", "cycle_count": 2}}).checkin

    monday = checkin.perform_checkin("u1", "alice", "42", now=at(2025, 3, 10, 9))
    repeat = checkin.perform_checkin("u1", "alice", "42", now=at(2025, 3, 10, 19))
    tuesday = checkin.perform_checkin("u1", "alice", "42", now=at(2025, 3, 11, 9))
    wednesday = checkin.perform_checkin("u1", "alice", "42", now=at(2025, 3, 12, 9))

    assert monday.success and monday.cycle_id == "2025-W11"
    assert repeat.success and repeat.already_checked_in
    assert repeat.points_awarded == 0
    assert tuesday.success and tuesday.checkins_in_cycle == 2
    assert not wednesday.success
    assert wednesday.error_code == "CYCLE_LIMIT_EXCEEDED"
    assert "this week" in wednesday.error_message
    assert checkin.get_cycle_checkin_count("u1", "42", now=at(2025, 3, 12, 9)) == (2, 2)


def test_disabled_group_refuses_checkin(make_runtime, at):
    checkin = make_runtime({"group_configs": {"42": {"enable_checkin": False}}}).checkin
    result = checkin.perform_checkin("u1", "alice", "42", now=at(2025, 3, 10, 9))
    assert result.error_code == "CHECKIN_DISABLED"
    assert checkin.get_group_user_data("42", "u1") is None


def test_global_checkin_without_group(checkin, at):
    result = checkin.perform_checkin("u1", "alice", now=at(2025, 3, 10, 9))
    assert result.success
    assert result.group_record is None
    assert result.global_record.total_exp == 10
    refused = checkin.perform_checkin("u1", "alice", now=at(2025, 3, 10, 10))
    assert refused.error_code == "CYCLE_LIMIT_EXCEEDED"


def test_checkins_in_two_groups_count_one_active_day(checkin, at):
    checkin.perform_checkin("u1", "alice", "42", now=at(2025, 3, 10, 9))
    other = checkin.perform_checkin("u1", "alice", "43", now=at(2025, 3, 10, 10))

    assert other.success
    assert other.rank == 1
    global_record = checkin.get_user_checkin_data("u1")
    assert global_record.total_checkin_days == 1
    assert global_record.active_days == 1
    assert global_record.total_exp == 20


def test_persistence_failure_is_reported(checkin, at):
    with patch.object(checkin.store, "save_group_users", side_effect=LedgerPersistenceError("disk full")):
        result = checkin.perform_checkin("u1", "alice", "42", now=at(2025, 3, 10, 9))
    assert not result.success
    assert result.error_code == "PERSISTENCE_FAILED"
    assert checkin.get_group_user_data("42", "u1") is None
    assert checkin.get_user_checkin_data("u1") is None

    retry = checkin.perform_checkin("u1", "alice", "42", now=at(2025, 3, 10, 9, 5))
    assert retry.success
    assert retry.rank == 1


def test_seven_early_checkins_grant_early_bird(checkin, at):
    start = at(2025, 3, 1, 7)
    results = [checkin.perform_checkin("u1", "alice", "42", now=start + timedelta(days=i)) for i in range(7)]
    assert "early_bird" not in results[5].new_titles
    assert "early_bird" in results[6].new_titles


def test_history_limit_drops_oldest(make_runtime, at):
    checkin = make_runtime({"history_limit": 3}).checkin
    start = at(2025, 3, 1, 9)
    for i in range(5):
        checkin.perform_checkin("u1", "alice", "42", now=start + timedelta(days=i))
    history = checkin.get_group_user_data("42", "u1").checkin_history
    assert [e.date for e in history] == ["2025-03-03", "2025-03-04", "2025-03-05"]
    assert checkin.get_group_user_data("42", "u1").total_checkin_days == 5


def test_purge_old_data_respects_retention(make_runtime, at):
    checkin = make_runtime({"retention_days": 30}).checkin
    checkin.perform_checkin("u1", "alice", "42", now=at(2025, 1, 1, 9))
    checkin.perform_checkin("u1", "alice", "42", now=at(2025, 3, 10, 9))

    summary = checkin.purge_old_data(now=at(2025, 3, 12, 9))

    assert summary["history"] == 2  # one group entry, one global entry
    record = checkin.get_group_user_data("42", "u1")
    assert [e.date for e in record.checkin_history] == ["2025-03-10"]
    assert record.balance == 20
    assert summary["logs"] == 1


def test_failed_global_write_leaves_group_untouched_and_retry_succeeds(checkin, at):
    with patch.object(checkin.store, "save_global_users", side_effect=LedgerPersistenceError("disk full")):
        failed = checkin.perform_checkin("u1", "alice", "42", now=at(2025, 3, 10, 9))

    assert not failed.success
    assert failed.error_code == "PERSISTENCE_FAILED"
    assert checkin.get_group_user_data("42", "u1") is None
    assert checkin.get_user_checkin_data("u1") is None

    retry = checkin.perform_checkin("u1", "alice", "42", now=at(2025, 3, 10, 9, 5))
    assert retry.success
    assert retry.rank == 1
    assert checkin.get_group_user_data("42", "u1").balance == 10
    global_record = checkin.get_user_checkin_data("u1")
    assert global_record.total_exp == 10
    assert len(global_record.checkin_history) == 1


def test_failed_group_write_restores_existing_global_record(checkin, at):
    checkin.perform_checkin("u1", "alice", "42", now=at(2025, 3, 10, 9))
    before = checkin.get_user_checkin_data("u1")

    with patch.object(checkin.store, "save_group_users", side_effect=LedgerPersistenceError("disk full")):
        failed = checkin.perform_checkin("u1", "alice", "43", now=at(2025, 3, 10, 10))

    assert failed.error_code == "PERSISTENCE_FAILED"
    after = checkin.get_user_checkin_data("u1")
    assert after.total_exp == before.total_exp
    assert after.balance == before.balance
    assert len(after.checkin_history) == 1
    assert checkin.store.get_group_cycle_stats("43", "2025-03-10").total_checkins == 0

    retry = checkin.perform_checkin("u1", "alice", "43", now=at(2025, 3, 10, 10, 5))
    assert retry.success
    assert checkin.get_user_checkin_data("u1").total_exp == 20


def test_streak_counts_checkins_across_groups(checkin, at):
    checkin.perform_checkin("u1", "alice", "A", now=at(2025, 3, 10, 9))
    second = checkin.perform_checkin("u1", "alice", "B", now=at(2025, 3, 11, 9))

    assert second.consecutive_days == 2
    assert second.group_consecutive_days == 1
    assert second.breakdown.consecutive_bonus == 2
    assert second.to_dict()["consecutive_days"] == 2
    assert checkin.get_user_checkin_data("u1").consecutive_days == 2


def test_global_balance_tracks_every_group(checkin, at):
    checkin.perform_checkin("u1", "alice", "A", now=at(2025, 3, 10, 9))
    checkin.perform_checkin("u1", "alice", "B", now=at(2025, 3, 10, 10))
    assert checkin.get_user_checkin_data("u1").balance == 20


def test_concurrent_checkins_of_one_user_award_once(checkin, at):
    workers = 8
    barrier = threading.Barrier(workers)
    now = at(2025, 3, 10, 9)

    def attempt(_):
        barrier.wait()
        return checkin.perform_checkin("u1", "alice", "42", now=now)

    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(attempt, range(workers)))

    assert sum(1 for r in results if r.success) == 1
    assert {r.error_code for r in results if not r.success} == {"CYCLE_LIMIT_EXCEEDED"}
    assert len(checkin.get_group_user_data("42", "u1").checkin_history) == 1
    assert len(checkin.get_user_checkin_data("u1").checkin_history) == 1
    assert checkin.get_group_user_data("42", "u1").balance == 10


def test_concurrent_checkins_of_many_users_get_distinct_ranks(checkin, at):
    workers = 8
    barrier = threading.Barrier(workers)
    now = at(2025, 3, 10, 9)

    def attempt(index):
        barrier.wait()
        return checkin.perform_checkin(f"u{index}", f"user{index}", "42", now=now)

    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(attempt, range(workers)))

    assert all(r.success for r in results)
    assert sorted(r.rank for r in results) == list(range(1, workers + 1))
    assert checkin.store.get_group_cycle_stats("42", "2025-03-10").total_checkins == workers
    assert len(checkin.store.load_group("42").users) == workers


def test_purge_waits_for_inflight_checkin_of_the_same_user(make_runtime, at):
    runtime = make_runtime({"retention_days": 30})
    checkin = runtime.checkin
    checkin.perform_checkin("u1", "alice", "42", now=at(2025, 1, 1, 9))

    purge_done = threading.Event()

    def purge():
        checkin.purge_old_data(now=at(2025, 3, 10, 8))
        purge_done.set()

    with runtime.locks.hold(("global", "u1"), ("group", "42", "u1")):
        stale = runtime.store.get_group_user("42", "u1")
        worker = threading.Thread(target=purge)
        worker.start()
        assert not purge_done.wait(0.2)
        runtime.store.save_group_users("42", stale)
    worker.join(timeout=5)

    assert purge_done.is_set()
    assert runtime.store.get_group_user("42", "u1").checkin_history == []
    assert checkin.perform_checkin("u1", "alice", "42", now=at(2025, 3, 10, 9)).success
    history = checkin.get_group_user_data("42", "u1").checkin_history
    assert [e.date for e in history] == ["2025-03-10"]
