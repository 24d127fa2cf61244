# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""Unit tests for award/consume/transfer on the points core service."""

import threading
from unittest.mock import patch

import pytest

from services.checkin.points_requests import AwardRequest, ConsumeRequest
from services.checkin.points_service import bonus_amount
from services.exceptions import LedgerPersistenceError, TitleError
from utils.observability import metrics


@pytest.fixture
def points(runtime):
    return runtime.points


def _fund(points, amount=100, user="u1", group="42"):
    result = points.award(group, user, AwardRequest(amount=amount, description="seed"))
    assert result.success
    return result


class TestAward:
    def test_award_raises_exp_and_balance(self, points):
        result = _fund(points, 50)
        assert result.amount_awarded == 50
        assert result.new_balance == 50
        assert result.new_total_exp == 50
        record = points.get_user_points("42", "u1")
        assert record.transaction_log[-1].type == "award"
        assert record.transaction_log[-1].resulting_balance == 50

    def test_level_bonus_applies_on_request(self, points):
        _fund(points, 150)  # level 2 -> +10%
        result = points.award("42", "u1", AwardRequest(amount=20, apply_level_bonus=True))
        assert result.amount_awarded == 22

    def test_bonus_amount_rounding(self):
        assert bonus_amount(20, 1.0, 3) == 23
        assert bonus_amount(10, 1.5, 1) == 15

    def test_award_replays_known_key(self, points):
        first = points.award("42", "u1", AwardRequest(amount=30, idempotency_key="order-1"))
        again = points.award("42", "u1", AwardRequest(amount=30, idempotency_key="order-1"))
        assert again.success and again.replayed
        assert again.new_balance == first.new_balance == 30
        assert points.check_balance("42", "u1").balance == 30

    @pytest.mark.parametrize("amount", [0, -5, 1.5, "10", True, 10_000_001])
    def test_invalid_amounts_are_rejected(self, points, amount):
        result = points.award("42", "u1", AwardRequest(amount=amount))
        assert not result.success
        assert result.error_code == "INVALID_AMOUNT"
        assert points.get_user_points("42", "u1") is None

    def test_level_up_grants_titles(self, points):
        result = points.award("42", "u1", AwardRequest(amount=120))
        assert result.level_up
        assert "level_2" in result.new_titles
        assert {t["title_id"] for t in points.list_titles("42", "u1")} >= {"level_1", "level_2"}

    def test_persistence_failure_becomes_result(self, points):
        with patch.object(points.store, "save_group_users", side_effect=LedgerPersistenceError("boom")):
            result = points.award("42", "u1", AwardRequest(amount=5))
        assert not result.success
        assert result.error_code == "PERSISTENCE_FAILED"
        assert points.get_user_points("42", "u1") is None


class TestConsume:
    def test_consume_deducts_balance_only(self, points):
        _fund(points, 100)
        result = points.consume("42", "u1", ConsumeRequest(amount=30, idempotency_key="buy-1", order_id="o-1"))
        assert result.success
        assert result.new_balance == 70
        info = points.check_balance("42", "u1")
        assert info.balance == 70
        assert info.total_exp == 100
        tx = points.get_user_points("42", "u1").transaction_log[-1]
        assert tx.amount == -30
        assert tx.order_id == "o-1"

    def test_consume_replay_deducts_once(self, points):
        _fund(points, 100)
        first = points.consume("42", "u1", ConsumeRequest(amount=40, idempotency_key="buy-1"))
        second = points.consume("42", "u1", ConsumeRequest(amount=40, idempotency_key="buy-1"))
        assert first.success and second.success
        assert second.replayed
        assert second.new_balance == first.new_balance == 60
        assert points.check_balance("42", "u1").balance == 60

    def test_insufficient_balance_leaves_record_untouched(self, points):
        _fund(points, 10)
        result = points.consume("42", "u1", ConsumeRequest(amount=11, idempotency_key="buy-2"))
        assert not result.success
        assert result.error_code == "INSUFFICIENT_BALANCE"
        assert result.new_balance == 10
        assert len(points.get_user_points("42", "u1").transaction_log) == 1

    def test_unknown_user_has_no_balance(self, points):
        result = points.consume("42", "nobody", ConsumeRequest(amount=1, idempotency_key="k"))
        assert result.error_code == "INSUFFICIENT_BALANCE"

    def test_missing_key_is_rejected_before_amount(self, points):
        result = points.consume("42", "u1", ConsumeRequest(amount=-1, idempotency_key=" "))
        assert result.error_code == "MISSING_IDEMPOTENCY_KEY"

    def test_concurrent_consumes_never_overdraw(self, points):
        _fund(points, 100)
        results = []

        def spend(i):
            results.append(points.consume("42", "u1", ConsumeRequest(amount=30, idempotency_key=f"k{i}")))

        threads = [threading.Thread(target=spend, args=(i,)) for i in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(1 for r in results if r.success) == 3
        assert points.check_balance("42", "u1").balance == 10


class TestTransferAndAdmin:
    def test_transfer_moves_balance_not_exp(self, points):
        _fund(points, 100, user="a")
        result = points.transfer("42", "a", "b", 25, "gift-1")
        assert result.success
        assert result.from_balance == 75
        assert result.to_balance == 25
        assert points.check_balance("42", "b").total_exp == 0

        replay = points.transfer("42", "a", "b", 25, "gift-1")
        assert replay.replayed
        assert points.check_balance("42", "a").balance == 75

    def test_transfer_validation(self, points):
        assert points.transfer("42", "a", "a", 5, "k").error_code == "VALIDATION_FAILED"
        assert points.transfer("42", "a", "b", 5, "").error_code == "MISSING_IDEMPOTENCY_KEY"
        assert points.transfer("42", "a", "b", 5, "k").error_code == "INSUFFICIENT_BALANCE"

    def test_reset_balance_keeps_exp(self, points):
        _fund(points, 80)
        result = points.reset_balance("42", "u1", operator_id="admin")
        assert result.success and result.amount == 80
        info = points.check_balance("42", "u1")
        assert info.balance == 0
        assert info.total_exp == 80
        assert points.reset_balance("42", "ghost").error_code == "USER_NOT_FOUND"

    def test_equip_title(self, points):
        _fund(points, 10)
        record = points.equip_title("42", "u1", "level_1")
        assert record.equipped_title_id == "level_1"
        with pytest.raises(TitleError):
            points.equip_title("42", "u1", "wealthy")

    def test_transactions_are_paged_newest_first(self, points):
        for i in range(5):
            points.award("42", "u1", AwardRequest(amount=i + 1, description=f"tx{i}"))
        page, total = points.get_transactions("42", "u1", limit=2, offset=1)
        assert total == 5
        assert [tx.description for tx in page] == ["tx3", "tx2"]
        consumes, count = points.get_transactions("42", "u1", tx_type="consume")
        assert consumes == [] and count == 0

    def test_metrics_are_counted(self, points):
        _fund(points, 10)
        assert metrics.get_counter("points.award.total") == 1
