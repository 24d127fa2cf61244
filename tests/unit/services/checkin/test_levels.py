# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""Unit tests for level and title resolution."""

from datetime import date

import pytest

from services.checkin.levels import (
    apply_level,
    equip_title,
    equipped_title,
    exp_to_next_level,
    grant_eligible_titles,
    level_for,
    signin_bonus_for,
)
from services.checkin.models import UserLedgerRecord, UserTitle
from services.exceptions import TitleError

TODAY = date(2025, 3, 12)


@pytest.mark.parametrize("exp, level", [(0, 1), (99, 1), (100, 2), (499, 2), (500, 3), (50000, 7), (10**7, 7)])
def test_level_thresholds(exp, level):
    assert level_for(exp).level == level


def test_exp_to_next_level():
    assert exp_to_next_level(0) == 100
    assert exp_to_next_level(120) == 380
    assert exp_to_next_level(60000) is None


def test_signin_bonus_grows_with_level():
    bonuses = [signin_bonus_for(level) for level in range(1, 8)]
    assert bonuses == sorted(bonuses)
    assert bonuses[0] == 0.0


def test_apply_level_reports_level_up():
    record = UserLedgerRecord(user_id="u1", total_exp=150)
    assert apply_level(record) is True
    assert record.level == 2
    assert record.level_name


def test_level_never_decreases():
    record = UserLedgerRecord(user_id="u1", total_exp=10, level=3)
    assert apply_level(record) is False
    assert record.level == 3


def test_grant_titles_by_level_and_exp():
    record = UserLedgerRecord(user_id="u1", total_exp=1200)
    apply_level(record)
    granted = grant_eligible_titles(record, TODAY)
    assert {"level_1", "level_2", "level_3", "wealthy"} <= set(granted)
    assert grant_eligible_titles(record, TODAY) == []


def test_special_title_expires_and_renews():
    record = UserLedgerRecord(user_id="u1")
    assert "early_bird" in grant_eligible_titles(record, TODAY, ["early_checkin_7"])
    title = next(t for t in record.titles if t.title_id == "early_bird")
    assert title.expires_at == "2025-04-11"

    later = date(2025, 5, 1)
    assert "early_bird" in grant_eligible_titles(record, later, ["early_checkin_7"])
    assert title.expires_at == "2025-05-31"


def test_equip_owned_title():
    record = UserLedgerRecord(user_id="u1", titles=[UserTitle("level_1", "2025-01-01")])
    equip_title(record, "level_1", TODAY)
    assert record.equipped_title_id == "level_1"
    assert equipped_title(record, TODAY).id == "level_1"

    equip_title(record, None, TODAY)
    assert record.equipped_title_id is None
    assert not any(t.equipped for t in record.titles)


def test_equip_rejects_missing_and_expired_titles():
    record = UserLedgerRecord(user_id="u1", titles=[UserTitle("night_owl", "2025-01-01", "2025-01-31")])
    with pytest.raises(TitleError) as excinfo:
        equip_title(record, "wealthy", TODAY)
    assert excinfo.value.error_code == "TITLE_NOT_OWNED"
    with pytest.raises(TitleError) as excinfo:
        equip_title(record, "night_owl", TODAY)
    assert excinfo.value.error_code == "TITLE_EXPIRED"
