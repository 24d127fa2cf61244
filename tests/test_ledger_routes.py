# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
"""
Tests for the token-protected ledger API.
"""

from __future__ import annotations

import pytest
from werkzeug.security import generate_password_hash

from app.web import create_app

AUTH = {"Authorization": "Bearer secret"}


@pytest.fixture
def app(runtime):
    return create_app({"TESTING": True, "API_TOKEN_HASH": generate_password_hash("secret")}, runtime=runtime)


@pytest.fixture
def client(app):
    return app.test_client()


def _award(client, amount, user="u1", **extra):
    return client.post(f"/api/groups/g1/users/{user}/award", json={"amount": amount, **extra}, headers=AUTH)


class TestAuthentication:

    def test_missing_token(self, client):
        response = client.get("/api/groups/g1/users/u1/balance")
        assert response.status_code == 401
        assert response.get_json()["error_code"] == "UNAUTHORIZED"

    def test_wrong_token(self, client):
        response = client.get("/api/groups/g1/users/u1/balance", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_health_is_public(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.get_json()["api_enabled"] is True


class TestPointsEndpoints:

    def test_award_and_balance(self, client):
        response = _award(client, 30, nickname="bob")
        assert response.status_code == 200
        assert response.get_json()["new_balance"] == 30

        balance = client.get("/api/groups/g1/users/u1/balance", headers=AUTH).get_json()
        assert balance["balance"] == 30
        assert balance["total_exp"] == 30
        assert balance["nickname"] == "bob"

    def test_invalid_amount(self, client):
        response = _award(client, -5)
        assert response.status_code == 400
        assert response.get_json()["error_code"] == "INVALID_AMOUNT"

    def test_consume_flow(self, client):
        _award(client, 30)
        body = {"amount": 20, "idempotency_key": "order-1"}
        first = client.post("/api/groups/g1/users/u1/consume", json=body, headers=AUTH)
        replay = client.post("/api/groups/g1/users/u1/consume", json=body, headers=AUTH)
        assert first.get_json()["new_balance"] == 10
        assert replay.get_json()["replayed"] is True

        short = client.post("/api/groups/g1/users/u1/consume",
                            json={"amount": 50, "idempotency_key": "order-2"}, headers=AUTH)
        assert short.status_code == 409
        assert short.get_json()["error_code"] == "INSUFFICIENT_BALANCE"

        missing = client.post("/api/groups/g1/users/u1/consume", json={"amount": 1}, headers=AUTH)
        assert missing.status_code == 400
        assert missing.get_json()["error_code"] == "MISSING_IDEMPOTENCY_KEY"

    def test_transactions_page(self, client):
        _award(client, 5, description="first")
        _award(client, 6, description="second")
        body = client.get("/api/groups/g1/users/u1/transactions?limit=1", headers=AUTH).get_json()
        assert body["total"] == 2
        assert [tx["description"] for tx in body["transactions"]] == ["second"]

    def test_transfer(self, client):
        _award(client, 40, user="a")
        response = client.post("/api/groups/g1/transfer", headers=AUTH, json={
            "from_user_id": "a", "to_user_id": "b", "amount": 15, "idempotency_key": "t-1",
        })
        assert response.status_code == 200
        body = response.get_json()
        assert (body["from_balance"], body["to_balance"]) == (25, 15)

    def test_reset_balance_keeps_exp(self, client):
        _award(client, 40)
        assert client.post("/api/groups/g1/users/u1/reset", json={}, headers=AUTH).status_code == 200
        user = client.get("/api/groups/g1/users/u1", headers=AUTH).get_json()["user"]
        assert user["balance"] == 0
        assert user["total_exp"] == 40

    def test_unknown_user(self, client):
        response = client.get("/api/groups/g1/users/ghost", headers=AUTH)
        assert response.status_code == 404

    def test_equip_unowned_title(self, client):
        response = client.post("/api/groups/g1/users/u1/title", json={"title_id": "early_bird"}, headers=AUTH)
        assert response.status_code == 409
        assert response.get_json()["error_code"] == "TITLE_NOT_OWNED"


class TestCheckinEndpoints:

    def test_checkin_requires_user(self, client):
        response = client.post("/api/checkin", json={"group_id": "g1"}, headers=AUTH)
        assert response.status_code == 400

    def test_checkin_then_limit(self, client):
        body = {"user_id": "u1", "nickname": "alice", "group_id": "g1", "group_name": "Guild"}
        first = client.post("/api/checkin", json=body, headers=AUTH)
        assert first.status_code == 200
        assert first.get_json()["points_awarded"] == 10
        assert first.get_json()["rank"] == 1

        second = client.post("/api/checkin", json=body, headers=AUTH)
        assert second.status_code == 409
        assert second.get_json()["error_code"] == "CYCLE_LIMIT_EXCEEDED"

        cycle = client.get("/api/groups/g1/users/u1/cycle", headers=AUTH).get_json()
        assert cycle == {"checkins_in_cycle": 1, "max_checkins_per_cycle": 1, "rank": 1}

        assert client.get("/api/users/u1", headers=AUTH).get_json()["user"]["total_checkin_days"] == 1

    def test_disabled_group(self, client, runtime):
        runtime.config_store.update({"group_configs": {"g1": {"enable_checkin": False}}})
        response = client.post("/api/checkin", json={"user_id": "u1", "group_id": "g1"}, headers=AUTH)
        assert response.status_code == 403


class TestRankingEndpoints:

    def test_rankings_and_leaderboard(self, client):
        _award(client, 50, user="rich")
        for user in ("u1", "u2"):
            client.post("/api/checkin", json={"user_id": user, "group_id": "g1", "group_name": "Guild"},
                        headers=AUTH)

        rankings = client.get("/api/groups/g1/rankings?sort_by=balance", headers=AUTH).get_json()
        assert rankings["total"] == 3
        assert rankings["rankings"][0]["user_id"] == "rich"

        board = client.get("/api/groups/g1/leaderboard?period=week&user_id=u2", headers=AUTH).get_json()
        assert [e["user_id"] for e in board["entries"]] == ["u1", "u2"]
        assert board["my_rank"]["rank"] == 2

        stats = client.get("/api/groups/g1/stats", headers=AUTH).get_json()
        assert stats["checkins_this_cycle"] == 2

    def test_bad_sort_and_period(self, client):
        assert client.get("/api/rankings?sort_by=name", headers=AUTH).status_code == 400
        assert client.get("/api/groups/g1/leaderboard?period=decade", headers=AUTH).status_code == 400


class TestLogEndpoints:

    def _checkin_twice(self, client):
        body = {"user_id": "u1", "nickname": "alice", "group_id": "g1", "group_name": "Guild"}
        client.post("/api/checkin", json=body, headers=AUTH)
        client.post("/api/checkin", json=body, headers=AUTH)

    def test_query_logs_records_success_and_refusal(self, client):
        self._checkin_twice(client)

        body = client.get("/api/logs?group_id=g1", headers=AUTH).get_json()
        assert body["total"] == 2
        assert [log["status"] for log in body["logs"]] == ["failed", "success"]
        assert body["logs"][0]["error_code"] == "CYCLE_LIMIT_EXCEEDED"
        assert body["logs"][1]["points"] == 10
        assert body["logs"][1]["reply_mode"] == "auto"

        failed = client.get("/api/logs?status=failed", headers=AUTH).get_json()
        assert failed["total"] == 1

        single = client.get(f"/api/logs/{body['logs'][1]['id']}", headers=AUTH).get_json()
        assert single["log"]["user_id"] == "u1"
        assert client.get("/api/logs/missing", headers=AUTH).status_code == 404

    def test_stats_and_trend(self, client):
        self._checkin_twice(client)

        stats = client.get("/api/logs/stats?time_range=today", headers=AUTH).get_json()
        assert stats["total_checkins"] == 1
        assert stats["total_points"] == 10
        assert stats["failed"] == 1
        assert stats["top_users"][0]["user_id"] == "u1"

        trend = client.get("/api/logs/trend?days=7", headers=AUTH).get_json()["trend"]
        assert len(trend) == 7
        assert trend[-1]["count"] == 1

    def test_bad_filters(self, client):
        assert client.get("/api/logs?status=maybe", headers=AUTH).get_json()["error_code"] == "INVALID_STATUS"
        response = client.get("/api/logs/stats?time_range=decade", headers=AUTH)
        assert response.status_code == 400
        assert response.get_json()["error_code"] == "INVALID_TIME_RANGE"

    def test_logging_disabled_for_group(self, client, runtime):
        runtime.config_store.update({"group_configs": {"g1": {"enable_logging": False}}})
        self._checkin_twice(client)
        assert client.get("/api/logs", headers=AUTH).get_json()["total"] == 0


class TestAdminEndpoints:

    def test_config_roundtrip(self, client):
        response = client.post("/api/config", json={"checkin_refresh_time": {"cycle_type": "weekly"}},
                               headers=AUTH)
        assert response.status_code == 200
        assert response.get_json()["config"]["checkin_refresh_time"]["cycle_type"] == "weekly"
        assert client.get("/api/config", headers=AUTH).get_json()["checkin_points"]["min_points"] == 10

    def test_purge_and_metrics(self, client):
        response = client.post("/api/maintenance/purge", headers=AUTH)
        assert response.status_code == 200
        assert response.get_json()["success"] is True
        assert client.get("/api/metrics", headers=AUTH).status_code == 200
