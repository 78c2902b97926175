"""Tests for liquidation API endpoints."""

from decimal import Decimal

import pytest

from services.lending.src.lending.core.lending_operations import LendingOperations
from services.lending.src.lending.core.liquidations import LiquidationService, UserHealthStatus
from services.lending.src.lending.db.health_factor_repository import HealthFactorRepository


@pytest.fixture
def underwater_alice(sqlite_engine, positions, pool_factory, stable_pools):
    """alice: 1000 USDC collateral, 800 DAI debt, USDC threshold cut to 0.7."""
    operations = LendingOperations(sqlite_engine)
    operations.supply("alice", "USDC", Decimal("1000"), "ethereum")
    operations.borrow("alice", "DAI", Decimal("800"), "ethereum")
    positions.upsert_pool_reserves([pool_factory("USDC", liquidation_threshold="0.7")])
    operations.health_engine.recalculate("alice", "ethereum")


def execute(client, headers, debt_to_cover="100", **overrides):
    body = {
        "target_user_id": "alice",
        "collateral_asset": "USDC",
        "debt_asset": "DAI",
        "debt_to_cover": debt_to_cover,
        "chain": "ethereum",
    }
    body.update(overrides)
    return client.post("/api/liquidations/execute", json=body, headers=headers)


class TestTargets:
    def test_lists_underwater_users(self, client, underwater_alice):
        response = client.get("/api/liquidations/targets", params={"chain": "ethereum"})

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        target = data["targets"][0]
        assert target["user_id"] == "alice"
        assert float(target["max_liquidation_amount"]) == pytest.approx(400)
        assert float(target["potential_profit"]) == pytest.approx(20)

    def test_empty(self, client):
        response = client.get("/api/liquidations/targets")
        assert response.json() == {"success": True, "count": 0, "targets": []}


class TestExecute:
    def test_requires_auth(self, client, underwater_alice):
        response = execute(client, {})
        assert response.status_code == 401

    def test_partial_liquidation(self, client, auth_headers, underwater_alice):
        response = execute(client, auth_headers("bob"), debt_to_cover="100")

        assert response.status_code == 200
        data = response.json()
        assert data["was_clamped"] is False
        assert float(data["debt_covered"]) == pytest.approx(100)
        assert float(data["collateral_received"]) == pytest.approx(105)
        assert data["liquidation"]["liquidator_id"] == "bob"
        assert data["liquidation"]["status"] == "completed"
        assert data["liquidation"]["tx_ref"].startswith("liquidation_")
        assert data["health_factor_status"] == "ok"

    def test_request_is_clamped(self, client, auth_headers, underwater_alice):
        response = execute(client, auth_headers("bob"), debt_to_cover="5000")

        data = response.json()
        assert data["was_clamped"] is True
        assert float(data["debt_covered"]) == pytest.approx(400)

    def test_self_liquidation(self, client, auth_headers, underwater_alice):
        response = execute(client, auth_headers("alice"))

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_healthy_target(self, client, auth_headers, sqlite_engine, stable_pools):
        operations = LendingOperations(sqlite_engine)
        operations.supply("alice", "USDC", Decimal("1000"), "ethereum")
        operations.borrow("alice", "DAI", Decimal("100"), "ethereum")

        response = execute(client, auth_headers("bob"))

        assert response.status_code == 400
        assert response.json()["error"] == "User is not eligible for liquidation"

    def test_non_positive_amount(self, client, auth_headers, underwater_alice):
        response = execute(client, auth_headers("bob"), debt_to_cover="0")
        assert response.status_code == 400


class TestUserHealth:
    def test_health(self, client, underwater_alice):
        response = client.get("/api/liquidations/users/alice/health")

        assert response.status_code == 200
        health = response.json()["health_factor"]
        assert health["risk_level"] == "liquidation"
        assert health["is_liquidatable"] is True
        assert float(health["health_factor"]) == pytest.approx(0.875)

    def test_reports_the_evaluated_status(self, client, sqlite_engine, underwater_alice, monkeypatch):
        record = HealthFactorRepository(sqlite_engine).get("alice", "ethereum")

        def evaluated(self, user_id, chain):
            return UserHealthStatus(
                record=record, risk_level="liquidation", is_liquidatable=True, is_stale=True
            )

        monkeypatch.setattr(LiquidationService, "check_user_health", evaluated)
        response = client.get("/api/liquidations/users/alice/health", params={"chain": "ethereum"})

        health = response.json()["health_factor"]
        assert health["is_stale"] is True
        assert health["is_liquidatable"] is True

    def test_unknown_user(self, client):
        response = client.get("/api/liquidations/users/ghost/health")

        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Health factor not found"}


class TestHistory:
    def test_history_after_execution(self, client, auth_headers, underwater_alice):
        execute(client, auth_headers("bob"))

        for user_id in ("alice", "bob"):
            response = client.get("/api/liquidations/history", params={"user_id": user_id})
            assert response.status_code == 200
            assert len(response.json()["liquidations"]) == 1

        response = client.get("/api/liquidations/history", params={"user_id": "carol"})
        assert response.json()["liquidations"] == []

    def test_limit_bounds(self, client):
        response = client.get("/api/liquidations/history", params={"limit": 0})
        assert response.status_code == 400
