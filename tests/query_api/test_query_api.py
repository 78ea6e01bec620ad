"""
Tests for the read-only Query API.
"""

import pytest
from fastapi.testclient import TestClient

from database.engine import transaction_scope
from database.persistence import insert_bounty, insert_claim, set_sync_value
from query_api.main import create_app


A = "0x" + "a" * 40
B = "0x" + "b" * 40
EXEC_1 = "0x" + "e" * 40
EXEC_2 = "0x" + "d" * 40


def bounty(address, block):
    return {
        "address": address,
        "creator": "0x" + "c" * 40,
        "title_hash": "0x" + "12" * 32,
        "proof_type": 1,
        "reward_amount": str(2**200),
        "deadline": 1_900_000_000,
        "block_number": block,
        "tx_hash": "0x" + f"{block:064x}",
    }


def claim(address, executor, block):
    return {
        "bounty_address": address,
        "executor": executor,
        "payout": "500",
        "block_number": block,
        "tx_hash": "0x" + f"{block:064x}",
    }


@pytest.fixture
def client(session_factory):
    with transaction_scope(session_factory) as session:
        insert_bounty(session, bounty(A, 100))
        insert_bounty(session, bounty(B, 101))
        insert_claim(session, claim(A, EXEC_1, 105))
        insert_claim(session, claim(A, EXEC_2, 106))
        insert_claim(session, claim(B, EXEC_1, 107))
        set_sync_value(session, "last_block", "110")
    return TestClient(create_app())


class TestBounties:
    """Tests for /bounties."""

    def test_list_newest_first_with_winners(self, client):
        response = client.get("/bounties")

        assert response.status_code == 200
        rows = response.json()
        assert [r["id"] for r in rows] == [1, 0]
        assert [r["winners_count"] for r in rows] == [1, 2]

    def test_amounts_are_strings(self, client):
        row = client.get("/bounties/0").json()
        assert row["reward_amount"] == str(2**200)

    def test_get_one(self, client):
        row = client.get("/bounties/0").json()
        assert row["address"] == A
        assert row["winners_count"] == 2

    def test_get_missing_is_404(self, client):
        response = client.get("/bounties/99")
        assert response.status_code == 404
        assert response.json() == {"error": "Not found"}

    def test_claims_of_bounty(self, client):
        rows = client.get("/bounties/0/claims").json()
        assert [r["executor"] for r in rows] == [EXEC_2, EXEC_1]

    def test_claims_of_missing_bounty_is_404(self, client):
        response = client.get("/bounties/99/claims")
        assert response.status_code == 404
        assert response.json() == {"error": "Bounty not found"}

    def test_error_body_documented_in_openapi(self, client):
        paths = client.get("/openapi.json").json()["paths"]
        for path in ("/bounties/{bounty_id}", "/bounties/{bounty_id}/claims"):
            not_found = paths[path]["get"]["responses"]["404"]
            ref = not_found["content"]["application/json"]["schema"]["$ref"]
            assert ref.endswith("/ErrorResponse")


class TestClaims:
    """Tests for /claims/{wallet}."""

    def test_wallet_lookup_is_case_insensitive(self, client):
        rows = client.get("/claims/0x" + "E" * 40).json()
        assert {r["bounty_address"] for r in rows} == {A, B}

    def test_unknown_wallet_is_empty(self, client):
        assert client.get("/claims/0x" + "1" * 40).json() == []


class TestHealth:
    """Tests for /health."""

    def test_health_without_scheduler(self, client):
        body = client.get("/health").json()
        assert body["ok"] is True
        assert body["cursor"] == 110
        assert body["sync_enabled"] is False
        assert body["sync"] is None

    def test_cors_header(self, client):
        response = client.get("/health", headers={"Origin": "http://localhost:3000"})
        assert response.headers["access-control-allow-origin"] == "*"
