"""
Tests for FastAPI Endpoints

Integration tests for the content ledger API.
"""

import base64

import pytest
from fastapi.testclient import TestClient

from content_rail.api.server import app, create_app
from content_rail.config import RailConfig

CREATOR_KEY = {"X-API-Key": "creator-key"}
ALICE_KEY = {"X-API-Key": "alice-key"}
BOB_KEY = {"X-API-Key": "bob-key"}


@pytest.fixture
def client(monkeypatch, temp_db_url):
    """Test client over a fresh database."""
    monkeypatch.setenv("DATABASE_URL", temp_db_url)
    monkeypatch.setenv(
        "RAIL_API_KEYS",
        "creator-key:creator-0x01,alice-key:alice-0xa1,bob-key:bob-0xb0",
    )
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def registered(client):
    """Content 1 at rate 10, capped at 5 units."""
    response = client.post(
        "/content",
        json={
            "content_id": 1,
            "rate_per_unit": 10,
            "max_units": 5,
            "title": "Chapter One",
            "data": base64.b64encode(b"ipfs://chapter-one").decode(),
        },
        headers=CREATOR_KEY,
    )
    assert response.status_code == 201
    return response.json()


class TestHealthEndpoint:
    """Test health check endpoint."""

    def test_health_no_auth_required(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["contents"] == 0
        assert "uptime_seconds" in data


class TestAuthentication:
    """The caller is the identity behind the API key."""

    def test_missing_key(self, client):
        response = client.post("/escrow/deposit", json={"amount": 5})

        assert response.status_code == 422  # Missing header

    def test_unknown_key(self, client):
        response = client.post(
            "/escrow/deposit",
            json={"amount": 5},
            headers={"X-API-Key": "wrong-key"},
        )

        assert response.status_code == 401

    def test_creator_taken_from_key(self, registered):
        assert registered["creator"] == "creator-0x01"
        assert base64.b64decode(registered["data"]) == b"ipfs://chapter-one"


class TestCatalogEndpoints:
    """Test registration and lookup."""

    def test_duplicate_registration_conflict(self, client, registered):
        response = client.post(
            "/content",
            json={"content_id": 1, "rate_per_unit": 1, "title": "Again"},
            headers=BOB_KEY,
        )

        assert response.status_code == 409
        assert response.json()["error"] == "AlreadyRegistered"

    def test_zero_rate_rejected(self, client):
        response = client.post(
            "/content",
            json={"content_id": 2, "rate_per_unit": 0, "title": "Free"},
            headers=CREATOR_KEY,
        )

        assert response.status_code == 400
        assert response.json()["error"] == "InvalidRate"

    def test_invalid_base64_rejected(self, client):
        response = client.post(
            "/content",
            json={"content_id": 2, "rate_per_unit": 1, "title": "Bad", "data": "not base64!!"},
            headers=CREATOR_KEY,
        )

        assert response.status_code == 400

    def test_list_and_get(self, client, registered):
        listing = client.get("/content", headers=ALICE_KEY).json()
        record = client.get("/content/1", headers=ALICE_KEY).json()

        assert listing == {"total": 1, "content_ids": [1]}
        assert record["rate_per_unit"] == 10

    def test_unknown_content_404(self, client):
        response = client.get("/content/77", headers=ALICE_KEY)

        assert response.status_code == 404
        assert response.json()["error"] == "NotFound"

    def test_quote(self, client, registered):
        response = client.get("/content/1/quote", params={"units": 3}, headers=ALICE_KEY)

        assert response.json()["total_cost"] == 30


class TestPurchaseFlow:
    """Deposit, buy, and withdraw over HTTP."""

    def test_full_flow(self, client, registered):
        deposit = client.post("/escrow/deposit", json={"amount": 100}, headers=ALICE_KEY)
        assert deposit.json() == {"identity": "alice-0xa1", "balance": 100}

        access = client.post("/content/1/access", json={"units": 3}, headers=ALICE_KEY)
        assert access.status_code == 200
        assert access.json()["total_cost"] == 30
        assert access.json()["new_usage_total"] == 3

        over_cap = client.post("/content/1/access", json={"units": 3}, headers=ALICE_KEY)
        assert over_cap.status_code == 400
        assert over_cap.json()["error"] == "CapExceeded"

        assert client.get("/escrow/alice-0xa1", headers=ALICE_KEY).json()["balance"] == 70
        assert client.get("/usage/alice-0xa1/1", headers=ALICE_KEY).json()["units"] == 3
        assert client.get("/earnings/creator-0x01", headers=ALICE_KEY).json()["balance"] == 30

        refused = client.post("/content/1/earnings/withdraw", headers=BOB_KEY)
        assert refused.status_code == 403
        assert refused.json()["error"] == "NotCreator"

        paid = client.post("/content/1/earnings/withdraw", headers=CREATOR_KEY)
        assert paid.json() == {"creator": "creator-0x01", "content_id": 1, "amount": 30}

        withdrawn = client.post("/escrow/withdraw", headers=ALICE_KEY)
        assert withdrawn.json() == {"identity": "alice-0xa1", "amount": 70}

    def test_withdraw_empty_escrow(self, client):
        response = client.post("/escrow/withdraw", headers=BOB_KEY)

        assert response.status_code == 400
        assert response.json()["error"] == "NoFunds"

    def test_zero_deposit(self, client):
        response = client.post("/escrow/deposit", json={"amount": 0}, headers=ALICE_KEY)

        assert response.status_code == 400
        assert response.json()["error"] == "InvalidAmount"


class TestAuditEndpoints:
    """Test event log and metrics endpoints."""

    def test_events_listed_and_filtered(self, client, registered):
        client.post("/escrow/deposit", json={"amount": 10}, headers=ALICE_KEY)

        everything = client.get("/events", headers=ALICE_KEY).json()
        deposits = client.get(
            "/events", params={"event_type": "EscrowDeposited"}, headers=ALICE_KEY
        ).json()

        assert everything["total"] == 2
        assert deposits["total"] == 1
        assert deposits["events"][0]["payload"]["amount"] == 10

    def test_verify(self, client, registered):
        data = client.get("/events/verify", headers=ALICE_KEY).json()

        assert data["valid"] is True
        assert data["length"] == 1
        assert data["conservation"]["balanced"] is True

    def test_metrics(self, client, registered):
        data = client.get("/metrics", headers=ALICE_KEY).json()

        assert data["contents"] == 1
        assert data["transactions"]["committed"] == 1

    def test_public_key(self, client):
        data = client.get("/public-key").json()

        assert data["algorithm"] == "Ed25519"
        assert "BEGIN PUBLIC KEY" in data["public_key_pem"]


class TestCors:
    """Allowed origins come from the configuration."""

    def test_configured_origin_allowed(self):
        configured = create_app(RailConfig(cors_origins=["https://reader.example"]))
        preflight = {"Access-Control-Request-Method": "GET"}

        cors_client = TestClient(configured)

        allowed = cors_client.options(
            "/health", headers={"Origin": "https://reader.example", **preflight}
        )
        refused = cors_client.options(
            "/health", headers={"Origin": "https://elsewhere.example", **preflight}
        )

        assert allowed.headers["access-control-allow-origin"] == "https://reader.example"
        assert refused.status_code == 400
