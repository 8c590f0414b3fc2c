"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

import server
from claimguard.orchestration.status import OperationKind
from claimguard.utils.errors import LedgerError


@pytest.fixture
def client(coordinator):
    server.app.dependency_overrides[server.get_coordinator] = lambda: coordinator
    with TestClient(server.app) as test_client:
        yield test_client
    server.app.dependency_overrides.clear()


CLAIM_BODY = {
    "policy_number": "POL-HTTP",
    "provider": "ACME Health",
    "claim_date": "2024-03-15",
    "amount": 15000,
}


def test_healthcheck(client):
    assert client.get("/healthz").json() == {"status": "ok"}


def test_create_verify_and_stats(client):
    created = client.post("/api/claims", json=CLAIM_BODY)
    assert created.status_code == 201
    claim = created.json()
    assert claim["status"] == "Pending"
    assert claim["decrypted_value"] is None

    listed = client.get("/api/claims").json()
    assert listed["count"] == 1

    verified = client.post(f"/api/claims/{claim['id']}/verify")
    assert verified.status_code == 200
    assert verified.json()["decrypted_value"] == 15000
    assert verified.json()["claim"]["status"] == "Verified"

    stats = client.get("/api/stats").json()
    assert stats["total_claims"] == 1
    assert stats["potential_frauds"] == 1

    statuses = client.get("/api/status", params={"limit": 1}).json()["statuses"]
    assert statuses[0]["message"] == "Claim amount decrypted and verified!"


def test_invalid_input_is_a_bad_request(client):
    response = client.post("/api/claims", json={**CLAIM_BODY, "amount": -10})

    assert response.status_code == 400
    assert response.json()["error"]["error_type"] == "INVALID_INPUT"


def test_disconnected_session_is_unauthorized(client):
    session = client.put("/api/session", json={"caller_address": None}).json()
    assert session["authenticated"] is False

    response = client.post("/api/claims", json=CLAIM_BODY)
    assert response.status_code == 401
    assert response.json()["error"]["message"] == "Please connect wallet first"

    assert client.post("/api/gateway/initialize").status_code == 401


def test_unknown_claim(client):
    assert client.get("/api/claims/claim-0-0xnope").status_code == 404
    assert client.post("/api/claims/claim-0-0xnope/verify").status_code == 404


def test_refresh_availability_and_gateway(client, ledger, monkeypatch):
    assert client.post("/api/claims/refresh").json() == {"refreshed": True, "count": 0}
    assert client.get("/api/availability").json()["available"] is True
    assert client.post("/api/gateway/initialize").json() == {"initialized": True}

    async def unreachable():
        raise LedgerError.unreachable("list_claim_ids", ConnectionError("down"))

    monkeypatch.setattr(ledger, "list_claim_ids", unreachable)
    response = client.post("/api/claims/refresh")
    assert response.status_code == 503
    assert response.json()["detail"] == "Failed to load claims"


def test_failed_operation_reports_its_own_error(coordinator):
    coordinator.status.begin(OperationKind.REFRESH_CLAIMS).fail(
        "Failed to load claims", LedgerError.unreachable("list_claim_ids", ConnectionError("down"))
    )
    coordinator.status.begin(OperationKind.CREATE_CLAIM).fail(
        "Transaction rejected", LedgerError.transaction_rejected("submit_claim")
    )

    error = server._operation_failed(coordinator, OperationKind.REFRESH_CLAIMS, 500, "Refresh failed")
    assert error.status_code == 503
    assert error.detail == "Failed to load claims"

    error = server._operation_failed(coordinator, OperationKind.INITIALIZE_GATEWAY, 502, "Gateway failed")
    assert error.status_code == 502
    assert error.detail == "Gateway failed"
