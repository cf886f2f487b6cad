from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from conftest import StubScorer, valid_fields
from claimdesk.config import Settings
from claimdesk.errors import DependencyError
from claimdesk.web_app import create_web_app

HOLDER = {"X-Actor-Id": "holder-ravi", "X-Actor-Role": "policy_holder"}
OTHER_HOLDER = {"X-Actor-Id": "holder-priya", "X-Actor-Role": "policy_holder"}
WORKER = {"X-Actor-Id": "worker-anita", "X-Actor-Role": "insurance_worker"}


def _settings(tmp_path: Path) -> Settings:
    return Settings(
        claims_db=tmp_path / "claims.sqlite",
        document_dir=tmp_path / "documents",
        document_base_url=None,
        fraud_scorer_url=None,
        fraud_scorer_timeout=1.0,
        log_level="WARNING",
        log_json=False,
        store_busy_timeout=5.0,
    )


@pytest.fixture
def web_scorer() -> StubScorer:
    return StubScorer(probability=0.41, prediction=0)


@pytest.fixture
def client(tmp_path: Path, web_scorer: StubScorer) -> TestClient:
    return TestClient(create_web_app(settings=_settings(tmp_path), scorer=web_scorer))


def _submit(client: TestClient, **overrides: str) -> dict:
    response = client.post("/api/claims", data=valid_fields(**overrides), headers=HOLDER)
    assert response.status_code == 201, response.text
    return response.json()


def test_web_app_health_endpoint(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_classify_endpoint_gives_live_feedback(client: TestClient) -> None:
    response = client.post("/api/policy-number/classify", json={"policy_number": "P/141113/01/2025/012345"})
    assert response.json() == {"company": "Star Health Insurance", "valid": True, "error": None}

    response = client.post("/api/policy-number/classify", json={"policy_number": "MHI-25-009876"})
    assert response.json()["error"] == "Invalid policy number format."


def test_submit_claim_with_documents(client: TestClient, tmp_path: Path) -> None:
    response = client.post(
        "/api/claims",
        data=valid_fields(policy_number="MHI-2025-009876"),
        files=[
            ("hospital_bill", ("final bill.pdf", b"%PDF-1.4 bill", "application/pdf")),
            ("diagnostic_reports", ("cbc.pdf", b"%PDF-1.4 cbc", "application/pdf")),
            ("diagnostic_reports", ("usg.pdf", b"%PDF-1.4 usg", "application/pdf")),
        ],
        headers=HOLDER,
    )

    assert response.status_code == 201, response.text
    payload = response.json()
    assert payload["status"] == "under_review"
    assert payload["insurance_company"] == "Muthoot Health Insurance"
    assert payload["fraud_tier"] is None
    assert payload["fraud_tier_label"] == "Not Verified"
    assert payload["stay_duration_days"] == 5
    assert payload["documents"]["hospital_bill"].startswith("file://")
    assert len(payload["documents"]["diagnostic_report"]) == 2
    stored = list((tmp_path / "documents" / "holder-ravi").iterdir())
    assert len(stored) == 3
    assert any(path.name.startswith("hospital-bill-") for path in stored)


def test_invalid_submission_names_field_and_stores_nothing(client: TestClient, tmp_path: Path) -> None:
    response = client.post(
        "/api/claims",
        data=valid_fields(policy_number="12345678"),
        files=[("id_proof", ("aadhaar.pdf", b"%PDF", "application/pdf"))],
        headers=HOLDER,
    )
    assert response.status_code == 422
    assert response.json()["field"] == "policy_number"
    assert not (tmp_path / "documents").exists()
    assert client.get("/api/claims", headers=HOLDER).json()["claims"] == []


def test_missing_identity_headers_are_refused(client: TestClient) -> None:
    response = client.get("/api/claims")
    assert response.status_code == 401
    assert response.json()["error"] == "unauthenticated"

    response = client.get("/api/claims", headers={"X-Actor-Id": "x", "X-Actor-Role": "admin"})
    assert response.status_code == 401
    assert response.json()["error"] == "unauthenticated"

    response = client.post("/api/claims", data=valid_fields(), headers={"X-Actor-Role": "policy_holder"})
    assert response.status_code == 401


def test_review_flow_from_verification_to_payout(client: TestClient, web_scorer: StubScorer) -> None:
    claim_id = _submit(client)["id"]

    early = client.post(f"/api/claims/{claim_id}/approve", headers=WORKER)
    assert early.status_code == 409
    assert early.json()["error"] == "verification_required"

    verified = client.post(f"/api/claims/{claim_id}/verify", headers=WORKER).json()
    assert verified["fraud_probability"] == 0.41
    assert verified["fraud_tier"] == "review"
    assert verified["fraud_tier_label"] == "Medium Risk - Review Required"

    approved = client.post(f"/api/claims/{claim_id}/approve", headers=WORKER)
    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"
    assert approved.json()["reviewed_by"] == "worker-anita"

    again = client.post(f"/api/claims/{claim_id}/reject", json={"reason": "late"}, headers=WORKER)
    assert again.status_code == 409
    assert again.json()["error"] == "claim_not_under_review"

    payout = client.post(
        f"/api/claims/{claim_id}/payout-account",
        json={"account_number": "50100234567890", "ifsc_code": "HDFC0001234"},
        headers=HOLDER,
    )
    assert payout.status_code == 200
    assert payout.json()["masked_account_number"] == "****7890"
    assert "bank_account_number" not in payout.json()

    second = client.post(
        f"/api/claims/{claim_id}/payout-account",
        json={"account_number": "11112222", "ifsc_code": "SBIN0000001"},
        headers=HOLDER,
    )
    assert second.status_code == 409
    assert second.json()["error"] == "payout_already_set"
    assert client.get(f"/api/claims/{claim_id}", headers=HOLDER).json()["masked_account_number"] == "****7890"


def test_reject_with_blank_reason_is_422(client: TestClient) -> None:
    claim_id = _submit(client)["id"]
    client.post(f"/api/claims/{claim_id}/verify", headers=WORKER)

    response = client.post(f"/api/claims/{claim_id}/reject", json={"reason": "   "}, headers=WORKER)
    assert response.status_code == 422
    assert response.json()["field"] == "reason"
    assert client.get(f"/api/claims/{claim_id}", headers=WORKER).json()["status"] == "under_review"


def test_scorer_outage_is_retryable_503(client: TestClient, web_scorer: StubScorer) -> None:
    claim_id = _submit(client)["id"]
    web_scorer.error = TimeoutError("scorer timed out")

    response = client.post(f"/api/claims/{claim_id}/verify", headers=WORKER)

    assert response.status_code == 503
    assert response.json()["retryable"] is True
    assert client.get(f"/api/claims/{claim_id}", headers=WORKER).json()["fraud_probability"] is None


def test_dashboards_scope_claims_by_role(client: TestClient) -> None:
    mine = _submit(client)["id"]
    theirs = client.post(
        "/api/claims", data=valid_fields(policy_number="ABCDE123456"), headers=OTHER_HOLDER
    ).json()["id"]
    client.post(f"/api/claims/{theirs}/verify", headers=WORKER)
    client.post(f"/api/claims/{theirs}/reject", json={"reason": "Policy lapsed"}, headers=WORKER)

    own = client.get("/api/claims", headers=HOLDER).json()["claims"]
    assert [c["id"] for c in own] == [mine]

    rejected = client.get("/api/claims", params={"status": "rejected"}, headers=WORKER).json()["claims"]
    assert [c["id"] for c in rejected] == [theirs]
    assert rejected[0]["rejection_reason"] == "Policy lapsed"

    assert client.get(f"/api/claims/{theirs}", headers=HOLDER).status_code == 403
    assert client.get("/api/claims/unknown", headers=WORKER).status_code == 404
    assert client.get("/api/claims", params={"status": "pending"}, headers=WORKER).status_code == 422


def test_workers_cannot_file_claims(client: TestClient) -> None:
    response = client.post("/api/claims", data=valid_fields(), headers=WORKER)
    assert response.status_code == 403


def test_failed_filing_discards_uploaded_documents(
    client: TestClient, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    def broken_insert(claim: object) -> None:
        raise DependencyError("Claim store insert failed: disk I/O error", code="store_failed")

    monkeypatch.setattr(client.app.state.lifecycle.store, "insert", broken_insert)

    response = client.post(
        "/api/claims",
        data=valid_fields(),
        files=[
            ("id_proof", ("aadhaar.pdf", b"%PDF id", "application/pdf")),
            ("pharmacy_bills", ("meds.pdf", b"%PDF meds", "application/pdf")),
        ],
        headers=HOLDER,
    )

    assert response.status_code == 502
    assert response.json()["error"] == "store_failed"
    holder_dir = tmp_path / "documents" / "holder-ravi"
    assert not holder_dir.exists() or list(holder_dir.iterdir()) == []
