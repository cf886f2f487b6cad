from __future__ import annotations

from pathlib import Path

import pytest

from conftest import valid_fields
from claimdesk.errors import DependencyError
from claimdesk.lifecycle import ClaimLifecycle
from claimdesk.schemas import Actor, ClaimStatus
from claimdesk.store import ClaimStore


def test_claim_with_documents_survives_a_reopen(
    lifecycle: ClaimLifecycle, store: ClaimStore, holder: Actor
) -> None:
    claim = lifecycle.create(
        holder,
        valid_fields(),
        {
            "id_proof": "https://docs.example/ravi/id.pdf",
            "discharge_summary": "https://docs.example/ravi/summary.pdf",
            "diagnostic_report": ["https://docs.example/ravi/cbc.pdf", "https://docs.example/ravi/usg.pdf"],
        },
    )

    reopened = ClaimStore(store.db_path)
    loaded = reopened.get(claim.id)

    assert loaded == claim
    assert loaded.documents.attached_kinds() == ["id_proof", "discharge_summary", "diagnostic_report"]


def test_conditional_update_only_applies_on_expected_status(
    lifecycle: ClaimLifecycle, store: ClaimStore, holder: Actor
) -> None:
    claim = lifecycle.create(holder, valid_fields())

    assert store.conditional_update(claim.id, {"fraud_probability": 0.5, "fraud_prediction": 0}, ClaimStatus.APPROVED) is False
    assert store.get(claim.id).fraud_probability is None

    assert store.conditional_update(claim.id, {"fraud_probability": 0.5, "fraud_prediction": 0}, ClaimStatus.UNDER_REVIEW) is True
    assert store.get(claim.id).fraud_probability == 0.5

    assert store.conditional_update("missing", {"status": ClaimStatus.APPROVED}, ClaimStatus.UNDER_REVIEW) is False


def test_conditional_update_refuses_write_once_columns(
    lifecycle: ClaimLifecycle, store: ClaimStore, holder: Actor
) -> None:
    claim = lifecycle.create(holder, valid_fields())
    with pytest.raises(ValueError):
        store.conditional_update(claim.id, {"policy_holder_id": "someone-else"}, ClaimStatus.UNDER_REVIEW)
    with pytest.raises(ValueError):
        store.conditional_update(claim.id, {}, ClaimStatus.UNDER_REVIEW)


def test_unwritable_database_surfaces_dependency_error(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("file in the way")
    with pytest.raises(DependencyError) as excinfo:
        ClaimStore(blocker / "claims.sqlite")
    assert excinfo.value.code == "store_failed"
