from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Mapping

import pytest

from claimdesk.lifecycle import ClaimLifecycle
from claimdesk.schemas import Actor, Role, ScoreResult
from claimdesk.store import ClaimStore


class StubScorer:
    def __init__(self, probability: float = 0.12, prediction: int = 0) -> None:
        self.probability = probability
        self.prediction = prediction
        self.error: Exception | None = None
        self.calls: list[dict[str, Any]] = []

    def score(self, attributes: Mapping[str, Any]) -> ScoreResult:
        self.calls.append(dict(attributes))
        if self.error is not None:
            raise self.error
        return ScoreResult(probability=self.probability, prediction=self.prediction)


class TickingClock:
    def __init__(self) -> None:
        self.current = datetime(2025, 3, 1, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


def valid_fields(**overrides: Any) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "claim_amount": "125000.50",
        "policy_number": "123456789",
        "admission_date": "2025-01-10",
        "discharge_date": "2025-01-15",
        "hospital_name": "Apollo Hospital, Chennai",
        "patient_name": "Ravi Kumar",
        "patient_age": "54",
        "diagnosis": "Acute appendicitis",
        "treatment_type": "Laparoscopic appendectomy",
        "doctor_name": "Dr. Meera Iyer",
    }
    fields.update(overrides)
    return fields


@pytest.fixture
def store(tmp_path: Path) -> ClaimStore:
    return ClaimStore(tmp_path / "claims.sqlite")


@pytest.fixture
def scorer() -> StubScorer:
    return StubScorer()


@pytest.fixture
def lifecycle(store: ClaimStore, scorer: StubScorer) -> ClaimLifecycle:
    return ClaimLifecycle(store=store, scorer=scorer, clock=TickingClock())


@pytest.fixture
def holder() -> Actor:
    return Actor(actor_id="holder-ravi", role=Role.POLICY_HOLDER)


@pytest.fixture
def worker() -> Actor:
    return Actor(actor_id="worker-anita", role=Role.INSURANCE_WORKER)
