from __future__ import annotations

import logging
import math
from typing import Any, Mapping, Protocol

import requests

from .errors import DependencyError
from .schemas import Claim, ScoreResult

logger = logging.getLogger(__name__)


class FraudScorer(Protocol):
    def score(self, attributes: Mapping[str, Any]) -> ScoreResult: ...


def scoring_attributes(claim: Claim) -> dict[str, Any]:
    """Attributes the fraud model sees; no identities, no payout details."""
    return {
        "claim_id": claim.id,
        "insurance_company": claim.insurance_company.value,
        "claim_amount": float(claim.claim_amount),
        "admission_date": claim.admission_date.isoformat(),
        "discharge_date": claim.discharge_date.isoformat(),
        "stay_duration_days": claim.stay_duration_days,
        "patient_age": claim.patient_age,
        "hospital_name": claim.hospital_name,
        "doctor_name": claim.doctor_name,
        "diagnosis": claim.diagnosis,
        "treatment_type": claim.treatment_type,
        "documents_attached": claim.documents.attached_kinds(),
        "diagnostic_report_count": len(claim.documents.diagnostic_report),
        "pharmacy_bill_count": len(claim.documents.pharmacy_bill),
    }


def parse_score(payload: Any) -> ScoreResult:
    if not isinstance(payload, dict):
        raise ValueError("scorer response is not a JSON object")
    try:
        probability = float(payload["fraud_probability"])
        raw_prediction = payload["fraud_prediction"]
    except (KeyError, TypeError, ValueError) as exc:
        raise ValueError(f"scorer response missing or malformed field: {exc}") from exc

    if math.isnan(probability) or not 0.0 <= probability <= 1.0:
        raise ValueError(f"fraud_probability out of range: {probability}")
    if isinstance(raw_prediction, bool) or raw_prediction not in (0, 1):
        raise ValueError(f"fraud_prediction must be 0 or 1, got {raw_prediction!r}")
    return ScoreResult(probability=probability, prediction=int(raw_prediction))


class HttpFraudScorer:
    """Calls a remote fraud model that answers ``{"fraud_probability", "fraud_prediction"}``."""

    def __init__(self, url: str, timeout: float = 10.0, session: requests.Session | None = None) -> None:
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def score(self, attributes: Mapping[str, Any]) -> ScoreResult:
        try:
            response = self.session.post(self.url, json=dict(attributes), timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            raise DependencyError(
                f"Fraud scorer request failed: {exc}",
                retryable=True,
                code="scorer_unavailable",
            ) from exc
        except ValueError as exc:
            raise DependencyError(
                f"Fraud scorer returned invalid JSON: {exc}",
                retryable=True,
                code="scorer_bad_response",
            ) from exc

        try:
            return parse_score(payload)
        except ValueError as exc:
            raise DependencyError(str(exc), retryable=True, code="scorer_bad_response") from exc


class UnconfiguredFraudScorer:
    def score(self, attributes: Mapping[str, Any]) -> ScoreResult:
        raise DependencyError(
            "Fraud scorer is not configured. Set FRAUD_SCORER_URL.",
            retryable=False,
            code="scorer_not_configured",
        )


def build_scorer(url: str | None, timeout: float = 10.0) -> FraudScorer:
    if not url:
        logger.warning("FRAUD_SCORER_URL is not set; claim verification will fail until it is configured")
        return UnconfiguredFraudScorer()
    return HttpFraudScorer(url=url, timeout=timeout)
