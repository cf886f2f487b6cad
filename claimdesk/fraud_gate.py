from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from enum import Enum
from typing import Callable

from .errors import ClaimNotFoundError, DependencyError, PreconditionError
from .schemas import Claim, ClaimStatus, ScoreResult
from .scorer import FraudScorer, parse_score, scoring_attributes
from .store import ClaimStore

logger = logging.getLogger(__name__)

REVIEW_THRESHOLD = 0.30
SUSPICIOUS_THRESHOLD = 0.60
NOT_VERIFIED_LABEL = "Not Verified"


class FraudTier(str, Enum):
    GENUINE = "genuine"
    REVIEW = "review"
    SUSPICIOUS = "suspicious"

    @property
    def label(self) -> str:
        return _TIER_LABELS[self]


_TIER_LABELS: dict[FraudTier, str] = {
    FraudTier.GENUINE: "Low Risk - Genuine",
    FraudTier.REVIEW: "Medium Risk - Review Required",
    FraudTier.SUSPICIOUS: "High Risk - Suspicious",
}


def fraud_tier(probability: float | None) -> FraudTier | None:
    if probability is None:
        return None
    if probability < REVIEW_THRESHOLD:
        return FraudTier.GENUINE
    if probability < SUSPICIOUS_THRESHOLD:
        return FraudTier.REVIEW
    return FraudTier.SUSPICIOUS


def fraud_tier_label(probability: float | None) -> str:
    tier = fraud_tier(probability)
    return tier.label if tier else NOT_VERIFIED_LABEL


def _request_score(claim: Claim, scorer: FraudScorer) -> ScoreResult:
    try:
        result = scorer.score(scoring_attributes(claim))
    except DependencyError:
        raise
    except Exception as exc:
        raise DependencyError(
            f"Fraud scorer failed: {exc}",
            retryable=True,
            code="scorer_unavailable",
            claim_id=claim.id,
        ) from exc

    try:
        return parse_score(
            {"fraud_probability": result.probability, "fraud_prediction": result.prediction}
        )
    except ValueError as exc:
        raise DependencyError(
            str(exc), retryable=True, code="scorer_bad_response", claim_id=claim.id
        ) from exc


def verify_claim(
    claim: Claim,
    scorer: FraudScorer,
    store: ClaimStore,
    clock: Callable[[], datetime],
) -> Claim:
    """Score a claim under review and store the probability/prediction pair.

    The pair replaces any earlier verification in one conditional write; on
    scorer failure nothing is written.
    """
    if claim.status is not ClaimStatus.UNDER_REVIEW:
        raise PreconditionError(
            f"Claim is already {claim.status.value}; only claims under review can be verified.",
            code="claim_not_under_review",
            claim_id=claim.id,
        )

    try:
        result = _request_score(claim, scorer)
    except DependencyError as exc:
        logger.error("fraud scoring failed for claim %s: %s", claim.id, exc, extra={"claim_id": claim.id})
        raise

    now = clock()
    changes = {
        "fraud_probability": result.probability,
        "fraud_prediction": result.prediction,
        "updated_at": now,
    }
    if not store.conditional_update(claim.id, changes, expected_status=ClaimStatus.UNDER_REVIEW):
        current = store.get(claim.id)
        if current is None:
            raise ClaimNotFoundError(f"Claim {claim.id} not found.", claim_id=claim.id)
        raise PreconditionError(
            f"Claim was {current.status.value} before verification finished.",
            code="claim_not_under_review",
            claim_id=claim.id,
        )

    logger.info(
        "claim %s verified: probability=%.4f prediction=%d tier=%s",
        claim.id,
        result.probability,
        result.prediction,
        fraud_tier(result.probability).value,
        extra={"claim_id": claim.id},
    )
    return replace(
        claim,
        fraud_probability=result.probability,
        fraud_prediction=result.prediction,
        updated_at=now,
    )
