from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any, Callable, Iterable, Mapping

from .errors import (
    CapabilityError,
    ClaimDeskError,
    ClaimNotFoundError,
    ConflictError,
    PreconditionError,
    ValidationError,
)
from .fraud_gate import fraud_tier, fraud_tier_label, verify_claim
from .payout import PayoutAccountCapture
from .schemas import Actor, Claim, ClaimDocuments, ClaimStatus, Role
from .scorer import FraudScorer
from .store import ClaimStore
from .submission import parse_submission

logger = logging.getLogger(__name__)

MAX_REJECTION_REASON_LENGTH = 1000

DocumentInput = ClaimDocuments | Mapping[str, str | Iterable[str] | None] | None


def utc_now() -> datetime:
    return datetime.now(UTC)


def claim_to_payload(claim: Claim, include_account: bool = False) -> dict[str, Any]:
    payload = claim.to_dict(include_account=include_account)
    tier = fraud_tier(claim.fraud_probability)
    payload["fraud_tier"] = tier.value if tier else None
    payload["fraud_tier_label"] = fraud_tier_label(claim.fraud_probability)
    return payload


def _require_role(actor: Actor, role: Role, action: str) -> None:
    if actor.role is not role:
        raise CapabilityError(f"Only a {role.value.replace('_', ' ')} can {action}.")


def _ensure_consistent(claim: Claim) -> None:
    violations = claim.invariant_violations()
    if violations:
        raise ClaimDeskError(
            "Refusing to persist inconsistent claim: " + "; ".join(violations),
            code="invariant_violation",
            claim_id=claim.id,
        )


class ClaimLifecycle:
    """Claim state machine: under_review -> approved | rejected.

    Decisions are compare-and-swap writes against the status that was read, so
    two reviewers racing on the same claim cannot both win.
    """

    def __init__(
        self,
        store: ClaimStore,
        scorer: FraudScorer,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.scorer = scorer
        self.clock = clock or utc_now
        self.payouts = PayoutAccountCapture(store, self.clock)

    def create(self, actor: Actor, fields: Mapping[str, Any], documents: DocumentInput = None) -> Claim:
        _require_role(actor, Role.POLICY_HOLDER, "file claims")
        submission = parse_submission(fields)
        if isinstance(documents, ClaimDocuments):
            claim_documents = documents
        else:
            claim_documents = ClaimDocuments.from_mapping(documents)

        now = self.clock()
        claim = Claim(
            id=uuid.uuid4().hex,
            policy_holder_id=actor.actor_id,
            policy_number=submission.policy_number,
            insurance_company=submission.insurance_company,
            claim_amount=submission.claim_amount,
            admission_date=submission.admission_date,
            discharge_date=submission.discharge_date,
            patient_name=submission.patient_name,
            patient_age=submission.patient_age,
            hospital_name=submission.hospital_name,
            doctor_name=submission.doctor_name,
            diagnosis=submission.diagnosis,
            treatment_type=submission.treatment_type,
            notes=submission.notes,
            documents=claim_documents,
            bank_account_number=submission.account_number,
            ifsc_code=submission.ifsc_code,
            created_at=now,
            updated_at=now,
        )
        _ensure_consistent(claim)
        self.store.insert(claim)
        logger.info(
            "claim %s filed by %s (%s, amount %s)",
            claim.id,
            actor.actor_id,
            claim.insurance_company.value,
            claim.claim_amount,
            extra={"claim_id": claim.id, "actor_id": actor.actor_id, "status": claim.status.value},
        )
        return claim

    def load(self, claim_id: str) -> Claim:
        claim = self.store.get(claim_id)
        if claim is None:
            raise ClaimNotFoundError(f"Claim {claim_id} not found.", claim_id=claim_id)
        return claim

    def get(self, claim_id: str, actor: Actor) -> Claim:
        claim = self.load(claim_id)
        if actor.role is Role.POLICY_HOLDER and claim.policy_holder_id != actor.actor_id:
            raise CapabilityError("Policy holders can only view their own claims.", claim_id=claim_id)
        return claim

    def list_claims(self, actor: Actor, status: ClaimStatus | None = None) -> list[Claim]:
        if actor.role is Role.POLICY_HOLDER:
            return self.store.list_claims(policy_holder_id=actor.actor_id, status=status)
        return self.store.list_claims(status=status)

    def verify(self, claim: Claim, actor: Actor) -> Claim:
        _require_role(actor, Role.INSURANCE_WORKER, "verify claims")
        return verify_claim(claim, self.scorer, self.store, self.clock)

    def approve(self, claim: Claim, actor: Actor) -> Claim:
        self._check_decidable(claim, actor)
        return self._decide(claim, actor, ClaimStatus.APPROVED)

    def reject(self, claim: Claim, actor: Actor, reason: str) -> Claim:
        self._check_decidable(claim, actor)
        cleaned = (reason or "").strip()
        if not cleaned:
            raise ValidationError("reason", "Rejection reason is required", claim_id=claim.id)
        if len(cleaned) > MAX_REJECTION_REASON_LENGTH:
            raise ValidationError(
                "reason",
                f"Rejection reason must be at most {MAX_REJECTION_REASON_LENGTH} characters",
                claim_id=claim.id,
            )
        return self._decide(claim, actor, ClaimStatus.REJECTED, rejection_reason=cleaned)

    def add_payout_account(self, claim: Claim, actor: Actor, account_number: str, ifsc_code: str) -> Claim:
        return self.payouts.add_payout_account(claim, actor, account_number, ifsc_code)

    def _check_decidable(self, claim: Claim, actor: Actor) -> None:
        _require_role(actor, Role.INSURANCE_WORKER, "approve or reject claims")
        if claim.status is not ClaimStatus.UNDER_REVIEW:
            logger.warning("decision refused for claim %s: already %s", claim.id, claim.status.value)
            raise PreconditionError(
                f"Claim is already {claim.status.value}; decisions are final.",
                code="claim_not_under_review",
                claim_id=claim.id,
            )
        if not claim.is_verified:
            logger.warning("decision refused for claim %s: not verified", claim.id)
            raise PreconditionError(
                "Run fraud verification before approving or rejecting this claim.",
                code="verification_required",
                claim_id=claim.id,
            )

    def _decide(
        self,
        claim: Claim,
        actor: Actor,
        outcome: ClaimStatus,
        rejection_reason: str | None = None,
    ) -> Claim:
        now = self.clock()
        changes: dict[str, Any] = {
            "status": outcome,
            "reviewed_by": actor.actor_id,
            "reviewed_at": now,
            "updated_at": now,
        }
        if rejection_reason is not None:
            changes["rejection_reason"] = rejection_reason
        decided = replace(claim, **changes)
        _ensure_consistent(decided)

        if not self.store.conditional_update(claim.id, changes, expected_status=claim.status):
            current = self.store.get(claim.id)
            if current is None:
                raise ClaimNotFoundError(f"Claim {claim.id} not found.", claim_id=claim.id)
            logger.warning(
                "lost update on claim %s: expected %s, found %s",
                claim.id,
                claim.status.value,
                current.status.value,
                extra={"claim_id": claim.id, "actor_id": actor.actor_id, "status": current.status.value},
            )
            raise ConflictError(
                f"Claim changed to {current.status.value} since it was loaded; reload and retry.",
                claim_id=claim.id,
            )

        logger.info(
            "claim %s %s by %s",
            claim.id,
            outcome.value,
            actor.actor_id,
            extra={"claim_id": claim.id, "actor_id": actor.actor_id, "status": outcome.value},
        )
        return decided
