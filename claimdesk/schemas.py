from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Mapping

from .errors import ValidationError


class InsuranceCompany(str, Enum):
    LIC = "LIC"
    HDFC_ERGO = "HDFC Ergo"
    MUTHOOT_HEALTH = "Muthoot Health Insurance"
    STAR_HEALTH = "Star Health Insurance"
    ICICI_LOMBARD = "ICICI Lombard"


class ClaimStatus(str, Enum):
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not ClaimStatus.UNDER_REVIEW


class Role(str, Enum):
    POLICY_HOLDER = "policy_holder"
    INSURANCE_WORKER = "insurance_worker"


SINGLE_DOCUMENT_KINDS: tuple[str, ...] = (
    "id_proof",
    "hospital_bill",
    "discharge_summary",
    "prescription",
)
MULTI_DOCUMENT_KINDS: tuple[str, ...] = ("diagnostic_report", "pharmacy_bill")

DOCUMENT_LABELS: dict[str, str] = {
    "id_proof": "Patient ID Proof",
    "hospital_bill": "Hospital Bill",
    "discharge_summary": "Discharge Summary",
    "prescription": "Doctor Prescription",
    "diagnostic_report": "Diagnostic Report",
    "pharmacy_bill": "Pharmacy Bill",
}


@dataclass(slots=True, frozen=True)
class Actor:
    actor_id: str
    role: Role


@dataclass(slots=True, frozen=True)
class ScoreResult:
    probability: float
    prediction: int


@dataclass(slots=True)
class ClaimDocuments:
    id_proof: str | None = None
    hospital_bill: str | None = None
    discharge_summary: str | None = None
    prescription: str | None = None
    diagnostic_report: list[str] = field(default_factory=list)
    pharmacy_bill: list[str] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, str | Iterable[str] | None] | None) -> ClaimDocuments:
        documents = cls()
        for kind, value in (mapping or {}).items():
            if value is None:
                uris: list[str] = []
            elif isinstance(value, str):
                uris = [value]
            else:
                uris = [uri for uri in value if uri]
            if kind in SINGLE_DOCUMENT_KINDS:
                if len(uris) > 1:
                    raise ValidationError(
                        f"documents.{kind}",
                        f"Only one {DOCUMENT_LABELS[kind]} may be attached.",
                    )
                setattr(documents, kind, uris[0] if uris else None)
            elif kind in MULTI_DOCUMENT_KINDS:
                setattr(documents, kind, uris)
            else:
                raise ValidationError(f"documents.{kind}", f"Unsupported document kind: {kind}")
        return documents

    def attached_kinds(self) -> list[str]:
        kinds = [kind for kind in SINGLE_DOCUMENT_KINDS if getattr(self, kind)]
        kinds.extend(kind for kind in MULTI_DOCUMENT_KINDS if getattr(self, kind))
        return kinds

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class Claim:
    id: str
    policy_holder_id: str
    policy_number: str
    insurance_company: InsuranceCompany
    claim_amount: Decimal
    admission_date: date
    discharge_date: date
    patient_name: str
    patient_age: int
    hospital_name: str
    doctor_name: str
    diagnosis: str
    treatment_type: str
    created_at: datetime
    updated_at: datetime
    status: ClaimStatus = ClaimStatus.UNDER_REVIEW
    notes: str | None = None
    documents: ClaimDocuments = field(default_factory=ClaimDocuments)
    bank_account_number: str | None = None
    ifsc_code: str | None = None
    fraud_probability: float | None = None
    fraud_prediction: int | None = None
    rejection_reason: str | None = None
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None

    @property
    def is_verified(self) -> bool:
        return self.fraud_probability is not None

    @property
    def has_payout_account(self) -> bool:
        return self.bank_account_number is not None

    @property
    def stay_duration_days(self) -> int:
        return (self.discharge_date - self.admission_date).days

    @property
    def masked_account_number(self) -> str | None:
        if not self.bank_account_number:
            return None
        return f"****{self.bank_account_number[-4:]}"

    def invariant_violations(self) -> list[str]:
        violations: list[str] = []
        rejected = self.status is ClaimStatus.REJECTED
        has_reason = bool(self.rejection_reason and self.rejection_reason.strip())
        if rejected != has_reason:
            violations.append("rejection_reason must be present exactly when the claim is rejected")

        reviewed = self.reviewed_by is not None, self.reviewed_at is not None
        if self.status.is_terminal and not all(reviewed):
            violations.append("decided claims must record reviewed_by and reviewed_at")
        if not self.status.is_terminal and any(reviewed):
            violations.append("claims under review must not carry review metadata")

        if (self.bank_account_number is None) != (self.ifsc_code is None):
            violations.append("bank_account_number and ifsc_code must be set together")

        if (self.fraud_probability is None) != (self.fraud_prediction is None):
            violations.append("fraud_probability and fraud_prediction must be set together")
        return violations

    def to_dict(self, include_account: bool = False) -> dict[str, Any]:
        payload = asdict(self)
        payload["insurance_company"] = self.insurance_company.value
        payload["status"] = self.status.value
        payload["claim_amount"] = str(self.claim_amount)
        payload["admission_date"] = self.admission_date.isoformat()
        payload["discharge_date"] = self.discharge_date.isoformat()
        payload["created_at"] = self.created_at.isoformat()
        payload["updated_at"] = self.updated_at.isoformat()
        payload["reviewed_at"] = self.reviewed_at.isoformat() if self.reviewed_at else None
        payload["stay_duration_days"] = self.stay_duration_days
        payload["masked_account_number"] = self.masked_account_number
        if not include_account:
            payload.pop("bank_account_number")
        return payload
