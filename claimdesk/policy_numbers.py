from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from .schemas import InsuranceCompany

INVALID_POLICY_NUMBER_MESSAGE = "Invalid policy number format."

# Ordered: the first matching pattern decides the insurer.
POLICY_NUMBER_PATTERNS: tuple[tuple[InsuranceCompany, re.Pattern[str]], ...] = (
    (InsuranceCompany.LIC, re.compile(r"[0-9]{9}", re.ASCII)),
    (InsuranceCompany.HDFC_ERGO, re.compile(r"[0-9]{10}", re.ASCII)),
    (InsuranceCompany.MUTHOOT_HEALTH, re.compile(r"[A-Za-z]+-[0-9]{4}-[0-9]{6}", re.ASCII)),
    (InsuranceCompany.STAR_HEALTH, re.compile(r"[A-Za-z]+/[\w/]+/[0-9]+", re.ASCII)),
)

ICICI_MIN_LENGTH = 11
_ALPHANUMERIC = re.compile(r"[A-Za-z0-9]+", re.ASCII)
_HAS_LETTER = re.compile(r"[A-Za-z]", re.ASCII)
_HAS_DIGIT = re.compile(r"[0-9]", re.ASCII)


@dataclass(slots=True, frozen=True)
class PolicyClassification:
    company: InsuranceCompany | None
    valid: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "company": self.company.value if self.company else None,
            "valid": self.valid,
            "error": self.error,
        }


def _is_icici_lombard(policy_number: str) -> bool:
    return (
        len(policy_number) >= ICICI_MIN_LENGTH
        and _ALPHANUMERIC.fullmatch(policy_number) is not None
        and _HAS_LETTER.search(policy_number) is not None
        and _HAS_DIGIT.search(policy_number) is not None
    )


def classify_policy_number(raw: str | None) -> PolicyClassification:
    """Map a policy number to the insurer that issues numbers of that shape.

    Blank input is "not entered yet" and carries no error message.
    """
    policy_number = (raw or "").strip()
    if not policy_number:
        return PolicyClassification(company=None, valid=False)

    for company, pattern in POLICY_NUMBER_PATTERNS:
        if pattern.fullmatch(policy_number):
            return PolicyClassification(company=company, valid=True)

    if _is_icici_lombard(policy_number):
        return PolicyClassification(company=InsuranceCompany.ICICI_LOMBARD, valid=True)

    return PolicyClassification(company=None, valid=False, error=INVALID_POLICY_NUMBER_MESSAGE)
