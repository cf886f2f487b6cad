from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_core import PydanticCustomError

from .errors import ValidationError
from .policy_numbers import INVALID_POLICY_NUMBER_MESSAGE, classify_policy_number
from .schemas import InsuranceCompany

MAX_CLAIM_AMOUNT = Decimal("10000000")
MAX_ACCOUNT_NUMBER_LENGTH = 20

FIELD_LABELS: dict[str, str] = {
    "claim_amount": "Claim amount",
    "policy_number": "Policy number",
    "admission_date": "Admission date",
    "discharge_date": "Discharge date",
    "hospital_name": "Hospital name",
    "patient_name": "Patient name",
    "patient_age": "Patient age",
    "diagnosis": "Diagnosis",
    "treatment_type": "Treatment type",
    "doctor_name": "Doctor name",
    "account_number": "Account number",
    "ifsc_code": "IFSC code",
    "notes": "Notes",
}

_CUSTOM_MESSAGES: dict[tuple[str, str], str] = {
    ("claim_amount", "greater_than"): "Amount must be positive",
    ("claim_amount", "less_than_equal"): "Amount too large",
    ("patient_age", "greater_than"): "Age must be positive",
    ("patient_age", "less_than_equal"): "Invalid age",
    ("notes", "string_too_long"): "Notes too long",
}


class ClaimSubmission(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    claim_amount: Decimal = Field(gt=0, le=MAX_CLAIM_AMOUNT)
    policy_number: str = Field(min_length=1, max_length=50)
    admission_date: date
    discharge_date: date
    hospital_name: str = Field(min_length=1, max_length=200)
    patient_name: str = Field(min_length=1, max_length=200)
    patient_age: int = Field(gt=0, le=150)
    diagnosis: str = Field(min_length=1, max_length=500)
    treatment_type: str = Field(min_length=1, max_length=200)
    doctor_name: str = Field(min_length=1, max_length=200)
    account_number: str | None = Field(default=None, max_length=MAX_ACCOUNT_NUMBER_LENGTH)
    ifsc_code: str | None = None
    notes: str | None = Field(default=None, max_length=1000)

    @field_validator("account_number", "ifsc_code", "notes", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("policy_number")
    @classmethod
    def _classifiable(cls, value: str) -> str:
        if not classify_policy_number(value).valid:
            raise PydanticCustomError("policy_number_format", INVALID_POLICY_NUMBER_MESSAGE)
        return value

    @field_validator("discharge_date")
    @classmethod
    def _not_before_admission(cls, value: date, info: ValidationInfo) -> date:
        admitted = info.data.get("admission_date")
        if admitted is not None and value < admitted:
            raise PydanticCustomError(
                "discharge_before_admission",
                "Discharge date cannot be before admission date",
            )
        return value

    @property
    def insurance_company(self) -> InsuranceCompany:
        company = classify_policy_number(self.policy_number).company
        if company is None:
            raise ValidationError("policy_number", INVALID_POLICY_NUMBER_MESSAGE)
        return company


def _message_for(error: Mapping[str, Any], field: str) -> str:
    label = FIELD_LABELS.get(field, field)
    error_type = str(error.get("type", ""))
    if error_type == "missing":
        return f"{label} is required"
    if error_type == "string_too_short":
        return f"{label} is required"
    if error_type in {"policy_number_format", "discharge_before_admission"}:
        return str(error.get("msg"))
    custom = _CUSTOM_MESSAGES.get((field, error_type))
    if custom:
        return custom
    return f"{label}: {error.get('msg', 'invalid value')}"


def parse_submission(fields: Mapping[str, Any]) -> ClaimSubmission:
    """Validate a submission, raising ValidationError for the first offending field."""
    try:
        submission = ClaimSubmission.model_validate(dict(fields))
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        loc = first.get("loc") or ("submission",)
        field = ".".join(str(part) for part in loc)
        raise ValidationError(field, _message_for(first, str(loc[0]))) from exc

    if submission.account_number and not submission.ifsc_code:
        raise ValidationError("ifsc_code", "IFSC code is required when an account number is given")
    if submission.ifsc_code and not submission.account_number:
        raise ValidationError("account_number", "Account number is required when an IFSC code is given")
    return submission
