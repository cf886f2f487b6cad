from __future__ import annotations

from typing import Any


class ClaimDeskError(Exception):
    """Base error for claim adjudication; carries a machine-readable code."""

    code = "claimdesk_error"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        field: str | None = None,
        claim_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.field = field
        self.claim_id = claim_id

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.code, "detail": self.message}
        if self.field:
            payload["field"] = self.field
        if self.claim_id:
            payload["claim_id"] = self.claim_id
        return payload


class ValidationError(ClaimDeskError):
    code = "validation_error"

    def __init__(self, field: str, message: str, *, claim_id: str | None = None) -> None:
        super().__init__(message, field=field, claim_id=claim_id)


class PreconditionError(ClaimDeskError):
    code = "precondition_failed"


class ConflictError(ClaimDeskError):
    code = "status_conflict"


class CapabilityError(ClaimDeskError):
    code = "capability_required"


class UnauthenticatedError(CapabilityError):
    code = "unauthenticated"


class ClaimNotFoundError(ClaimDeskError):
    code = "claim_not_found"


class DependencyError(ClaimDeskError):
    code = "dependency_failed"

    def __init__(
        self,
        message: str,
        *,
        retryable: bool = False,
        code: str | None = None,
        claim_id: str | None = None,
    ) -> None:
        super().__init__(message, code=code, claim_id=claim_id)
        self.retryable = retryable

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["retryable"] = self.retryable
        return payload
