from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable

from .errors import CapabilityError, ClaimNotFoundError, PreconditionError, ValidationError
from .schemas import Actor, Claim, ClaimStatus, Role
from .store import ClaimStore
from .submission import MAX_ACCOUNT_NUMBER_LENGTH

logger = logging.getLogger(__name__)

PAYOUT_ALREADY_SET_MESSAGE = "Payout account details are already set for this claim."


class PayoutAccountCapture:
    """The one post-decision write a policy holder may make: the payout account."""

    def __init__(self, store: ClaimStore, clock: Callable[[], datetime]) -> None:
        self.store = store
        self.clock = clock

    def add_payout_account(
        self,
        claim: Claim,
        actor: Actor,
        account_number: str,
        ifsc_code: str,
    ) -> Claim:
        if actor.role is not Role.POLICY_HOLDER or actor.actor_id != claim.policy_holder_id:
            raise CapabilityError(
                "Only the policy holder who filed this claim can add payout details.",
                claim_id=claim.id,
            )
        if claim.status is not ClaimStatus.APPROVED:
            raise PreconditionError(
                f"Payout details can only be added to approved claims (claim is {claim.status.value}).",
                code="claim_not_approved",
                claim_id=claim.id,
            )
        if claim.has_payout_account or claim.ifsc_code is not None:
            raise PreconditionError(PAYOUT_ALREADY_SET_MESSAGE, code="payout_already_set", claim_id=claim.id)

        account = (account_number or "").strip()
        ifsc = (ifsc_code or "").strip()
        if not account:
            raise ValidationError("account_number", "Account number is required", claim_id=claim.id)
        if len(account) > MAX_ACCOUNT_NUMBER_LENGTH:
            raise ValidationError(
                "account_number",
                f"Account number must be at most {MAX_ACCOUNT_NUMBER_LENGTH} characters",
                claim_id=claim.id,
            )
        if not ifsc:
            raise ValidationError("ifsc_code", "IFSC code is required", claim_id=claim.id)

        now = self.clock()
        changes = {"bank_account_number": account, "ifsc_code": ifsc, "updated_at": now}
        written = self.store.conditional_update(
            claim.id,
            changes,
            expected_status=ClaimStatus.APPROVED,
            require_payout_unset=True,
        )
        if not written:
            if self.store.get(claim.id) is None:
                raise ClaimNotFoundError(f"Claim {claim.id} not found.", claim_id=claim.id)
            logger.warning("payout write lost for claim %s; account already set", claim.id)
            raise PreconditionError(PAYOUT_ALREADY_SET_MESSAGE, code="payout_already_set", claim_id=claim.id)

        logger.info("payout account captured for claim %s", claim.id, extra={"claim_id": claim.id})
        return replace(claim, bank_account_number=account, ifsc_code=ifsc, updated_at=now)
