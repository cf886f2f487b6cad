from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from fastapi import Depends, FastAPI, File, Form, Header, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .config import Settings, load_project_env, load_settings
from .documents import LocalDocumentStore, document_path
from .errors import (
    CapabilityError,
    ClaimDeskError,
    ClaimNotFoundError,
    ConflictError,
    DependencyError,
    PreconditionError,
    UnauthenticatedError,
    ValidationError,
)
from .lifecycle import ClaimLifecycle, claim_to_payload
from .logging_setup import configure_logging
from .policy_numbers import classify_policy_number
from .preflight import run_preflight
from .schemas import Actor, ClaimStatus, Role
from .scorer import FraudScorer, build_scorer
from .store import ClaimStore
from .submission import parse_submission

logger = logging.getLogger(__name__)


class PolicyNumberIn(BaseModel):
    policy_number: str = ""


class RejectIn(BaseModel):
    reason: str = ""


class PayoutAccountIn(BaseModel):
    account_number: str = ""
    ifsc_code: str = ""


def _http_status(exc: ClaimDeskError) -> int:
    if isinstance(exc, ValidationError):
        return 422
    if isinstance(exc, (PreconditionError, ConflictError)):
        return 409
    if isinstance(exc, UnauthenticatedError):
        return 401
    if isinstance(exc, CapabilityError):
        return 403
    if isinstance(exc, ClaimNotFoundError):
        return 404
    if isinstance(exc, DependencyError):
        return 503 if exc.retryable else 502
    return 500


def current_actor(
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str | None = Header(default=None),
) -> Actor:
    actor_id = (x_actor_id or "").strip()
    if not actor_id or not x_actor_role:
        raise UnauthenticatedError("Missing actor identity headers.")
    try:
        role = Role(x_actor_role.strip().lower())
    except ValueError as exc:
        raise UnauthenticatedError(f"Unknown actor role: {x_actor_role}") from exc
    return Actor(actor_id=actor_id, role=role)


def _parse_status(value: str | None) -> ClaimStatus | None:
    if not value or value == "all":
        return None
    try:
        return ClaimStatus(value)
    except ValueError as exc:
        raise ValidationError("status", f"Unknown claim status: {value}") from exc


def _discard_uploads(documents: LocalDocumentStore, paths: list[str]) -> None:
    for path in paths:
        documents.remove(path)


async def _store_uploads(
    documents: LocalDocumentStore,
    actor: Actor,
    uploads: dict[str, list[UploadFile]],
) -> tuple[dict[str, list[str]], list[str]]:
    stored: dict[str, list[str]] = {}
    paths: list[str] = []
    try:
        for kind, files in uploads.items():
            uris: list[str] = []
            for upload in files:
                if not upload.filename:
                    continue
                content = await upload.read()
                path = document_path(actor.actor_id, kind, upload.filename)
                uris.append(documents.put(content, path))
                paths.append(path)
            if uris:
                stored[kind] = uris
    except Exception:
        _discard_uploads(documents, paths)
        raise
    return stored, paths


def create_web_app(
    settings: Settings | None = None,
    scorer: FraudScorer | None = None,
) -> FastAPI:
    project_root = Path(__file__).resolve().parents[1]
    load_project_env(project_root)
    settings = settings or load_settings(project_root)
    configure_logging(settings.log_level, settings.log_json)

    store = ClaimStore(settings.claims_db, busy_timeout=settings.store_busy_timeout)
    lifecycle = ClaimLifecycle(
        store=store,
        scorer=scorer or build_scorer(settings.fraud_scorer_url, settings.fraud_scorer_timeout),
    )
    documents = LocalDocumentStore(settings.document_dir, base_url=settings.document_base_url)

    app = FastAPI(title="ClaimDesk Adjudication API")
    app.state.lifecycle = lifecycle
    app.state.documents = documents

    @app.exception_handler(ClaimDeskError)
    async def claimdesk_error(request: Request, exc: ClaimDeskError) -> JSONResponse:
        status_code = _http_status(exc)
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(exc.to_dict(), status_code=status_code)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/doctor")
    async def api_doctor(strict: bool = False) -> JSONResponse:
        return JSONResponse(run_preflight(project_root=project_root, strict=strict))

    @app.post("/api/policy-number/classify")
    async def classify(body: PolicyNumberIn) -> JSONResponse:
        return JSONResponse(classify_policy_number(body.policy_number).to_dict())

    @app.post("/api/claims", status_code=201)
    async def submit_claim(
        actor: Actor = Depends(current_actor),
        claim_amount: str | None = Form(default=None),
        policy_number: str | None = Form(default=None),
        admission_date: str | None = Form(default=None),
        discharge_date: str | None = Form(default=None),
        hospital_name: str | None = Form(default=None),
        patient_name: str | None = Form(default=None),
        patient_age: str | None = Form(default=None),
        diagnosis: str | None = Form(default=None),
        treatment_type: str | None = Form(default=None),
        doctor_name: str | None = Form(default=None),
        account_number: str | None = Form(default=None),
        ifsc_code: str | None = Form(default=None),
        notes: str | None = Form(default=None),
        id_proof: UploadFile | None = File(default=None),
        hospital_bill: UploadFile | None = File(default=None),
        discharge_summary: UploadFile | None = File(default=None),
        prescription: UploadFile | None = File(default=None),
        diagnostic_reports: list[UploadFile] | None = File(default=None),
        pharmacy_bills: list[UploadFile] | None = File(default=None),
    ) -> JSONResponse:
        if actor.role is not Role.POLICY_HOLDER:
            raise CapabilityError("Only a policy holder can file claims.")

        raw_fields: dict[str, Any] = {
            "claim_amount": claim_amount,
            "policy_number": policy_number,
            "admission_date": admission_date,
            "discharge_date": discharge_date,
            "hospital_name": hospital_name,
            "patient_name": patient_name,
            "patient_age": patient_age,
            "diagnosis": diagnosis,
            "treatment_type": treatment_type,
            "doctor_name": doctor_name,
            "account_number": account_number,
            "ifsc_code": ifsc_code,
            "notes": notes,
        }
        fields = {name: value for name, value in raw_fields.items() if value is not None}
        # Fail on bad fields before any bytes reach the document store.
        parse_submission(fields)

        uploads: dict[str, list[UploadFile]] = {
            "id_proof": [id_proof] if id_proof else [],
            "hospital_bill": [hospital_bill] if hospital_bill else [],
            "discharge_summary": [discharge_summary] if discharge_summary else [],
            "prescription": [prescription] if prescription else [],
            "diagnostic_report": list(diagnostic_reports or []),
            "pharmacy_bill": list(pharmacy_bills or []),
        }
        stored, paths = await _store_uploads(documents, actor, uploads)
        try:
            claim = lifecycle.create(actor, fields, stored)
        except Exception:
            logger.warning("claim filing failed; discarding %d uploaded documents", len(paths))
            _discard_uploads(documents, paths)
            raise
        return JSONResponse(claim_to_payload(claim), status_code=201)

    @app.get("/api/claims")
    def list_claims(status: str | None = None, actor: Actor = Depends(current_actor)) -> JSONResponse:
        claims = lifecycle.list_claims(actor, status=_parse_status(status))
        return JSONResponse({"claims": [claim_to_payload(claim) for claim in claims]})

    @app.get("/api/claims/{claim_id}")
    def get_claim(claim_id: str, actor: Actor = Depends(current_actor)) -> JSONResponse:
        return JSONResponse(claim_to_payload(lifecycle.get(claim_id, actor)))

    @app.post("/api/claims/{claim_id}/verify")
    def verify_claim(claim_id: str, actor: Actor = Depends(current_actor)) -> JSONResponse:
        claim = lifecycle.verify(lifecycle.load(claim_id), actor)
        return JSONResponse(claim_to_payload(claim))

    @app.post("/api/claims/{claim_id}/approve")
    def approve_claim(claim_id: str, actor: Actor = Depends(current_actor)) -> JSONResponse:
        claim = lifecycle.approve(lifecycle.load(claim_id), actor)
        return JSONResponse(claim_to_payload(claim))

    @app.post("/api/claims/{claim_id}/reject")
    def reject_claim(claim_id: str, body: RejectIn, actor: Actor = Depends(current_actor)) -> JSONResponse:
        claim = lifecycle.reject(lifecycle.load(claim_id), actor, body.reason)
        return JSONResponse(claim_to_payload(claim))

    @app.post("/api/claims/{claim_id}/payout-account")
    def add_payout_account(
        claim_id: str,
        body: PayoutAccountIn,
        actor: Actor = Depends(current_actor),
    ) -> JSONResponse:
        claim = lifecycle.add_payout_account(
            lifecycle.load(claim_id),
            actor,
            body.account_number,
            body.ifsc_code,
        )
        return JSONResponse(claim_to_payload(claim))

    return app
