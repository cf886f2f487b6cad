from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, Mapping

from .errors import DependencyError
from .schemas import Claim, ClaimDocuments, ClaimStatus, InsuranceCompany

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS claims (
    id TEXT PRIMARY KEY,
    policy_holder_id TEXT NOT NULL,
    policy_number TEXT NOT NULL,
    insurance_company TEXT NOT NULL,
    claim_amount TEXT NOT NULL,
    admission_date TEXT NOT NULL,
    discharge_date TEXT NOT NULL,
    patient_name TEXT NOT NULL,
    patient_age INTEGER NOT NULL,
    hospital_name TEXT NOT NULL,
    doctor_name TEXT NOT NULL,
    diagnosis TEXT NOT NULL,
    treatment_type TEXT NOT NULL,
    notes TEXT,
    id_proof_url TEXT,
    hospital_bill_url TEXT,
    discharge_summary_url TEXT,
    prescription_url TEXT,
    diagnostic_report_urls TEXT NOT NULL DEFAULT '[]',
    pharmacy_bill_urls TEXT NOT NULL DEFAULT '[]',
    bank_account_number TEXT,
    ifsc_code TEXT,
    status TEXT NOT NULL,
    fraud_probability REAL,
    fraud_prediction INTEGER,
    rejection_reason TEXT,
    reviewed_by TEXT,
    reviewed_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_claims_policy_holder ON claims(policy_holder_id, created_at);
CREATE INDEX IF NOT EXISTS idx_claims_status ON claims(status, created_at);
"""

# Columns a conditional update may touch; identity, ownership and policy facts are write-once.
UPDATABLE_COLUMNS = frozenset(
    {
        "status",
        "fraud_probability",
        "fraud_prediction",
        "rejection_reason",
        "reviewed_by",
        "reviewed_at",
        "bank_account_number",
        "ifsc_code",
        "updated_at",
    }
)


def _encode(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def _claim_to_row(claim: Claim) -> dict[str, Any]:
    docs = claim.documents
    return {
        "id": claim.id,
        "policy_holder_id": claim.policy_holder_id,
        "policy_number": claim.policy_number,
        "insurance_company": _encode(claim.insurance_company),
        "claim_amount": _encode(claim.claim_amount),
        "admission_date": _encode(claim.admission_date),
        "discharge_date": _encode(claim.discharge_date),
        "patient_name": claim.patient_name,
        "patient_age": claim.patient_age,
        "hospital_name": claim.hospital_name,
        "doctor_name": claim.doctor_name,
        "diagnosis": claim.diagnosis,
        "treatment_type": claim.treatment_type,
        "notes": claim.notes,
        "id_proof_url": docs.id_proof,
        "hospital_bill_url": docs.hospital_bill,
        "discharge_summary_url": docs.discharge_summary,
        "prescription_url": docs.prescription,
        "diagnostic_report_urls": json.dumps(docs.diagnostic_report),
        "pharmacy_bill_urls": json.dumps(docs.pharmacy_bill),
        "bank_account_number": claim.bank_account_number,
        "ifsc_code": claim.ifsc_code,
        "status": _encode(claim.status),
        "fraud_probability": claim.fraud_probability,
        "fraud_prediction": claim.fraud_prediction,
        "rejection_reason": claim.rejection_reason,
        "reviewed_by": claim.reviewed_by,
        "reviewed_at": _encode(claim.reviewed_at),
        "created_at": _encode(claim.created_at),
        "updated_at": _encode(claim.updated_at),
    }


def _row_to_claim(row: sqlite3.Row) -> Claim:
    reviewed_at = row["reviewed_at"]
    return Claim(
        id=row["id"],
        policy_holder_id=row["policy_holder_id"],
        policy_number=row["policy_number"],
        insurance_company=InsuranceCompany(row["insurance_company"]),
        claim_amount=Decimal(row["claim_amount"]),
        admission_date=date.fromisoformat(row["admission_date"]),
        discharge_date=date.fromisoformat(row["discharge_date"]),
        patient_name=row["patient_name"],
        patient_age=row["patient_age"],
        hospital_name=row["hospital_name"],
        doctor_name=row["doctor_name"],
        diagnosis=row["diagnosis"],
        treatment_type=row["treatment_type"],
        notes=row["notes"],
        documents=ClaimDocuments(
            id_proof=row["id_proof_url"],
            hospital_bill=row["hospital_bill_url"],
            discharge_summary=row["discharge_summary_url"],
            prescription=row["prescription_url"],
            diagnostic_report=json.loads(row["diagnostic_report_urls"] or "[]"),
            pharmacy_bill=json.loads(row["pharmacy_bill_urls"] or "[]"),
        ),
        bank_account_number=row["bank_account_number"],
        ifsc_code=row["ifsc_code"],
        status=ClaimStatus(row["status"]),
        fraud_probability=row["fraud_probability"],
        fraud_prediction=row["fraud_prediction"],
        rejection_reason=row["rejection_reason"],
        reviewed_by=row["reviewed_by"],
        reviewed_at=datetime.fromisoformat(reviewed_at) if reviewed_at else None,
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


class ClaimStore:
    """SQLite claim table: read-by-id, insert and conditional update."""

    def __init__(self, db_path: str | Path, busy_timeout: float = 5.0) -> None:
        self.db_path = Path(db_path)
        self.busy_timeout = busy_timeout
        self.setup()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=self.busy_timeout, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _conn(self, operation: str) -> Iterator[sqlite3.Connection]:
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise DependencyError(f"Claim store unavailable during {operation}: {exc}", code="store_failed") from exc
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            logger.error("claim store %s failed: %s", operation, exc)
            raise DependencyError(f"Claim store {operation} failed: {exc}", code="store_failed") from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def setup(self) -> None:
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise DependencyError(f"Claim store directory unavailable: {exc}", code="store_failed") from exc
        with self._conn("setup") as conn:
            conn.executescript(_SCHEMA)

    def get(self, claim_id: str) -> Claim | None:
        with self._conn("read") as conn:
            row = conn.execute("SELECT * FROM claims WHERE id = ?", (claim_id,)).fetchone()
        return _row_to_claim(row) if row else None

    def insert(self, claim: Claim) -> None:
        row = _claim_to_row(claim)
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        with self._conn("insert") as conn:
            conn.execute(f"INSERT INTO claims ({columns}) VALUES ({placeholders})", tuple(row.values()))

    def conditional_update(
        self,
        claim_id: str,
        changes: Mapping[str, Any],
        expected_status: ClaimStatus,
        require_payout_unset: bool = False,
    ) -> bool:
        """Apply ``changes`` only if the stored status still equals ``expected_status``.

        Returns False when the condition did not hold (or the claim is gone); the
        caller decides whether that is a conflict or a precondition failure.
        """
        unknown = set(changes) - UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Columns are not updatable: {', '.join(sorted(unknown))}")
        if not changes:
            raise ValueError("conditional_update needs at least one change")

        assignments = ", ".join(f"{column} = ?" for column in changes)
        sql = f"UPDATE claims SET {assignments} WHERE id = ? AND status = ?"
        if require_payout_unset:
            sql += " AND bank_account_number IS NULL AND ifsc_code IS NULL"
        params = [_encode(value) for value in changes.values()]
        params.extend([claim_id, _encode(expected_status)])

        with self._conn("update") as conn:
            cursor = conn.execute(sql, params)
            return cursor.rowcount == 1

    def list_claims(
        self,
        policy_holder_id: str | None = None,
        status: ClaimStatus | None = None,
    ) -> list[Claim]:
        clauses: list[str] = []
        params: list[Any] = []
        if policy_holder_id is not None:
            clauses.append("policy_holder_id = ?")
            params.append(policy_holder_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(_encode(status))
        sql = "SELECT * FROM claims"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY created_at DESC, id"
        with self._conn("list") as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_row_to_claim(row) for row in rows]
