from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

from claimdesk import cli


def _run(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], *argv: str) -> dict:
    monkeypatch.setattr(sys, "argv", ["claimdesk", *argv])
    cli.main()
    return json.loads(capsys.readouterr().out)


def test_classify_policy_prints_company(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    payload = _run(monkeypatch, capsys, "classify-policy", "--policy-number", " 1234567890 ")
    assert payload == {"policy_number": "1234567890", "company": "HDFC Ergo", "valid": True, "error": None}


def test_risk_tier_prints_label(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    payload = _run(monkeypatch, capsys, "risk-tier", "--probability", "0.6")
    assert payload["tier"] == "suspicious"
    assert payload["label"] == "High Risk - Suspicious"


def test_init_db_then_list_empty_store(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("CLAIMS_DB", str(tmp_path / "claims.sqlite"))

    assert _run(monkeypatch, capsys, "init-db")["status"] == "ok"
    assert _run(monkeypatch, capsys, "list-claims", "--status", "approved") == {"count": 0, "claims": []}
    assert _run(monkeypatch, capsys, "show-claim", "--claim-id", "nope")["error"] == "claim_not_found"
