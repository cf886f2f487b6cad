from __future__ import annotations

import socket
import sqlite3
import tempfile
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from .config import PROJECT_ROOT, load_project_env, load_settings


def _check_dns(host: str) -> tuple[bool, str]:
    try:
        socket.gethostbyname(host)
        return True, "resolved"
    except Exception as exc:  # pragma: no cover
        return False, str(exc)


def run_preflight(project_root: str | Path | None = None, strict: bool = False) -> dict[str, Any]:
    root = Path(project_root) if project_root else PROJECT_ROOT
    load_project_env(root)
    settings = load_settings(root)

    checks: list[dict[str, Any]] = []

    def add(name: str, ok: bool, severity: str, detail: str) -> None:
        checks.append({"name": name, "ok": ok, "severity": severity, "detail": detail})

    add("project_root", root.exists(), "fail", str(root))

    claims_db = settings.claims_db
    try:
        claims_db.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(claims_db))
        try:
            conn.execute("CREATE TABLE IF NOT EXISTS preflight_ping(id INTEGER PRIMARY KEY)")
            conn.commit()
        finally:
            conn.close()
        add("claims_db", True, "fail", str(claims_db))
    except (OSError, sqlite3.Error) as exc:
        add("claims_db", False, "fail", f"{claims_db}: {exc}")

    document_dir = settings.document_dir
    try:
        document_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(dir=document_dir, prefix=".preflight-"):
            pass
        add("document_dir", True, "fail", str(document_dir))
    except OSError as exc:
        add("document_dir", False, "fail", f"{document_dir}: {exc}")

    if settings.fraud_scorer_url:
        add("fraud_scorer_url", True, "warn", settings.fraud_scorer_url)
        host = urlparse(settings.fraud_scorer_url).hostname
        if host:
            ok, detail = _check_dns(host)
            add(f"dns:{host}", ok, "warn", detail)
        else:
            add("fraud_scorer_host", False, "warn", "FRAUD_SCORER_URL has no host")
    else:
        add("fraud_scorer_url", False, "warn", "Not set; claim verification will fail")

    try:
        import uvicorn  # noqa: F401

        add("uvicorn_import", True, "warn", "import ok")
    except Exception as exc:  # pragma: no cover
        add("uvicorn_import", False, "warn", str(exc))

    failed = [c for c in checks if not c["ok"] and c["severity"] == "fail"]
    warnings = [c for c in checks if not c["ok"] and c["severity"] == "warn"]

    status = "ok"
    if failed:
        status = "fail"
    elif warnings:
        status = "warn"

    report: dict[str, Any] = {
        "status": status,
        "settings": {
            "claims_db": str(settings.claims_db),
            "document_dir": str(settings.document_dir),
            "fraud_scorer_configured": bool(settings.fraud_scorer_url),
            "log_level": settings.log_level,
        },
        "summary": {
            "passed": len([c for c in checks if c["ok"]]),
            "failed": len(failed),
            "warnings": len(warnings),
        },
        "checks": checks,
    }
    if strict and warnings and status != "fail":
        report["status"] = "fail"
        report["strict_override"] = "warnings_promoted_to_failures"
    return report
