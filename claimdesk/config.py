from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {value!r}") from exc


@dataclass(slots=True)
class Settings:
    claims_db: Path
    document_dir: Path
    document_base_url: str | None

    fraud_scorer_url: str | None
    fraud_scorer_timeout: float

    log_level: str
    log_json: bool
    store_busy_timeout: float


def load_project_env(project_root: Path | None = None) -> None:
    root = project_root or PROJECT_ROOT
    load_dotenv(root / ".env", override=False)


def _env_path(name: str, default: str, root: Path) -> Path:
    path = Path(os.getenv(name) or default).expanduser()
    return path if path.is_absolute() else (root / path).resolve()


def load_settings(project_root: Path | None = None) -> Settings:
    """Read settings from the environment; relative paths are anchored at the project root."""
    root = project_root or PROJECT_ROOT
    return Settings(
        claims_db=_env_path("CLAIMS_DB", "storage/claimdesk.sqlite", root),
        document_dir=_env_path("DOCUMENT_DIR", "storage/documents", root),
        document_base_url=os.getenv("DOCUMENT_BASE_URL") or None,
        fraud_scorer_url=os.getenv("FRAUD_SCORER_URL") or None,
        fraud_scorer_timeout=_env_float("FRAUD_SCORER_TIMEOUT", 10.0),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_json=_env_bool("LOG_JSON", False),
        store_busy_timeout=_env_float("STORE_BUSY_TIMEOUT", 5.0),
    )
