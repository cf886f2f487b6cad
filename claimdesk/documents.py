from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from pathlib import Path

from .errors import DependencyError

logger = logging.getLogger(__name__)


def clean_filename(value: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9._-]+", "-", value).strip("-.")
    return cleaned or "document"


def document_path(policy_holder_id: str, kind: str, filename: str, when: datetime | None = None) -> str:
    stamp = int((when or datetime.now(UTC)).timestamp() * 1000)
    kind_slug = kind.replace("_", "-")
    return f"{clean_filename(policy_holder_id)}/{kind_slug}-{stamp}-{clean_filename(filename)}"


class LocalDocumentStore:
    """Writes document blobs below ``root`` and hands back a URI for each."""

    def __init__(self, root: str | Path, base_url: str | None = None) -> None:
        self.root = Path(root)
        self.base_url = base_url.rstrip("/") if base_url else None

    def _target(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if self.root.resolve() not in target.parents:
            raise ValueError(f"Document path escapes the store root: {path}")
        return target

    def put(self, content: bytes, path: str) -> str:
        target = self._target(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as exc:
            raise DependencyError(f"Document upload failed: {exc}", code="document_store_failed") from exc

        logger.debug("stored document %s (%d bytes)", path, len(content))
        if self.base_url:
            return f"{self.base_url}/{path}"
        return target.as_uri()

    def remove(self, path: str) -> None:
        target = self._target(path)
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("could not remove orphaned document %s: %s", path, exc)
            return
        logger.info("removed orphaned document %s", path)
