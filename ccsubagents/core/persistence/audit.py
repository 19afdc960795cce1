"""
Operation ledger — one NDJSON line per install, update or uninstall.

Lives next to tracked.json as ``audit.ndjson``. tracked.json says what
is installed now; the ledger says how it got there, including failed
runs, rollbacks and tracked paths the allowlist refused to delete.

Lines are only ever appended. A ledger that cannot be written is
logged and ignored: losing history must never fail an install.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_FILE = "audit.ndjson"


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class AuditEntry(BaseModel):
    """One ledger line.

    ``status`` is ``ok``, ``completed_with_skips`` (tracked paths were
    refused by the allowlist and left on disk; see ``skipped_paths``),
    ``failed`` (nothing was touched), ``rolled_back`` or
    ``rollback_failed``.
    """

    timestamp: str = Field(default_factory=_now_iso)
    operation_type: str = ""

    release_id: int = 0
    release_tag: str = ""

    status: str = ""
    duration_ms: int = 0
    skipped_paths: list[str] = Field(default_factory=list)

    error_kind: str = ""
    errors: list[str] = Field(default_factory=list)

    context: dict[str, Any] = Field(default_factory=dict)


class AuditWriter:
    """Append to and read back one ledger file.

    Args:
        path: Explicit ledger file.
        state_dir: Directory holding tracked.json; the ledger goes
            beside it. Ignored when ``path`` is given.
    """

    def __init__(self, path: Path | None = None, state_dir: Path | None = None):
        if path is None:
            path = (state_dir or Path()) / DEFAULT_AUDIT_FILE
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: AuditEntry) -> None:
        record = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as ledger:
                ledger.write(record + "\n")
        except OSError as e:
            logger.error("Could not append to ledger %s: %s", self._path, e)
            return
        logger.debug("Ledger: %s %s", entry.operation_type, entry.status)

    def read_all(self) -> list[AuditEntry]:
        """Every readable entry, oldest first. Corrupt lines are skipped."""
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.error("Could not read ledger %s: %s", self._path, e)
            return []

        entries: list[AuditEntry] = []
        for number, raw in enumerate(text.splitlines(), start=1):
            if not raw.strip():
                continue
            try:
                entries.append(AuditEntry.model_validate_json(raw))
            except ValidationError as e:
                logger.warning("Ledger line %d is unreadable, skipping: %s", number, e)
        return entries

    def read_recent(self, n: int = 20) -> list[AuditEntry]:
        return self.read_all()[-n:]
