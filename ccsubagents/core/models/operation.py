"""
OperationResult — what a successful install/update/uninstall reports.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

STATUS_OK = "ok"
STATUS_COMPLETED_WITH_SKIPS = "completed_with_skips"


class OperationResult(BaseModel):
    """Summary of one completed operation.

    ``skipped_paths`` lists tracked paths that failed the managed-path
    allowlist and were left on disk. A non-empty list means the tracked
    state and the filesystem have drifted apart: ``status`` is then
    ``completed_with_skips`` instead of ``ok``.
    """

    operation: Literal["install", "update", "uninstall"]
    release_id: int = 0
    release_tag: str = ""
    previous_release_tag: str = ""
    target: str = ""
    unchanged: bool = False
    nothing_to_do: bool = False

    managed_files: list[str] = Field(default_factory=list)
    managed_dirs: list[str] = Field(default_factory=list)
    removed_paths: list[str] = Field(default_factory=list)
    skipped_paths: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    duration_ms: int = 0

    @property
    def status(self) -> str:
        return STATUS_COMPLETED_WITH_SKIPS if self.skipped_paths else STATUS_OK

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dictionary."""
        data = self.model_dump(mode="json")
        data["ok"] = True
        data["status"] = self.status
        return data
