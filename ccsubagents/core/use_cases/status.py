"""
Status — read-only report of what is installed where.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from ccsubagents.core.persistence.state_file import load_tracked_state

if TYPE_CHECKING:
    from ccsubagents.core.use_cases.install import Bootstrapper

logger = logging.getLogger(__name__)


class StatusResult(BaseModel):
    """Installation snapshot for ``ccsubagents status``."""

    installed: bool = False
    repo: str = ""
    release_id: int = 0
    release_tag: str = ""
    installed_at: str = ""

    managed_files: int = 0
    managed_dirs: int = 0
    missing_paths: list[str] = Field(default_factory=list)

    install_target: str = ""
    settings_added: bool = False
    mcp_touched: bool = False
    edited_files: list[str] = Field(default_factory=list)

    paths: dict[str, str] = Field(default_factory=dict)
    last_operation: dict | None = None

    @property
    def healthy(self) -> bool:
        return self.installed and not self.missing_paths

    def to_dict(self) -> dict:
        data = self.model_dump(mode="json")
        data["ok"] = True
        data["healthy"] = self.healthy
        return data


def get_status(boot: Bootstrapper) -> StatusResult:
    """Describe the current install.

    Raises:
        TrackedStateError: If tracked.json exists but is unreadable.
    """
    paths = boot.resolve_paths()
    state = load_tracked_state(paths.tracked_path)
    target = boot.choose_target(state, paths.tracked_path)
    paths = boot.resolve_paths(target)

    result = StatusResult(
        install_target=target.value,
        paths={
            "binary_dir": str(paths.binary_dir),
            "agents_dir": str(paths.agents_dir),
            "settings": str(paths.settings_path),
            "mcp": str(paths.mcp_path),
            "tracked_state": str(paths.tracked_path),
        },
    )
    for extra in paths.targets[1:]:
        result.paths[f"settings ({extra.channel})"] = str(extra.settings_path)
        result.paths[f"mcp ({extra.channel})"] = str(extra.mcp_path)

    recent = boot.audit_writer(paths).read_recent(1)
    if recent:
        result.last_operation = recent[0].model_dump(mode="json")

    if state is None:
        return result

    settings_edits = state.json_edits.all_settings_edits()
    mcp_edits = state.json_edits.all_mcp_edits()

    result.installed = True
    result.repo = state.repo
    result.release_id = state.release_id
    result.release_tag = state.release_tag
    result.installed_at = state.installed_at
    result.managed_files = len(state.managed_state.files)
    result.managed_dirs = len(state.managed_state.dirs)
    result.settings_added = any(edit.added for edit in settings_edits)
    result.mcp_touched = any(edit.touched for edit in mcp_edits)
    result.edited_files = sorted(
        {edit.file for edit in settings_edits if edit.added and edit.file}
        | {edit.file for edit in mcp_edits if edit.touched and edit.file}
    )
    result.missing_paths = [
        path for path in state.managed_state.files if not os.path.lexists(path)
    ]

    if result.missing_paths:
        logger.warning("%d managed file(s) missing on disk", len(result.missing_paths))
    return result
