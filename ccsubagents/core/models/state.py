"""
TrackedState — the persisted transaction record.

One document per installation, stored as ``tracked.json`` in the
state directory. It lists every path the bootstrapper created and
exactly what it changed in the two editor config files, so that a
repeated install is idempotent and uninstall is exact.

Keys are camelCase on disk; attributes are snake_case in Python.
"""

from __future__ import annotations

import os
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializerFunctionWrapHandler,
    field_validator,
    model_serializer,
)
from pydantic.alias_generators import to_camel

TRACKED_SCHEMA_VERSION = 1


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SettingsMode(StrEnum):
    """Where the agent-locations array lives in settings.json."""

    DIRECT = "direct"   # top-level "chat.agentFilesLocations"
    NESTED = "nested"   # "chat": {"agentFilesLocations": [...]}


class ManagedState(_CamelModel):
    """Paths the bootstrapper owns and removes on uninstall."""

    files: list[str] = Field(default_factory=list)
    dirs: list[str] = Field(default_factory=list)


class SettingsEdit(_CamelModel):
    """What was changed in settings.json."""

    file: str = ""
    agent_path: str = ""
    mode: SettingsMode | None = None
    added: bool = False

    @field_validator("mode", mode="before")
    @classmethod
    def _blank_mode(cls, value: Any) -> Any:
        # Older records write "" for "no array touched"
        return None if value == "" else value


class MCPEdit(_CamelModel):
    """What was changed in mcp.json.

    ``previous`` holds the exact JSON value of the server entry before
    this system first managed it; only meaningful when ``had_previous``.
    """

    file: str = ""
    key: str = ""
    touched: bool = False
    had_previous: bool = False
    previous: Any = None


class JSONEdits(_CamelModel):
    """Config edits, one per edited file.

    ``settings`` / ``mcp`` hold the primary target's edits; any further
    targets go in the ``*_extra`` lists, which are omitted on disk when
    empty.
    """

    settings: SettingsEdit = Field(default_factory=SettingsEdit)
    mcp: MCPEdit = Field(default_factory=MCPEdit)
    settings_extra: list[SettingsEdit] = Field(default_factory=list)
    mcp_extra: list[MCPEdit] = Field(default_factory=list)

    @model_serializer(mode="wrap")
    def _omit_empty_extras(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        data = handler(self)
        for name in ("settings_extra", "settingsExtra", "mcp_extra", "mcpExtra"):
            if name in data and not data[name]:
                del data[name]
        return data

    @classmethod
    def from_edits(cls, settings: list[SettingsEdit], mcp: list[MCPEdit]) -> JSONEdits:
        return cls(
            settings=settings[0] if settings else SettingsEdit(),
            mcp=mcp[0] if mcp else MCPEdit(),
            settings_extra=list(settings[1:]),
            mcp_extra=list(mcp[1:]),
        )

    def all_settings_edits(self) -> list[SettingsEdit]:
        primary = self.settings
        head = [primary] if (primary.file.strip() or primary.agent_path.strip() or primary.added) else []
        return head + list(self.settings_extra)

    def all_mcp_edits(self) -> list[MCPEdit]:
        primary = self.mcp
        recorded = (
            primary.file.strip() or primary.key.strip() or primary.touched or primary.had_previous
        )
        return ([primary] if recorded else []) + list(self.mcp_extra)

    def settings_edit_for(self, path: str | Path, legacy: bool = True) -> SettingsEdit | None:
        return _edit_for_file(self.all_settings_edits(), path, legacy)

    def mcp_edit_for(self, path: str | Path, legacy: bool = True) -> MCPEdit | None:
        return _edit_for_file(self.all_mcp_edits(), path, legacy)


def _edit_for_file(edits: list, path: str | Path, legacy: bool):
    """The edit recorded for ``path``.

    Records written before the file was tracked have a blank ``file``;
    with ``legacy``, a single such record is taken to belong to
    whatever file is asked about.
    """
    clean = os.path.normpath(str(path))
    for edit in edits:
        if edit.file.strip() and os.path.normpath(edit.file) == clean:
            return edit
    if legacy and len(edits) == 1 and not edits[0].file.strip():
        return edits[0]
    return None


class TrackedState(_CamelModel):
    """Root tracked-state model — serialized to tracked.json."""

    # ── Schema ───────────────────────────────────────────────────
    schema_version: int

    # ── Release identity ─────────────────────────────────────────
    repo: str = ""
    release_id: int = Field(default=0, alias="releaseID")
    release_tag: str = ""
    installed_at: str = ""
    install_target: str = ""

    # ── What we own ──────────────────────────────────────────────
    managed_state: ManagedState = Field(default_factory=ManagedState)
    json_edits: JSONEdits = Field(default_factory=JSONEdits)

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize with on-disk key names."""
        return self.model_dump(mode="json", by_alias=True)
