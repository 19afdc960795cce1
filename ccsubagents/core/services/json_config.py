"""
JSON config editor — owned-field edits to settings.json and mcp.json.

Both files belong to the user. We read the whole document as a plain
``dict`` (insertion order preserved), touch only the fields we own,
and write it back. Wrong shapes are reported, never coerced.

Settings: the agent directory is listed in ``chat.agentFilesLocations``,
which editors accept either as a top-level dotted key (``direct``) or
nested under a ``chat`` object (``nested``).

MCP: we own exactly one entry, ``servers["artifact-mcp"]``. If the user
had their own entry there, its JSON value is kept in tracked state so
uninstall can put it back.
"""

from __future__ import annotations

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any

from ccsubagents.core.config.paths import FILE_PERM, MCP_SERVER_KEY
from ccsubagents.core.errors import ConfigTypeError, MutationError, TrackedStateError
from ccsubagents.core.models.state import MCPEdit, SettingsEdit, SettingsMode

logger = logging.getLogger(__name__)

SETTINGS_DIRECT_KEY = "chat.agentFilesLocations"
SETTINGS_PARENT_KEY = "chat"
SETTINGS_NESTED_KEY = "agentFilesLocations"
MCP_SERVERS_KEY = "servers"


# ═══════════════════════════════════════════════════════════════════
#  Document I/O
# ═══════════════════════════════════════════════════════════════════


def read_json_file(path: Path) -> dict[str, Any]:
    """Read a JSON object document.

    Missing or blank file → ``{}``.

    Raises:
        ConfigTypeError: If the content is not JSON or not an object.
        MutationError: If the file exists but cannot be read.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as e:
        raise MutationError(f"read {path}: {e}") from e

    if not raw.strip():
        return {}

    try:
        data = json.loads(raw)
    except ValueError as e:
        raise ConfigTypeError(f"{path.name} is not valid JSON: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigTypeError(
            f"{path.name} root must be an object, got {type(data).__name__}"
        )
    return data


def write_json_file(path: Path, data: dict[str, Any]) -> None:
    """Write ``data`` with 2-space indent and a trailing newline."""
    content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"
    try:
        path.write_text(content, encoding="utf-8")
        os.chmod(path, FILE_PERM)
    except OSError as e:
        raise MutationError(f"write {path}: {e}") from e
    logger.debug("Wrote %s", path)


def ensure_object(root: dict[str, Any], key: str, *, label: str = "") -> dict[str, Any]:
    """Return ``root[key]`` as a dict, creating it when absent.

    Raises:
        ConfigTypeError: If the value exists and is not an object.
    """
    if key not in root:
        root[key] = {}
        return root[key]
    value = root[key]
    if not isinstance(value, dict):
        prefix = f"{label}: " if label else ""
        raise ConfigTypeError(f"{prefix}{key} must be an object when present")
    return value


# ═══════════════════════════════════════════════════════════════════
#  settings.json
# ═══════════════════════════════════════════════════════════════════


def _nested_label() -> str:
    return f"{SETTINGS_NESTED_KEY} under {SETTINGS_PARENT_KEY}"


def _location_label(mode: SettingsMode | None) -> str:
    return _nested_label() if mode == SettingsMode.NESTED else SETTINGS_DIRECT_KEY


def _recorded_for(recorded_file: str, path: Path) -> bool:
    """Does an edit recorded against ``recorded_file`` describe ``path``?

    A blank file name comes from records that predate per-file tracking
    and is taken to mean the current file.
    """
    recorded = recorded_file.strip()
    return not recorded or os.path.normpath(recorded) == os.path.normpath(path)


def _find_locations(
    root: dict[str, Any],
    *,
    create: bool,
) -> tuple[SettingsMode | None, list[Any] | None]:
    """Find the agent-locations array, optionally creating it (direct)."""
    if SETTINGS_DIRECT_KEY in root:
        value = root[SETTINGS_DIRECT_KEY]
        if not isinstance(value, list):
            raise ConfigTypeError(
                f"settings key {SETTINGS_DIRECT_KEY} must be an array when present"
            )
        return SettingsMode.DIRECT, value

    if SETTINGS_PARENT_KEY in root:
        chat = root[SETTINGS_PARENT_KEY]
        if not isinstance(chat, dict):
            raise ConfigTypeError(
                f"settings key {SETTINGS_PARENT_KEY} must be an object when present"
            )
        if SETTINGS_NESTED_KEY in chat:
            value = chat[SETTINGS_NESTED_KEY]
            if not isinstance(value, list):
                raise ConfigTypeError(
                    f"settings key {_nested_label()} must be an array when present"
                )
            return SettingsMode.NESTED, value

    if not create:
        return None, None

    root[SETTINGS_DIRECT_KEY] = []
    return SettingsMode.DIRECT, root[SETTINGS_DIRECT_KEY]


def _locations_at(root: dict[str, Any], mode: SettingsMode) -> list[Any] | None:
    """Fetch the array at a recorded location, or None when absent."""
    if mode == SettingsMode.NESTED:
        chat = root.get(SETTINGS_PARENT_KEY)
        if chat is None:
            return None
        if not isinstance(chat, dict):
            raise ConfigTypeError(
                f"settings key {SETTINGS_PARENT_KEY} must be an object when present"
            )
        value = chat.get(SETTINGS_NESTED_KEY)
    else:
        value = root.get(SETTINGS_DIRECT_KEY)

    if value is not None and not isinstance(value, list):
        raise ConfigTypeError(
            f"settings key {_location_label(mode)} must be an array when present"
        )
    return value


def apply_settings_edit(
    path: Path,
    agent_path: str,
    previous: SettingsEdit | None = None,
) -> SettingsEdit:
    """Ensure ``agent_path`` is listed in settings.json.

    Appends (never reorders) when missing. A stale agent path that an
    earlier install added is removed first. The file is only rewritten
    when its content changes.

    Args:
        path: settings.json location.
        agent_path: Value to list, in ``~/`` form.
        previous: The edit recorded by the last successful install.
            Ignored unless it was recorded for this same file.

    Returns:
        The edit to record. ``added`` is True when this system owns the
        entry (added now, or added by an earlier install).

    Raises:
        ConfigTypeError: On a wrongly typed field; nothing is written.
    """
    if previous is not None and not _recorded_for(previous.file, path):
        logger.debug("Tracked settings edit is for %s, not %s; ignoring it", previous.file, path)
        previous = None

    root = read_json_file(path)
    had_array = _find_locations(root, create=False)[1] is not None
    mode, locations = _find_locations(root, create=True)
    changed = not had_array

    if previous is not None and previous.added:
        stale = previous.agent_path.strip()
        if stale and stale != agent_path and stale in locations:
            locations.remove(stale)
            changed = True
            logger.info("Removed stale agent path %s from settings", stale)

    if agent_path in locations:
        added = False
    else:
        locations.append(agent_path)
        added = True
        changed = True

    if changed:
        write_json_file(path, root)

    if (
        not added
        and previous is not None
        and previous.added
        and previous.agent_path == agent_path
    ):
        added = True

    logger.debug("settings edit: mode=%s added=%s changed=%s", mode, added, changed)
    return SettingsEdit(file=str(path), agent_path=agent_path, mode=mode, added=added)


def revert_settings_edit(edit: SettingsEdit) -> None:
    """Remove exactly one occurrence of the recorded agent path.

    Raises:
        ConfigTypeError: If the array is gone or wrongly typed.
        MutationError: If the settings file no longer exists.
    """
    if not edit.added:
        return

    path = Path(edit.file)
    if not path.exists():
        raise MutationError(f"settings file {path} is missing; cannot remove {edit.agent_path}")

    root = read_json_file(path)
    if edit.mode is None:
        locations = _find_locations(root, create=False)[1]
    else:
        locations = _locations_at(root, edit.mode)

    if locations is None:
        raise ConfigTypeError(
            f"settings key {_location_label(edit.mode)} is missing from {path}"
        )

    if edit.agent_path not in locations:
        logger.debug("Agent path %s already absent from %s", edit.agent_path, path)
        return

    locations.remove(edit.agent_path)
    write_json_file(path, root)
    logger.info("Removed %s from %s", edit.agent_path, path)


# ═══════════════════════════════════════════════════════════════════
#  mcp.json
# ═══════════════════════════════════════════════════════════════════


def apply_mcp_edit(
    path: Path,
    command: str,
    previous: MCPEdit | None = None,
    key: str = MCP_SERVER_KEY,
) -> MCPEdit:
    """Point ``servers[key]`` at our MCP binary.

    The first time this system touches the key, whatever was there (or
    its absence) becomes the baseline. Later updates of the same file
    carry that baseline forward and never replace it with our own
    entry. A baseline recorded for a different file is ignored.

    Raises:
        ConfigTypeError: ``mcp key servers: …`` when ``servers`` is not
            an object; nothing is written.
    """
    if previous is not None and not _recorded_for(previous.file, path):
        logger.debug("Tracked mcp edit is for %s, not %s; taking a fresh baseline", previous.file, path)
        previous = None

    root = read_json_file(path)
    servers = ensure_object(root, MCP_SERVERS_KEY, label="mcp key servers")

    if previous is not None and previous.touched:
        had_previous = previous.had_previous
        previous_value = copy.deepcopy(previous.previous)
    elif key in servers:
        had_previous = True
        previous_value = copy.deepcopy(servers[key])
        logger.info("Existing mcp server entry %r recorded as baseline", key)
    else:
        had_previous = False
        previous_value = None

    servers[key] = {"command": command}
    write_json_file(path, root)

    return MCPEdit(
        file=str(path),
        key=key,
        touched=True,
        had_previous=had_previous,
        previous=previous_value,
    )


def revert_mcp_edit(edit: MCPEdit) -> None:
    """Restore the baseline entry, or delete ours when there was none.

    Raises:
        ConfigTypeError: ``mcp key servers: …`` when ``servers`` is not
            an object.
        TrackedStateError: If a baseline was recorded but its value is
            missing from tracked state.
    """
    if not edit.touched:
        return

    path = Path(edit.file)
    if not path.exists():
        logger.debug("mcp file %s is gone, nothing to revert", path)
        return

    root = read_json_file(path)
    if MCP_SERVERS_KEY not in root and not edit.had_previous:
        return
    servers = ensure_object(root, MCP_SERVERS_KEY, label="mcp key servers")
    key = edit.key or MCP_SERVER_KEY

    if edit.had_previous:
        if "previous" not in edit.model_fields_set:
            raise TrackedStateError("tracked mcp previous value is missing")
        servers[key] = copy.deepcopy(edit.previous)
        logger.info("Restored previous mcp server entry %r", key)
    elif key in servers:
        del servers[key]
        logger.info("Removed mcp server entry %r", key)
    else:
        return

    write_json_file(path, root)
