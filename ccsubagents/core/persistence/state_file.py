"""
Tracked-state persistence — atomic read/write for TrackedState.

State is stored as JSON in <state_dir>/tracked.json. Writes are atomic
(write to temp file, then rename) so a crash mid-write never leaves a
half-written record. Unlike most caches, a corrupt file is NOT replaced
with a fresh one: it is the only record of what we own on disk, so we
refuse to proceed and ask the user to resolve it.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from ccsubagents.core.config.paths import DIR_PERM, FILE_PERM
from ccsubagents.core.errors import MutationError, TrackedStateError
from ccsubagents.core.models.state import TRACKED_SCHEMA_VERSION, TrackedState

logger = logging.getLogger(__name__)


def load_tracked_state(path: Path) -> TrackedState | None:
    """Load tracked state from a JSON file.

    Args:
        path: Path to tracked.json.

    Returns:
        The parsed state, or None if the file does not exist
        (meaning "not installed").

    Raises:
        TrackedStateError: If the file exists but cannot be read,
            parsed or validated.
    """
    if not path.exists():
        logger.info("No tracked state at %s — not installed", path)
        return None

    try:
        raw = path.read_text(encoding="utf-8")
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        state = TrackedState.model_validate(data)
    except (OSError, ValueError, ValidationError) as e:
        raise TrackedStateError(
            f"tracked state is unreadable; resolve {path} and retry: {e}"
        ) from e

    if state.schema_version < 1:
        raise TrackedStateError(
            f"tracked state is unreadable; resolve {path} and retry: "
            f"invalid schemaVersion {state.schema_version}"
        )
    if state.schema_version < TRACKED_SCHEMA_VERSION:
        state.schema_version = TRACKED_SCHEMA_VERSION

    logger.debug("Loaded tracked state from %s (release=%s)", path, state.release_tag)
    return state


def save_tracked_state(state: TrackedState, path: Path) -> None:
    """Save tracked state to a JSON file (atomic write).

    Args:
        state: The state to save.
        path: Target path for tracked.json.

    Raises:
        MutationError: If the temp file cannot be written or renamed.
    """
    path.parent.mkdir(mode=DIR_PERM, parents=True, exist_ok=True)

    content = json.dumps(state.to_json_dict(), indent=2, ensure_ascii=False) + "\n"

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".tracked-", suffix=".json")
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.chmod(tmp, FILE_PERM)
        os.replace(tmp, path)
        logger.debug("Tracked state saved to %s", path)
    except OSError as e:
        tmp.unlink(missing_ok=True)
        logger.error("Failed to save tracked state to %s: %s", path, e)
        raise MutationError(f"write tracked state {path}: {e}") from e


def delete_tracked_state(path: Path) -> None:
    """Remove tracked.json; a missing file is fine."""
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        raise MutationError(f"remove tracked state {path}: {e}") from e
    logger.debug("Tracked state removed: %s", path)
