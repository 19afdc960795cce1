"""
Managed-path allowlist — what tracked state is allowed to delete.

tracked.json is user-writable. Before any deletion driven by it, the
path is checked against the small set of locations this tool could
legitimately have created.
"""

from __future__ import annotations

import errno
import os
from collections.abc import Iterable
from pathlib import Path


def _clean(path: str | Path) -> str:
    return os.path.normpath(str(path))


def is_path_within_dir(path: str | Path, directory: str | Path) -> bool:
    """True when ``path`` equals ``directory`` or lies beneath it."""
    p = _clean(path)
    d = _clean(directory)
    if p == d:
        return True
    return p.startswith(d.rstrip(os.sep) + os.sep)


def is_allowed_managed_path(
    path: str | Path,
    agents_dir: str | Path,
    allowed_binaries: Iterable[str | Path],
) -> bool:
    """May a tracked *file* be deleted?

    Only the agents tree and the exact binary install paths qualify.
    """
    clean = _clean(path)
    if any(clean == _clean(binary) for binary in allowed_binaries):
        return True
    return is_path_within_dir(clean, agents_dir)


def is_allowed_managed_directory(
    path: str | Path,
    agents_dir: str | Path,
    config_parent_dirs: Iterable[str | Path],
) -> bool:
    """May a tracked *directory* be removed?

    Allowed: the agents dir's parent, anything inside the agents dir,
    and exactly the settings / MCP parent directories.
    """
    clean = _clean(path)
    if clean == _clean(os.path.dirname(_clean(agents_dir))):
        return True
    if is_path_within_dir(clean, agents_dir):
        return True
    return any(clean == _clean(parent) for parent in config_parent_dirs)


def unique_sorted(values: Iterable[str | Path]) -> list[str]:
    """Trim, drop blanks, de-duplicate and sort."""
    seen: set[str] = set()
    for value in values:
        trimmed = str(value).strip()
        if trimmed:
            seen.add(trimmed)
    return sorted(seen)


def deepest_first(paths: Iterable[str | Path]) -> list[str]:
    """Order directories so children are handled before parents."""
    return sorted(unique_sorted(paths), key=len, reverse=True)


def is_dir_not_empty_error(err: OSError) -> bool:
    return err.errno in (errno.ENOTEMPTY, errno.EEXIST)


def ensure_dir_tracked(path: Path, mode: int = 0o755) -> bool:
    """Create ``path`` (and parents) if missing.

    Returns:
        True when this call created the directory, False if it already
        existed.

    Raises:
        NotADirectoryError: If ``path`` exists and is not a directory.
        OSError: If the directory cannot be created.
    """
    if path.exists():
        if not path.is_dir():
            raise NotADirectoryError(f"path exists but is not a directory: {path}")
        return False
    path.mkdir(mode=mode, parents=True, exist_ok=True)
    return True
