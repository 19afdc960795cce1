"""
Agents archive extraction.

``agents.zip`` wraps its content in one top-level folder. Every entry
has its first path component stripped and lands under the agents
directory. Entries that would escape the destination are refused
before anything is written.
"""

from __future__ import annotations

import logging
import os
import posixpath
import zipfile
from collections.abc import Callable
from pathlib import Path

from ccsubagents.core.config.paths import DIR_PERM, FILE_PERM
from ccsubagents.core.errors import MutationError, UnsafePathError
from ccsubagents.core.services.path_safety import is_path_within_dir, unique_sorted

logger = logging.getLogger(__name__)


def _strip_first_component(name: str) -> str:
    """Validate an entry name and drop its leading folder.

    Returns "" for entries that are only the top-level folder.

    Raises:
        UnsafePathError: Absolute names or names containing ``..``.
    """
    normalized = name.strip().replace("\\", "/")
    if normalized.startswith("/") or posixpath.isabs(normalized) or (
        len(normalized) > 1 and normalized[1] == ":"
    ):
        raise UnsafePathError(f"unsafe archive path: {name}")

    parts = [p for p in normalized.split("/") if p not in ("", ".")]
    if ".." in parts:
        raise UnsafePathError(f"unsafe archive path: {name}")
    return "/".join(parts[1:])


def _destination(dest_dir: Path, name: str) -> Path | None:
    remainder = _strip_first_component(name)
    if not remainder:
        return None
    dest = Path(os.path.normpath(dest_dir / remainder))
    if not is_path_within_dir(dest, dest_dir):
        raise UnsafePathError(f"archive path escapes destination: {name}")
    return dest


def _open(zip_path: Path) -> zipfile.ZipFile:
    try:
        return zipfile.ZipFile(zip_path)
    except (OSError, zipfile.BadZipFile) as e:
        raise MutationError(f"open archive {zip_path.name}: {e}") from e


def plan_agents_archive(zip_path: Path, dest_dir: Path) -> list[str]:
    """Destination file paths the archive would write, without writing.

    Raises:
        UnsafePathError: If any entry is unsafe.
        MutationError: If the archive cannot be opened.
    """
    files: list[str] = []
    with _open(zip_path) as zf:
        for info in zf.infolist():
            dest = _destination(dest_dir, info.filename)
            if dest is None or info.is_dir():
                continue
            files.append(str(dest))
    return files


def _mkdirs(path: Path, on_dir_created: Callable[[Path], None] | None) -> None:
    """mkdir -p, reporting each directory that did not exist before."""
    missing: list[Path] = []
    cursor = path
    while not cursor.exists():
        missing.append(cursor)
        if cursor.parent == cursor:
            break
        cursor = cursor.parent
    path.mkdir(mode=DIR_PERM, parents=True, exist_ok=True)
    if on_dir_created is not None:
        for created in reversed(missing):
            on_dir_created(created)


def extract_agents_archive(
    zip_path: Path,
    dest_dir: Path,
    before_write: Callable[[Path], None] | None = None,
    on_dir_created: Callable[[Path], None] | None = None,
) -> tuple[list[str], list[str]]:
    """Extract ``zip_path`` into ``dest_dir``, stripping one component.

    Args:
        zip_path: The downloaded agents.zip.
        dest_dir: The agents directory.
        before_write: Called with each destination file before it is
            written (used for rollback snapshots). May raise.
        on_dir_created: Called with each directory this call creates.

    Returns:
        ``(files, dirs)``: destination files in encounter order, and the
        directories the archive's content lives in.

    Raises:
        UnsafePathError: Before any write, for an unsafe entry.
        MutationError: On I/O failure. Files written by this call have
            been removed.
    """
    written: list[Path] = []
    files: list[str] = []
    dirs: list[str] = []

    with _open(zip_path) as zf:
        # Validate every entry before the first write.
        plan = [(info, _destination(dest_dir, info.filename)) for info in zf.infolist()]

        try:
            for info, dest in plan:
                if dest is None:
                    continue

                if info.is_dir():
                    _mkdirs(dest, on_dir_created)
                    dirs.append(str(dest))
                    continue

                _mkdirs(dest.parent, on_dir_created)
                dirs.append(str(dest.parent))

                mode = (info.external_attr >> 16) & 0o777 or FILE_PERM
                if before_write is not None:
                    before_write(dest)

                with zf.open(info) as src:
                    content = src.read()
                dest.write_bytes(content)
                written.append(dest)
                os.chmod(dest, mode)
                files.append(str(dest))
        except (OSError, zipfile.BadZipFile) as e:
            _remove_written(written)
            raise MutationError(f"extract {zip_path.name} into {dest_dir}: {e}") from e
        except Exception:
            _remove_written(written)
            raise

    logger.info("Extracted %d agent file(s) into %s", len(files), dest_dir)
    return files, unique_sorted(dirs)


def _remove_written(paths: list[Path]) -> None:
    for path in paths:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove partially extracted %s: %s", path, e)
