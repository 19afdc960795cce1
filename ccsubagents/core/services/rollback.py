"""
Snapshot / rollback engine for install and update.

Every path is captured immediately before it is first mutated. On
failure the captures are replayed newest-first, then directories the
run created are removed deepest-first. Used as a context manager::

    with InstallRollback(scratch_root=state_dir) as rollback:
        rollback.capture(path)
        ...mutate path...

An exception leaving the block triggers ``restore()``; scratch copies
are released on every exit path.
"""

from __future__ import annotations

import errno
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

from ccsubagents.core.errors import RollbackError, SnapshotError
from ccsubagents.core.services.path_safety import deepest_first

logger = logging.getLogger(__name__)


@dataclass
class _Snapshot:
    path: Path
    exists: bool
    is_dir: bool = False
    mode: int = 0o644
    data: bytes = b""
    copy: Path | None = None    # scratch copy for directories


class InstallRollback:
    """Capture-before-mutate journal for one install/update run."""

    def __init__(self, scratch_root: Path | None = None):
        self._scratch_root = scratch_root
        self._scratch: Path | None = None
        self._snapshots: list[_Snapshot] = []
        self._captured: set[str] = set()
        self._created_dirs: list[str] = []

    # ── Context manager ─────────────────────────────────────────

    def __enter__(self) -> InstallRollback:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            if exc is not None:
                logger.warning("Rolling back after failure: %s", exc)
                self.restore(exc)
        finally:
            self.discard()
        return False

    # ── Capture ─────────────────────────────────────────────────

    @property
    def captured_paths(self) -> list[str]:
        return [str(s.path) for s in self._snapshots]

    def capture(self, path: str | Path) -> None:
        """Snapshot ``path`` unless it was already captured this run.

        Raises:
            SnapshotError: If the current content cannot be saved. The
                path has not been touched.
        """
        clean = Path(os.path.normpath(path))
        if str(clean) in self._captured:
            return

        try:
            st = clean.lstat()
        except FileNotFoundError:
            self._record(_Snapshot(path=clean, exists=False))
            return
        except OSError as e:
            raise SnapshotError(f"stat {clean} for rollback: {e}") from e

        if clean.is_dir() and not clean.is_symlink():
            scratch = self._scratch_dir() / str(len(self._snapshots))
            try:
                shutil.copytree(clean, scratch, symlinks=True)
            except OSError as e:
                raise SnapshotError(f"cannot snapshot directory for rollback: {clean}") from e
            self._record(_Snapshot(path=clean, exists=True, is_dir=True, copy=scratch))
            return

        try:
            data = clean.read_bytes()
        except OSError as e:
            raise SnapshotError(f"read {clean} for rollback: {e}") from e
        self._record(_Snapshot(path=clean, exists=True, mode=st.st_mode & 0o777, data=data))

    def track_created_dir(self, path: str | Path) -> None:
        """Remember a directory this run created (removed on restore)."""
        if str(path).strip():
            self._created_dirs.append(os.path.normpath(path))

    def _record(self, snapshot: _Snapshot) -> None:
        self._snapshots.append(snapshot)
        self._captured.add(str(snapshot.path))
        logger.debug(
            "snapshot %s (exists=%s dir=%s)", snapshot.path, snapshot.exists, snapshot.is_dir,
        )

    def _scratch_dir(self) -> Path:
        if self._scratch is None:
            if self._scratch_root is not None:
                self._scratch_root.mkdir(parents=True, exist_ok=True)
            self._scratch = Path(
                tempfile.mkdtemp(prefix="rollback-", dir=self._scratch_root)
            )
        return self._scratch

    # ── Restore ─────────────────────────────────────────────────

    def restore(self, cause: BaseException) -> None:
        """Undo every captured mutation.

        Raises:
            RollbackError: Carrying ``cause`` if any step failed.
        """
        failures: list[str] = []

        for snapshot in reversed(self._snapshots):
            try:
                self._restore_one(snapshot)
            except OSError as e:
                failures.append(f"restore {snapshot.path}: {e}")

        for directory in deepest_first(self._created_dirs):
            try:
                os.rmdir(directory)
            except FileNotFoundError:
                continue
            except OSError as e:
                if e.errno in (errno.ENOTEMPTY, errno.EEXIST):
                    continue
                failures.append(f"remove created dir {directory}: {e}")

        if failures:
            logger.error("Rollback incomplete: %s", "; ".join(failures))
            raise RollbackError(cause, failures) from cause
        logger.info("Rollback complete (%d path(s) restored)", len(self._snapshots))

    @staticmethod
    def _restore_one(snapshot: _Snapshot) -> None:
        path = snapshot.path
        if not snapshot.exists:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink(missing_ok=True)
            return

        if snapshot.is_dir:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            elif path.exists() or path.is_symlink():
                path.unlink()
            shutil.copytree(snapshot.copy, path, symlinks=True)
            return

        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(snapshot.data)
        os.chmod(path, snapshot.mode)

    def discard(self) -> None:
        """Release scratch copies. Safe to call more than once."""
        if self._scratch is None:
            return
        try:
            shutil.rmtree(self._scratch)
        except OSError as e:
            logger.warning("Could not remove rollback scratch %s: %s", self._scratch, e)
        self._scratch = None
