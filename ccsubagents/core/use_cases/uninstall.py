"""
Uninstall — exact removal driven by tracked state.

Order matters:
    1. revert every recorded mcp.json edit, then every settings.json
       edit (all attempted, failures collected); any failure stops here
       with nothing deleted
    2. delete managed files, then managed directories deepest-first
    3. delete tracked.json last

Every tracked path is checked against the managed-path allowlist
first. Paths that fail are left alone, logged, and reported; the
operation then ends as ``completed_with_skips`` rather than ``ok``,
and the ledger entry keeps the list of paths left behind.
"""

from __future__ import annotations

import errno
import logging
import os
import time
from typing import TYPE_CHECKING

from ccsubagents.core.errors import BootstrapError, UninstallError
from ccsubagents.core.models.operation import OperationResult
from ccsubagents.core.persistence.audit import AuditEntry
from ccsubagents.core.persistence.state_file import delete_tracked_state, load_tracked_state
from ccsubagents.core.services.json_config import revert_mcp_edit, revert_settings_edit
from ccsubagents.core.services.path_safety import (
    deepest_first,
    is_allowed_managed_directory,
    is_allowed_managed_path,
)
from ccsubagents.core.use_cases.cancel import CancelToken, check_cancelled

if TYPE_CHECKING:
    from ccsubagents.core.config.paths import InstallPaths
    from ccsubagents.core.models.state import TrackedState
    from ccsubagents.core.use_cases.install import Bootstrapper

logger = logging.getLogger(__name__)


def run_uninstall(boot: Bootstrapper, cancel: CancelToken | None = None) -> OperationResult:
    """Uninstall and append an audit entry for the outcome."""
    paths = boot.resolve_paths()
    audit = boot.audit_writer(paths)
    start = time.monotonic()
    skipped: list[str] = []
    state: TrackedState | None = None

    try:
        state = load_tracked_state(paths.tracked_path)
        if state is None:
            logger.info("Nothing to uninstall: no tracked state at %s", paths.tracked_path)
            return OperationResult(operation="uninstall", nothing_to_do=True)
        result = _uninstall(paths, state, cancel, skipped)
    except BootstrapError as e:
        audit.write(AuditEntry(
            operation_type="uninstall",
            release_id=state.release_id if state else 0,
            release_tag=state.release_tag if state else "",
            status="failed",
            duration_ms=int((time.monotonic() - start) * 1000),
            skipped_paths=skipped,
            error_kind=str(e.kind),
            errors=[e.message],
        ))
        raise

    result.duration_ms = int((time.monotonic() - start) * 1000)
    audit.write(AuditEntry(
        operation_type="uninstall",
        release_id=result.release_id,
        release_tag=result.release_tag,
        status=result.status,
        duration_ms=result.duration_ms,
        skipped_paths=result.skipped_paths,
        context={"removed": len(result.removed_paths)},
    ))
    return result


def _uninstall(
    paths: InstallPaths,
    state: TrackedState,
    cancel: CancelToken | None,
    skipped: list[str],
) -> OperationResult:
    check_cancelled(cancel)

    # ── 1. Config reverts ───────────────────────────────────────
    failures: list[str] = []
    reverts = [
        *(("mcp", revert_mcp_edit, edit) for edit in state.json_edits.all_mcp_edits()),
        *(("settings", revert_settings_edit, edit) for edit in state.json_edits.all_settings_edits()),
    ]
    for label, revert, edit in reverts:
        try:
            revert(edit)
        except BootstrapError as e:
            logger.error("Reverting %s edit in %s failed: %s", label, edit.file, e.message)
            failures.append(e.message)
    if failures:
        raise UninstallError(failures)

    # ── 2. Managed paths ────────────────────────────────────────
    removed: list[str] = []
    allowed_binaries = paths.binary_paths

    for path in state.managed_state.files:
        clean = os.path.normpath(path)
        if not is_allowed_managed_path(clean, paths.agents_dir, allowed_binaries):
            logger.warning("Refusing to delete unsafe tracked path: %s", clean)
            skipped.append(clean)
            continue
        check_cancelled(cancel)
        try:
            os.remove(clean)
        except FileNotFoundError:
            continue
        except OSError as e:
            failures.append(f"remove {clean}: {e}")
            continue
        removed.append(clean)
        logger.debug("Removed %s", clean)

    for directory in deepest_first(state.managed_state.dirs):
        clean = os.path.normpath(directory)
        if not is_allowed_managed_directory(clean, paths.agents_dir, paths.allowed_config_dirs):
            logger.warning("Refusing to delete unsafe tracked directory: %s", clean)
            skipped.append(clean)
            continue
        try:
            os.rmdir(clean)
        except FileNotFoundError:
            continue
        except OSError as e:
            if e.errno in (errno.ENOTEMPTY, errno.EEXIST):
                logger.debug("Keeping non-empty directory %s", clean)
                continue
            failures.append(f"remove tracked directory {clean}: {e}")
            continue
        removed.append(clean)
        logger.debug("Removed directory %s", clean)

    if failures:
        raise UninstallError(failures)

    # ── 3. Commit ───────────────────────────────────────────────
    delete_tracked_state(paths.tracked_path)
    logger.info(
        "Uninstalled %s (%d path(s) removed, %d skipped)",
        state.release_tag, len(removed), len(skipped),
    )
    return OperationResult(
        operation="uninstall",
        release_id=state.release_id,
        release_tag=state.release_tag,
        removed_paths=removed,
        skipped_paths=list(skipped),
    )
