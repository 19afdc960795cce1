"""
Bootstrapper — install / update orchestration.

Pipeline for install and update:

    resolve paths → load tracked state → resolve release → download
    → verify attestations → [snapshot + mutate] → write tracked state

Nothing on disk outside the state directory is touched until every
asset is downloaded and verified. From then on every mutation is
preceded by a rollback snapshot; any failure (or cancellation) restores
them and re-raises. Writing tracked.json is the commit point.

On a machine with no state directory yet, a failure before mutation
removes the directories this run created and leaves no ledger entry.

Usage:
    boot = Bootstrapper()
    result = boot.install_or_update(update=False)
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import time
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ccsubagents.adapters.base import BinaryInstaller, CommandRunner, HttpClient
from ccsubagents.adapters.filesystem import CopyBinaryInstaller
from ccsubagents.adapters.http import UrllibHttpClient
from ccsubagents.adapters.shell import SubprocessRunner
from ccsubagents.core.config.loader import BootstrapConfig
from ccsubagents.core.config.paths import (
    ASSET_AGENTS_ZIP,
    ASSET_ARTIFACT_MCP,
    BINARY_ASSET_NAMES,
    DEFAULT_INSTALL_TARGET,
    DIR_PERM,
    InstallPaths,
    InstallTarget,
    parse_install_target,
    path_dir_on_search_path,
    resolve_install_paths,
    to_home_tilde_path,
)
from ccsubagents.core.errors import (
    BootstrapError,
    MutationError,
    RollbackError,
    TrackedStateError,
)
from ccsubagents.core.models.operation import OperationResult
from ccsubagents.core.models.release import Release
from ccsubagents.core.models.state import (
    TRACKED_SCHEMA_VERSION,
    JSONEdits,
    ManagedState,
    MCPEdit,
    SettingsEdit,
    TrackedState,
)
from ccsubagents.core.persistence.audit import AuditEntry, AuditWriter
from ccsubagents.core.persistence.state_file import load_tracked_state, save_tracked_state
from ccsubagents.core.services.archive import extract_agents_archive, plan_agents_archive
from ccsubagents.core.services.attestation import verify_downloaded_assets
from ccsubagents.core.services.json_config import apply_mcp_edit, apply_settings_edit
from ccsubagents.core.services.path_safety import (
    ensure_dir_tracked,
    is_allowed_managed_directory,
    is_allowed_managed_path,
    is_path_within_dir,
    unique_sorted,
)
from ccsubagents.core.services.release import (
    download_assets,
    fetch_latest_release,
    map_required_assets,
)
from ccsubagents.core.services.rollback import InstallRollback
from ccsubagents.core.use_cases.cancel import CancelToken, check_cancelled

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _rfc3339(moment: datetime) -> str:
    return moment.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def stale_agent_paths(
    previous_files: list[str],
    planned_files: list[str],
    agents_dir: Path,
    allowed_binaries: list[Path],
    rejected: list[str] | None = None,
) -> list[str]:
    """Previously managed agent files the new archive no longer ships.

    Tracked paths outside the managed locations are never returned;
    they are logged and appended to ``rejected`` when given.
    """
    keep = {os.path.normpath(p) for p in planned_files}
    stale: list[str] = []
    for path in previous_files:
        clean = os.path.normpath(path)
        if clean in keep:
            continue
        if not is_allowed_managed_path(clean, agents_dir, allowed_binaries):
            logger.warning("Refusing to remove tracked path outside managed locations: %s", clean)
            if rejected is not None:
                rejected.append(clean)
            continue
        # binaries are replaced in place, never removed
        if not is_path_within_dir(clean, agents_dir) or clean == os.path.normpath(agents_dir):
            continue
        stale.append(clean)
    return unique_sorted(stale)


def _missing_ancestors(path: Path) -> list[Path]:
    """``path`` and each of its parents that does not exist yet, deepest first."""
    missing: list[Path] = []
    while not path.exists() and path != path.parent:
        missing.append(path)
        path = path.parent
    return missing


def _discard_dirs(dirs: list[Path]) -> None:
    for directory in dirs:
        try:
            os.rmdir(directory)
        except FileNotFoundError:
            continue
        except OSError as e:
            logger.warning("Could not remove %s: %s", directory, e)
            return


def _path_hint(home: Path, directory: Path) -> str:
    rendered = to_home_tilde_path(home, directory)
    if rendered == "~" or rendered.startswith("~/"):
        rendered = "$HOME" + rendered[1:]
    return rendered


def _remove_stale(path: str) -> bool:
    """Delete one stale path. Returns False when it was already gone."""
    target = Path(path)
    try:
        if target.is_dir() and not target.is_symlink():
            shutil.rmtree(target)
        else:
            target.unlink()
    except FileNotFoundError:
        return False
    except OSError as e:
        raise MutationError(f"remove stale managed agent file {path}: {e}") from e
    return True


def _permission_hint(err: OSError, directory: Path) -> str:
    if isinstance(err, PermissionError):
        return f" (requires privileges to write {directory})"
    return ""


class Bootstrapper:
    """Install, update and uninstall the local-artifact bundle.

    Every outside-world dependency is a constructor argument so tests
    can run the full pipeline against a temporary home directory.

    Args:
        http: Client for the release API and asset downloads.
        runner: Runs ``gh attestation verify``.
        binary_installer: Places the two binaries.
        clock: Returns the current time (``installedAt``).
        home_dir: Home directory, or a callable returning it.
        env: Environment for path overrides, ``PATH`` and ``GITHUB_TOKEN``.
        config: Loaded configuration (defaults when None).
        skip_attestation: Bypass provenance checks (logged loudly).
        target: Editor channel(s) to configure; None means the config
            file, then the tracked install, then insiders.
    """

    def __init__(
        self,
        *,
        http: HttpClient | None = None,
        runner: CommandRunner | None = None,
        binary_installer: BinaryInstaller | None = None,
        clock: Callable[[], datetime] | None = None,
        home_dir: Path | str | Callable[[], Path] | None = None,
        env: Mapping[str, str] | None = None,
        config: BootstrapConfig | None = None,
        skip_attestation: bool = False,
        target: InstallTarget | str | None = None,
    ):
        self.config = config or BootstrapConfig()
        self.env: dict[str, str] = dict(os.environ if env is None else env)
        self.http = http or UrllibHttpClient(timeout=self.config.http.timeout)
        self.runner = runner or SubprocessRunner(env=self.env)
        self.binary_installer = binary_installer or CopyBinaryInstaller()
        self.clock = clock or _utc_now
        self._home_dir = home_dir if home_dir is not None else Path.home
        self.skip_attestation = skip_attestation or self.config.attestation.skip
        self.target = parse_install_target(target)

    # ── Environment ─────────────────────────────────────────────

    def home(self) -> Path:
        try:
            value = self._home_dir() if callable(self._home_dir) else self._home_dir
        except (RuntimeError, OSError, KeyError) as e:
            raise MutationError(f"determine home directory: {e}") from e
        return Path(value)

    def resolve_paths(self, target: InstallTarget | None = None) -> InstallPaths:
        overrides = self.config.paths.model_dump()
        return resolve_install_paths(self.home(), self.env, overrides=overrides, target=target)

    def choose_target(self, previous: TrackedState | None, tracked_path: Path) -> InstallTarget:
        """Command line, then config file, then the tracked install, then insiders."""
        if self.target is not None:
            return self.target
        if self.config.install.target is not None:
            return self.config.install.target
        if previous is not None:
            try:
                recorded = parse_install_target(previous.install_target)
            except ValueError as e:
                raise TrackedStateError(
                    f"tracked state is unreadable: {e}; resolve {tracked_path} and retry"
                ) from e
            if recorded is not None:
                return recorded
        return DEFAULT_INSTALL_TARGET

    def audit_writer(self, paths: InstallPaths | None = None) -> AuditWriter:
        paths = paths or self.resolve_paths()
        return AuditWriter(state_dir=paths.state_dir)

    # ── Public operations ───────────────────────────────────────

    def install_or_update(self, update: bool, cancel: CancelToken | None = None) -> OperationResult:
        """Install the latest release, or update an existing install.

        ``update=True`` without tracked state performs a first install;
        ``update=False`` over an existing install updates it.

        Raises:
            BootstrapError: Any failure. If mutation had begun, every
                change was rolled back first (or ``RollbackError``).
        """
        paths = self.resolve_paths()
        audit = self.audit_writer(paths)
        requested = "update" if update else "install"
        progress: dict[str, Any] = {"mutating": False, "release": None}
        fresh_dirs = _missing_ancestors(paths.state_dir)
        start = time.monotonic()

        try:
            result = self._install_or_update(paths, update, cancel, progress)
        except BootstrapError as e:
            release: Release | None = progress["release"]
            if isinstance(e, RollbackError):
                status = "rollback_failed"
            elif progress["mutating"]:
                status = "rolled_back"
            else:
                status = "failed"
            if status == "failed" and fresh_dirs:
                # Nothing was installed before and nothing was touched
                _discard_dirs(fresh_dirs)
                raise
            audit.write(AuditEntry(
                operation_type=requested,
                release_id=release.id if release else 0,
                release_tag=release.tag_name if release else "",
                status=status,
                duration_ms=int((time.monotonic() - start) * 1000),
                error_kind=str(e.kind),
                errors=[e.message],
            ))
            raise

        if not path_dir_on_search_path(paths.binary_dir, self.env.get("PATH")):
            hint = _path_hint(paths.home, paths.binary_dir)
            result.warnings.append(
                f"{to_home_tilde_path(paths.home, paths.binary_dir)} is not in PATH; "
                f'add it to your shell profile, e.g.: export PATH="{hint}:$PATH"'
            )
            logger.info("Binary directory %s is not in PATH", paths.binary_dir)

        result.duration_ms = int((time.monotonic() - start) * 1000)
        audit.write(AuditEntry(
            operation_type=result.operation,
            release_id=result.release_id,
            release_tag=result.release_tag,
            status=result.status,
            duration_ms=result.duration_ms,
            skipped_paths=result.skipped_paths,
            context={
                "requested": requested,
                "target": result.target,
                "previous_release_tag": result.previous_release_tag,
                "unchanged": result.unchanged,
                "removed_stale": len(result.removed_paths),
                "attestation_skipped": self.skip_attestation,
            },
        ))
        return result

    def uninstall(self, cancel: CancelToken | None = None) -> OperationResult:
        """Revert config edits and remove everything tracked."""
        from ccsubagents.core.use_cases.uninstall import run_uninstall

        return run_uninstall(self, cancel)

    # ── Install / update pipeline ───────────────────────────────

    def _install_or_update(
        self,
        paths: InstallPaths,
        update: bool,
        cancel: CancelToken | None,
        progress: dict[str, Any],
    ) -> OperationResult:
        check_cancelled(cancel)
        previous = load_tracked_state(paths.tracked_path)
        target = self.choose_target(previous, paths.tracked_path)
        paths = self.resolve_paths(target)

        if update and previous is None:
            logger.info("No tracked install found; performing a first install")
        elif not update and previous is not None:
            logger.info("Existing install %s found; updating it", previous.release_tag)
        operation = "update" if previous is not None else "install"

        release = fetch_latest_release(self.http, self.config.release_latest_url, self.env)
        progress["release"] = release
        assets = map_required_assets(release)
        unchanged = previous is not None and previous.release_id == release.id
        if unchanged:
            logger.info("Release %s is already installed; re-applying", release.tag_name)

        try:
            paths.state_dir.mkdir(mode=DIR_PERM, parents=True, exist_ok=True)
        except OSError as e:
            raise MutationError(f"create state directory {paths.state_dir}: {e}") from e

        check_cancelled(cancel)
        with tempfile.TemporaryDirectory(prefix="download-", dir=paths.state_dir) as tmp:
            downloaded = download_assets(self.http, assets, Path(tmp), self.env)

            if self.skip_attestation:
                logger.warning("Attestation verification SKIPPED; installing unverified assets")
            else:
                verify_downloaded_assets(
                    self.runner,
                    downloaded,
                    self.config.release.repo,
                    self.config.release.workflow_path,
                )

            check_cancelled(cancel)
            progress["mutating"] = True
            logger.info("Applying %s %s (target: %s)", operation, release.tag_name, target)

            skipped: list[str] = []
            try:
                with InstallRollback(scratch_root=Path(tmp)) as rollback:
                    state, removed = self._apply(
                        paths, release, previous, downloaded, rollback, cancel, skipped,
                    )
                    state.install_target = target.value
                    check_cancelled(cancel)
                    save_tracked_state(state, paths.tracked_path)
            except BootstrapError:
                raise
            except OSError as e:
                raise MutationError(f"{operation} failed: {e}") from e

        logger.info(
            "%s complete: %s (%d file(s), %d dir(s))",
            operation.capitalize(),
            release.tag_name,
            len(state.managed_state.files),
            len(state.managed_state.dirs),
        )
        return OperationResult(
            operation=operation,
            release_id=release.id,
            release_tag=release.tag_name,
            previous_release_tag=previous.release_tag if previous else "",
            target=target.value,
            unchanged=unchanged,
            managed_files=state.managed_state.files,
            managed_dirs=state.managed_state.dirs,
            removed_paths=removed,
            skipped_paths=unique_sorted(skipped),
        )

    def _apply(
        self,
        paths: InstallPaths,
        release: Release,
        previous: TrackedState | None,
        downloaded: dict[str, Path],
        rollback: InstallRollback,
        cancel: CancelToken | None,
        skipped: list[str],
    ) -> tuple[TrackedState, list[str]]:
        """All filesystem mutations, each preceded by a snapshot."""
        created_dirs: list[str] = []

        def ensure_dir(path: Path, *, managed: bool = True) -> None:
            try:
                created = ensure_dir_tracked(path, DIR_PERM)
            except OSError as e:
                raise MutationError(
                    f"create directory {path}: {e}{_permission_hint(e, path)}"
                ) from e
            if created:
                rollback.track_created_dir(path)
                if managed:
                    created_dirs.append(str(path))

        agents_dir = paths.agents_dir
        ensure_dir(agents_dir.parent)
        ensure_dir(agents_dir)

        # ── Stale agent files go before the new archive lands ───
        agents_zip = downloaded[ASSET_AGENTS_ZIP]
        planned = plan_agents_archive(agents_zip, agents_dir)
        removed: list[str] = []
        if previous is not None:
            for stale in stale_agent_paths(
                previous.managed_state.files, planned, agents_dir, paths.binary_paths, skipped,
            ):
                check_cancelled(cancel)
                rollback.capture(stale)
                if _remove_stale(stale):
                    removed.append(stale)
                    logger.info("Removed stale agent file %s", stale)

        # ── Agents archive ──────────────────────────────────────
        check_cancelled(cancel)
        extracted_files, extracted_dirs = extract_agents_archive(
            agents_zip,
            agents_dir,
            before_write=rollback.capture,
            on_dir_created=rollback.track_created_dir,
        )

        # ── Binaries ────────────────────────────────────────────
        check_cancelled(cancel)
        ensure_dir(paths.binary_dir, managed=False)
        for name in BINARY_ASSET_NAMES:
            dst = paths.binary_dir / name
            rollback.capture(dst)
            try:
                self.binary_installer.install(downloaded[name], dst)
            except OSError as e:
                raise MutationError(
                    f"install {name} into {paths.binary_dir}: {e}"
                    f"{_permission_hint(e, paths.binary_dir)}"
                ) from e
            logger.info("Installed %s", dst)

        # ── Editor config, one pair per target ──────────────────
        json_edits = self._apply_config_edits(
            paths,
            previous.json_edits if previous else JSONEdits(),
            rollback,
            cancel,
            ensure_dir,
        )

        # Directories an earlier run created stay ours while they exist.
        carried_dirs: list[str] = []
        if previous is not None:
            for directory in previous.managed_state.dirs:
                if Path(directory).is_dir() and is_allowed_managed_directory(
                    directory, agents_dir, paths.allowed_config_dirs,
                ):
                    carried_dirs.append(directory)

        state = TrackedState(
            schema_version=TRACKED_SCHEMA_VERSION,
            repo=self.config.release.repo,
            release_id=release.id,
            release_tag=release.tag_name,
            installed_at=_rfc3339(self.clock()),
            managed_state=ManagedState(
                files=unique_sorted([*map(str, paths.binary_paths), *extracted_files]),
                dirs=unique_sorted([*created_dirs, *extracted_dirs, *carried_dirs]),
            ),
            json_edits=json_edits,
        )
        return state, removed

    def _apply_config_edits(
        self,
        paths: InstallPaths,
        prior: JSONEdits,
        rollback: InstallRollback,
        cancel: CancelToken | None,
        ensure_dir: Callable[[Path], None],
    ) -> JSONEdits:
        """Edit every targeted settings.json / mcp.json once.

        Edits recorded for files no longer targeted are kept as they
        are, so uninstall still reverts them.
        """
        agent_value = to_home_tilde_path(paths.home, paths.agents_dir)
        command = to_home_tilde_path(paths.home, paths.binary_dir / ASSET_ARTIFACT_MCP)
        settings_edits: list[SettingsEdit] = []
        mcp_edits: list[MCPEdit] = []
        done_settings: set[str] = set()
        done_mcp: set[str] = set()

        for index, target in enumerate(paths.targets):
            check_cancelled(cancel)
            # an untagged legacy record belongs to the primary pair only
            legacy = index == 0
            for config_file in (target.settings_path, target.mcp_path):
                ensure_dir(config_file.parent)

            settings_key = os.path.normpath(target.settings_path)
            if settings_key not in done_settings:
                done_settings.add(settings_key)
                rollback.capture(target.settings_path)
                settings_edits.append(apply_settings_edit(
                    target.settings_path,
                    agent_value,
                    prior.settings_edit_for(target.settings_path, legacy),
                ))

            check_cancelled(cancel)
            mcp_key = os.path.normpath(target.mcp_path)
            if mcp_key not in done_mcp:
                done_mcp.add(mcp_key)
                rollback.capture(target.mcp_path)
                mcp_edits.append(apply_mcp_edit(
                    target.mcp_path,
                    command,
                    prior.mcp_edit_for(target.mcp_path, legacy),
                ))

        for edit in prior.all_settings_edits():
            clean = os.path.normpath(edit.file) if edit.file.strip() else ""
            if edit.added and clean and clean not in done_settings:
                done_settings.add(clean)
                settings_edits.append(edit)
                logger.info("Keeping tracked settings edit for %s (no longer targeted)", edit.file)
        for edit in prior.all_mcp_edits():
            clean = os.path.normpath(edit.file) if edit.file.strip() else ""
            if edit.touched and clean and clean not in done_mcp:
                done_mcp.add(clean)
                mcp_edits.append(edit)
                logger.info("Keeping tracked mcp edit for %s (no longer targeted)", edit.file)

        return JSONEdits.from_edits(settings_edits, mcp_edits)
