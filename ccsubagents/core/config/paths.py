"""
Install path resolution — where binaries, agents and config files live.

Everything is derived from the user's home directory plus three
optional environment overrides. Pure computation: no I/O, no errors.

The editor config files come in two flavours, one per VS Code server
channel (``stable`` and ``insiders``). An install targets one of them,
or both.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

# ── Release / bundle constants ──────────────────────────────────
RELEASE_REPO = "CeraCharlesCC/CCSubAgents"
RELEASE_WORKFLOW_PATH = ".github/workflows/manual-release.yml"

ASSET_AGENTS_ZIP = "agents.zip"
ASSET_ARTIFACT_MCP = "local-artifact-mcp"
ASSET_ARTIFACT_WEB = "local-artifact-web"
BINARY_ASSET_NAMES = (ASSET_ARTIFACT_MCP, ASSET_ARTIFACT_WEB)
INSTALL_ASSET_NAMES = (ASSET_AGENTS_ZIP, ASSET_ARTIFACT_MCP, ASSET_ARTIFACT_WEB)

MCP_SERVER_KEY = "artifact-mcp"

# ── Default locations (relative to home) ────────────────────────
BINARY_DIR_DEFAULT_REL = ".local/bin"
SETTINGS_INSIDERS_REL = ".vscode-server-insiders/data/Machine/settings.json"
MCP_CONFIG_INSIDERS_REL = ".vscode-server-insiders/data/User/mcp.json"
SETTINGS_STABLE_REL = ".vscode-server/data/Machine/settings.json"
MCP_CONFIG_STABLE_REL = ".vscode-server/data/User/mcp.json"
STATE_DIR_REL = ".local/share/ccsubagents"
AGENTS_DIR_REL = ".local/share/ccsubagents/agents"
TRACKED_FILE_NAME = "tracked.json"

# ── Environment overrides ───────────────────────────────────────
BINARY_DIR_ENV = "LOCAL_ARTIFACT_BIN_DIR"
SETTINGS_PATH_ENV = "LOCAL_ARTIFACT_SETTINGS_PATH"
MCP_CONFIG_PATH_ENV = "LOCAL_ARTIFACT_MCP_PATH"

# ── Permissions ─────────────────────────────────────────────────
DIR_PERM = 0o755
FILE_PERM = 0o644
BINARY_PERM = 0o755


class InstallTarget(StrEnum):
    """Which editor channel(s) get the config edits."""

    INSIDERS = "insiders"
    STABLE = "stable"
    BOTH = "both"


DEFAULT_INSTALL_TARGET = InstallTarget.INSIDERS

_CHANNEL_DEFAULTS = {
    InstallTarget.INSIDERS: (SETTINGS_INSIDERS_REL, MCP_CONFIG_INSIDERS_REL),
    InstallTarget.STABLE: (SETTINGS_STABLE_REL, MCP_CONFIG_STABLE_REL),
}


@dataclass(frozen=True)
class ConfigTarget:
    """One settings.json / mcp.json pair."""

    channel: str
    settings_path: Path
    mcp_path: Path


@dataclass(frozen=True)
class InstallPaths:
    """Resolved on-disk locations for one home directory.

    ``targets`` are the config pairs this run edits, first one primary.
    ``known_targets`` are every pair this tool could ever have edited
    under the current overrides; directory cleanup is bounded by them.
    """

    home: Path
    binary_dir: Path
    agents_dir: Path
    state_dir: Path
    targets: tuple[ConfigTarget, ...]
    known_targets: tuple[ConfigTarget, ...]

    @property
    def settings_path(self) -> Path:
        return self.targets[0].settings_path

    @property
    def mcp_path(self) -> Path:
        return self.targets[0].mcp_path

    @property
    def tracked_path(self) -> Path:
        return self.state_dir / TRACKED_FILE_NAME

    @property
    def binary_paths(self) -> list[Path]:
        """The two installed binaries, in asset order."""
        return [self.binary_dir / name for name in BINARY_ASSET_NAMES]

    @property
    def allowed_config_dirs(self) -> list[Path]:
        """Parents of every config file this tool may have edited."""
        return _parents(self.known_targets)


def _parents(targets: tuple[ConfigTarget, ...]) -> list[Path]:
    out: list[Path] = []
    for target in targets:
        for path in (target.settings_path, target.mcp_path):
            if path.parent not in out:
                out.append(path.parent)
    return out


def resolve_configured_path(home: str | Path, value: str | None) -> Path | None:
    """Resolve one override value against home.

    Empty → None (use the default); ``~`` → home; ``~/x`` → home/x;
    absolute → used verbatim (normalized); relative → home/value.
    """
    trimmed = (value or "").strip()
    if not trimmed:
        return None

    home_path = Path(os.path.normpath(home))
    if trimmed == "~":
        return home_path
    if trimmed.startswith("~/") or trimmed.startswith("~" + os.sep):
        return Path(os.path.normpath(home_path / trimmed[2:]))
    if os.path.isabs(trimmed):
        return Path(os.path.normpath(trimmed))
    return Path(os.path.normpath(home_path / trimmed))


def parse_install_target(value: str | InstallTarget | None) -> InstallTarget | None:
    """Normalize a target name; blank → None.

    Raises:
        ValueError: For anything but insiders, stable or both.
    """
    if value is None:
        return None
    trimmed = str(value).strip().lower()
    if not trimmed:
        return None
    try:
        return InstallTarget(trimmed)
    except ValueError:
        choices = ", ".join(t.value for t in InstallTarget)
        raise ValueError(f"unknown install target {value!r} (expected one of: {choices})") from None


def resolve_install_targets(
    home: Path,
    target: InstallTarget,
    settings_override: Path | None = None,
    mcp_override: Path | None = None,
) -> tuple[ConfigTarget, ...]:
    """Config pairs for ``target``; insiders first when both.

    An override replaces the file for every channel, so ``both`` with
    both files overridden collapses to a single pair.
    """
    channels = (
        [InstallTarget.INSIDERS, InstallTarget.STABLE]
        if target == InstallTarget.BOTH
        else [target]
    )
    out: list[ConfigTarget] = []
    seen: set[tuple[Path, Path]] = set()
    for channel in channels:
        settings_rel, mcp_rel = _CHANNEL_DEFAULTS[channel]
        pair = (
            settings_override or home / settings_rel,
            mcp_override or home / mcp_rel,
        )
        if pair in seen:
            continue
        seen.add(pair)
        out.append(ConfigTarget(channel=channel.value, settings_path=pair[0], mcp_path=pair[1]))
    return tuple(out)


def resolve_install_paths(
    home: str | Path,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, str | None] | None = None,
    target: InstallTarget | str | None = None,
) -> InstallPaths:
    """Compute install locations.

    Args:
        home: The user's home directory.
        env: Environment mapping (default: ``os.environ``).
        overrides: Lower-precedence values from the config file, keyed
            ``bin_dir``, ``settings``, ``mcp``. Environment wins.
        target: Editor channel(s) to edit (default: insiders).
    """
    env = os.environ if env is None else env
    overrides = overrides or {}
    home_path = Path(os.path.normpath(home))
    chosen = parse_install_target(target) or DEFAULT_INSTALL_TARGET

    def pick(env_name: str, key: str) -> Path | None:
        for raw in (env.get(env_name), overrides.get(key)):
            resolved = resolve_configured_path(home_path, raw)
            if resolved is not None:
                return resolved
        return None

    settings_override = pick(SETTINGS_PATH_ENV, "settings")
    mcp_override = pick(MCP_CONFIG_PATH_ENV, "mcp")

    return InstallPaths(
        home=home_path,
        binary_dir=pick(BINARY_DIR_ENV, "bin_dir") or home_path / BINARY_DIR_DEFAULT_REL,
        agents_dir=home_path / AGENTS_DIR_REL,
        state_dir=home_path / STATE_DIR_REL,
        targets=resolve_install_targets(home_path, chosen, settings_override, mcp_override),
        known_targets=resolve_install_targets(
            home_path, InstallTarget.BOTH, settings_override, mcp_override,
        ),
    )


def to_home_tilde_path(home: str | Path, path: str | Path) -> str:
    """Render ``path`` as ``~/rel`` when it lives under ``home``.

    Editor clients expect user-scoped paths in this form; anything
    outside home is returned as a normalized absolute path.
    """
    clean_path = os.path.normpath(path)
    clean_home = os.path.normpath(home) if home else ""
    if not clean_home or clean_home == ".":
        return Path(clean_path).as_posix()

    if clean_path == clean_home:
        return "~"
    if clean_path.startswith(clean_home.rstrip(os.sep) + os.sep):
        rel = os.path.relpath(clean_path, clean_home)
        return "~/" + Path(rel).as_posix()
    return Path(clean_path).as_posix()


def path_dir_on_search_path(directory: str | Path, search_path: str | None) -> bool:
    """Is ``directory`` one of the entries of a ``PATH``-style string?"""
    expected = os.path.normpath(directory)
    for entry in (search_path or "").split(os.pathsep):
        entry = entry.strip()
        if entry and os.path.normpath(entry) == expected:
            return True
    return False
