"""
Shared test fixtures and configuration.

Every orchestrator test runs against a throwaway home directory with
fake collaborators: no network, no ``gh``, no real binaries.
"""

from __future__ import annotations

import io
import zipfile
from datetime import UTC, datetime
from pathlib import Path

import pytest

from ccsubagents.adapters.mock import (
    FakeCommandRunner,
    FakeHttpClient,
    RecordingBinaryInstaller,
)
from ccsubagents.core.config.loader import BootstrapConfig
from ccsubagents.core.config.paths import resolve_install_paths
from ccsubagents.core.use_cases.install import Bootstrapper

LATEST_URL = BootstrapConfig().release_latest_url
DOWNLOAD_BASE = "https://github.com/CeraCharlesCC/CCSubAgents/releases/download"
FIXED_NOW = datetime(2026, 3, 14, 9, 26, 53, tzinfo=UTC)


def build_agents_zip(files: dict[str, str], root: str = "agents") -> bytes:
    """Zip ``files`` under a single top-level folder, like the release does."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr(f"{root}/", "")
        for name, content in files.items():
            zf.writestr(f"{root}/{name}", content)
    return buf.getvalue()


@pytest.fixture
def home(tmp_path: Path) -> Path:
    """An empty home directory."""
    h = tmp_path / "home"
    h.mkdir()
    return h


@pytest.fixture
def paths(home: Path):
    """Default install paths for ``home`` (no overrides)."""
    return resolve_install_paths(home, env={})


@pytest.fixture
def http() -> FakeHttpClient:
    return FakeHttpClient()


@pytest.fixture
def runner() -> FakeCommandRunner:
    return FakeCommandRunner()


@pytest.fixture
def installer() -> RecordingBinaryInstaller:
    return RecordingBinaryInstaller()


@pytest.fixture
def publish(http: FakeHttpClient):
    """Serve a release as "latest" on the fake API.

    Usage:
        publish(101, "v1.0.0", {"a.agent.md": "A"})
    """

    def _publish(release_id: int, tag: str, agents: dict[str, str] | None = None) -> None:
        agents = agents if agents is not None else {"reviewer.agent.md": "# reviewer\n"}
        bodies = {
            "agents.zip": build_agents_zip(agents),
            "local-artifact-mcp": f"mcp-binary-{tag}".encode(),
            "local-artifact-web": f"web-binary-{tag}".encode(),
        }
        assets = []
        for name, body in bodies.items():
            url = f"{DOWNLOAD_BASE}/{tag}/{name}"
            http.set_bytes(url, body)
            assets.append({"name": name, "browser_download_url": url})
        http.set_json(LATEST_URL, {"id": release_id, "tag_name": tag, "assets": assets})

    return _publish


@pytest.fixture
def make_bootstrapper(home, http, runner, installer):
    """Build a Bootstrapper wired to the fakes; keyword args override."""

    def _make(**overrides) -> Bootstrapper:
        kwargs = {
            "http": http,
            "runner": runner,
            "binary_installer": installer,
            "clock": lambda: FIXED_NOW,
            "home_dir": home,
            "env": {},
        }
        kwargs.update(overrides)
        return Bootstrapper(**kwargs)

    return _make


def snapshot_tree(root: Path) -> dict[str, bytes | None]:
    """Map every path under ``root`` to its bytes (None for directories)."""
    if not root.exists():
        return {}
    out: dict[str, bytes | None] = {}
    for path in sorted(root.rglob("*")):
        rel = str(path.relative_to(root))
        out[rel] = None if path.is_dir() else path.read_bytes()
    return out


@pytest.fixture
def tree_snapshot():
    """Callable capturing a directory tree for before/after comparisons."""
    return snapshot_tree
