"""
End-to-end tests for install / update against a temporary home.

Every test drives the real Bootstrapper pipeline; only the network,
``gh`` and the clock are faked.
"""

import json
import stat
import threading
from pathlib import Path
from unittest.mock import patch

import pytest

from ccsubagents.core.errors import (
    ConfigTypeError,
    ErrorKind,
    MutationError,
    OperationCancelled,
    ResolutionError,
    SnapshotError,
    TrackedStateError,
    VerificationError,
)
from ccsubagents.core.persistence.audit import AuditWriter
from ccsubagents.core.use_cases.install import stale_agent_paths

AGENT_DIR_TILDE = "~/.local/share/ccsubagents/agents"
MCP_COMMAND_TILDE = "~/.local/bin/local-artifact-mcp"


def _read_json(path: Path) -> dict:
    return json.loads(path.read_text())


def _without_audit(tree: dict) -> dict:
    return {k: v for k, v in tree.items() if not k.endswith("audit.ndjson")}


class CountdownToken:
    """Reports cancellation once ``is_set`` has been asked ``after`` times."""

    def __init__(self, after: int):
        self.after = after
        self.calls = 0

    def is_set(self) -> bool:
        self.calls += 1
        return self.calls > self.after


# ═══════════════════════════════════════════════════════════════════
#  First install
# ═══════════════════════════════════════════════════════════════════


class TestFirstInstall:
    """Fresh machine, nothing tracked."""

    def test_files_binaries_and_config(self, publish, make_bootstrapper, paths):
        publish(101, "v1.0.0", {"reviewer.agent.md": "# reviewer\n", "sub/planner.agent.md": "P"})
        result = make_bootstrapper().install_or_update(update=False)

        assert result.operation == "install"
        assert result.release_tag == "v1.0.0"
        assert not result.unchanged

        assert (paths.agents_dir / "reviewer.agent.md").read_text() == "# reviewer\n"
        assert (paths.agents_dir / "sub" / "planner.agent.md").read_text() == "P"

        mcp_bin = paths.binary_dir / "local-artifact-mcp"
        web_bin = paths.binary_dir / "local-artifact-web"
        assert mcp_bin.read_bytes() == b"mcp-binary-v1.0.0"
        assert web_bin.read_bytes() == b"web-binary-v1.0.0"
        assert stat.S_IMODE(mcp_bin.stat().st_mode) == 0o755

        assert _read_json(paths.settings_path) == {
            "chat.agentFilesLocations": [AGENT_DIR_TILDE],
        }
        assert _read_json(paths.mcp_path) == {
            "servers": {"artifact-mcp": {"command": MCP_COMMAND_TILDE}},
        }

    def test_tracked_state_written(self, publish, make_bootstrapper, paths):
        publish(101, "v1.0.0")
        make_bootstrapper().install_or_update(update=False)

        tracked = _read_json(paths.tracked_path)
        assert tracked["schemaVersion"] == 1
        assert tracked["repo"] == "CeraCharlesCC/CCSubAgents"
        assert tracked["releaseID"] == 101
        assert tracked["releaseTag"] == "v1.0.0"
        assert tracked["installedAt"] == "2026-03-14T09:26:53Z"

        assert tracked["managedState"]["files"] == sorted([
            str(paths.binary_dir / "local-artifact-mcp"),
            str(paths.binary_dir / "local-artifact-web"),
            str(paths.agents_dir / "reviewer.agent.md"),
        ])
        assert tracked["managedState"]["dirs"] == sorted([
            str(paths.agents_dir),
            str(paths.settings_path.parent),
            str(paths.mcp_path.parent),
        ])

        settings = tracked["jsonEdits"]["settings"]
        assert settings["agentPath"] == AGENT_DIR_TILDE
        assert settings["mode"] == "direct"
        assert settings["added"] is True

        mcp = tracked["jsonEdits"]["mcp"]
        assert mcp["key"] == "artifact-mcp"
        assert mcp["touched"] is True
        assert mcp["hadPrevious"] is False

    def test_preexisting_config_dirs_not_managed(self, publish, make_bootstrapper, paths):
        paths.settings_path.parent.mkdir(parents=True)
        paths.settings_path.write_text('{"editor.fontSize": 13}')
        publish(101, "v1.0.0")

        result = make_bootstrapper().install_or_update(update=False)
        assert str(paths.settings_path.parent) not in result.managed_dirs
        assert _read_json(paths.settings_path) == {
            "editor.fontSize": 13,
            "chat.agentFilesLocations": [AGENT_DIR_TILDE],
        }

    def test_nested_settings_array_reused(self, publish, make_bootstrapper, paths):
        paths.settings_path.parent.mkdir(parents=True)
        paths.settings_path.write_text(json.dumps({"chat": {"agentFilesLocations": ["~/mine"]}}))
        publish(101, "v1.0.0")

        make_bootstrapper().install_or_update(update=False)
        assert _read_json(paths.settings_path) == {
            "chat": {"agentFilesLocations": ["~/mine", AGENT_DIR_TILDE]},
        }
        assert _read_json(paths.tracked_path)["jsonEdits"]["settings"]["mode"] == "nested"

    def test_update_without_state_installs(self, publish, make_bootstrapper, paths):
        publish(101, "v1.0.0")
        result = make_bootstrapper().install_or_update(update=True)
        assert result.operation == "install"
        assert paths.tracked_path.is_file()

    def test_env_overrides(self, publish, make_bootstrapper, home, tmp_path):
        custom_settings = tmp_path / "elsewhere" / "settings.json"
        publish(101, "v1.0.0")
        boot = make_bootstrapper(env={
            "LOCAL_ARTIFACT_BIN_DIR": "~/bin",
            "LOCAL_ARTIFACT_SETTINGS_PATH": str(custom_settings),
        })
        boot.install_or_update(update=False)

        assert (home / "bin" / "local-artifact-mcp").is_file()
        assert custom_settings.is_file()
        mcp = _read_json(home / ".vscode-server-insiders/data/User/mcp.json")
        assert mcp["servers"]["artifact-mcp"]["command"] == "~/bin/local-artifact-mcp"

    def test_audit_entry(self, publish, make_bootstrapper, paths):
        publish(101, "v1.0.0")
        make_bootstrapper().install_or_update(update=False)

        entries = AuditWriter(state_dir=paths.state_dir).read_all()
        assert len(entries) == 1
        assert entries[0].operation_type == "install"
        assert entries[0].status == "ok"
        assert entries[0].release_tag == "v1.0.0"


# ═══════════════════════════════════════════════════════════════════
#  Failures before mutation
# ═══════════════════════════════════════════════════════════════════


class TestPreMutationFailures:
    """Nothing outside the state directory may change."""

    def test_attestation_failure(self, publish, make_bootstrapper, runner, home, paths):
        runner.set_failure("local-artifact-web", stderr="no attestations found")
        publish(101, "v1.0.0")

        with pytest.raises(VerificationError, match="local-artifact-web"):
            make_bootstrapper().install_or_update(update=False)

        assert not paths.agents_dir.exists()
        assert not paths.binary_dir.exists()
        assert not paths.settings_path.exists()
        assert not paths.mcp_path.exists()
        assert not paths.tracked_path.exists()
        # fresh machine: no state directory, no ledger
        assert not paths.state_dir.exists()
        assert list(home.iterdir()) == []

    def test_failure_with_existing_state_dir_is_recorded(self, publish, make_bootstrapper, runner, paths):
        paths.state_dir.mkdir(parents=True)
        runner.set_failure("local-artifact-web", stderr="no attestations found")
        publish(101, "v1.0.0")

        with pytest.raises(VerificationError):
            make_bootstrapper().install_or_update(update=False)

        assert [p.name for p in paths.state_dir.iterdir()] == ["audit.ndjson"]
        entry = AuditWriter(state_dir=paths.state_dir).read_all()[-1]
        assert entry.status == "failed"
        assert entry.error_kind == "verification"

    def test_gh_missing(self, publish, make_bootstrapper, paths):
        from ccsubagents.adapters.mock import FakeCommandRunner

        publish(101, "v1.0.0")
        boot = make_bootstrapper(runner=FakeCommandRunner(available=False))
        with pytest.raises(VerificationError, match="gh CLI is required"):
            boot.install_or_update(update=False)
        assert not paths.agents_dir.exists()

    def test_skip_attestation(self, publish, make_bootstrapper, paths):
        from ccsubagents.adapters.mock import FakeCommandRunner

        runner = FakeCommandRunner(available=False)
        publish(101, "v1.0.0")
        make_bootstrapper(runner=runner, skip_attestation=True).install_or_update(update=False)
        assert runner.call_count == 0
        assert paths.tracked_path.is_file()

    def test_release_not_found(self, make_bootstrapper, paths):
        with pytest.raises(ResolutionError, match="status=404") as exc:
            make_bootstrapper().install_or_update(update=False)
        assert exc.value.kind == ErrorKind.RESOLUTION
        assert not paths.agents_dir.exists()

    def test_corrupt_tracked_state_blocks_everything(self, publish, make_bootstrapper, http, paths):
        publish(101, "v1.0.0")
        paths.state_dir.mkdir(parents=True)
        paths.tracked_path.write_text("{not json")
        boot = make_bootstrapper()

        for op in (
            lambda: boot.install_or_update(update=False),
            lambda: boot.install_or_update(update=True),
            boot.uninstall,
        ):
            with pytest.raises(TrackedStateError, match="resolve .*tracked.json and retry"):
                op()

        assert http.requested_urls == []
        assert paths.tracked_path.read_text() == "{not json"
        assert not paths.agents_dir.exists()

    def test_cancelled_before_start(self, publish, make_bootstrapper, http):
        publish(101, "v1.0.0")
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(OperationCancelled):
            make_bootstrapper().install_or_update(update=False, cancel=cancel)
        assert http.requested_urls == []


# ═══════════════════════════════════════════════════════════════════
#  Update
# ═══════════════════════════════════════════════════════════════════


class TestUpdate:
    """Second run over an existing install."""

    def test_stale_agent_files_removed(self, publish, make_bootstrapper, paths):
        publish(101, "v1.0.0", {"a.agent.md": "A1", "b.agent.md": "B1"})
        make_bootstrapper().install_or_update(update=False)

        publish(102, "v1.1.0", {"a.agent.md": "A2"})
        result = make_bootstrapper().install_or_update(update=True)

        assert result.operation == "update"
        assert result.previous_release_tag == "v1.0.0"
        assert result.removed_paths == [str(paths.agents_dir / "b.agent.md")]
        assert (paths.agents_dir / "a.agent.md").read_text() == "A2"
        assert not (paths.agents_dir / "b.agent.md").exists()
        assert (paths.binary_dir / "local-artifact-web").read_bytes() == b"web-binary-v1.1.0"

        tracked = _read_json(paths.tracked_path)
        assert tracked["releaseID"] == 102
        assert str(paths.agents_dir / "b.agent.md") not in tracked["managedState"]["files"]

    def test_install_over_existing_updates(self, publish, make_bootstrapper):
        publish(101, "v1.0.0")
        make_bootstrapper().install_or_update(update=False)
        publish(102, "v1.1.0")
        result = make_bootstrapper().install_or_update(update=False)
        assert result.operation == "update"

    def test_same_release_is_unchanged(self, publish, make_bootstrapper, paths):
        publish(101, "v1.0.0")
        make_bootstrapper().install_or_update(update=False)
        result = make_bootstrapper().install_or_update(update=True)

        assert result.unchanged
        assert _read_json(paths.settings_path)["chat.agentFilesLocations"] == [AGENT_DIR_TILDE]
        tracked = _read_json(paths.tracked_path)
        assert tracked["jsonEdits"]["settings"]["added"] is True
        assert tracked["jsonEdits"]["mcp"]["hadPrevious"] is False

    def test_managed_dirs_carried_forward(self, publish, make_bootstrapper, paths):
        publish(101, "v1.0.0")
        make_bootstrapper().install_or_update(update=False)
        publish(102, "v1.1.0")
        make_bootstrapper().install_or_update(update=True)

        dirs = _read_json(paths.tracked_path)["managedState"]["dirs"]
        assert str(paths.agents_dir) in dirs
        assert str(paths.mcp_path.parent) in dirs

    def test_user_mcp_entry_kept_as_baseline(self, publish, make_bootstrapper, paths):
        user_entry = {"command": "/opt/custom-mcp", "args": ["--port", "9"]}
        paths.mcp_path.parent.mkdir(parents=True)
        paths.mcp_path.write_text(json.dumps({
            "servers": {"artifact-mcp": user_entry, "other": {"command": "x"}},
        }))

        publish(101, "v1.0.0")
        make_bootstrapper().install_or_update(update=False)
        publish(102, "v1.1.0")
        make_bootstrapper().install_or_update(update=True)

        mcp = _read_json(paths.tracked_path)["jsonEdits"]["mcp"]
        assert mcp["hadPrevious"] is True
        assert mcp["previous"] == user_entry
        assert _read_json(paths.mcp_path)["servers"]["other"] == {"command": "x"}

    def test_stale_settings_path_replaced(self, publish, make_bootstrapper, paths):
        publish(101, "v1.0.0")
        make_bootstrapper().install_or_update(update=False)

        tracked = _read_json(paths.tracked_path)
        tracked["jsonEdits"]["settings"]["agentPath"] = "~/old/agents"
        paths.tracked_path.write_text(json.dumps(tracked))
        settings = _read_json(paths.settings_path)
        settings["chat.agentFilesLocations"] = ["~/old/agents", "~/user"]
        paths.settings_path.write_text(json.dumps(settings))

        publish(102, "v1.1.0")
        make_bootstrapper().install_or_update(update=True)
        assert _read_json(paths.settings_path)["chat.agentFilesLocations"] == [
            "~/user", AGENT_DIR_TILDE,
        ]

    def test_unsafe_stale_path_reported(self, publish, make_bootstrapper, paths, home):
        precious = home / "precious.txt"
        precious.write_text("keep me")
        publish(101, "v1.0.0")
        make_bootstrapper().install_or_update(update=False)
        tracked = _read_json(paths.tracked_path)
        tracked["managedState"]["files"].append(str(precious))
        paths.tracked_path.write_text(json.dumps(tracked))

        publish(102, "v1.1.0")
        result = make_bootstrapper().install_or_update(update=True)

        assert precious.read_text() == "keep me"
        assert result.skipped_paths == [str(precious)]
        assert result.status == "completed_with_skips"
        entry = AuditWriter(state_dir=paths.state_dir).read_all()[-1]
        assert entry.status == "completed_with_skips"
        assert entry.skipped_paths == [str(precious)]

    def test_moved_mcp_file_takes_its_own_baseline(self, publish, make_bootstrapper, paths, home):
        publish(101, "v1.0.0")
        make_bootstrapper().install_or_update(update=False)

        user_entry = {"command": "/usr/bin/target-existing"}
        moved = home / "moved" / "mcp.json"
        moved.parent.mkdir()
        moved.write_text(json.dumps({"servers": {"artifact-mcp": user_entry}}))
        env = {"LOCAL_ARTIFACT_MCP_PATH": str(moved)}

        publish(102, "v1.1.0")
        make_bootstrapper(env=env).install_or_update(update=True)

        edits = _read_json(paths.tracked_path)["jsonEdits"]
        assert edits["mcp"]["file"] == str(moved)
        assert edits["mcp"]["hadPrevious"] is True
        assert edits["mcp"]["previous"] == user_entry
        assert [e["file"] for e in edits["mcpExtra"]] == [str(paths.mcp_path)]

        make_bootstrapper(env=env).uninstall()
        assert _read_json(moved) == {"servers": {"artifact-mcp": user_entry}}
        assert _read_json(paths.mcp_path) == {"servers": {}}


# ═══════════════════════════════════════════════════════════════════
#  Install targets
# ═══════════════════════════════════════════════════════════════════


class TestInstallTargets:
    """Which editor channel(s) get the config edits."""

    STABLE_SETTINGS = ".vscode-server/data/Machine/settings.json"
    STABLE_MCP = ".vscode-server/data/User/mcp.json"

    def test_stable_only(self, publish, make_bootstrapper, paths, home):
        publish(101, "v1.0.0")
        result = make_bootstrapper(target="stable").install_or_update(update=False)

        assert result.target == "stable"
        assert _read_json(home / self.STABLE_SETTINGS)["chat.agentFilesLocations"] == [AGENT_DIR_TILDE]
        assert "artifact-mcp" in _read_json(home / self.STABLE_MCP)["servers"]
        assert not paths.settings_path.exists()
        assert not paths.mcp_path.exists()

        tracked = _read_json(paths.tracked_path)
        assert tracked["installTarget"] == "stable"
        assert tracked["jsonEdits"]["settings"]["file"] == str(home / self.STABLE_SETTINGS)
        assert "settingsExtra" not in tracked["jsonEdits"]

    def test_both(self, publish, make_bootstrapper, paths, home):
        publish(101, "v1.0.0")
        make_bootstrapper(target="both").install_or_update(update=False)

        for settings in (paths.settings_path, home / self.STABLE_SETTINGS):
            assert _read_json(settings)["chat.agentFilesLocations"] == [AGENT_DIR_TILDE]
        for mcp in (paths.mcp_path, home / self.STABLE_MCP):
            assert _read_json(mcp)["servers"]["artifact-mcp"]["command"] == MCP_COMMAND_TILDE

        tracked = _read_json(paths.tracked_path)
        assert tracked["installTarget"] == "both"
        edits = tracked["jsonEdits"]
        assert edits["settings"]["file"] == str(paths.settings_path)
        assert [e["file"] for e in edits["settingsExtra"]] == [str(home / self.STABLE_SETTINGS)]
        assert [e["file"] for e in edits["mcpExtra"]] == [str(home / self.STABLE_MCP)]

    def test_update_keeps_recorded_target(self, publish, make_bootstrapper, home):
        publish(101, "v1.0.0")
        make_bootstrapper(target="both").install_or_update(update=False)
        publish(102, "v1.1.0")
        result = make_bootstrapper().install_or_update(update=True)

        assert result.target == "both"
        assert _read_json(home / self.STABLE_SETTINGS)["chat.agentFilesLocations"] == [AGENT_DIR_TILDE]

    def test_config_file_target(self, publish, make_bootstrapper, paths):
        from ccsubagents.core.config.loader import BootstrapConfig

        publish(101, "v1.0.0")
        config = BootstrapConfig.model_validate({"install": {"target": "stable"}})
        result = make_bootstrapper(config=config).install_or_update(update=False)
        assert result.target == "stable"
        assert not paths.settings_path.exists()

    def test_switch_target_then_uninstall(self, publish, make_bootstrapper, paths, home):
        publish(101, "v1.0.0")
        make_bootstrapper().install_or_update(update=False)
        publish(102, "v1.1.0")
        make_bootstrapper(target="stable").install_or_update(update=True)

        edits = _read_json(paths.tracked_path)["jsonEdits"]
        assert edits["settings"]["file"] == str(home / self.STABLE_SETTINGS)
        assert [e["file"] for e in edits["settingsExtra"]] == [str(paths.settings_path)]
        assert [e["file"] for e in edits["mcpExtra"]] == [str(paths.mcp_path)]

        make_bootstrapper().uninstall()
        for settings in (paths.settings_path, home / self.STABLE_SETTINGS):
            assert _read_json(settings)["chat.agentFilesLocations"] == []
        for mcp in (paths.mcp_path, home / self.STABLE_MCP):
            assert _read_json(mcp)["servers"] == {}

    def test_untagged_record_only_claims_primary_files(self, publish, make_bootstrapper, paths, home):
        publish(101, "v1.0.0")
        make_bootstrapper().install_or_update(update=False)
        tracked = _read_json(paths.tracked_path)
        del tracked["jsonEdits"]["settings"]["file"]
        del tracked["jsonEdits"]["mcp"]["file"]
        paths.tracked_path.write_text(json.dumps(tracked))
        stable = home / self.STABLE_SETTINGS
        stable.parent.mkdir(parents=True)
        stable.write_text(json.dumps({"chat.agentFilesLocations": [AGENT_DIR_TILDE]}))

        publish(102, "v1.1.0")
        make_bootstrapper(target="both").install_or_update(update=True)

        edits = _read_json(paths.tracked_path)["jsonEdits"]
        assert edits["settings"]["file"] == str(paths.settings_path)
        assert edits["settings"]["added"] is True
        assert edits["settingsExtra"][0]["file"] == str(stable)
        assert edits["settingsExtra"][0]["added"] is False

    def test_unknown_recorded_target(self, publish, make_bootstrapper, paths):
        publish(101, "v1.0.0")
        make_bootstrapper().install_or_update(update=False)
        tracked = _read_json(paths.tracked_path)
        tracked["installTarget"] = "nightly"
        paths.tracked_path.write_text(json.dumps(tracked))

        with pytest.raises(TrackedStateError, match="nightly"):
            make_bootstrapper().install_or_update(update=True)


class TestPathWarning:

    def test_warns_when_bin_dir_not_on_path(self, publish, make_bootstrapper):
        publish(101, "v1.0.0")
        result = make_bootstrapper(env={"PATH": "/usr/bin:/bin"}).install_or_update(update=False)
        assert result.warnings == [
            '~/.local/bin is not in PATH; add it to your shell profile, '
            'e.g.: export PATH="$HOME/.local/bin:$PATH"'
        ]
        assert result.status == "ok"

    def test_silent_when_bin_dir_on_path(self, publish, make_bootstrapper, paths):
        publish(101, "v1.0.0")
        env = {"PATH": f"/usr/bin:{paths.binary_dir}/"}
        result = make_bootstrapper(env=env).install_or_update(update=False)
        assert result.warnings == []


# ═══════════════════════════════════════════════════════════════════
#  Rollback
# ═══════════════════════════════════════════════════════════════════


class TestRollback:
    """Failures after mutation began restore the previous tree."""

    def test_late_failure_restores_previous_install(
        self, publish, make_bootstrapper, installer, home, paths, tree_snapshot,
    ):
        publish(101, "v1.0.0", {"a.agent.md": "A1", "b.agent.md": "B1"})
        make_bootstrapper().install_or_update(update=False)
        before = _without_audit(tree_snapshot(home))

        publish(102, "v1.1.0", {"a.agent.md": "A2", "new/c.agent.md": "C"})
        installer.fail_on = {"local-artifact-web"}
        with pytest.raises(MutationError, match="local-artifact-web"):
            make_bootstrapper().install_or_update(update=True)

        assert _without_audit(tree_snapshot(home)) == before
        entry = AuditWriter(state_dir=paths.state_dir).read_all()[-1]
        assert entry.status == "rolled_back"

    def test_late_failure_on_first_install(self, publish, make_bootstrapper, installer, paths):
        installer.fail_on = {"local-artifact-web"}
        publish(101, "v1.0.0")

        with pytest.raises(MutationError):
            make_bootstrapper().install_or_update(update=False)

        assert not paths.agents_dir.exists()
        assert not paths.binary_dir.exists()
        assert not paths.tracked_path.exists()

    def test_stale_snapshot_failure(self, publish, make_bootstrapper, home, paths, tree_snapshot):
        publish(101, "v1.0.0")
        make_bootstrapper().install_or_update(update=False)

        legacy = paths.agents_dir / "legacy"
        legacy.mkdir()
        (legacy / "old.agent.md").write_text("old")
        tracked = _read_json(paths.tracked_path)
        tracked["managedState"]["files"].append(str(legacy))
        paths.tracked_path.write_text(json.dumps(tracked, indent=2))

        tracked_bytes = paths.tracked_path.read_bytes()
        before = _without_audit(tree_snapshot(home))

        publish(102, "v1.1.0")
        with patch(
            "ccsubagents.core.services.rollback.shutil.copytree",
            side_effect=OSError("permission denied"),
        ):
            with pytest.raises(SnapshotError, match="cannot snapshot directory for rollback"):
                make_bootstrapper().install_or_update(update=True)

        assert paths.tracked_path.read_bytes() == tracked_bytes
        assert _without_audit(tree_snapshot(home)) == before
        assert (legacy / "old.agent.md").read_text() == "old"

    def test_cancel_mid_mutation(self, publish, make_bootstrapper, paths):
        publish(101, "v1.0.0")
        # start, before download, before mutation, before extraction
        cancel = CountdownToken(after=4)

        with pytest.raises(OperationCancelled):
            make_bootstrapper().install_or_update(update=False, cancel=cancel)

        assert not paths.agents_dir.exists()
        assert not paths.tracked_path.exists()
        entry = AuditWriter(state_dir=paths.state_dir).read_all()[-1]
        assert entry.status == "rolled_back"
        assert entry.error_kind == "cancelled"

    def test_bad_mcp_shape_rolls_back(self, publish, make_bootstrapper, paths):
        paths.mcp_path.parent.mkdir(parents=True)
        paths.mcp_path.write_text('{"servers": []}')
        publish(101, "v1.0.0")

        with pytest.raises(ConfigTypeError) as exc:
            make_bootstrapper().install_or_update(update=False)

        assert exc.value.kind == ErrorKind.CONFIG_TYPE
        assert "mcp key servers" in exc.value.message
        assert not paths.agents_dir.exists()
        assert not paths.settings_path.exists()
        assert paths.mcp_path.read_text() == '{"servers": []}'


class TestStaleAgentPaths:

    AGENTS = Path("/h/.local/share/ccsubagents/agents")
    BINS = [Path("/h/.local/bin/local-artifact-mcp"), Path("/h/.local/bin/local-artifact-web")]

    def test_only_agent_files_not_in_plan(self):
        previous = [
            str(self.BINS[0]),
            str(self.AGENTS / "a.md"),
            str(self.AGENTS / "b.md"),
            "/etc/passwd",
        ]
        planned = [str(self.AGENTS / "a.md")]
        assert stale_agent_paths(previous, planned, self.AGENTS, self.BINS) == [
            str(self.AGENTS / "b.md"),
        ]

    def test_agents_dir_itself_never_stale(self):
        assert stale_agent_paths([str(self.AGENTS)], [], self.AGENTS, self.BINS) == []

    def test_outside_paths_rejected(self):
        rejected: list[str] = []
        previous = [str(self.AGENTS / "b.md"), "/etc/passwd", "/h/notes/../.bashrc"]
        stale = stale_agent_paths(previous, [], self.AGENTS, self.BINS, rejected)
        assert stale == [str(self.AGENTS / "b.md")]
        assert rejected == ["/etc/passwd", "/h/.bashrc"]
