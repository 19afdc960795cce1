"""
Subprocess runner — the single place external commands are executed.

Used for ``gh attestation verify``. All logging and error shaping for
subprocesses is centralised here so callers only ever inspect a dict.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from collections.abc import Mapping
from typing import Any

from ccsubagents.adapters.base import CommandRunner

logger = logging.getLogger(__name__)

_OUTPUT_TAIL = 2000


class SubprocessRunner(CommandRunner):
    """Run commands with ``subprocess.run`` and a captured output tail.

    Args:
        env: Environment for child processes (default: ``os.environ``).
            ``GITHUB_TOKEN`` is passed through so ``gh`` can authenticate.
    """

    def __init__(self, env: Mapping[str, str] | None = None):
        self._env = dict(os.environ if env is None else env)

    def which(self, name: str) -> str | None:
        return shutil.which(name, path=self._env.get("PATH"))

    def run(self, cmd: list[str], *, timeout: int = 120) -> dict[str, Any]:
        """Run ``cmd`` and return the outcome.

        Returns:
            ``{"ok": True, "stdout": "...", "elapsed_ms": N}`` on success,
            ``{"ok": False, "error": "...", "stderr": "..."}`` on failure.
        """
        logger.debug("exec: %s", " ".join(cmd))
        start = time.monotonic()
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
                env=self._env,
            )
        except subprocess.TimeoutExpired:
            return {"ok": False, "error": f"Command timed out ({timeout}s)"}
        except OSError as e:
            logger.debug("exec failed: %s: %s", cmd[0], e)
            return {"ok": False, "error": str(e)}

        elapsed_ms = int((time.monotonic() - start) * 1000)
        stdout = result.stdout[-_OUTPUT_TAIL:] if result.stdout else ""

        if result.returncode == 0:
            return {"ok": True, "stdout": stdout, "elapsed_ms": elapsed_ms}

        return {
            "ok": False,
            "error": f"Command failed (exit {result.returncode})",
            "stderr": result.stderr[-_OUTPUT_TAIL:] if result.stderr else "",
            "stdout": stdout,
            "elapsed_ms": elapsed_ms,
        }
