"""
Mock adapters — in-memory doubles for the bootstrapper's collaborators.

Used by the test-suite to drive the orchestrator without network,
``gh`` or real binaries. Each fake records what it was asked to do
and can be configured to fail per URL / asset / destination.
"""

from __future__ import annotations

import json
import os
import shutil
from pathlib import Path
from typing import Any

from ccsubagents.adapters.base import (
    BinaryInstaller,
    CommandRunner,
    HttpClient,
    HttpResponse,
)
from ccsubagents.core.config.paths import BINARY_PERM


class FakeHttpClient(HttpClient):
    """Serve canned responses by exact URL.

    Unknown URLs answer 404. A URL mapped to an exception instance
    raises it, which simulates a transport failure.
    """

    def __init__(self, responses: dict[str, Any] | None = None):
        self._responses: dict[str, Any] = dict(responses or {})
        self._call_log: list[tuple[str, dict[str, str]]] = []

    @property
    def call_log(self) -> list[tuple[str, dict[str, str]]]:
        """(url, headers) for every request received."""
        return self._call_log

    @property
    def requested_urls(self) -> list[str]:
        return [url for url, _ in self._call_log]

    def set_json(self, url: str, payload: Any, status: int = 200) -> None:
        self._responses[url] = HttpResponse(status=status, body=json.dumps(payload).encode())

    def set_bytes(self, url: str, body: bytes, status: int = 200) -> None:
        self._responses[url] = HttpResponse(status=status, body=body)

    def set_error(self, url: str, error: BaseException) -> None:
        self._responses[url] = error

    def get(self, url: str, headers: dict[str, str] | None = None) -> HttpResponse:
        self._call_log.append((url, dict(headers or {})))
        response = self._responses.get(url)
        if response is None:
            return HttpResponse(status=404, body=b'{"message":"Not Found"}')
        if isinstance(response, BaseException):
            raise response
        return response


class FakeCommandRunner(CommandRunner):
    """Pretend to be ``gh``.

    By default every command succeeds. ``set_failure(token)`` makes any
    command whose arguments contain ``token`` fail with exit 1.
    """

    def __init__(self, available: bool = True):
        self._available = available
        self._failures: dict[str, str] = {}
        self._call_log: list[list[str]] = []

    @property
    def call_log(self) -> list[list[str]]:
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def set_failure(self, token: str, stderr: str = "no matching attestations found") -> None:
        self._failures[token] = stderr

    def which(self, name: str) -> str | None:
        return f"/usr/bin/{name}" if self._available else None

    def run(self, cmd: list[str], *, timeout: int = 120) -> dict[str, Any]:
        self._call_log.append(list(cmd))
        for token, stderr in self._failures.items():
            if any(token in arg for arg in cmd):
                return {"ok": False, "error": "Command failed (exit 1)", "stderr": stderr}
        return {"ok": True, "stdout": "", "elapsed_ms": 0}


class RecordingBinaryInstaller(BinaryInstaller):
    """Copy binaries for real, but remember every (src, dst) pair.

    ``fail_on`` holds destination file names that raise ``OSError``
    instead of being written.
    """

    def __init__(self, fail_on: set[str] | None = None):
        self.fail_on = set(fail_on or ())
        self.installed: list[tuple[Path, Path]] = []

    def install(self, src: Path, dst: Path) -> None:
        if dst.name in self.fail_on:
            raise OSError(f"simulated install failure for {dst.name}")
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(src, dst)
        os.chmod(dst, BINARY_PERM)
        self.installed.append((src, dst))
