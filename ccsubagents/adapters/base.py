"""
Adapter base — the contracts between the bootstrapper and the outside world.

The orchestrator never opens sockets, spawns processes or copies
binaries itself. It is handed one adapter per concern at construction
time; production wiring uses the real implementations in this package
and tests use the fakes in ``ccsubagents.adapters.mock``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


@dataclass
class HttpResponse:
    """Status code, headers and raw body of a completed request."""

    status: int
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == 200


class HttpClient(ABC):
    """Blocking HTTP GET.

    Implementations return non-2xx responses as ``HttpResponse`` and
    raise ``OSError`` for transport failures (DNS, refused, timeout).
    """

    @abstractmethod
    def get(self, url: str, headers: dict[str, str] | None = None) -> HttpResponse:
        """Fetch ``url`` and return the full response."""


class CommandRunner(ABC):
    """Run external commands and report the outcome as a dict.

    Result shape mirrors the rest of the codebase:
    ``{"ok": True, "stdout": "...", "elapsed_ms": N}`` on success,
    ``{"ok": False, "error": "...", "stderr": "..."}`` on failure.
    Implementations never raise for a failing command.
    """

    @abstractmethod
    def which(self, name: str) -> str | None:
        """Return the absolute path of ``name`` on PATH, or None."""

    @abstractmethod
    def run(self, cmd: list[str], *, timeout: int = 120) -> dict[str, Any]:
        """Run ``cmd`` to completion."""


class BinaryInstaller(ABC):
    """Place a downloaded binary at its final location."""

    @abstractmethod
    def install(self, src: Path, dst: Path) -> None:
        """Copy ``src`` to ``dst`` as an executable.

        Raises:
            OSError: If the destination cannot be written.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"
