"""Shell adapters — external command execution."""

from ccsubagents.adapters.shell.command import SubprocessRunner

__all__ = ["SubprocessRunner"]
