"""
Adapters — the bootstrapper's view of the network, processes and disk.
"""

from ccsubagents.adapters.base import (
    BinaryInstaller,
    CommandRunner,
    HttpClient,
    HttpResponse,
)
from ccsubagents.adapters.filesystem import CopyBinaryInstaller
from ccsubagents.adapters.http import UrllibHttpClient
from ccsubagents.adapters.shell import SubprocessRunner

__all__ = [
    "BinaryInstaller",
    "CommandRunner",
    "CopyBinaryInstaller",
    "HttpClient",
    "HttpResponse",
    "SubprocessRunner",
    "UrllibHttpClient",
]
