"""Cooperative cancellation for long-running operations."""

from __future__ import annotations

from typing import Protocol

from ccsubagents.core.errors import OperationCancelled


class CancelToken(Protocol):
    """Anything with ``is_set()``, typically ``threading.Event``."""

    def is_set(self) -> bool: ...


def check_cancelled(cancel: CancelToken | None) -> None:
    """Raise ``OperationCancelled`` if the caller asked us to stop."""
    if cancel is not None and cancel.is_set():
        raise OperationCancelled()
