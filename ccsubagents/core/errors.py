"""
Error taxonomy — every fatal condition the bootstrapper can raise.

Each error carries an ``ErrorKind``. Callers (and tests) match on the
kind or the exception class, never on message text. The message
prefixes below are nevertheless stable because scripts wrapping the
CLI grep for them:

    resolution      latest release … / release asset …
    verification    attestation verification failed for <asset>
    tracked_state   tracked state is unreadable; resolve <path> and retry
    config_type     names the offending field, e.g. "mcp key servers"
    snapshot        cannot snapshot directory for rollback: <path>
    rollback        rollback failed
    cancelled       operation cancelled
"""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    """Closed set of failure classes."""

    RESOLUTION = "resolution"
    VERIFICATION = "verification"
    TRACKED_STATE = "tracked_state"
    CONFIG = "config"
    CONFIG_TYPE = "config_type"
    UNSAFE_PATH = "unsafe_path"
    SNAPSHOT = "snapshot"
    MUTATION = "mutation"
    ROLLBACK = "rollback"
    CANCELLED = "cancelled"
    UNINSTALL = "uninstall"


class BootstrapError(Exception):
    """Base class for all bootstrapper failures."""

    kind: ErrorKind = ErrorKind.MUTATION

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"ok": False, "kind": str(self.kind), "error": self.message}


class ResolutionError(BootstrapError):
    """Release metadata could not be fetched or is incomplete."""

    kind = ErrorKind.RESOLUTION


class VerificationError(BootstrapError):
    """Attestation verification failed or could not run."""

    kind = ErrorKind.VERIFICATION


class TrackedStateError(BootstrapError):
    """The tracked-state file exists but cannot be trusted."""

    kind = ErrorKind.TRACKED_STATE


class ConfigError(BootstrapError):
    """The optional YAML configuration file is invalid."""

    kind = ErrorKind.CONFIG


class ConfigTypeError(BootstrapError):
    """A JSON config field has the wrong type; never coerced."""

    kind = ErrorKind.CONFIG_TYPE


class UnsafePathError(BootstrapError):
    """An archive entry would land outside its destination."""

    kind = ErrorKind.UNSAFE_PATH


class SnapshotError(BootstrapError):
    """A path could not be captured before mutation."""

    kind = ErrorKind.SNAPSHOT


class MutationError(BootstrapError):
    """A filesystem step of install/update failed."""

    kind = ErrorKind.MUTATION


class OperationCancelled(BootstrapError):
    """The caller's cancellation token fired mid-operation."""

    kind = ErrorKind.CANCELLED

    def __init__(self, message: str = "operation cancelled"):
        super().__init__(message)


class UninstallError(BootstrapError):
    """One or more uninstall steps failed; tracked state was kept."""

    kind = ErrorKind.UNINSTALL

    def __init__(self, failures: list[str]):
        self.failures = list(failures)
        super().__init__("uninstall failed: " + "; ".join(self.failures))


class RollbackError(BootstrapError):
    """Restoring snapshots failed after an earlier failure.

    The filesystem may now be inconsistent and need manual recovery.
    ``cause`` is the error that triggered the rollback.
    """

    kind = ErrorKind.ROLLBACK

    def __init__(self, cause: BaseException, failures: list[str]):
        self.cause = cause
        self.failures = list(failures)
        super().__init__(
            f"{cause} (rollback failed: {'; '.join(self.failures)})"
        )
