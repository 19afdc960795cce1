"""
Domain models — Pydantic types for the bootstrapper.

All models are re-exported here for convenient access:

    from ccsubagents.core.models import TrackedState, Release, OperationResult
"""

from ccsubagents.core.models.operation import OperationResult
from ccsubagents.core.models.release import Release, ReleaseAsset
from ccsubagents.core.models.state import (
    TRACKED_SCHEMA_VERSION,
    JSONEdits,
    ManagedState,
    MCPEdit,
    SettingsEdit,
    SettingsMode,
    TrackedState,
)

__all__ = [
    "JSONEdits",
    "MCPEdit",
    "ManagedState",
    # operation.py
    "OperationResult",
    # release.py
    "Release",
    "ReleaseAsset",
    "SettingsEdit",
    "SettingsMode",
    # state.py
    "TRACKED_SCHEMA_VERSION",
    "TrackedState",
]
