"""
Configuration loader — reads the optional config.yml into a model.

The bootstrapper runs fine with no config file at all. When one is
present it can point at a different release repo, relax attestation,
pick the editor channel(s) to configure, or provide path overrides
(environment variables still win).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from ccsubagents.core.config.paths import (
    RELEASE_REPO,
    RELEASE_WORKFLOW_PATH,
    InstallTarget,
    parse_install_target,
)
from ccsubagents.core.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV = "CCSUBAGENTS_CONFIG"
DEFAULT_CONFIG_REL = ".config/ccsubagents/config.yml"


class ReleaseConfig(BaseModel):
    repo: str = RELEASE_REPO
    workflow_path: str = RELEASE_WORKFLOW_PATH


class HttpConfig(BaseModel):
    timeout: float = 30.0


class AttestationConfig(BaseModel):
    skip: bool = False


class InstallConfig(BaseModel):
    """Which editor channel(s) to configure: insiders, stable or both."""

    target: InstallTarget | None = None

    @field_validator("target", mode="before")
    @classmethod
    def _normalize_target(cls, value: Any) -> Any:
        return parse_install_target(value)


class PathsConfig(BaseModel):
    """Path overrides; resolved with the same rules as the env vars."""

    bin_dir: str | None = None
    settings: str | None = None
    mcp: str | None = None


class BootstrapConfig(BaseModel):
    """Root configuration model."""

    release: ReleaseConfig = Field(default_factory=ReleaseConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    attestation: AttestationConfig = Field(default_factory=AttestationConfig)
    install: InstallConfig = Field(default_factory=InstallConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)

    @property
    def release_latest_url(self) -> str:
        return f"https://api.github.com/repos/{self.release.repo}/releases/latest"


def find_config_file(home: Path, env: dict[str, str] | None = None) -> Path | None:
    """Locate the config file: ``$CCSUBAGENTS_CONFIG`` or the per-user default."""
    env = os.environ if env is None else env
    explicit = (env.get(CONFIG_ENV) or "").strip()
    if explicit:
        return Path(explicit).expanduser()

    candidate = home / DEFAULT_CONFIG_REL
    return candidate if candidate.is_file() else None


def load_config(path: Path | None = None) -> BootstrapConfig:
    """Load and validate the configuration.

    Args:
        path: Explicit config path. None means "no file", which yields
            the built-in defaults.

    Raises:
        ConfigError: If the file is missing, unreadable or invalid.
    """
    if path is None:
        return BootstrapConfig()

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return BootstrapConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        config = BootstrapConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    logger.info("Loaded config from %s (repo=%s)", path, config.release.repo)
    return config
