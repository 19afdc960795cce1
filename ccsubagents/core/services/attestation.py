"""
Attestation verifier — provenance check via ``gh attestation verify``.

Every downloaded asset must carry a build attestation issued to the
release workflow on ``main``. Verification runs before anything on
disk is touched; one failure aborts the whole operation.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path

from ccsubagents.adapters.base import CommandRunner
from ccsubagents.core.errors import VerificationError

logger = logging.getLogger(__name__)

OIDC_ISSUER = "https://token.actions.githubusercontent.com"
VERIFY_TIMEOUT = 120


def cert_identity(repo: str, workflow_path: str) -> str:
    return f"https://github.com/{repo}/{workflow_path}@refs/heads/main"


def build_verify_command(path: Path, repo: str, workflow_path: str) -> list[str]:
    return [
        "gh", "attestation", "verify", str(path),
        "--repo", repo,
        "--cert-identity", cert_identity(repo, workflow_path),
        "--cert-oidc-issuer", OIDC_ISSUER,
    ]


def verify_downloaded_assets(
    runner: CommandRunner,
    downloaded: Mapping[str, Path],
    repo: str,
    workflow_path: str,
) -> None:
    """Verify each asset, in sorted name order.

    Raises:
        VerificationError: ``gh`` is missing, or any verification fails.
    """
    if runner.which("gh") is None:
        raise VerificationError(
            "attestation verification failed: gh CLI is required for "
            "attestation verification but was not found in PATH"
        )

    for name in sorted(downloaded):
        result = runner.run(
            build_verify_command(downloaded[name], repo, workflow_path),
            timeout=VERIFY_TIMEOUT,
        )
        if not result.get("ok"):
            detail = (result.get("stderr") or "").strip() or result.get("error", "unknown error")
            raise VerificationError(f"attestation verification failed for {name}: {detail}")
        logger.info("Attestation verified: %s", name)
