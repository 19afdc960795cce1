"""
Release resolver — latest-release lookup and asset download.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import ValidationError

from ccsubagents.adapters.base import HttpClient
from ccsubagents.core.config.paths import FILE_PERM, INSTALL_ASSET_NAMES
from ccsubagents.core.errors import ResolutionError
from ccsubagents.core.models.release import Release, ReleaseAsset

logger = logging.getLogger(__name__)

ACCEPT_GITHUB_JSON = "application/vnd.github+json"
USER_AGENT = "ccsubagents-bootstrap"
TOKEN_ENV = "GITHUB_TOKEN"

_ERROR_BODY_LIMIT = 4096


def github_headers(
    env: Mapping[str, str] | None = None,
    *,
    accept_json: bool = True,
) -> dict[str, str]:
    """Request headers for GitHub, with a bearer token when one is set."""
    env = os.environ if env is None else env
    headers = {"User-Agent": USER_AGENT}
    if accept_json:
        headers["Accept"] = ACCEPT_GITHUB_JSON
    token = (env.get(TOKEN_ENV) or "").strip()
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def _body_excerpt(body: bytes) -> str:
    return body[:_ERROR_BODY_LIMIT].decode("utf-8", errors="replace").strip()


def fetch_latest_release(
    http: HttpClient,
    url: str,
    env: Mapping[str, str] | None = None,
) -> Release:
    """GET the latest-release document.

    Raises:
        ResolutionError: Transport failure, non-200 status, undecodable
            JSON or a missing ``tag_name``.
    """
    logger.info("Resolving latest release: %s", url)
    try:
        resp = http.get(url, github_headers(env))
    except OSError as e:
        raise ResolutionError(f"request latest release: {e}") from e

    if not resp.ok:
        raise ResolutionError(
            f"latest release request failed: status={resp.status} "
            f"body={_body_excerpt(resp.body)}"
        )

    try:
        payload = json.loads(resp.body)
        if not isinstance(payload, dict):
            raise ValueError("expected a JSON object")
        release = Release.model_validate(payload)
    except (ValueError, ValidationError) as e:
        raise ResolutionError(f"decode latest release response: {e}") from e

    if not release.tag_name.strip():
        raise ResolutionError("latest release response is missing tag_name")

    logger.info("Latest release: %s (id=%d)", release.tag_name, release.id)
    return release


def map_required_assets(
    release: Release,
    names: tuple[str, ...] | list[str] = INSTALL_ASSET_NAMES,
) -> dict[str, ReleaseAsset]:
    """Pick the named assets out of a release.

    Raises:
        ResolutionError: If any is missing or lacks a download URL.
    """
    by_name = {asset.name: asset for asset in release.assets}
    selected: dict[str, ReleaseAsset] = {}
    for name in names:
        asset = by_name.get(name)
        if asset is None:
            raise ResolutionError(f'latest release is missing required asset "{name}"')
        if not asset.browser_download_url.strip():
            raise ResolutionError(f'release asset "{name}" has no download URL')
        selected[name] = asset
    return selected


def download_assets(
    http: HttpClient,
    assets: Mapping[str, ReleaseAsset],
    dest_dir: Path,
    env: Mapping[str, str] | None = None,
) -> dict[str, Path]:
    """Download each asset body verbatim into ``dest_dir``.

    Returns:
        Asset name → downloaded file.

    Raises:
        ResolutionError: If any download fails.
    """
    headers = github_headers(env, accept_json=False)
    downloaded: dict[str, Path] = {}

    for name, asset in assets.items():
        dest = dest_dir / name
        logger.info("Downloading %s", name)
        try:
            resp = http.get(asset.browser_download_url, headers)
        except OSError as e:
            raise ResolutionError(f'download release asset "{name}": {e}') from e

        if not resp.ok:
            raise ResolutionError(
                f'download release asset "{name}": status={resp.status} '
                f"body={_body_excerpt(resp.body)}"
            )

        try:
            dest.write_bytes(resp.body)
            os.chmod(dest, FILE_PERM)
        except OSError as e:
            raise ResolutionError(f'download release asset "{name}": {e}') from e

        logger.debug("Downloaded %s (%d bytes)", name, len(resp.body))
        downloaded[name] = dest

    return downloaded
