"""
Release metadata — the subset of the GitHub release API we consume.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ReleaseAsset(BaseModel):
    """A named downloadable file attached to a release."""

    name: str
    browser_download_url: str = ""


class Release(BaseModel):
    """Latest-release document: ``{id, tag_name, assets}``."""

    id: int = 0
    tag_name: str = ""
    assets: list[ReleaseAsset] = Field(default_factory=list)

    def asset_names(self) -> list[str]:
        return [asset.name for asset in self.assets]
