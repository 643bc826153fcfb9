"""
Wire schema for the GitHub release feed.

Only the parts of https://docs.github.com/en/rest/releases/releases that the
manager consumes are modelled; GitHub sends many more fields, which are
ignored.

Example (trimmed) response element:

{
    "tag_name": "1.7.3",
    "published_at": "2024-03-01T18:22:04Z",
    "body": "Fixed a desync when ...",
    "assets": [
        {"browser_download_url": "https://github.com/.../ersc.zip"}
    ]
}
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator

_log = logging.getLogger(__name__)


class GithubAsset(BaseModel):
    browser_download_url: str


class GithubRelease(BaseModel):
    """One element of the ``/releases`` array.

    ``body`` is ``null`` on the wire when a release has no notes; it is
    normalized to an empty string.  A release without assets has nothing to
    install, so it is rejected.
    """

    tag_name: str
    published_at: str
    body: str = ""
    assets: list[GithubAsset] = Field(default_factory=list)

    @field_validator("body", mode="before")
    @classmethod
    def _null_body(cls, v: str | None) -> str:
        return v or ""

    @model_validator(mode="after")
    def _has_asset(self) -> GithubRelease:
        if not self.assets:
            raise ValueError(f"Release {self.tag_name!r} has no downloadable assets")
        if len(self.assets) > 1:
            _log.debug(
                "Release %s has %d assets, using the first", self.tag_name, len(self.assets)
            )
        return self

    @property
    def download_url(self) -> str:
        return self.assets[0].browser_download_url


_RELEASE_LIST = TypeAdapter(list[GithubRelease])


def parse_releases(data: bytes | str) -> list[GithubRelease]:
    """Parse a raw ``/releases`` JSON body.

    Raises ``pydantic.ValidationError`` if the data is not a list of valid
    releases (including invalid JSON).
    """
    return _RELEASE_LIST.validate_json(data)
