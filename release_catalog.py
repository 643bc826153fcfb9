"""
Seamless Co-op Manager - Release feed client

Public API
----------
fetch_releases(repo)              -> list[Release] in feed order
sort_releases(releases)           -> newest first, stable on equal dates
check_for_self_update(version)    -> newer manager Release, or None
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import requests
from pydantic import ValidationError

from errors import MalformedResponseError, ManagerError, NetworkError
from release_schema import parse_releases
from version import __version__

GITHUB_API_URL = "https://api.github.com"
MOD_REPO = "LukeYui/EldenRingSeamlessCoopRelease"
MANAGER_REPO = "caldwell/erscom"
MANAGER_RELEASES_PAGE = f"https://github.com/{MANAGER_REPO}/releases/latest"
API_TIMEOUT = 15

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Release:
    """One published version of the mod."""

    tag: str
    url: str  # first downloadable asset
    date: str  # ISO 8601 publish time; only used for ordering
    changelog: str = ""

    def display_name(self, cached: bool = False) -> str:
        return f"{self.tag}  --  {self.date}  {'[ Downloaded ]' if cached else ''}"


def releases_url(repo: str) -> str:
    return f"{GITHUB_API_URL}/repos/{repo}/releases"


def fetch_releases(repo: str = MOD_REPO) -> list[Release]:
    """Fetch every release of ``repo`` from GitHub, in feed order.

    Raises ``NetworkError`` when the request fails or GitHub answers with a
    non-2xx status, and ``MalformedResponseError`` when the body does not
    look like a release list.
    """
    url = releases_url(repo)
    _log.info("Fetching releases from %s", url)
    try:
        resp = requests.get(
            url,
            headers={
                "Accept": "application/vnd.github+json",
                "User-Agent": f"erscom {__version__}",
            },
            timeout=API_TIMEOUT,
        )
    except requests.RequestException as exc:
        raise NetworkError(f"Couldn't fetch releases from {url}: {exc}") from exc

    if not 200 <= resp.status_code < 300:
        raise NetworkError(resp.text or f"Got status {resp.status_code}")

    try:
        remote = parse_releases(resp.content)
    except ValidationError as exc:
        raise MalformedResponseError(f"Unexpected release data from {url}:\n{exc}") from exc

    releases = [
        Release(
            tag=r.tag_name,
            url=r.download_url,
            date=r.published_at,
            changelog=r.body,
        )
        for r in remote
    ]
    _log.info("Found %d release(s) of %s", len(releases), repo)
    return releases


def sort_releases(releases: list[Release]) -> list[Release]:
    # sorted() is stable with reverse=True, so equal dates keep feed order
    return sorted(releases, key=lambda r: r.date, reverse=True)


def check_for_self_update(
    running_version: str = __version__, repo: str = MANAGER_REPO
) -> Release | None:
    """Return the newest manager release if its tag differs from ours.

    This is a best-effort notice: any failure means "no update".
    """
    try:
        releases = sort_releases(fetch_releases(repo))
    except ManagerError as exc:
        _log.debug("Self-update check failed: %s", exc)
        return None

    if not releases or releases[0].tag == running_version:
        return None
    _log.info("Manager update available: %s -> %s", running_version, releases[0].tag)
    return releases[0]
