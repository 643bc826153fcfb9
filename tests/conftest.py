"""
Shared fixtures and helpers for the Seamless Co-op Manager test suite.
"""

import io
import json
import zipfile
from pathlib import Path

import pytest
import requests

from install_locator import InstallationDirectory
from release_cache import ReleaseCache
from release_catalog import Release

# Layout of a current release archive
NEW_RELEASE_FILES = {
    "SeamlessCoop/": "",
    "SeamlessCoop/ersc.dll": b"ersc dll 2.0",
    "SeamlessCoop/ersc_settings.ini": "[PASSWORD]\ncooppassword = \n",
    "ersc_launcher.exe": b"launcher 2.0",
}

# Layout of an old release archive, from before the files were renamed
OLD_RELEASE_FILES = {
    "SeamlessCoop/elden_ring_seamless_coop.dll": b"seamless dll 1.0",
    "SeamlessCoop/cooppassword.ini": "[SETTINGS]\ncooppassword = \n",
    "launch_elden_ring_seamlesscoop.exe": b"launcher 1.0",
}


def make_zip(path: Path, members: dict) -> Path:
    """Create a zip at path with the given {archive_path: content} entries."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        for member, data in members.items():
            zf.writestr(member, data)
    return path


def zip_bytes(members: dict) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for member, data in members.items():
            zf.writestr(member, data)
    return buf.getvalue()


def make_release(tag="1.0.0", date="2024-01-01T00:00:00Z", changelog="") -> Release:
    return Release(
        tag=tag,
        url=f"https://example.invalid/releases/{tag}/ersc.zip",
        date=date,
        changelog=changelog,
    )


def cache_release(cache: ReleaseCache, release: Release, members: dict) -> Path:
    return make_zip(cache.path_for(release), members)


def github_release(tag, published_at, body="notes", assets=("https://example.invalid/a.zip",)):
    return {
        "tag_name": tag,
        "published_at": published_at,
        "body": body,
        "assets": [{"browser_download_url": url, "size": 1} for url in assets],
        "draft": False,
    }


class FakeResponse:
    """Just enough of requests.Response for the catalog and the cache."""

    def __init__(self, status_code=200, content=b"", headers=None, fail_after=None):
        if not isinstance(content, bytes):
            content = json.dumps(content).encode("utf-8")
        self.status_code = status_code
        self.content = content
        self.headers = headers or {}
        self._fail_after = fail_after

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json(self):
        return json.loads(self.content)

    def iter_content(self, chunk_size=1):
        step = 4  # small chunks so fail_after can land mid-download
        for i in range(0, len(self.content), step):
            if self._fail_after is not None and i >= self._fail_after:
                raise requests.ConnectionError("connection reset")
            yield self.content[i : i + step]

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


@pytest.fixture
def install_dir(tmp_path) -> InstallationDirectory:
    """An ELDEN RING directory with an empty Game/ subdirectory."""
    root = tmp_path / "ELDEN RING"
    (root / "Game").mkdir(parents=True)
    return InstallationDirectory(root)


@pytest.fixture
def cache(tmp_path) -> ReleaseCache:
    return ReleaseCache(tmp_path / "release cache")
