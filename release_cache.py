"""
Seamless Co-op Manager - Download cache

Release archives are stored as ``<cache-dir>/<tag>.zip``.  Downloads are
written to ``<tag>.zip.partial`` and renamed into place only once complete,
so a file under the canonical name is always a whole archive and is trusted
without re-checking.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Callable, Optional

import requests

from errors import NetworkError
from release_catalog import Release
from version import __version__

CACHE_DIR_NAME = "release cache"
PARTIAL_SUFFIX = ".partial"
DOWNLOAD_TIMEOUT = 30
DOWNLOAD_CHUNK_SIZE = 1024 * 1024

_log = logging.getLogger(__name__)


def executable_dir() -> Path:
    """Directory of the running program (the exe when frozen)."""
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parent


def default_cache_dir() -> Path:
    return executable_dir() / CACHE_DIR_NAME


class ReleaseCache:
    def __init__(self, cache_dir: str | Path | None = None):
        self.cache_dir = Path(cache_dir) if cache_dir is not None else default_cache_dir()

    def path_for(self, release: Release) -> Path:
        name = release.tag.replace("/", "_").replace("\\", "_")
        return self.cache_dir / f"{name}.zip"

    def partial_path_for(self, release: Release) -> Path:
        path = self.path_for(release)
        return path.with_name(path.name + PARTIAL_SUFFIX)

    def is_cached(self, release: Release) -> bool:
        return self.path_for(release).is_file()

    def ensure_cached(
        self,
        release: Release,
        progress_callback: Optional[Callable[[float], None]] = None,
    ) -> Path:
        """Return the cached archive for ``release``, downloading it if needed.

        Raises ``NetworkError`` if the download fails and ``OSError`` if the
        cache directory cannot be written.
        """
        path = self.path_for(release)
        if path.is_file():
            return path

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        partial = self.partial_path_for(release)
        _log.info("Downloading %s from %s", release.tag, release.url)
        try:
            self._download(release.url, partial, progress_callback)
        except Exception:
            partial.unlink(missing_ok=True)
            raise
        os.replace(partial, path)
        _log.info("Cached %s at %s", release.tag, path)
        return path

    @staticmethod
    def _download(
        url: str,
        dest: Path,
        progress_callback: Optional[Callable[[float], None]] = None,
    ):
        try:
            with requests.get(
                url,
                stream=True,
                timeout=DOWNLOAD_TIMEOUT,
                headers={"User-Agent": f"erscom {__version__}"},
            ) as resp:
                if not 200 <= resp.status_code < 300:
                    raise NetworkError(
                        f"Downloading {url} failed: {resp.text or f'Got status {resp.status_code}'}"
                    )
                total = int(resp.headers.get("Content-Length", 0) or 0)
                downloaded = 0
                with dest.open("wb") as f:
                    for chunk in resp.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                        if not chunk:
                            continue
                        f.write(chunk)
                        downloaded += len(chunk)
                        if progress_callback and total:
                            progress_callback(min(downloaded / total, 1.0))
        except requests.RequestException as exc:
            raise NetworkError(f"Downloading {url} failed: {exc}") from exc
