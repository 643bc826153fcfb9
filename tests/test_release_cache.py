"""
Tests for the download cache and its stage-then-rename protocol.
"""

from unittest.mock import patch

import pytest
import requests

from errors import NetworkError
from release_cache import CACHE_DIR_NAME, ReleaseCache, default_cache_dir
from tests.conftest import FakeResponse, make_release, zip_bytes

ARCHIVE = zip_bytes({"SeamlessCoop/ersc.dll": b"dll"})


def test_cache_paths(cache):
    release = make_release("1.7.3")

    assert cache.path_for(release) == cache.cache_dir / "1.7.3.zip"
    assert cache.partial_path_for(release) == cache.cache_dir / "1.7.3.zip.partial"


def test_tag_with_separators_stays_in_cache_dir(cache):
    release = make_release("release/1.0\\beta")

    assert cache.path_for(release).parent == cache.cache_dir


def test_default_cache_dir_name():
    assert default_cache_dir().name == CACHE_DIR_NAME
    assert ReleaseCache().cache_dir == default_cache_dir()


def test_partial_file_is_not_cached(cache):
    release = make_release()
    cache.cache_dir.mkdir(parents=True)
    cache.partial_path_for(release).write_bytes(ARCHIVE[:10])

    assert not cache.is_cached(release)


def test_directory_is_not_cached(cache):
    release = make_release()
    cache.path_for(release).mkdir(parents=True)

    assert not cache.is_cached(release)


def test_ensure_cached_downloads_once(cache):
    release = make_release()
    with patch("release_cache.requests.get", return_value=FakeResponse(200, ARCHIVE)) as get:
        first = cache.ensure_cached(release)
        second = cache.ensure_cached(release)

    assert get.call_count == 1
    assert get.call_args.args[0] == release.url
    assert first == second == cache.path_for(release)
    assert first.read_bytes() == ARCHIVE
    assert not cache.partial_path_for(release).exists()
    assert cache.is_cached(release)


def test_existing_file_is_trusted(cache):
    release = make_release()
    cache.cache_dir.mkdir(parents=True)
    cache.path_for(release).write_bytes(b"whatever is there")

    with patch("release_cache.requests.get") as get:
        path = cache.ensure_cached(release)

    get.assert_not_called()
    assert path.read_bytes() == b"whatever is there"


def test_stale_partial_is_replaced(cache):
    release = make_release()
    cache.cache_dir.mkdir(parents=True)
    cache.partial_path_for(release).write_bytes(b"left over from a crash")

    with patch("release_cache.requests.get", return_value=FakeResponse(200, ARCHIVE)):
        path = cache.ensure_cached(release)

    assert path.read_bytes() == ARCHIVE


def test_error_status_leaves_nothing_behind(cache):
    release = make_release()
    with patch("release_cache.requests.get", return_value=FakeResponse(404, b"Not Found")):
        with pytest.raises(NetworkError, match="Not Found"):
            cache.ensure_cached(release)

    assert not cache.path_for(release).exists()
    assert not cache.partial_path_for(release).exists()


def test_interrupted_download_is_not_published(cache):
    release = make_release()
    response = FakeResponse(200, ARCHIVE, fail_after=8)
    with patch("release_cache.requests.get", return_value=response):
        with pytest.raises(NetworkError, match="connection reset"):
            cache.ensure_cached(release)

    assert not cache.is_cached(release)
    assert not cache.path_for(release).exists()


def test_transport_error(cache):
    release = make_release()
    with patch("release_cache.requests.get", side_effect=requests.ConnectionError("offline")):
        with pytest.raises(NetworkError, match="offline"):
            cache.ensure_cached(release)


def test_progress_reported(cache):
    release = make_release()
    progress = []
    response = FakeResponse(200, ARCHIVE, headers={"Content-Length": str(len(ARCHIVE))})
    with patch("release_cache.requests.get", return_value=response):
        cache.ensure_cached(release, progress_callback=progress.append)

    assert progress
    assert progress == sorted(progress)
    assert progress[-1] == 1.0
