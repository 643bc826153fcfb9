"""
Tests for the install/uninstall engine, installed-release detection and launching.
"""

from pathlib import PurePosixPath
from unittest.mock import patch

import pytest
import requests

from errors import CacheError, InstallError, InvalidInstallDirError, LaunchError
from install_locator import InstallationDirectory
from installer import (
    _detached_kwargs,
    enclosed_name,
    install_release,
    launch_game,
    release_installed,
    uninstall_release,
)
from tests.conftest import (
    NEW_RELEASE_FILES,
    OLD_RELEASE_FILES,
    FakeResponse,
    cache_release,
    make_release,
    zip_bytes,
)


# ── archive paths ────────────────────────────────────────────────────────────

@pytest.mark.parametrize(
    "name, expected",
    [
        ("SeamlessCoop/ersc.dll", "SeamlessCoop/ersc.dll"),
        ("SeamlessCoop\\ersc.dll", "SeamlessCoop/ersc.dll"),
        ("./ersc_launcher.exe", "ersc_launcher.exe"),
        ("../eldenring.exe", None),
        ("SeamlessCoop/../../x.dll", None),
        ("/etc/passwd", None),
        ("C:/Windows/evil.dll", None),
        ("", None),
    ],
)
def test_enclosed_name(name, expected):
    result = enclosed_name(name)
    assert result == (PurePosixPath(expected) if expected else None)


# ── install ──────────────────────────────────────────────────────────────────

def test_install_copies_files(install_dir, cache):
    release = make_release("2.0")
    cache_release(cache, release, NEW_RELEASE_FILES)

    count = install_release(release, install_dir, cache)

    game = install_dir.game_dir
    assert count == 3
    assert (game / "SeamlessCoop" / "ersc.dll").read_bytes() == b"ersc dll 2.0"
    assert (game / "ersc_launcher.exe").read_bytes() == b"launcher 2.0"
    assert (game / "SeamlessCoop" / "ersc_settings.ini").is_file()


def test_install_keeps_existing_ini_but_overwrites_dll(install_dir, cache):
    release = make_release("2.0")
    cache_release(cache, release, NEW_RELEASE_FILES)
    coop_dir = install_dir.game_dir / "SeamlessCoop"
    coop_dir.mkdir()
    (coop_dir / "ersc_settings.ini").write_text("[PASSWORD]\ncooppassword = mine\n", encoding="utf-8")
    (coop_dir / "ersc.dll").write_bytes(b"old dll")

    install_release(release, install_dir, cache)

    assert (coop_dir / "ersc_settings.ini").read_text(encoding="utf-8") == (
        "[PASSWORD]\ncooppassword = mine\n"
    )
    assert (coop_dir / "ersc.dll").read_bytes() == b"ersc dll 2.0"


def test_install_protects_ini_case_insensitively(install_dir, cache):
    release = make_release("2.0")
    cache_release(cache, release, {"SeamlessCoop/Extra.INI": "new"})
    (install_dir.game_dir / "SeamlessCoop").mkdir()
    (install_dir.game_dir / "SeamlessCoop" / "Extra.INI").write_text("old", encoding="utf-8")

    assert install_release(release, install_dir, cache) == 0
    assert (install_dir.game_dir / "SeamlessCoop" / "Extra.INI").read_text(encoding="utf-8") == "old"


def test_install_skips_escaping_entries(install_dir, cache):
    release = make_release("2.0")
    cache_release(cache, release, {"../evil.txt": "x", "SeamlessCoop/ersc.dll": b"dll"})

    assert install_release(release, install_dir, cache) == 1
    assert not (install_dir.root / "evil.txt").exists()
    assert (install_dir.game_dir / "SeamlessCoop" / "ersc.dll").exists()


def test_install_requires_game_dir(tmp_path, cache):
    release = make_release("2.0")
    cache_release(cache, release, NEW_RELEASE_FILES)

    with pytest.raises(InvalidInstallDirError):
        install_release(release, InstallationDirectory(tmp_path / "nowhere"), cache)


def test_install_downloads_missing_archive(install_dir, cache):
    release = make_release("2.0")
    response = FakeResponse(200, zip_bytes(NEW_RELEASE_FILES))
    with patch("release_cache.requests.get", return_value=response):
        install_release(release, install_dir, cache)

    assert cache.is_cached(release)
    assert (install_dir.game_dir / "SeamlessCoop" / "ersc.dll").exists()


def test_install_download_failure_is_cache_error(install_dir, cache):
    release = make_release("2.0")
    with patch("release_cache.requests.get", side_effect=requests.ConnectionError("offline")):
        with pytest.raises(CacheError, match="offline"):
            install_release(release, install_dir, cache)


def test_install_corrupt_archive(install_dir, cache):
    release = make_release("2.0")
    cache.cache_dir.mkdir(parents=True)
    cache.path_for(release).write_bytes(b"this is not a zip")

    with pytest.raises(InstallError):
        install_release(release, install_dir, cache)


def test_install_aborts_on_first_failure(install_dir, cache):
    release = make_release("2.0")
    cache_release(
        cache,
        release,
        {
            "SeamlessCoop/ersc.dll": b"dll",
            "ersc_launcher.exe": b"exe",
        },
    )
    # A directory where the dll should go makes the copy fail
    (install_dir.game_dir / "SeamlessCoop" / "ersc.dll").mkdir(parents=True)

    with pytest.raises(InstallError, match="ersc.dll"):
        install_release(release, install_dir, cache)

    assert not (install_dir.game_dir / "ersc_launcher.exe").exists()


# ── uninstall ────────────────────────────────────────────────────────────────

def test_uninstall_removes_files_but_keeps_settings(install_dir, cache):
    release = make_release("2.0")
    cache_release(cache, release, NEW_RELEASE_FILES)
    install_release(release, install_dir, cache)

    removed = uninstall_release(release, install_dir, cache)

    game = install_dir.game_dir
    assert removed == 2
    assert not (game / "SeamlessCoop" / "ersc.dll").exists()
    assert not (game / "ersc_launcher.exe").exists()
    assert (game / "SeamlessCoop" / "ersc_settings.ini").exists()
    assert (game / "SeamlessCoop").is_dir()


def test_uninstall_tolerates_missing_files(install_dir, cache):
    release = make_release("2.0")
    cache_release(cache, release, NEW_RELEASE_FILES)

    uninstall_release(release, install_dir, cache)
    uninstall_release(release, install_dir, cache)


def test_uninstall_does_not_touch_other_files(install_dir, cache):
    release = make_release("2.0")
    cache_release(cache, release, NEW_RELEASE_FILES)
    install_release(release, install_dir, cache)
    (install_dir.game_dir / "eldenring.exe").write_bytes(b"game")

    uninstall_release(release, install_dir, cache)

    assert (install_dir.game_dir / "eldenring.exe").read_bytes() == b"game"


# ── installed detection ──────────────────────────────────────────────────────

def test_installed_unknown_when_not_downloaded(install_dir, cache):
    release = make_release("2.0")
    coop_dir = install_dir.game_dir / "SeamlessCoop"
    coop_dir.mkdir()
    (coop_dir / "ersc.dll").write_bytes(b"ersc dll 2.0")

    assert release_installed(release, install_dir, cache) is None


def test_installed_when_marker_matches(install_dir, cache):
    release = make_release("2.0")
    cache_release(cache, release, NEW_RELEASE_FILES)
    install_release(release, install_dir, cache)

    assert release_installed(release, install_dir, cache) is True


def test_installed_with_old_marker_name(install_dir, cache):
    release = make_release("1.0")
    cache_release(cache, release, OLD_RELEASE_FILES)
    install_release(release, install_dir, cache)

    assert release_installed(release, install_dir, cache) is True


def test_not_installed_when_marker_differs(install_dir, cache):
    old = make_release("1.0")
    new = make_release("2.0")
    cache_release(cache, old, {"SeamlessCoop/ersc.dll": b"ersc dll 1.9"})
    cache_release(cache, new, NEW_RELEASE_FILES)
    install_release(new, install_dir, cache)

    assert release_installed(old, install_dir, cache) is False


def test_not_installed_on_empty_game_dir(install_dir, cache):
    release = make_release("2.0")
    cache_release(cache, release, NEW_RELEASE_FILES)

    assert release_installed(release, install_dir, cache) is False


# ── launch ───────────────────────────────────────────────────────────────────

def test_launch_missing_launcher(install_dir):
    with pytest.raises(LaunchError, match="ersc_launcher.exe"):
        launch_game(install_dir)


def test_launch_prefers_current_launcher(install_dir, monkeypatch):
    monkeypatch.setattr("installer.sys.platform", "linux")
    game = install_dir.game_dir
    (game / "ersc_launcher.exe").write_bytes(b"new")
    (game / "launch_elden_ring_seamlesscoop.exe").write_bytes(b"old")

    with patch("installer.subprocess.Popen") as popen:
        exe = launch_game(install_dir)

    assert exe == game / "ersc_launcher.exe"
    popen.assert_called_once_with(
        [str(game / "ersc_launcher.exe")], cwd=str(game), start_new_session=True
    )


def test_launch_old_launcher(install_dir):
    game = install_dir.game_dir
    (game / "launch_elden_ring_seamlesscoop.exe").write_bytes(b"old")

    with patch("installer.subprocess.Popen") as popen:
        exe = launch_game(install_dir)

    assert exe.name == "launch_elden_ring_seamlesscoop.exe"
    popen.assert_called_once()


def test_launch_spawn_failure(install_dir):
    (install_dir.game_dir / "ersc_launcher.exe").write_bytes(b"new")

    with patch("installer.subprocess.Popen", side_effect=PermissionError("denied")):
        with pytest.raises(LaunchError, match="denied"):
            launch_game(install_dir)


def test_launcher_is_detached_on_windows(monkeypatch):
    monkeypatch.setattr("installer.sys.platform", "win32")
    # Only defined on Windows
    monkeypatch.setattr("installer.subprocess.DETACHED_PROCESS", 0x8, raising=False)
    monkeypatch.setattr("installer.subprocess.CREATE_NEW_PROCESS_GROUP", 0x200, raising=False)

    assert _detached_kwargs() == {"creationflags": 0x208, "close_fds": True}
