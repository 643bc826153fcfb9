"""
Seamless Co-op Manager - Install/uninstall engine

Installing copies every file of a release archive into the game's ``Game/``
directory; uninstalling deletes those same files.  Both walk the archive the
same way and share one protection rule: an ``.ini`` file that already exists
on disk is never touched, so the user's co-op settings survive reinstalls,
upgrades and uninstalls.

There is no rollback.  A failure part way through leaves whatever was done
so far; running the same operation again converges on the same result.

Public API
----------
install_release(release, install_dir, cache)
uninstall_release(release, install_dir, cache)
release_installed(release, install_dir, cache)  -> True / False / None (unknown)
launch_game(install_dir)                        -> path of the started launcher
"""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
import sys
import zipfile
import zlib
from pathlib import Path, PurePosixPath
from typing import Callable, Optional

from errors import CacheError, InstallError, LaunchError, NetworkError
from install_locator import InstallationDirectory
from release_cache import ReleaseCache
from release_catalog import Release

# The mod dll has been renamed over the years; any one of them identifies a release.
MARKER_FILES = (
    "SeamlessCoop/ersc.dll",
    "SeamlessCoop/elden_ring_seamless_coop.dll",
)
LAUNCHER_NAMES = (
    "ersc_launcher.exe",
    "launch_elden_ring_seamlesscoop.exe",
)
PROTECTED_SUFFIX = ".ini"

_DRIVE_RE = re.compile(r"^[A-Za-z]:")

_log = logging.getLogger(__name__)

EntryAction = Callable[[zipfile.ZipFile, zipfile.ZipInfo, Path], None]


# ── Archive paths ─────────────────────────────────────────────────────


def enclosed_name(name: str) -> Optional[PurePosixPath]:
    """Return ``name`` as a relative path, or None if it could escape its target."""
    name = name.replace("\\", "/")
    if name.startswith("/") or _DRIVE_RE.match(name):
        return None
    parts = [p for p in name.split("/") if p not in ("", ".")]
    if not parts or ".." in parts:
        return None
    return PurePosixPath(*parts)


def _is_protected(dest: Path) -> bool:
    return dest.suffix.lower() == PROTECTED_SUFFIX and dest.is_file()


# ── Shared traversal ──────────────────────────────────────────────────


def _walk_archive(
    release: Release,
    install_dir: InstallationDirectory,
    cache: ReleaseCache,
    action: EntryAction,
    verb: str,
) -> int:
    try:
        archive = cache.ensure_cached(release)
    except (NetworkError, OSError) as exc:
        raise CacheError(f"Couldn't get the archive for {release.tag}: {exc}") from exc

    install_dir.validate()
    game_dir = install_dir.game_dir

    try:
        zf = zipfile.ZipFile(archive, "r")
    except (zipfile.BadZipFile, OSError) as exc:
        raise InstallError(f"Couldn't open {archive}: {exc}") from exc

    done = 0
    with zf:
        for info in zf.infolist():
            if info.is_dir():
                continue
            rel = enclosed_name(info.filename)
            if rel is None:
                _log.warning("Skipping %r: path leaves the install directory", info.filename)
                continue
            dest = game_dir.joinpath(*rel.parts)
            if _is_protected(dest):
                _log.info("Keeping existing %s", rel)
                continue
            try:
                action(zf, info, dest)
            except (OSError, zipfile.BadZipFile, zlib.error) as exc:
                raise InstallError(f"{verb} {dest} failed: {exc}") from exc
            _log.debug("%s %s", verb, rel)
            done += 1
    return done


def _copy_entry(zf: zipfile.ZipFile, info: zipfile.ZipInfo, dest: Path):
    dest.parent.mkdir(parents=True, exist_ok=True)
    with zf.open(info) as src, dest.open("wb") as dst:
        shutil.copyfileobj(src, dst)


def _remove_entry(zf: zipfile.ZipFile, info: zipfile.ZipInfo, dest: Path):
    # Empty directories are left behind
    dest.unlink(missing_ok=True)


def install_release(
    release: Release, install_dir: InstallationDirectory, cache: ReleaseCache
) -> int:
    """Copy ``release`` into the game directory.  Returns the number of files written."""
    _log.info("Installing %s into %s", release.tag, install_dir.game_dir)
    return _walk_archive(release, install_dir, cache, _copy_entry, "Copying")


def uninstall_release(
    release: Release, install_dir: InstallationDirectory, cache: ReleaseCache
) -> int:
    """Delete ``release``'s files from the game directory.  Returns the number removed."""
    _log.info("Uninstalling %s from %s", release.tag, install_dir.game_dir)
    return _walk_archive(release, install_dir, cache, _remove_entry, "Removing")


# ── Installed detection ───────────────────────────────────────────────


def release_installed(
    release: Release, install_dir: InstallationDirectory, cache: ReleaseCache
) -> Optional[bool]:
    """Whether ``release`` is the one on disk.

    Compares the mod dll(s) in the cached archive with the game directory.
    Returns None when the archive has not been downloaded, since there is
    nothing to compare against.
    """
    if not cache.is_cached(release):
        return None

    archive = cache.path_for(release)
    try:
        with zipfile.ZipFile(archive, "r") as zf:
            members = {info.filename.replace("\\", "/"): info for info in zf.infolist()}
            for marker in MARKER_FILES:
                info = members.get(marker)
                if info is None:
                    continue
                on_disk = install_dir.game_dir / marker
                if not on_disk.is_file() or on_disk.stat().st_size != info.file_size:
                    continue
                if on_disk.read_bytes() == zf.read(info):
                    return True
    except (zipfile.BadZipFile, OSError, zlib.error) as exc:
        _log.warning("Couldn't check whether %s is installed: %s", release.tag, exc)
        return None
    return False


# ── Launch ────────────────────────────────────────────────────────────


def _detached_kwargs() -> dict:
    # The game must outlive the manager
    if sys.platform == "win32":
        return {
            "creationflags": subprocess.DETACHED_PROCESS | subprocess.CREATE_NEW_PROCESS_GROUP,
            "close_fds": True,
        }
    return {"start_new_session": True}


def find_launcher(install_dir: InstallationDirectory) -> Optional[Path]:
    for name in LAUNCHER_NAMES:
        exe = install_dir.game_dir / name
        if exe.is_file():
            return exe
    return None


def launch_game(install_dir: InstallationDirectory) -> Path:
    """Start the co-op launcher and return immediately."""
    exe = find_launcher(install_dir)
    if exe is None:
        raise LaunchError(
            f"Couldn't find {install_dir.game_dir / LAUNCHER_NAMES[0]} to launch"
        )
    _log.info("Launching %s", exe)
    try:
        subprocess.Popen([str(exe)], cwd=str(exe.parent), **_detached_kwargs())
    except OSError as exc:
        raise LaunchError(f"Launching {exe} failed: {exc}") from exc
    return exe
