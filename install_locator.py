"""
Seamless Co-op Manager - Game directory discovery

``autodetect_install_dir()`` never raises: not finding the game is a normal
outcome that the GUI shows as "<Not Found>".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from errors import InvalidInstallDirError
from release_cache import executable_dir

try:
    import winreg
except ImportError:  # not on Windows
    winreg = None

STEAM_APP_ID = 1245620
UNINSTALL_KEY = (
    rf"SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall\Steam App {STEAM_APP_ID}"
)
GAME_SUBDIR = "Game"
GAME_EXE_NAME = "eldenring.exe"

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstallationDirectory:
    """Root of an Elden Ring install (the directory containing ``Game/``)."""

    root: Path

    @property
    def game_dir(self) -> Path:
        return self.root / GAME_SUBDIR

    def validate(self):
        if not self.game_dir.is_dir():
            raise InvalidInstallDirError(
                f"{self.game_dir} is not a directory. Is {self.root} really an Elden Ring install?"
            )

    def __str__(self) -> str:
        return str(self.root)


def _registry_install_location() -> Optional[Path]:
    if winreg is None:
        return None
    try:
        with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, UNINSTALL_KEY) as key:
            value, _ = winreg.QueryValueEx(key, "InstallLocation")
    except OSError as exc:
        _log.debug("No Steam uninstall entry for app %d: %s", STEAM_APP_ID, exc)
        return None
    if not value:
        return None
    return Path(str(value))


def _sibling_install_location(exe_dir: Path) -> Optional[Path]:
    # Manager dropped into Game/ next to eldenring.exe, or into the install root
    if (exe_dir / GAME_EXE_NAME).is_file():
        return exe_dir.parent
    if (exe_dir / GAME_SUBDIR / GAME_EXE_NAME).is_file():
        return exe_dir
    return None


def autodetect_install_dir(exe_dir: str | Path | None = None) -> Optional[InstallationDirectory]:
    """Find the Elden Ring install: Steam's registry entry first, then our own location."""
    try:
        root = _registry_install_location()
        if root is not None:
            _log.info("Found install location in registry: %s", root)
            return InstallationDirectory(root)

        exe_dir = Path(exe_dir) if exe_dir is not None else executable_dir()
        root = _sibling_install_location(exe_dir)
        if root is not None:
            _log.info("Found %s next to the manager: %s", GAME_EXE_NAME, root)
            return InstallationDirectory(root)
    except OSError as exc:
        _log.warning("Install directory autodetection failed: %s", exc)
        return None

    _log.info("Elden Ring install directory not found")
    return None
