"""
Seamless Co-op Manager - Core Logic

Ties the release feed, download cache, installer and settings files together
into the state shown by the GUI.  Nothing here is persisted: the state is
rebuilt from the game directory and the release feed on every refresh.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

import coop_settings
from errors import ManagerError, NetworkError
from install_locator import InstallationDirectory
from installer import install_release, launch_game, release_installed, uninstall_release
from release_cache import ReleaseCache
from release_catalog import (
    MOD_REPO,
    Release,
    check_for_self_update,
    fetch_releases,
    sort_releases,
)
from version import __version__

NOT_FOUND_MESSAGE = "The Elden Ring install directory was not found."

_log = logging.getLogger(__name__)


class ReleaseManager:
    """
    Main controller.

    Workflow:
        1. refresh() to fetch releases and detect which one is installed
        2. install() / uninstall() to switch releases
        3. set_password() / save_coop_settings() / launch()

    Operations return ``(success, message)`` so the GUI can decide whether
    to show a dialog; they leave the manager's state alone on failure.
    """

    def __init__(
        self,
        install_dir: Optional[InstallationDirectory],
        cache: Optional[ReleaseCache] = None,
        repo: str = MOD_REPO,
        log_callback: Optional[Callable[[str], None]] = None,
    ):
        self.install_dir = install_dir
        self.cache = cache if cache is not None else ReleaseCache()
        self.repo = repo
        self._log_cb = log_callback or _log.info

        # Runtime state
        self.releases: list[Release] = []  # newest first
        self.current: Optional[Release] = None
        self.password: Optional[str] = None  # None when no settings file could be read
        self.loaded_settings: list[coop_settings.Setting] = []

    # ── Logging ───────────────────────────────────────────────────────

    def log(self, msg: str):
        self._log_cb(msg)

    # ── Refresh ───────────────────────────────────────────────────────

    def refresh(self) -> tuple[bool, str]:
        self.log(f"Fetching releases of {self.repo}...")
        try:
            releases = sort_releases(fetch_releases(self.repo))
        except ManagerError as e:
            self.log(f"  Fetching releases failed: {e}")
            return False, str(e)

        self.releases = releases
        self.log(f"  Found {len(releases)} release(s)")
        self.detect_current()
        return True, f"Found {len(releases)} release(s)"

    def detect_current(self) -> Optional[Release]:
        self.current = None
        self.load_password()
        if self.install_dir is None:
            return None

        unknown = 0
        for release in self.releases:
            installed = release_installed(release, self.install_dir, self.cache)
            if installed is None:
                unknown += 1
            elif installed:
                self.current = release
                break

        if self.current:
            self.log(f"Installed version: {self.current.tag}")
        else:
            self.log(
                f"Installed version unknown ({unknown} release(s) not downloaded, can't compare)"
            )
        return self.current

    # ── Install / Uninstall ───────────────────────────────────────────

    def _release_at(self, index: int) -> Release | None:
        if 0 <= index < len(self.releases):
            return self.releases[index]
        return None

    def _saved_password(self) -> Optional[str]:
        try:
            return coop_settings.get_password(self.install_dir)
        except (ManagerError, OSError) as e:
            self.log(f"  No existing co-op password to carry over ({e})")
            return None

    def install(self, index: int) -> tuple[bool, str]:
        if self.install_dir is None:
            return False, NOT_FOUND_MESSAGE
        target = self._release_at(index)
        if target is None:
            return False, f"No release at index {index}"

        self.log(f"Installing {target.tag}...")

        # The new archive must be on disk before the old release is removed
        try:
            self.cache.ensure_cached(target)
        except (NetworkError, OSError) as e:
            self.log(f"  Download failed: {e}")
            return False, str(e)

        password = self._saved_password()

        if self.current is not None and self.current != target:
            self.log(f"  Removing {self.current.tag} first")
            try:
                removed = uninstall_release(self.current, self.install_dir, self.cache)
                self.log(f"  Removed {removed} file(s) of {self.current.tag}")
            except (ManagerError, OSError) as e:
                # Leftovers from the old release shouldn't stop the new install
                self.log(f"  WARNING: couldn't fully remove {self.current.tag}: {e}")

        try:
            copied = install_release(target, self.install_dir, self.cache)
        except (ManagerError, OSError) as e:
            self.log(f"  Install failed: {e}")
            return False, str(e)
        self.log(f"  Copied {copied} file(s)")

        # Settings files new to this release were just created with the default password
        if password is not None:
            try:
                written = coop_settings.set_password(self.install_dir, password)
                self.log(f"  Carried co-op password over to {len(written)} settings file(s)")
            except (ManagerError, OSError) as e:
                self.log(f"  WARNING: couldn't carry the co-op password over: {e}")

        self.detect_current()
        return True, f"Installed {target.tag}"

    def uninstall(self, index: int) -> tuple[bool, str]:
        if self.install_dir is None:
            return False, NOT_FOUND_MESSAGE
        target = self._release_at(index)
        if target is None:
            return False, f"No release at index {index}"

        self.log(f"Uninstalling {target.tag}...")
        try:
            removed = uninstall_release(target, self.install_dir, self.cache)
        except (ManagerError, OSError) as e:
            self.log(f"  Uninstall failed: {e}")
            return False, str(e)

        self.detect_current()
        return True, f"Removed {removed} file(s) of {target.tag}"

    # ── Password ──────────────────────────────────────────────────────

    def get_password(self) -> tuple[bool, str]:
        if self.install_dir is None:
            return False, NOT_FOUND_MESSAGE
        try:
            return True, coop_settings.get_password(self.install_dir)
        except (ManagerError, OSError) as e:
            return False, str(e)

    def load_password(self) -> Optional[str]:
        """Re-read the co-op password into ``self.password``."""
        ok, value = self.get_password()
        self.password = value if ok else None
        return self.password

    def set_password(self, password: str) -> tuple[bool, str]:
        if self.install_dir is None:
            return False, NOT_FOUND_MESSAGE
        try:
            written = coop_settings.set_password(self.install_dir, password)
        except (ManagerError, OSError) as e:
            return False, str(e)
        self.load_password()
        return True, f"Password saved to {', '.join(p.name for p in written)}"

    # ── Co-op settings ────────────────────────────────────────────────

    def load_coop_settings(self) -> tuple[bool, str]:
        """Read every co-op setting into ``self.loaded_settings``."""
        if self.install_dir is None:
            return False, NOT_FOUND_MESSAGE
        try:
            self.loaded_settings = coop_settings.read_settings(self.install_dir)
        except (ManagerError, OSError) as e:
            return False, str(e)
        return True, f"Read {len(self.loaded_settings)} co-op setting(s)"

    def save_coop_settings(self, values: dict[tuple[str, str], str]) -> tuple[bool, str]:
        if self.install_dir is None:
            return False, NOT_FOUND_MESSAGE
        try:
            path = coop_settings.write_settings(self.install_dir, values)
        except (ManagerError, OSError) as e:
            return False, str(e)
        self.load_password()
        return True, f"Saved {len(values)} setting(s) to {path.name}"

    # ── Install directory ─────────────────────────────────────────────

    def set_install_dir(self, install_dir: InstallationDirectory) -> tuple[bool, str]:
        self.install_dir = install_dir
        self.detect_current()
        return True, f"Install directory set to {install_dir}"

    # ── Launch ────────────────────────────────────────────────────────

    def launch(self) -> tuple[bool, str]:
        if self.install_dir is None:
            return False, NOT_FOUND_MESSAGE
        try:
            exe = launch_game(self.install_dir)
        except ManagerError as e:
            return False, str(e)
        return True, f"Launched {exe.name}"

    # ── Self update ───────────────────────────────────────────────────

    @staticmethod
    def check_self_update(running_version: str = __version__) -> Optional[Release]:
        return check_for_self_update(running_version)

    # ── View data ─────────────────────────────────────────────────────

    @property
    def can_modify(self) -> bool:
        return self.install_dir is not None

    @property
    def install_path_text(self) -> str:
        return str(self.install_dir) if self.install_dir is not None else ""

    @property
    def current_version_text(self) -> str:
        return self.current.tag if self.current is not None else ""

    @property
    def current_index(self) -> int:
        if self.current is None:
            return -1
        return self.releases.index(self.current)

    def available_versions(self) -> list[str]:
        return [r.display_name(self.cache.is_cached(r)) for r in self.releases]

    def version_at(self, index: int) -> str:
        release = self._release_at(index)
        return release.tag if release else ""

    def changelog_at(self, index: int) -> str:
        release = self._release_at(index)
        return release.changelog if release else ""
