"""
Seamless Co-op Manager - Co-op settings files

The mod has stored its settings under three different file names over its
lifetime, each with its own section for the password:

    ersc_settings.ini           [PASSWORD]   current
    seamlesscoopsettings.ini    [PASSWORD]
    cooppassword.ini            [SETTINGS]   oldest

Reads use the newest file that exists.  Password writes go to every file
that exists, so mixed old/new mod versions stay in sync.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional

from errors import NoSettingsFileError, PasswordKeyMissingError
from ini_file import Blank, Comment, IniFile, KeyValue
from install_locator import InstallationDirectory

SETTINGS_DIR = "SeamlessCoop"
PASSWORD_KEY = "cooppassword"
PASSWORD_SECTIONS = ("PASSWORD", "SETTINGS")

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettingsLocation:
    filename: str
    section: str  # section holding cooppassword in this file

    def path(self, install_dir: InstallationDirectory) -> Path:
        return install_dir.game_dir / SETTINGS_DIR / self.filename


# Newest first
SETTINGS_LOCATIONS = (
    SettingsLocation("ersc_settings.ini", "PASSWORD"),
    SettingsLocation("seamlesscoopsettings.ini", "PASSWORD"),
    SettingsLocation("cooppassword.ini", "SETTINGS"),
)


class SettingKind(Enum):
    BOOLEAN = "boolean"
    STRING = "string"
    PASSWORD = "password"
    NUMBER = "number"


@dataclass
class Setting:
    section: str
    name: str
    value: str
    kind: SettingKind
    help: str = ""


# ── Locating ──────────────────────────────────────────────────────────


def existing_settings_files(
    install_dir: InstallationDirectory,
) -> list[tuple[SettingsLocation, Path]]:
    found = []
    for loc in SETTINGS_LOCATIONS:
        path = loc.path(install_dir)
        if path.is_file():
            found.append((loc, path))
    return found


def locate_settings_file(install_dir: InstallationDirectory) -> Optional[Path]:
    """The settings file to read from: the newest-named one on disk."""
    found = existing_settings_files(install_dir)
    return found[0][1] if found else None


def _require_settings_file(install_dir: InstallationDirectory) -> Path:
    path = locate_settings_file(install_dir)
    if path is None:
        raise NoSettingsFileError(
            f"Couldn't find a co-op settings file in {install_dir.game_dir / SETTINGS_DIR}. "
            "Is the mod installed?"
        )
    return path


# ── Password ──────────────────────────────────────────────────────────


def get_password(install_dir: InstallationDirectory) -> str:
    path = _require_settings_file(install_dir)
    ini = IniFile.read(path)
    for section in PASSWORD_SECTIONS:
        value = ini.get(section, PASSWORD_KEY)
        if value is not None:
            return value
    raise PasswordKeyMissingError(f"{path.name} has no {PASSWORD_KEY} setting")


def set_password(install_dir: InstallationDirectory, password: str) -> list[Path]:
    """Write ``password`` into every settings file that exists.  Returns the files written."""
    found = existing_settings_files(install_dir)
    if not found:
        _require_settings_file(install_dir)

    written = []
    for loc, path in found:
        ini = IniFile.read(path)
        ini.set(loc.section, PASSWORD_KEY, password)
        ini.write(path)
        _log.info("Set %s in %s [%s]", PASSWORD_KEY, path.name, loc.section)
        written.append(path)
    return written


# ── Generic settings ──────────────────────────────────────────────────


def infer_setting_kind(section: str, key: str, help_text: str) -> SettingKind:
    """Guess how a setting should be edited from its name and comments.

    The settings files have no schema, only free-text comments such as
    ``; 0 = disabled, 1 = enabled``, so this is approximate.  A wrong guess
    only changes which widget is shown.
    """
    section = section.lower()
    if "password" in key.lower():
        return SettingKind.PASSWORD
    if "%" in help_text:
        return SettingKind.NUMBER
    if section in ("save", "language"):
        return SettingKind.STRING
    if "2 =" in help_text:
        return SettingKind.NUMBER
    if "1 =" in help_text:
        return SettingKind.BOOLEAN
    if section == "gameplay":
        return SettingKind.BOOLEAN
    return SettingKind.STRING


def read_settings(install_dir: InstallationDirectory) -> list[Setting]:
    """Every setting in the current settings file, in file order.

    A setting's help text is the comment block directly above it.
    """
    ini = IniFile.read(_require_settings_file(install_dir))
    settings: list[Setting] = []
    help_lines: list[str] = []
    for section in ini.sections():
        for entry in section.entries:
            if isinstance(entry, Blank):
                help_lines = []
            elif isinstance(entry, Comment):
                help_lines.append(entry.text)
            elif isinstance(entry, KeyValue):
                help_text = "\n".join(help_lines)
                settings.append(
                    Setting(
                        section=section.name,
                        name=entry.key,
                        value=entry.value,
                        kind=infer_setting_kind(section.name, entry.key, help_text),
                        help=help_text,
                    )
                )
                help_lines = []
    return settings


def write_settings(
    install_dir: InstallationDirectory, values: Mapping[tuple[str, str], str]
) -> Path:
    """Apply ``{(section, key): value}`` to the current settings file."""
    path = _require_settings_file(install_dir)
    ini = IniFile.read(path)
    for (section, key), value in values.items():
        ini.set(section, key, value)
    ini.write(path)
    _log.info("Saved %d setting(s) to %s", len(values), path.name)
    return path
