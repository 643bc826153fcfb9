"""
Error types for the Seamless Co-op Manager.

Core modules raise these; ReleaseManager turns operation failures into
``(success, message)`` results for the GUI.  Filesystem failures are left
as plain ``OSError``.
"""


class ManagerError(Exception):
    """Base class for every error the manager reports to the user."""


class SettingsParseError(ManagerError):
    """A settings file could not be decoded."""


class NetworkError(ManagerError):
    """The release feed or a download failed (including non-2xx statuses)."""


class MalformedResponseError(ManagerError):
    """The release feed did not match the expected schema."""


class InvalidInstallDirError(ManagerError):
    """The installation directory is missing or has no Game directory."""


class NoSettingsFileError(ManagerError):
    """None of the known co-op settings files exist."""


class PasswordKeyMissingError(ManagerError):
    """A settings file exists but has no cooppassword entry."""


class CacheError(ManagerError):
    """A release archive could not be obtained for the cache."""


class InstallError(ManagerError):
    """Copying or removing a release's files failed."""


class LaunchError(ManagerError):
    """The co-op launcher could not be started."""
