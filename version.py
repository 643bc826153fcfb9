"""Version of this manager build.  build.py rewrites this file from $VERSION."""

__version__ = "0.0.0-local"
