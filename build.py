"""
Build script for the Elden Ring Seamless Co-op Manager.

Usage:  VERSION=1.2.3 python build.py

Creates:
  - version.py              (stamped with $VERSION, if set)
  - dist/ERSCoopManager/    (the standalone app folder)
  - ERSCoopManager.zip      (ready to attach to a GitHub release)

Safe to re-run.
"""

import os
import shutil
import subprocess
import sys
import time

APP_NAME = "ERSCoopManager"
PROJECT_DIR = os.path.dirname(os.path.abspath(__file__))


def write_version_file(version: str, path: str | None = None) -> str:
    """Rewrite version.py so the frozen exe knows its own release tag."""
    path = path or os.path.join(PROJECT_DIR, "version.py")
    with open(path, "w", encoding="utf-8") as f:
        f.write('"""Version of this manager build.  build.py rewrites this file from $VERSION."""\n')
        f.write("\n")
        f.write(f"__version__ = {version!r}\n")
    return path


def build_exe():
    """Run PyInstaller on main.py."""
    # Pre-clean dist/ ourselves with retries (Windows sometimes holds .pyd files
    # briefly for Defender scanning or indexing)
    dist_dir = os.path.join(PROJECT_DIR, "dist", APP_NAME)
    if os.path.isdir(dist_dir):
        for attempt in range(3):
            try:
                shutil.rmtree(dist_dir)
                break
            except PermissionError:
                print(f"dist/ locked, retrying in 2s... ({attempt + 1}/3)")
                time.sleep(2)

    cmd = [
        sys.executable,
        "-m",
        "PyInstaller",
        "main.py",
        "--name",
        APP_NAME,
        "--windowed",
        "--clean",
        "--noconfirm",
    ]
    print(f"Running: {' '.join(cmd)}")
    subprocess.run(cmd, check=True, cwd=PROJECT_DIR)
    print(f"\nBuild complete! Output is in dist/{APP_NAME}/")
    return dist_dir


def zip_dist(dist_dir: str) -> str:
    zip_base = os.path.join(PROJECT_DIR, APP_NAME)  # shutil adds .zip
    shutil.make_archive(zip_base, "zip", root_dir=os.path.dirname(dist_dir), base_dir=APP_NAME)
    final = zip_base + ".zip"
    size_mb = os.path.getsize(final) / (1024 * 1024)
    print(f"Done: {final} ({size_mb:.1f} MB)")
    return final


if __name__ == "__main__":
    version = os.environ.get("VERSION")
    if version:
        print(f"Stamping version {version}")
        write_version_file(version)
    zip_dist(build_exe())
